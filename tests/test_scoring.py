"""
Tests for weighted confidence aggregation.
"""

import pytest

from csv_recon.config import MatchingRule
from csv_recon.matching.scoring import ConfidenceScorer

from conftest import txn_a, txn_b

HEADERS = ["Amount", "Date", "Reference"]


class TestConfidenceScorer:
    """Tests for ConfidenceScorer."""

    def test_weighted_mean(self, amount_reference_config):
        scorer = ConfidenceScorer(amount_reference_config.rules, HEADERS, HEADERS)
        a = txn_a(0, "100.00", reference="INV1")
        assert scorer.score(a, txn_b(0, "100.00", reference="INV1")) == 1.0
        assert scorer.score(a, txn_b(1, "105.00", reference="INV1")) == pytest.approx(0.4)
        assert scorer.score(a, txn_b(2, "100.00", reference="OTHER")) == pytest.approx(0.6)

    def test_rule_with_missing_column_is_left_out(self, amount_reference_config):
        scorer = ConfidenceScorer(amount_reference_config.rules, ["Amount"], ["Amount"])
        assert len(scorer.weighted) == 1
        # Only the amount rule contributes, normalized by its own weight
        assert scorer.score(txn_a(0, "10"), txn_b(0, "10")) == 1.0

    def test_no_applicable_rule_scores_zero(self, amount_reference_config):
        scorer = ConfidenceScorer(amount_reference_config.rules, ["Other"], ["Other"])
        assert not scorer.has_applicable_rules
        assert scorer.score(txn_a(0, "10"), txn_b(0, "10")) == 0.0

    def test_zero_weight_rule_does_not_count(self):
        rules = [
            MatchingRule(column_a="Amount", column_b="Amount", match_type="exact", weight=1.0),
            MatchingRule(column_a="Reference", column_b="Reference", match_type="exact", weight=0.0),
        ]
        scorer = ConfidenceScorer(rules, HEADERS, HEADERS)
        assert scorer.score(txn_a(0, "10", reference="X"), txn_b(0, "10", reference="Y")) == 1.0

    def test_confidence_is_bounded(self, three_rule_config):
        scorer = ConfidenceScorer(three_rule_config.rules, HEADERS, HEADERS)
        pairs = [
            (txn_a(0, "1", "2025-01-01", "R"), txn_b(0, "1", "2025-01-01", "R")),
            (txn_a(1, "1", "2025-01-01", "R"), txn_b(1, "900", "2024-01-01", "Q")),
            (txn_a(2), txn_b(2)),
        ]
        for a, b in pairs:
            assert 0.0 <= scorer.score(a, b) <= 1.0

    def test_rule_scores_in_rule_order(self, three_rule_config):
        scorer = ConfidenceScorer(three_rule_config.rules, HEADERS, HEADERS)
        scores = scorer.rule_scores(
            txn_a(0, "5", "2025-01-01", "R"), txn_b(0, "5", "2025-01-20", "R")
        )
        assert scores == [1.0, 0.0, 1.0]

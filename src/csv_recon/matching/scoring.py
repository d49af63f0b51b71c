"""
Confidence aggregation.
Combines per-rule scores into one weighted-mean confidence per candidate pair.
"""

from typing import Iterable, Optional, Sequence
import logging

from ..config import MatchingRule
from ..models.transaction import Transaction
from .strategies import RuleComparator, build_comparator

logger = logging.getLogger(__name__)

# Decimal places kept before the confidence floor comparison
CONFIDENCE_PRECISION = 12


class ConfidenceScorer:
    """
    Weighted-mean scorer for candidate pairs.

    Only rules whose columns exist on both sides take part, and the mean is
    normalized by the weight sum of those rules.
    """

    def __init__(
        self,
        rules: Sequence[MatchingRule],
        headers_a: Iterable[str],
        headers_b: Iterable[str],
        date_formats: Optional[Sequence[str]] = None,
    ):
        """
        Initialize the scorer.

        Args:
            rules: Validated matching rules
            headers_a: Columns present in source A
            headers_b: Columns present in source B
            date_formats: Date formats for date tolerance rules
        """
        columns_a = set(headers_a)
        columns_b = set(headers_b)

        self.weighted: list[tuple[float, RuleComparator]] = []
        for index, rule in enumerate(rules):
            if rule.column_a in columns_a and rule.column_b in columns_b:
                self.weighted.append((rule.weight, build_comparator(rule, date_formats)))
            else:
                logger.debug(
                    f"Rule {index} ({rule.column_a} vs {rule.column_b}) skipped: "
                    f"column missing from a source"
                )

        self.total_weight = sum(weight for weight, _ in self.weighted)

    @property
    def has_applicable_rules(self) -> bool:
        return self.total_weight > 0

    def rule_scores(self, txn_a: Transaction, txn_b: Transaction) -> list[float]:
        """Per-rule scores for one pair, in rule order."""
        return [comparator.score(txn_a.raw, txn_b.raw) for _, comparator in self.weighted]

    def score(self, txn_a: Transaction, txn_b: Transaction) -> float:
        """
        Aggregate confidence for one candidate pair.

        Returns:
            Weighted mean of rule scores in [0, 1]; 0.0 when no applicable
            rule carries weight
        """
        if self.total_weight <= 0:
            return 0.0

        weighted_sum = 0.0
        for weight, comparator in self.weighted:
            if weight:
                weighted_sum += weight * comparator.score(txn_a.raw, txn_b.raw)

        confidence = round(weighted_sum / self.total_weight, CONFIDENCE_PRECISION)
        return min(1.0, max(0.0, confidence))

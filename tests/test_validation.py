"""
Tests for matching configuration validation.
"""

import pytest

from csv_recon.config import MatchingConfig, MatchingRule
from csv_recon.matching.validation import (
    collect_config_issues,
    parse_matching_config,
    validate_config,
)
from csv_recon.utils.exceptions import ConfigurationError


def rule(**overrides):
    values = {"column_a": "Amount", "column_b": "Amount", "match_type": "exact", "weight": 1.0}
    values.update(overrides)
    return MatchingRule(**values)


class TestValidateConfig:
    """Tests for validate_config."""

    def test_valid_config_is_returned(self, three_rule_config):
        assert validate_config(three_rule_config) is three_rule_config

    def test_missing_column_identifies_rule_and_field(self, three_rule_config):
        headers = ["Amount", "Date", "Reference"]
        with pytest.raises(ConfigurationError) as exc_info:
            validate_config(three_rule_config, headers, ["Amount", "Date"])

        error = exc_info.value
        assert error.rule_index == 2
        assert error.field == "column_b"
        assert "Reference" in error.message

    def test_column_checks_skipped_without_headers(self):
        config = MatchingConfig(rules=[rule(column_a="Nowhere", column_b="Nowhere")])
        assert validate_config(config) is config

    def test_negative_tolerance(self):
        config = MatchingConfig(
            rules=[rule(match_type="tolerance_numeric", tolerance_value=-1)]
        )
        with pytest.raises(ConfigurationError) as exc_info:
            validate_config(config)
        assert exc_info.value.rule_index == 0
        assert exc_info.value.field == "tolerance_value"

    def test_tolerance_required_for_date_rule(self):
        config = MatchingConfig(rules=[rule(), rule(match_type="tolerance_date")])
        with pytest.raises(ConfigurationError) as exc_info:
            validate_config(config)
        assert exc_info.value.rule_index == 1
        assert exc_info.value.field == "tolerance_value"

    @pytest.mark.parametrize("threshold", [None, -0.1, 1.5])
    def test_similarity_threshold_range(self, threshold):
        config = MatchingConfig(
            rules=[rule(match_type="similar_text", similarity_threshold=threshold)]
        )
        with pytest.raises(ConfigurationError) as exc_info:
            validate_config(config)
        assert exc_info.value.field == "similarity_threshold"

    @pytest.mark.parametrize("threshold", [-0.01, 1.01, float("nan")])
    def test_min_confidence_range(self, threshold):
        config = MatchingConfig(rules=[rule()], min_confidence_threshold=threshold)
        with pytest.raises(ConfigurationError) as exc_info:
            validate_config(config)
        assert exc_info.value.rule_index is None
        assert exc_info.value.field == "min_confidence_threshold"

    def test_boundary_thresholds_are_valid(self):
        for threshold in (0.0, 1.0):
            config = MatchingConfig(rules=[rule()], min_confidence_threshold=threshold)
            validate_config(config)

    def test_requires_positive_weight(self):
        config = MatchingConfig(rules=[rule(weight=0.0), rule(weight=0.0)])
        with pytest.raises(ConfigurationError) as exc_info:
            validate_config(config)
        assert exc_info.value.field == "rules"

    def test_negative_weight(self):
        config = MatchingConfig(rules=[rule(), rule(weight=-2)])
        with pytest.raises(ConfigurationError) as exc_info:
            validate_config(config)
        assert exc_info.value.rule_index == 1
        assert exc_info.value.field == "weight"

    def test_empty_rules(self):
        with pytest.raises(ConfigurationError) as exc_info:
            validate_config(MatchingConfig(rules=[]))
        assert exc_info.value.field == "rules"

    def test_unsupported_matching_type(self):
        config = MatchingConfig(rules=[rule()], matching_type="oneToMany")
        with pytest.raises(ConfigurationError) as exc_info:
            validate_config(config)
        assert exc_info.value.field == "matching_type"

    def test_all_issues_are_collected(self):
        config = MatchingConfig(
            rules=[
                rule(column_a="Missing"),
                rule(match_type="tolerance_numeric", tolerance_value=-5, weight=-1),
            ],
            min_confidence_threshold=2,
        )
        issues = collect_config_issues(config, ["Amount"], ["Amount"])
        fields = [(issue.rule_index, issue.field) for issue in issues]
        assert fields == [
            (None, "min_confidence_threshold"),
            (0, "column_a"),
            (1, "weight"),
            (1, "tolerance_value"),
        ]

        with pytest.raises(ConfigurationError) as exc_info:
            validate_config(config, ["Amount"], ["Amount"])
        assert exc_info.value.issues == issues


class TestParseMatchingConfig:
    """Tests for parse_matching_config."""

    def test_accepts_camel_case(self):
        config = parse_matching_config(
            {
                "rules": [
                    {
                        "columnA": "Amount",
                        "columnB": "Value",
                        "matchType": "tolerance_numeric",
                        "toleranceValue": 0.5,
                        "toleranceNumericMode": "fixed",
                        "weight": 2,
                    }
                ],
                "minConfidenceThreshold": 0.8,
                "matchingType": "oneToOne",
            }
        )
        assert config.rules[0].column_b == "Value"
        assert config.rules[0].tolerance_numeric_mode.value == "fixed"
        assert config.min_confidence_threshold == 0.8

    def test_accepts_snake_case(self):
        config = parse_matching_config(
            {"rules": [{"column_a": "A", "column_b": "B", "match_type": "exact"}]}
        )
        assert config.rules[0].column_a == "A"

    def test_unknown_match_type_reports_rule_and_field(self):
        with pytest.raises(ConfigurationError) as exc_info:
            parse_matching_config(
                {
                    "rules": [
                        {"columnA": "A", "columnB": "B", "matchType": "exact"},
                        {"columnA": "A", "columnB": "B", "matchType": "fuzzy"},
                    ]
                }
            )
        assert exc_info.value.rule_index == 1
        assert exc_info.value.field == "match_type"

    def test_non_object_input(self):
        with pytest.raises(ConfigurationError):
            parse_matching_config(["not", "a", "config"])

    def test_model_instance_passes_through(self, three_rule_config):
        assert parse_matching_config(three_rule_config) is three_rule_config

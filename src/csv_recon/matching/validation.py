"""
Matching configuration validation.
Runs before any scoring; problems are reported with the rule index and field
so the caller can correct the input without running the engine.
"""

from typing import Any, Optional, Sequence
import logging
import math
import re

from pydantic import ValidationError

from ..config import ONE_TO_ONE, MatchingConfig, MatchType
from ..utils.exceptions import ConfigIssue, ConfigurationError

logger = logging.getLogger(__name__)

_CAMEL_BOUNDARY_RE = re.compile(r"(?<!^)(?=[A-Z])")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def collect_config_issues(
    config: MatchingConfig,
    headers_a: Optional[Sequence[str]] = None,
    headers_b: Optional[Sequence[str]] = None,
) -> list[ConfigIssue]:
    """
    List every problem in a matching configuration.

    Column existence is only checked for the sources whose headers are given.

    Args:
        config: Matching configuration to check
        headers_a: Source A column names, if known
        headers_b: Source B column names, if known

    Returns:
        Issues in rule order, config-level issues first
    """
    issues: list[ConfigIssue] = []

    if config.matching_type != ONE_TO_ONE:
        issues.append(
            ConfigIssue(
                None,
                "matching_type",
                f"unsupported matching type {config.matching_type!r}; only {ONE_TO_ONE!r} is supported",
            )
        )

    threshold = config.min_confidence_threshold
    if not _is_number(threshold) or not 0 <= threshold <= 1:
        issues.append(
            ConfigIssue(None, "min_confidence_threshold", "must be between 0 and 1")
        )

    if not config.rules:
        issues.append(ConfigIssue(None, "rules", "at least one rule is required"))
        return issues

    known_a = set(headers_a) if headers_a is not None else None
    known_b = set(headers_b) if headers_b is not None else None

    for index, rule in enumerate(config.rules):
        if not rule.column_a:
            issues.append(ConfigIssue(index, "column_a", "column is required"))
        elif known_a is not None and rule.column_a not in known_a:
            issues.append(
                ConfigIssue(index, "column_a", f"column {rule.column_a!r} not found in source A")
            )

        if not rule.column_b:
            issues.append(ConfigIssue(index, "column_b", "column is required"))
        elif known_b is not None and rule.column_b not in known_b:
            issues.append(
                ConfigIssue(index, "column_b", f"column {rule.column_b!r} not found in source B")
            )

        if not _is_number(rule.weight) or rule.weight < 0:
            issues.append(ConfigIssue(index, "weight", "must be a non-negative number"))

        match_type = MatchType(rule.match_type)
        if match_type in (MatchType.TOLERANCE_NUMERIC, MatchType.TOLERANCE_DATE):
            if rule.tolerance_value is None:
                issues.append(
                    ConfigIssue(index, "tolerance_value", f"required for {match_type.value}")
                )
            elif not _is_number(rule.tolerance_value) or rule.tolerance_value < 0:
                issues.append(ConfigIssue(index, "tolerance_value", "must be >= 0"))
        elif match_type is MatchType.SIMILAR_TEXT:
            value = rule.similarity_threshold
            if value is None:
                issues.append(
                    ConfigIssue(index, "similarity_threshold", "required for similar_text")
                )
            elif not _is_number(value) or not 0 <= value <= 1:
                issues.append(
                    ConfigIssue(index, "similarity_threshold", "must be between 0 and 1")
                )

    positive = [r for r in config.rules if _is_number(r.weight) and r.weight > 0]
    if not positive:
        issues.append(
            ConfigIssue(None, "rules", "at least one rule must have a positive weight")
        )

    return issues


def validate_config(
    config: MatchingConfig,
    headers_a: Optional[Sequence[str]] = None,
    headers_b: Optional[Sequence[str]] = None,
) -> MatchingConfig:
    """
    Validate a matching configuration.

    Args:
        config: Matching configuration to check
        headers_a: Source A column names, if known
        headers_b: Source B column names, if known

    Returns:
        The same configuration, for chaining

    Raises:
        ConfigurationError: Identifying the first offending rule and field;
            ``issues`` lists all of them
    """
    issues = collect_config_issues(config, headers_a, headers_b)
    if issues:
        first = issues[0]
        logger.warning(f"Configuration rejected with {len(issues)} issue(s)")
        raise ConfigurationError(first.message, first.rule_index, first.field, issues)
    return config


def _snake(name: str) -> str:
    return _CAMEL_BOUNDARY_RE.sub("_", name).lower()


def parse_matching_config(data: Any) -> MatchingConfig:
    """
    Build a MatchingConfig from untrusted dict input (YAML, JSON, AI output).

    Structural problems are raised as ConfigurationError with the rule index
    and field, like validation failures. Range checks still need
    ``validate_config``.

    Raises:
        ConfigurationError: If the input does not have the config shape
    """
    if isinstance(data, MatchingConfig):
        return data
    if not isinstance(data, dict):
        raise ConfigurationError("matching configuration must be an object")

    try:
        return MatchingConfig.model_validate(data)
    except ValidationError as e:
        issues: list[ConfigIssue] = []
        for error in e.errors():
            loc = list(error.get("loc", ()))
            rule_index: Optional[int] = None
            field: Optional[str] = None
            if len(loc) >= 2 and loc[0] == "rules" and isinstance(loc[1], int):
                rule_index = loc[1]
                field = _snake(str(loc[2])) if len(loc) > 2 else None
            elif loc:
                field = _snake(str(loc[0]))
            issues.append(ConfigIssue(rule_index, field, error.get("msg", "invalid value")))
        first = issues[0]
        raise ConfigurationError(first.message, first.rule_index, first.field, issues) from e

"""Normalization pre-pass: value grouping suggestions and data quality scan."""

from .suggestions import (
    NormalizationSuggestion,
    SuggestionTier,
    ValueMapping,
    apply_suggestion,
    apply_to_transactions,
    suggest_for_sources,
    suggest_normalizations,
)
from .quality_scan import (
    DataQualityIssue,
    IssueType,
    ScanResult,
    apply_auto_fix,
    scan_data_quality,
)

__all__ = [
    "NormalizationSuggestion",
    "SuggestionTier",
    "ValueMapping",
    "apply_suggestion",
    "apply_to_transactions",
    "suggest_for_sources",
    "suggest_normalizations",
    "DataQualityIssue",
    "IssueType",
    "ScanResult",
    "apply_auto_fix",
    "scan_data_quality",
]

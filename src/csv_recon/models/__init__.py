"""Data models for reconciliation."""

from .transaction import (
    ColumnMapping,
    ConfidenceLevel,
    MatchResult,
    ReconciliationResult,
    ReconciliationSummary,
    SourceData,
    Transaction,
    TransactionSource,
    confidence_level,
)

__all__ = [
    "ColumnMapping",
    "ConfidenceLevel",
    "MatchResult",
    "ReconciliationResult",
    "ReconciliationSummary",
    "SourceData",
    "Transaction",
    "TransactionSource",
    "confidence_level",
]

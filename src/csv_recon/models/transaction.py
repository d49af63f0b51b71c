"""Data models for reconciliation transactions and results."""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from ..config import MatchingConfig

HIGH_CONFIDENCE_MIN = 0.85
MEDIUM_CONFIDENCE_MIN = 0.6


class TransactionSource(Enum):
    """Which of the two input sets a transaction came from."""

    SOURCE_A = "sourceA"
    SOURCE_B = "sourceB"

    @property
    def other(self) -> "TransactionSource":
        if self is TransactionSource.SOURCE_A:
            return TransactionSource.SOURCE_B
        return TransactionSource.SOURCE_A

    @property
    def label(self) -> str:
        return "Source A" if self is TransactionSource.SOURCE_A else "Source B"


class ConfidenceLevel(Enum):
    """Display label for a confidence value. Never used for assignment."""

    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


def confidence_level(confidence: float) -> ConfidenceLevel:
    """Map a confidence in [0, 1] to High (>=0.85), Medium (>=0.6) or Low."""
    if confidence >= HIGH_CONFIDENCE_MIN:
        return ConfidenceLevel.HIGH
    if confidence >= MEDIUM_CONFIDENCE_MIN:
        return ConfidenceLevel.MEDIUM
    return ConfidenceLevel.LOW


@dataclass(frozen=True)
class SourceData:
    """Parsed rows of one source, as received from ingestion."""

    headers: list[str]
    rows: list[dict[str, str]]
    filename: Optional[str] = None

    @property
    def row_count(self) -> int:
        return len(self.rows)


@dataclass(frozen=True)
class ColumnMapping:
    """Raw columns feeding a transaction's amount, date and reference."""

    amount: str
    date: str
    reference: str


@dataclass(frozen=True)
class Transaction:
    """
    One row from a source.

    ``raw`` keeps every original column verbatim; rules are evaluated
    against it. ``amount`` and ``date`` are None when the mapped cell does
    not parse. ``row_index`` is the 0-based position in the source and is
    unique within that source for the whole run.
    """

    source: TransactionSource
    row_index: int
    amount: Optional[Decimal]
    date: Optional[date]
    reference: Optional[str]
    raw: dict[str, str] = field(default_factory=dict, hash=False, compare=True)

    @property
    def key(self) -> tuple[str, int]:
        """Identity of the transaction within a run."""
        return (self.source.value, self.row_index)


@dataclass(frozen=True)
class MatchResult:
    """One accepted pairing of A-side and B-side transactions."""

    transactions_a: tuple[Transaction, ...]
    transactions_b: tuple[Transaction, ...]
    confidence: float

    @property
    def confidence_level(self) -> ConfidenceLevel:
        return confidence_level(self.confidence)

    @property
    def amount_variance(self) -> Optional[Decimal]:
        """Sum of A amounts minus sum of B amounts, None if any amount is missing."""
        amounts_a = [t.amount for t in self.transactions_a]
        amounts_b = [t.amount for t in self.transactions_b]
        if any(a is None for a in amounts_a + amounts_b):
            return None
        return sum(amounts_a, Decimal("0")) - sum(amounts_b, Decimal("0"))

    @property
    def date_variance_days(self) -> Optional[int]:
        if len(self.transactions_a) != 1 or len(self.transactions_b) != 1:
            return None
        date_a = self.transactions_a[0].date
        date_b = self.transactions_b[0].date
        if date_a is None or date_b is None:
            return None
        return abs((date_a - date_b).days)


@dataclass(frozen=True)
class ReconciliationResult:
    """Full output of one engine run. Built once, never modified."""

    matched: tuple[MatchResult, ...]
    unmatched_a: tuple[Transaction, ...]
    unmatched_b: tuple[Transaction, ...]
    config: "MatchingConfig"

    @property
    def matched_count(self) -> int:
        return len(self.matched)

    @property
    def total_a(self) -> int:
        return sum(len(m.transactions_a) for m in self.matched) + len(self.unmatched_a)

    @property
    def total_b(self) -> int:
        return sum(len(m.transactions_b) for m in self.matched) + len(self.unmatched_b)

    @property
    def match_rate(self) -> float:
        """Share of all records that ended up in a pairing (0.0-1.0)."""
        total = self.total_a + self.total_b
        if total == 0:
            return 0.0
        paired = sum(len(m.transactions_a) + len(m.transactions_b) for m in self.matched)
        return paired / total

    @property
    def matched_amount(self) -> Decimal:
        """Total A-side amount of matched records (missing amounts count as zero)."""
        return sum(
            (t.amount or Decimal("0") for m in self.matched for t in m.transactions_a),
            Decimal("0"),
        )

    def all_a(self) -> list[Transaction]:
        """Every source A transaction, in row order."""
        items = [t for m in self.matched for t in m.transactions_a] + list(self.unmatched_a)
        return sorted(items, key=lambda t: t.row_index)

    def all_b(self) -> list[Transaction]:
        """Every source B transaction, in row order."""
        items = [t for m in self.matched for t in m.transactions_b] + list(self.unmatched_b)
        return sorted(items, key=lambda t: t.row_index)


@dataclass
class ReconciliationSummary:
    """Run-level figures for reports and the CLI."""

    source_a_filename: str
    source_b_filename: str
    reconciliation_date: datetime
    total_a: int
    total_b: int
    matched_count: int
    unmatched_a_count: int
    unmatched_b_count: int
    matched_amount: Decimal
    total_amount_variance: Decimal
    variance_count: int
    min_confidence_threshold: float
    rule_count: int
    matches_by_level: dict[str, int] = field(default_factory=dict)
    processing_time_seconds: float = 0.0
    config_file_used: Optional[str] = None

    @property
    def match_rate_a(self) -> float:
        """Percentage of source A records matched."""
        if self.total_a == 0:
            return 0.0
        return (self.matched_count / self.total_a) * 100

    @property
    def match_rate_b(self) -> float:
        """Percentage of source B records matched."""
        if self.total_b == 0:
            return 0.0
        return (self.matched_count / self.total_b) * 100

"""
Structured hints for unmatched records.

Hints are plain data consumed by the explanation service and the reports;
they never change the reconciliation result.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Optional, Sequence
import logging

from ..config import MatchType
from ..models.transaction import ReconciliationResult, Transaction, TransactionSource
from ..utils.text import fold_text

logger = logging.getLogger(__name__)

DEFAULT_DATE_WINDOW_DAYS = 3


class HintKind(Enum):
    """Kinds of unmatched-record hints."""

    AMOUNT_DELTA = "amount_delta"
    DUPLICATE_REFERENCE = "duplicate_reference"
    DATE_GAP = "date_gap"


@dataclass(frozen=True)
class AnomalyHint:
    """
    One observation about a record or group of records.

    ``row_index`` is the record the hint is about (the first occurrence for
    duplicate references). ``counterpart_row_index`` refers to the other
    source. ``amount_delta`` is this record's amount minus the counterpart's.
    """

    kind: HintKind
    source: TransactionSource
    row_index: int
    reference: Optional[str] = None
    counterpart_row_index: Optional[int] = None
    amount_delta: Optional[Decimal] = None
    date_gap_days: Optional[int] = None
    row_indexes: tuple[int, ...] = field(default_factory=tuple)
    message: str = ""

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "source": self.source.value,
            "rowIndex": self.row_index,
            "reference": self.reference,
            "counterpartRowIndex": self.counterpart_row_index,
            "amountDelta": None if self.amount_delta is None else str(self.amount_delta),
            "dateGapDays": self.date_gap_days,
            "rowIndexes": list(self.row_indexes),
            "message": self.message,
        }


def plausible_date_window(
    result: ReconciliationResult, default_window: int = DEFAULT_DATE_WINDOW_DAYS
) -> float:
    """Largest ``tolerance_date`` window in the run's rules, else the default."""
    windows = [
        float(rule.tolerance_value)
        for rule in result.config.rules
        if MatchType(rule.match_type) is MatchType.TOLERANCE_DATE
        and rule.tolerance_value is not None
    ]
    return max(windows) if windows else default_window


def _day_gap(txn: Transaction, other: Transaction) -> Optional[int]:
    if txn.date is None or other.date is None:
        return None
    return abs((txn.date - other.date).days)


def _nearest_same_reference(
    txn: Transaction, counterparts: Sequence[Transaction]
) -> Optional[Transaction]:
    if txn.amount is None or not txn.reference:
        return None
    key = fold_text(txn.reference)
    same = [
        other
        for other in counterparts
        if other.reference and other.amount is not None and fold_text(other.reference) == key
    ]
    if not same:
        return None
    return min(same, key=lambda other: (abs(txn.amount - other.amount), other.row_index))


def _amount_delta_hint(txn: Transaction, counterpart: Transaction) -> AnomalyHint:
    delta = txn.amount - counterpart.amount
    return AnomalyHint(
        kind=HintKind.AMOUNT_DELTA,
        source=txn.source,
        row_index=txn.row_index,
        reference=txn.reference,
        counterpart_row_index=counterpart.row_index,
        amount_delta=delta,
        date_gap_days=_day_gap(txn, counterpart),
        message=(
            f"{txn.source.label} row {txn.row_index} differs by {delta} from "
            f"{counterpart.source.label} row {counterpart.row_index} with the same reference"
        ),
    )


def _duplicate_reference_hints(
    transactions: Sequence[Transaction], source: TransactionSource
) -> list[AnomalyHint]:
    groups: dict[str, list[Transaction]] = {}
    for txn in transactions:
        if txn.reference:
            groups.setdefault(fold_text(txn.reference), []).append(txn)

    hints: list[AnomalyHint] = []
    for members in groups.values():
        if len(members) < 2:
            continue
        rows = tuple(sorted(t.row_index for t in members))
        hints.append(
            AnomalyHint(
                kind=HintKind.DUPLICATE_REFERENCE,
                source=source,
                row_index=rows[0],
                reference=members[0].reference,
                row_indexes=rows,
                message=(
                    f"Reference {members[0].reference!r} appears {len(rows)} times "
                    f"in {source.label}"
                ),
            )
        )
    return sorted(hints, key=lambda h: h.row_index)


def _date_gap_hint(
    txn: Transaction, counterparts: Sequence[Transaction], window: float
) -> Optional[AnomalyHint]:
    if txn.date is None:
        return None
    gaps: list[tuple[int, int]] = []
    for other in counterparts:
        gap = _day_gap(txn, other)
        if gap is not None:
            gaps.append((gap, other.row_index))
    if not gaps:
        return None
    nearest_gap, nearest_row = min(gaps)
    if nearest_gap <= window:
        return None
    return AnomalyHint(
        kind=HintKind.DATE_GAP,
        source=txn.source,
        row_index=txn.row_index,
        reference=txn.reference,
        counterpart_row_index=nearest_row,
        date_gap_days=nearest_gap,
        message=(
            f"{txn.source.label} row {txn.row_index} is {nearest_gap} days from the "
            f"nearest dated record in {txn.source.other.label} (window {window:g})"
        ),
    )


def detect_unmatched_hints(
    result: ReconciliationResult,
    date_window_days: Optional[float] = None,
    default_window: int = DEFAULT_DATE_WINDOW_DAYS,
    include_matched: bool = False,
) -> tuple[AnomalyHint, ...]:
    """
    Annotate unmatched records with likely explanations.

    Hints come out in a fixed order: amount deltas (A then B, row order,
    then matched pairs when requested), duplicate references (A then B),
    date gaps (A then B).

    Args:
        result: Engine output; never modified
        date_window_days: Plausible date window; defaults to the widest
            ``tolerance_date`` rule, else ``default_window``
        default_window: Window used when no date rule exists
        include_matched: Also report amount deltas of accepted pairs

    Returns:
        Tuple of hints
    """
    window = (
        date_window_days
        if date_window_days is not None
        else plausible_date_window(result, default_window)
    )
    all_a = result.all_a()
    all_b = result.all_b()
    counterparts = {
        TransactionSource.SOURCE_A: all_b,
        TransactionSource.SOURCE_B: all_a,
    }

    hints: list[AnomalyHint] = []

    for txn in list(result.unmatched_a) + list(result.unmatched_b):
        nearest = _nearest_same_reference(txn, counterparts[txn.source])
        if nearest is not None:
            hints.append(_amount_delta_hint(txn, nearest))

    if include_matched:
        for match in sorted(result.matched, key=lambda m: m.transactions_a[0].row_index):
            txn_a = match.transactions_a[0]
            txn_b = match.transactions_b[0]
            if txn_a.amount is None or txn_b.amount is None or txn_a.amount == txn_b.amount:
                continue
            hints.append(_amount_delta_hint(txn_a, txn_b))

    hints.extend(_duplicate_reference_hints(all_a, TransactionSource.SOURCE_A))
    hints.extend(_duplicate_reference_hints(all_b, TransactionSource.SOURCE_B))

    for txn in list(result.unmatched_a) + list(result.unmatched_b):
        hint = _date_gap_hint(txn, counterparts[txn.source], window)
        if hint is not None:
            hints.append(hint)

    logger.debug(f"Generated {len(hints)} hints (date window {window} days)")
    return tuple(hints)


def hints_for(hints: Sequence[AnomalyHint], txn: Transaction) -> list[AnomalyHint]:
    """Hints that mention the given transaction."""
    return [
        hint
        for hint in hints
        if hint.source is txn.source
        and (hint.row_index == txn.row_index or txn.row_index in hint.row_indexes)
    ]

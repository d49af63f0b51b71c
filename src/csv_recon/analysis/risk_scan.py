"""
Risk scan over a finished reconciliation.
Flags suspicious patterns in matched and unmatched records for review.
"""

from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal
from enum import Enum
from typing import Optional, Sequence
import logging
import math

from ..config import AnomalySettings
from ..models.transaction import (
    HIGH_CONFIDENCE_MIN,
    MatchResult,
    ReconciliationResult,
    Transaction,
)
from ..utils.text import fold_text, text_similarity

logger = logging.getLogger(__name__)

# Columns checked, in order, for a payee name before falling back to the reference
PAYEE_COLUMNS = ["VendorName", "PayeeName", "Payee", "Vendor", "Customer", "Company", "Name"]

SPLITTING_BANDS = [
    (Decimal("4500"), Decimal("4999")),
    (Decimal("9500"), Decimal("9999")),
]


class AnomalyType(Enum):
    """Patterns detected by the risk scan."""

    DUPLICATE_PAYMENT = "duplicate_payment"
    ROUND_AMOUNT = "round_amount"
    THRESHOLD_SPLITTING = "threshold_splitting"
    UNUSUAL_AMOUNT = "unusual_amount"
    WEEKEND_TRANSACTION = "weekend_transaction"
    DUPLICATE_REFERENCE = "duplicate_reference"
    STALE_UNMATCHED = "stale_unmatched"
    AMOUNT_MISMATCH_PATTERN = "amount_mismatch_pattern"


class Severity(Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(frozen=True)
class Anomaly:
    """A flagged pattern and the transactions involved."""

    id: str
    type: AnomalyType
    severity: Severity
    title: str
    description: str
    affected: tuple[Transaction, ...]
    risk_score: int
    recommended_action: str

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type.value,
            "severity": self.severity.value,
            "title": self.title,
            "description": self.description,
            "riskScore": self.risk_score,
            "recommendedAction": self.recommended_action,
            "affectedTransactions": [
                {
                    "source": t.source.value,
                    "rowIndex": t.row_index,
                    "amount": None if t.amount is None else str(t.amount),
                    "date": None if t.date is None else t.date.isoformat(),
                    "reference": t.reference,
                }
                for t in self.affected
            ],
        }


@dataclass(frozen=True)
class AnomalyReport:
    """Anomalies sorted by descending risk score, with severity counts."""

    anomalies: tuple[Anomaly, ...]
    counts: dict[str, int] = field(default_factory=dict)
    total_risk_score: float = 0.0

    def to_dict(self) -> dict:
        return {
            "anomalies": [a.to_dict() for a in self.anomalies],
            "summary": {**self.counts, "totalRiskScore": self.total_risk_score},
        }


def _payee_or_reference(txn: Transaction) -> str:
    for column in PAYEE_COLUMNS:
        value = (txn.raw.get(column) or "").strip()
        if value:
            return value
    return (txn.reference or "").strip()


def _side_amount(transactions: Sequence[Transaction]) -> Optional[Decimal]:
    if any(t.amount is None for t in transactions):
        return None
    return sum((t.amount for t in transactions), Decimal("0"))


def _mean_std(values: Sequence[float]) -> tuple[float, float]:
    mean = sum(values) / len(values)
    variance = sum((v - mean) ** 2 for v in values) / len(values)
    return mean, math.sqrt(variance) or 0.0001


class RiskScanner:
    """Runs every detector over one reconciliation result."""

    def __init__(self, settings: Optional[AnomalySettings] = None):
        self.settings = settings or AnomalySettings()

    def scan(self, result: ReconciliationResult) -> AnomalyReport:
        """
        Scan a result for risk patterns.

        Args:
            result: Engine output; never modified

        Returns:
            AnomalyReport with anomalies sorted by risk score
        """
        detectors = [
            self._duplicate_payments,
            self._round_amounts,
            self._threshold_splitting,
            self._unusual_amounts,
            self._weekend_transactions,
            self._duplicate_references,
            self._stale_unmatched,
            self._amount_mismatch_pattern,
        ]
        anomalies: list[Anomaly] = []
        for detector in detectors:
            anomalies.extend(detector(result))

        anomalies.sort(key=lambda a: -a.risk_score)

        counts = {severity.value: 0 for severity in Severity}
        for anomaly in anomalies:
            counts[anomaly.severity.value] += 1

        total = sum(a.risk_score for a in anomalies) / max(len(anomalies), 1)
        logger.info(f"Risk scan found {len(anomalies)} anomalies")
        return AnomalyReport(
            anomalies=tuple(anomalies),
            counts=counts,
            total_risk_score=min(100.0, total),
        )

    def _duplicate_payments(self, result: ReconciliationResult) -> list[Anomaly]:
        anomalies: list[Anomaly] = []
        matched = result.matched
        for i in range(len(matched)):
            for j in range(i + 1, len(matched)):
                first, second = matched[i], matched[j]
                amount_first = _side_amount(first.transactions_a)
                amount_second = _side_amount(second.transactions_a)
                if amount_first is None or amount_second is None:
                    continue
                if abs(amount_first - amount_second) > Decimal("0.01"):
                    continue
                ref_first = _payee_or_reference(first.transactions_a[0])
                ref_second = _payee_or_reference(second.transactions_a[0])
                if not ref_first or not ref_second:
                    continue
                if text_similarity(fold_text(ref_first), fold_text(ref_second)) <= 0.8:
                    continue
                anomalies.append(
                    Anomaly(
                        id=f"duplicate_payment-{len(anomalies)}",
                        type=AnomalyType.DUPLICATE_PAYMENT,
                        severity=Severity.CRITICAL,
                        title="Potential duplicate payment",
                        description=(
                            f"Two matched pairs share the same amount ({amount_first:,.2f}) "
                            f"and a similar payee or reference."
                        ),
                        affected=(
                            first.transactions_a + first.transactions_b
                            + second.transactions_a + second.transactions_b
                        ),
                        risk_score=90,
                        recommended_action=(
                            "Verify that these are not duplicate payments. "
                            "Check for duplicate invoices or vendor records."
                        ),
                    )
                )
        return anomalies

    def _round_amounts(self, result: ReconciliationResult) -> list[Anomaly]:
        minimum = Decimal(str(self.settings.round_amount_min))
        step = Decimal(str(self.settings.round_amount_step))
        anomalies: list[Anomaly] = []
        for txn in list(result.unmatched_a) + list(result.unmatched_b):
            if txn.amount is None:
                continue
            amount = abs(txn.amount)
            if amount < minimum or amount % step != 0:
                continue
            anomalies.append(
                Anomaly(
                    id=f"round_amount-{len(anomalies)}",
                    type=AnomalyType.ROUND_AMOUNT,
                    severity=Severity.MEDIUM,
                    title="Suspicious round amount",
                    description=(
                        f"{txn.source.label} row {txn.row_index} has a round amount "
                        f"of {amount:,.2f}."
                    ),
                    affected=(txn,),
                    risk_score=40,
                    recommended_action=(
                        "Round amounts may indicate estimates or fraudulent entries. "
                        "Verify authenticity."
                    ),
                )
            )
        return anomalies

    def _threshold_splitting(self, result: ReconciliationResult) -> list[Anomaly]:
        window = timedelta(days=self.settings.splitting_window_days)
        groups: dict[str, list[Transaction]] = {}
        for txn in list(result.unmatched_a) + list(result.unmatched_b):
            if txn.reference:
                groups.setdefault(fold_text(txn.reference), []).append(txn)

        anomalies: list[Anomaly] = []
        for members in groups.values():
            in_band = [
                t
                for t in members
                if t.amount is not None
                and any(low <= abs(t.amount) <= high for low, high in SPLITTING_BANDS)
            ]
            if len(in_band) < 2:
                continue
            close_pair = any(
                a.date is not None and b.date is not None and abs(a.date - b.date) <= window
                for i, a in enumerate(in_band)
                for b in in_band[i + 1 :]
            )
            if not close_pair:
                continue
            anomalies.append(
                Anomaly(
                    id=f"threshold_splitting-{len(anomalies)}",
                    type=AnomalyType.THRESHOLD_SPLITTING,
                    severity=Severity.HIGH,
                    title="Possible threshold splitting",
                    description=(
                        f"Multiple transactions with reference {in_band[0].reference!r} "
                        f"are just below approval thresholds."
                    ),
                    affected=tuple(in_band),
                    risk_score=75,
                    recommended_action=(
                        "Review for possible splitting to avoid approval limits. "
                        "Consider consolidating or escalating."
                    ),
                )
            )
        return anomalies

    def _unusual_amounts(self, result: ReconciliationResult) -> list[Anomaly]:
        priced: list[tuple[MatchResult, float]] = []
        for match in result.matched:
            amount = _side_amount(match.transactions_a)
            if amount is not None:
                priced.append((match, float(amount)))
        if len(priced) < 3:
            return []

        mean, std = _mean_std([amount for _, amount in priced])
        anomalies: list[Anomaly] = []
        for match, amount in priced:
            if abs(amount - mean) <= 3 * std:
                continue
            anomalies.append(
                Anomaly(
                    id=f"unusual_amount-{len(anomalies)}",
                    type=AnomalyType.UNUSUAL_AMOUNT,
                    severity=Severity.MEDIUM,
                    title="Statistically unusual amount",
                    description=(
                        f"This matched pair's amount ({amount:,.2f}) is more than "
                        f"3 standard deviations from the mean."
                    ),
                    affected=match.transactions_a + match.transactions_b,
                    risk_score=50,
                    recommended_action=(
                        "Verify this transaction is legitimate. "
                        "Unusual amounts may warrant additional review."
                    ),
                )
            )
        return anomalies

    def _weekend_transactions(self, result: ReconciliationResult) -> list[Anomaly]:
        weekend = [
            t for t in result.all_a() + result.all_b()
            if t.date is not None and t.date.weekday() >= 5
        ]
        if len(weekend) < self.settings.weekend_min_count:
            return []
        return [
            Anomaly(
                id="weekend_transaction-0",
                type=AnomalyType.WEEKEND_TRANSACTION,
                severity=Severity.LOW,
                title="Weekend transactions detected",
                description=f"{len(weekend)} transactions are dated on Saturday or Sunday.",
                affected=tuple(weekend),
                risk_score=20,
                recommended_action="Review weekend-dated transactions for validity.",
            )
        ]

    def _duplicate_references(self, result: ReconciliationResult) -> list[Anomaly]:
        anomalies: list[Anomaly] = []
        for transactions in (result.all_a(), result.all_b()):
            groups: dict[str, list[Transaction]] = {}
            for txn in transactions:
                if txn.reference:
                    groups.setdefault(txn.reference.strip(), []).append(txn)
            for reference, members in groups.items():
                if len(members) < 2:
                    continue
                anomalies.append(
                    Anomaly(
                        id=f"duplicate_reference-{len(anomalies)}",
                        type=AnomalyType.DUPLICATE_REFERENCE,
                        severity=Severity.HIGH,
                        title="Duplicate reference",
                        description=(
                            f"Reference {reference!r} appears {len(members)} times "
                            f"in {members[0].source.label}."
                        ),
                        affected=tuple(members),
                        risk_score=70,
                        recommended_action="Check for double entry or duplicate invoices.",
                    )
                )
        return anomalies

    def _stale_unmatched(self, result: ReconciliationResult) -> list[Anomaly]:
        dates = [t.date for t in result.all_a() + result.all_b() if t.date is not None]
        if not dates:
            return []
        cutoff = max(dates) - timedelta(days=self.settings.stale_after_days)
        stale = [
            t
            for t in list(result.unmatched_a) + list(result.unmatched_b)
            if t.date is not None and t.date < cutoff
        ]
        if not stale:
            return []
        return [
            Anomaly(
                id="stale_unmatched-0",
                type=AnomalyType.STALE_UNMATCHED,
                severity=Severity.MEDIUM,
                title="Stale unmatched transactions",
                description=(
                    f"{len(stale)} unmatched transactions are more than "
                    f"{self.settings.stale_after_days} days older than the newest transaction."
                ),
                affected=tuple(stale),
                risk_score=45,
                recommended_action="Review and clean up old unmatched entries.",
            )
        ]

    def _amount_mismatch_pattern(self, result: ReconciliationResult) -> list[Anomaly]:
        low: list[tuple[MatchResult, float]] = []
        for match in result.matched:
            if match.confidence >= HIGH_CONFIDENCE_MIN:
                continue
            variance = match.amount_variance
            if variance is not None:
                # B minus A
                low.append((match, -float(variance)))
        if len(low) < 2:
            return []

        mean, std = _mean_std([diff for _, diff in low])
        similar = [diff for _, diff in low if abs(diff - mean) < 1.5 * std]
        if len(similar) < 2 or abs(mean) <= 0.01:
            return []

        closest, _ = min(low, key=lambda item: abs(item[1] - mean))
        return [
            Anomaly(
                id="amount_mismatch_pattern-0",
                type=AnomalyType.AMOUNT_MISMATCH_PATTERN,
                severity=Severity.HIGH,
                title="Systematic amount mismatch",
                description=(
                    f"Multiple low-confidence matches show a consistent amount "
                    f"difference (~{mean:,.2f}). May indicate fee or tax inconsistency."
                ),
                affected=closest.transactions_a + closest.transactions_b,
                risk_score=65,
                recommended_action=(
                    "Investigate systematic discrepancy. Check for fees, taxes, "
                    "or rounding applied inconsistently."
                ),
            )
        ]


def scan_result(
    result: ReconciliationResult, settings: Optional[AnomalySettings] = None
) -> AnomalyReport:
    """Run the risk scan with the given (or default) thresholds."""
    return RiskScanner(settings).scan(result)

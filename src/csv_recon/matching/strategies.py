"""
Rule comparators for transaction reconciliation.
Each match type has one comparator class holding its own parameters; every
comparator scores a single (A-record, B-record) pair in [0, 1].
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Optional, Sequence

from ..config import MatchingRule, MatchType, ToleranceNumericMode
from ..parsers.values import DEFAULT_DATE_FORMATS, parse_amount, parse_date
from ..utils.text import fold_text, text_similarity


class RuleComparator(ABC):
    """Abstract base class for rule comparators."""

    def __init__(self, column_a: str, column_b: str):
        self.column_a = column_a
        self.column_b = column_b

    def score(self, raw_a: dict[str, str], raw_b: dict[str, str]) -> float:
        """
        Score one candidate pair for this rule.

        A missing or blank value on either side scores 0.0 whatever the
        match type.

        Args:
            raw_a: Original row of the source A transaction
            raw_b: Original row of the source B transaction

        Returns:
            Similarity score between 0.0 and 1.0
        """
        value_a = (raw_a.get(self.column_a) or "").strip()
        value_b = (raw_b.get(self.column_b) or "").strip()
        if not value_a or not value_b:
            return 0.0
        return self.compare(value_a, value_b)

    @abstractmethod
    def compare(self, value_a: str, value_b: str) -> float:
        """Compare two non-blank values."""
        pass


class ExactComparator(RuleComparator):
    """Equality ignoring case and whitespace runs."""

    def compare(self, value_a: str, value_b: str) -> float:
        return 1.0 if fold_text(value_a) == fold_text(value_b) else 0.0


class NumericToleranceComparator(RuleComparator):
    """
    Amount comparison with a tolerance band.

    Within tolerance scores 1.0; beyond it the score decays linearly and
    reaches 0.0 at twice the tolerance.
    """

    def __init__(
        self,
        column_a: str,
        column_b: str,
        tolerance: Decimal,
        mode: ToleranceNumericMode = ToleranceNumericMode.PERCENTAGE,
    ):
        super().__init__(column_a, column_b)
        self.tolerance = tolerance
        self.mode = mode

    def compare(self, value_a: str, value_b: str) -> float:
        amount_a = parse_amount(value_a)
        amount_b = parse_amount(value_b)
        if amount_a is None or amount_b is None:
            return 0.0

        diff = abs(amount_a - amount_b)
        if self.mode == ToleranceNumericMode.PERCENTAGE:
            allowed = self.tolerance * max(abs(amount_a), abs(amount_b))
        else:
            allowed = self.tolerance

        if diff <= allowed:
            return 1.0
        if allowed <= 0:
            return 0.0

        decayed = 1.0 - float((diff - allowed) / allowed)
        return min(1.0, max(0.0, decayed))


class DateToleranceComparator(RuleComparator):
    """
    Date comparison with a day window.

    1.0 on the same day, decaying linearly across the window; a gap equal to
    the window still scores above zero, anything wider scores 0.0.
    """

    def __init__(
        self,
        column_a: str,
        column_b: str,
        tolerance_days: float,
        date_formats: Sequence[str] = DEFAULT_DATE_FORMATS,
    ):
        super().__init__(column_a, column_b)
        self.tolerance_days = tolerance_days
        self.date_formats = date_formats

    def compare(self, value_a: str, value_b: str) -> float:
        date_a = parse_date(value_a, self.date_formats)
        date_b = parse_date(value_b, self.date_formats)
        if date_a is None or date_b is None:
            return 0.0

        gap = abs((date_a - date_b).days)
        if gap > self.tolerance_days:
            return 0.0
        return 1.0 - gap / (self.tolerance_days + 1)


class SimilarTextComparator(RuleComparator):
    """Fuzzy text comparison; ratios below the threshold score 0.0."""

    def __init__(self, column_a: str, column_b: str, threshold: float):
        super().__init__(column_a, column_b)
        self.threshold = threshold

    def compare(self, value_a: str, value_b: str) -> float:
        ratio = text_similarity(fold_text(value_a), fold_text(value_b))
        return ratio if ratio >= self.threshold else 0.0


def build_comparator(
    rule: MatchingRule, date_formats: Optional[Sequence[str]] = None
) -> RuleComparator:
    """
    Create the comparator for a validated rule.

    Args:
        rule: Matching rule (validated, so mode parameters are present)
        date_formats: Date formats for ``tolerance_date`` rules

    Returns:
        Comparator instance for the rule's match type
    """
    match_type = MatchType(rule.match_type)

    if match_type is MatchType.EXACT:
        return ExactComparator(rule.column_a, rule.column_b)

    if match_type is MatchType.TOLERANCE_NUMERIC:
        return NumericToleranceComparator(
            rule.column_a,
            rule.column_b,
            tolerance=Decimal(str(rule.tolerance_value or 0)),
            mode=ToleranceNumericMode(rule.tolerance_numeric_mode),
        )

    if match_type is MatchType.TOLERANCE_DATE:
        return DateToleranceComparator(
            rule.column_a,
            rule.column_b,
            tolerance_days=float(rule.tolerance_value or 0),
            date_formats=date_formats or DEFAULT_DATE_FORMATS,
        )

    if match_type is MatchType.SIMILAR_TEXT:
        threshold = rule.similarity_threshold
        return SimilarTextComparator(
            rule.column_a,
            rule.column_b,
            threshold=0.0 if threshold is None else threshold,
        )

    raise ValueError(f"Unsupported match type: {match_type}")

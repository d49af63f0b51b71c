"""
Tests for unmatched-record hints.
"""

from decimal import Decimal

from csv_recon.analysis.hints import (
    HintKind,
    detect_unmatched_hints,
    hints_for,
    plausible_date_window,
)
from csv_recon.config import MatchingConfig, MatchingRule
from csv_recon.models.transaction import MatchResult, ReconciliationResult, TransactionSource

from conftest import txn_a, txn_b


def make_result(matched=(), unmatched_a=(), unmatched_b=(), config=None):
    return ReconciliationResult(
        matched=tuple(matched),
        unmatched_a=tuple(unmatched_a),
        unmatched_b=tuple(unmatched_b),
        config=config or MatchingConfig(),
    )


class TestDetectUnmatchedHints:
    """Tests for detect_unmatched_hints."""

    def test_amount_delta_with_same_reference(self):
        result = make_result(
            unmatched_a=[txn_a(0, "100.00", "2025-01-01", "INV1")],
            unmatched_b=[txn_b(0, "105.00", "2025-01-01", "inv1")],
        )

        hints = detect_unmatched_hints(result)
        deltas = [h for h in hints if h.kind is HintKind.AMOUNT_DELTA]

        assert len(deltas) == 2
        assert deltas[0].source is TransactionSource.SOURCE_A
        assert deltas[0].amount_delta == Decimal("-5.00")
        assert deltas[0].counterpart_row_index == 0
        assert deltas[0].date_gap_days == 0
        assert deltas[1].source is TransactionSource.SOURCE_B
        assert deltas[1].amount_delta == Decimal("5.00")

    def test_nearest_amount_is_chosen(self):
        result = make_result(
            unmatched_a=[txn_a(0, "100.00", reference="R")],
            unmatched_b=[txn_b(0, "150.00", reference="R"), txn_b(1, "101.00", reference="R")],
        )

        hint = detect_unmatched_hints(result)[0]

        assert hint.row_index == 0
        assert hint.counterpart_row_index == 1
        assert hint.amount_delta == Decimal("-1.00")

    def test_duplicate_reference_within_source(self):
        result = make_result(
            unmatched_a=[
                txn_a(0, "1", reference="DUP"),
                txn_a(1, "2", reference="other"),
                txn_a(2, "3", reference="dup"),
            ],
        )

        hints = [h for h in detect_unmatched_hints(result) if h.kind is HintKind.DUPLICATE_REFERENCE]

        assert len(hints) == 1
        assert hints[0].row_indexes == (0, 2)
        assert hints[0].source is TransactionSource.SOURCE_A

    def test_date_gap_outside_window(self):
        config = MatchingConfig(
            rules=[
                MatchingRule(
                    column_a="Date", column_b="Date", match_type="tolerance_date", tolerance_value=5
                )
            ]
        )
        result = make_result(
            unmatched_a=[txn_a(0, "1", "2025-01-01", "A"), txn_a(1, "1", "2025-01-12", "B")],
            unmatched_b=[txn_b(0, "9", "2025-01-15", "C")],
            config=config,
        )

        gaps = [h for h in detect_unmatched_hints(result) if h.kind is HintKind.DATE_GAP]

        # Row 1 is 3 days away, inside the 5 day window
        assert [(h.source, h.row_index, h.date_gap_days) for h in gaps] == [
            (TransactionSource.SOURCE_A, 0, 14)
        ]

    def test_no_hints_for_clean_result(self):
        a, b = txn_a(0, "10", "2025-01-01", "R"), txn_b(0, "10", "2025-01-01", "R")
        result = make_result(matched=[MatchResult((a,), (b,), 1.0)])
        assert detect_unmatched_hints(result) == ()

    def test_matched_deltas_only_on_request(self):
        a, b = txn_a(0, "10.00", "2025-01-01", "R"), txn_b(0, "10.50", "2025-01-01", "R")
        result = make_result(matched=[MatchResult((a,), (b,), 0.9)])

        assert detect_unmatched_hints(result) == ()
        hints = detect_unmatched_hints(result, include_matched=True)
        assert len(hints) == 1
        assert hints[0].amount_delta == Decimal("-0.50")

    def test_hint_order_is_stable(self):
        result = make_result(
            unmatched_a=[txn_a(0, "5", "2025-01-01", "X"), txn_a(1, "5", "2025-03-01", "X")],
            unmatched_b=[txn_b(0, "6", "2025-01-02", "X")],
        )

        kinds = [h.kind for h in detect_unmatched_hints(result)]

        assert kinds == [
            HintKind.AMOUNT_DELTA,
            HintKind.AMOUNT_DELTA,
            HintKind.AMOUNT_DELTA,
            HintKind.DUPLICATE_REFERENCE,
            HintKind.DATE_GAP,
        ]
        assert detect_unmatched_hints(result) == detect_unmatched_hints(result)


class TestHelpers:
    """Tests for window lookup and per-record filtering."""

    def test_default_window_without_date_rule(self):
        assert plausible_date_window(make_result()) == 3
        assert plausible_date_window(make_result(), default_window=7) == 7

    def test_fractional_date_window_is_kept(self):
        config = MatchingConfig(
            rules=[
                MatchingRule(
                    column_a="Date", column_b="Date", match_type="tolerance_date", tolerance_value=2.5
                )
            ]
        )
        result = make_result(
            unmatched_a=[txn_a(0, "1", "2025-01-01", "A")],
            unmatched_b=[txn_b(0, "9", "2025-01-04", "C")],
            config=config,
        )

        assert plausible_date_window(result) == 2.5
        gaps = [h for h in detect_unmatched_hints(result) if h.kind is HintKind.DATE_GAP]
        assert [h.date_gap_days for h in gaps] == [3, 3]
        assert "(window 2.5)" in gaps[0].message

    def test_hints_for_record(self):
        result = make_result(
            unmatched_a=[txn_a(0, "1", reference="D"), txn_a(1, "2", reference="D")],
        )
        hints = detect_unmatched_hints(result)

        assert len(hints_for(hints, txn_a(1, "2", reference="D"))) == 1
        assert hints_for(hints, txn_b(1)) == []

    def test_to_dict_is_json_friendly(self):
        result = make_result(
            unmatched_a=[txn_a(0, "100.00", reference="R")],
            unmatched_b=[txn_b(0, "99.00", reference="R")],
        )
        body = detect_unmatched_hints(result)[0].to_dict()
        assert body["kind"] == "amount_delta"
        assert body["amountDelta"] == "1.00"
        assert body["source"] == "sourceA"

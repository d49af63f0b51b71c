"""
Conversion of parsed source rows into Transactions.
The amount/date/reference columns are derived from the matching rules.
"""

from typing import Sequence

from ..config import MatchingRule, MatchType
from ..models.transaction import ColumnMapping, SourceData, Transaction, TransactionSource
from .values import DEFAULT_DATE_FORMATS, parse_amount, parse_date


def derive_column_mappings(
    rules: Sequence[MatchingRule],
    headers_a: Sequence[str],
    headers_b: Sequence[str],
) -> tuple[ColumnMapping, ColumnMapping]:
    """
    Pick the amount, date and reference columns for each source.

    The first ``tolerance_numeric`` rule supplies the amount columns, the
    first ``tolerance_date`` rule the date columns and the first ``exact``
    rule the reference columns. Without such a rule the first, second and
    third headers are used.

    Returns:
        Tuple of (mapping for source A, mapping for source B)
    """

    def header(headers: Sequence[str], position: int) -> str:
        return headers[position] if len(headers) > position else ""

    columns = {
        MatchType.TOLERANCE_NUMERIC: (header(headers_a, 0), header(headers_b, 0)),
        MatchType.TOLERANCE_DATE: (header(headers_a, 1), header(headers_b, 1)),
        MatchType.EXACT: (header(headers_a, 2), header(headers_b, 2)),
    }
    seen: set[MatchType] = set()
    for rule in rules:
        if rule.match_type in columns and rule.match_type not in seen:
            if rule.column_a and rule.column_b:
                columns[rule.match_type] = (rule.column_a, rule.column_b)
                seen.add(rule.match_type)

    amount_a, amount_b = columns[MatchType.TOLERANCE_NUMERIC]
    date_a, date_b = columns[MatchType.TOLERANCE_DATE]
    ref_a, ref_b = columns[MatchType.EXACT]
    return (
        ColumnMapping(amount=amount_a, date=date_a, reference=ref_a),
        ColumnMapping(amount=amount_b, date=date_b, reference=ref_b),
    )


def build_transactions(
    source_data: SourceData,
    mapping: ColumnMapping,
    source: TransactionSource,
    date_formats: Sequence[str] = DEFAULT_DATE_FORMATS,
) -> list[Transaction]:
    """
    Turn parsed rows into Transactions; ``row_index`` is the 0-based row position.

    Unparseable amounts and dates are kept as None rather than rejected.
    """
    transactions: list[Transaction] = []
    for row_index, row in enumerate(source_data.rows):
        raw = {str(k): "" if v is None else str(v) for k, v in row.items()}
        reference = raw.get(mapping.reference, "").strip() or None
        transactions.append(
            Transaction(
                source=source,
                row_index=row_index,
                amount=parse_amount(raw.get(mapping.amount)),
                date=parse_date(raw.get(mapping.date), date_formats),
                reference=reference,
                raw=raw,
            )
        )
    return transactions

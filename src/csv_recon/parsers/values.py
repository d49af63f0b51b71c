"""
Cell-level value parsing shared by rule evaluation, CSV loading and analysis.
Unparseable values come back as ``None``; callers decide what that means.
"""

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Sequence
import re

DEFAULT_DATE_FORMATS: tuple[str, ...] = (
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%m/%d/%Y",
    "%d/%m/%Y",
    "%d.%m.%Y",
    "%d-%m-%Y",
    "%Y%m%d",
    "%m/%d/%y",
    "%d %b %Y",
    "%b %d, %Y",
)

_ISO_PREFIX_RE = re.compile(r"^\d{4}-\d{2}-\d{2}")
_AMOUNT_STRIP_RE = re.compile(r"[^\d.\-]")


def parse_amount(value: Any) -> Optional[Decimal]:
    """
    Parse an amount cell into a Decimal.

    Handles currency symbols, thousands separators and accounting-style
    negatives such as ``(1,250.00)``.

    Args:
        value: Raw cell value (string, number or None)

    Returns:
        Decimal amount or None when the value is blank or not numeric
    """
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        candidate = Decimal(str(value))
        return candidate if candidate.is_finite() else None

    text = str(value).strip()
    if not text:
        return None

    negative = text.startswith("(") and text.endswith(")")
    cleaned = _AMOUNT_STRIP_RE.sub("", text)
    if not cleaned or cleaned in ("-", ".", "-."):
        return None

    try:
        amount = Decimal(cleaned)
    except InvalidOperation:
        return None

    if not amount.is_finite():
        return None
    return -abs(amount) if negative else amount


def parse_date(
    value: Any, formats: Sequence[str] = DEFAULT_DATE_FORMATS
) -> Optional[date]:
    """
    Parse a date cell.

    ISO-8601 values (with or without a time part) are read first, then each
    ``strptime`` format in order. There is no free-form fallback, so the
    result never depends on the current date.

    Args:
        value: Raw cell value
        formats: Ordered ``strptime`` formats to try

    Returns:
        Calendar date or None when the value is blank or invalid
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value).strip()
    if not text:
        return None

    if _ISO_PREFIX_RE.match(text):
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            return None

    for fmt in formats:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None

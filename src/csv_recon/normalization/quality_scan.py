"""
Data quality scan for source files.
Finds formatting problems before matching and fixes the mechanical ones.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Sequence
import logging
import re

from ..models.transaction import SourceData
from .suggestions import DEFAULT_GROUPING_THRESHOLD, suggest_normalizations

logger = logging.getLogger(__name__)

ALL_COLUMNS = "all"
EMPTY_SHARE_MIN = 0.1

DATE_COLUMN_RE = re.compile(r"date|dt|posted|transaction|created|updated", re.IGNORECASE)
AMOUNT_COLUMN_RE = re.compile(r"amount|amt|sum|total|value|balance|credit|debit|price", re.IGNORECASE)
NAME_COLUMN_RE = re.compile(r"reference|ref|vendor|description|name|payee|merchant", re.IGNORECASE)
REFERENCE_COLUMN_RE = re.compile(r"reference|ref|invoice|number|id", re.IGNORECASE)

DATE_SHAPES = [
    ("iso", re.compile(r"^\d{4}-\d{2}-\d{2}$")),
    ("us", re.compile(r"^\d{1,2}/\d{1,2}/\d{4}$")),
    ("eu", re.compile(r"^\d{1,2}\.\d{1,2}\.\d{4}$|^\d{1,2}-\d{1,2}-\d{4}$")),
]

_CURRENCY_RE = re.compile(r"[$€£]")
_AMOUNT_CHARS_RE = re.compile(r"[\d,.\-()$€£]")
_THOUSANDS_RE = re.compile(r",\d{3}|,\d{2}$")
_PARENS_RE = re.compile(r"\(\s*\d+[\d,.]*\s*\)")
_SPECIAL_RE = re.compile(r"[^\w\s\-./]")


class IssueType(Enum):
    WHITESPACE = "leading_trailing_whitespace"
    EMPTY_VALUES = "empty_values"
    INCONSISTENT_DATE_FORMAT = "inconsistent_date_format"
    INCONSISTENT_AMOUNT_FORMAT = "inconsistent_amount_format"
    NAME_VARIATIONS = "vendor_name_variations"
    MIXED_CASE = "mixed_case"
    SPECIAL_CHARACTERS = "special_characters_in_reference"
    DUPLICATE_ROWS = "duplicate_rows"


# Issue types that need a human (or the AI normalizer) rather than an auto-fix
REVIEW_TYPES = {
    IssueType.INCONSISTENT_DATE_FORMAT,
    IssueType.NAME_VARIATIONS,
    IssueType.EMPTY_VALUES,
    IssueType.SPECIAL_CHARACTERS,
}


@dataclass(frozen=True)
class DataQualityIssue:
    """One problem in one column (or ``all`` for row-level problems)."""

    id: str
    type: IssueType
    severity: str
    column: str
    description: str
    affected_rows: tuple[int, ...]
    suggested_fix: str
    auto_fixable: bool


@dataclass(frozen=True)
class ScanResult:
    """Issues found in each source."""

    source_a: tuple[DataQualityIssue, ...] = field(default_factory=tuple)
    source_b: tuple[DataQualityIssue, ...] = field(default_factory=tuple)

    @property
    def total_issues(self) -> int:
        return len(self.source_a) + len(self.source_b)

    @property
    def needs_review(self) -> bool:
        """True when some issue cannot be fixed mechanically."""
        return any(
            not issue.auto_fixable and issue.type in REVIEW_TYPES
            for issue in self.source_a + self.source_b
        )


def _issue(
    issue_type: IssueType,
    side: str,
    column: str,
    severity: str,
    description: str,
    rows: Sequence[int],
    suggested_fix: str,
    auto_fixable: bool,
) -> DataQualityIssue:
    slug = re.sub(r"\s+", "_", column)
    return DataQualityIssue(
        id=f"{issue_type.value}-{slug}-{side}",
        type=issue_type,
        severity=severity,
        column=column,
        description=description,
        affected_rows=tuple(rows),
        suggested_fix=suggested_fix,
        auto_fixable=auto_fixable,
    )


def _cell(source: SourceData, index: int, column: str) -> str:
    value = source.rows[index].get(column)
    return "" if value is None else str(value)


def _has_data(source: SourceData, column: str) -> bool:
    return column in source.headers and any(
        (row.get(column) or "").strip() for row in source.rows
    )


def detect_whitespace(source: SourceData, side: str) -> list[DataQualityIssue]:
    issues: list[DataQualityIssue] = []
    for column in source.headers:
        rows = [
            i for i in range(source.row_count)
            if _cell(source, i, column) and _cell(source, i, column) != _cell(source, i, column).strip()
        ]
        if rows:
            issues.append(
                _issue(
                    IssueType.WHITESPACE, side, column, "low",
                    f"{len(rows)} row(s) have leading or trailing whitespace",
                    rows, "Trim whitespace", True,
                )
            )
    return issues


def detect_empty_values(source: SourceData, other: SourceData, side: str) -> list[DataQualityIssue]:
    issues: list[DataQualityIssue] = []
    if source.row_count == 0:
        return issues
    for column in source.headers:
        rows = [i for i in range(source.row_count) if not _cell(source, i, column).strip()]
        share = len(rows) / source.row_count
        if rows and share > EMPTY_SHARE_MIN and _has_data(other, column):
            issues.append(
                _issue(
                    IssueType.EMPTY_VALUES, side, column, "medium",
                    f"{len(rows)} row(s) ({round(share * 100)}%) have empty values in {column!r}",
                    rows, "Fill or remove empty values", False,
                )
            )
    return issues


def _date_shape(value: str) -> Optional[str]:
    for name, pattern in DATE_SHAPES:
        if pattern.match(value):
            return name
    return None


def detect_inconsistent_dates(source: SourceData, side: str) -> list[DataQualityIssue]:
    issues: list[DataQualityIssue] = []
    for column in source.headers:
        if not DATE_COLUMN_RE.search(column):
            continue
        shapes: dict[str, list[int]] = {}
        for i in range(source.row_count):
            shape = _date_shape(_cell(source, i, column).strip())
            if shape:
                shapes.setdefault(shape, []).append(i)
        if len(shapes) > 1:
            rows = sorted(i for members in shapes.values() for i in members)
            issues.append(
                _issue(
                    IssueType.INCONSISTENT_DATE_FORMAT, side, column, "high",
                    f"Mixed date formats ({', '.join(shapes)}) in same column",
                    rows, "Normalize to a single date format", False,
                )
            )
    return issues


def detect_inconsistent_amounts(source: SourceData, side: str) -> list[DataQualityIssue]:
    issues: list[DataQualityIssue] = []
    for column in source.headers:
        if not AMOUNT_COLUMN_RE.search(column):
            continue
        with_currency: set[int] = set()
        without_currency: set[int] = set()
        decorated: set[int] = set()
        for i in range(source.row_count):
            value = _cell(source, i, column).strip()
            if not value or not _AMOUNT_CHARS_RE.search(value):
                continue
            if _CURRENCY_RE.search(value):
                with_currency.add(i)
            else:
                without_currency.add(i)
            if _THOUSANDS_RE.search(value) or _PARENS_RE.search(value):
                decorated.add(i)
        mixed = (with_currency and without_currency) or decorated
        if mixed:
            rows = sorted(with_currency | without_currency | decorated)
            issues.append(
                _issue(
                    IssueType.INCONSISTENT_AMOUNT_FORMAT, side, column, "medium",
                    "Mixed amount formats (currency symbols, separators, or negative notation)",
                    rows, "Remove currency symbols and standardize decimals", True,
                )
            )
    return issues


def detect_mixed_case(source: SourceData, side: str) -> list[DataQualityIssue]:
    issues: list[DataQualityIssue] = []
    for column in source.headers:
        by_lower: dict[str, list[int]] = {}
        for i in range(source.row_count):
            value = _cell(source, i, column).strip()
            if len(value) >= 2:
                by_lower.setdefault(value.lower(), []).append(i)
        mixed_rows = [
            i
            for rows in by_lower.values()
            if len({_cell(source, r, column).strip() for r in rows}) > 1
            for i in rows
        ]
        if mixed_rows:
            issues.append(
                _issue(
                    IssueType.MIXED_CASE, side, column, "low",
                    "Multiple case variants of the same value",
                    sorted(mixed_rows), "Normalize to Title Case", True,
                )
            )
    return issues


def detect_special_characters(source: SourceData, side: str) -> list[DataQualityIssue]:
    issues: list[DataQualityIssue] = []
    for column in source.headers:
        if not REFERENCE_COLUMN_RE.search(column):
            continue
        rows = [i for i in range(source.row_count) if _SPECIAL_RE.search(_cell(source, i, column))]
        if rows:
            issues.append(
                _issue(
                    IssueType.SPECIAL_CHARACTERS, side, column, "medium",
                    f"{len(rows)} row(s) have special characters in reference",
                    rows, "Remove or standardize special characters", False,
                )
            )
    return issues


def _row_key(row: dict[str, str]) -> tuple:
    return tuple(row.items())


def detect_duplicate_rows(source: SourceData, side: str) -> list[DataQualityIssue]:
    seen: dict[tuple, list[int]] = {}
    for i, row in enumerate(source.rows):
        seen.setdefault(_row_key(row), []).append(i)
    rows = sorted(i for members in seen.values() if len(members) > 1 for i in members)
    if not rows:
        return []
    return [
        _issue(
            IssueType.DUPLICATE_ROWS, side, ALL_COLUMNS, "high",
            f"{len(rows)} row(s) are exact duplicates",
            rows, "Remove duplicates", True,
        )
    ]


def detect_name_variations(
    source_a: SourceData, source_b: SourceData, threshold: float
) -> tuple[list[DataQualityIssue], list[DataQualityIssue]]:
    issues_a: list[DataQualityIssue] = []
    issues_b: list[DataQualityIssue] = []
    columns = list(dict.fromkeys(source_a.headers + source_b.headers))

    for column in columns:
        if not NAME_COLUMN_RE.search(column):
            continue
        values_a = [r.get(column) for r in source_a.rows] if column in source_a.headers else []
        values_b = [r.get(column) for r in source_b.rows] if column in source_b.headers else []
        groups = suggest_normalizations(column, values_a, values_b, threshold)
        if not groups:
            continue

        variants: set[str] = set()
        for group in groups:
            variants.add(group.canonical)
            variants.update(group.originals)
        description = f"Found {len(groups)} group(s) of similar strings that may represent the same entity"

        for source, side, target in ((source_a, "a", issues_a), (source_b, "b", issues_b)):
            if column not in source.headers:
                continue
            rows = [
                i for i in range(source.row_count)
                if _cell(source, i, column).strip() in variants
            ]
            if rows:
                target.append(
                    _issue(
                        IssueType.NAME_VARIATIONS, side, column, "high",
                        description, rows, "Normalize entity names", False,
                    )
                )
    return issues_a, issues_b


def scan_data_quality(
    source_a: SourceData,
    source_b: SourceData,
    similarity_threshold: float = DEFAULT_GROUPING_THRESHOLD,
) -> ScanResult:
    """
    Scan both sources for data quality issues.

    Args:
        source_a: Parsed source A
        source_b: Parsed source B
        similarity_threshold: Grouping threshold for name variations

    Returns:
        ScanResult with the issues of each source
    """
    issues_a: list[DataQualityIssue] = []
    issues_b: list[DataQualityIssue] = []

    issues_a += detect_whitespace(source_a, "a")
    issues_b += detect_whitespace(source_b, "b")
    issues_a += detect_empty_values(source_a, source_b, "a")
    issues_b += detect_empty_values(source_b, source_a, "b")
    issues_a += detect_inconsistent_dates(source_a, "a")
    issues_b += detect_inconsistent_dates(source_b, "b")
    issues_a += detect_inconsistent_amounts(source_a, "a")
    issues_b += detect_inconsistent_amounts(source_b, "b")

    names_a, names_b = detect_name_variations(source_a, source_b, similarity_threshold)
    issues_a += names_a
    issues_b += names_b

    issues_a += detect_mixed_case(source_a, "a")
    issues_b += detect_mixed_case(source_b, "b")
    issues_a += detect_special_characters(source_a, "a")
    issues_b += detect_special_characters(source_b, "b")
    issues_a += detect_duplicate_rows(source_a, "a")
    issues_b += detect_duplicate_rows(source_b, "b")

    result = ScanResult(source_a=tuple(issues_a), source_b=tuple(issues_b))
    logger.info(f"Data quality scan found {result.total_issues} issue(s)")
    return result


def _title_case(value: str) -> str:
    return re.sub(r"(?:^|\s)\w", lambda m: m.group(0).upper(), value.lower())


def normalize_amount_text(value: str) -> str:
    """Strip currency symbols, turn parentheses into a minus sign and drop thousands separators."""
    text = re.sub(r"[$€£\s]", "", value).strip()
    if re.search(r"\([^)]*\d+[^)]*\)", text):
        text = "-" + text.replace("(", "").replace(")", "")
    if "," in text and "." in text:
        text = text.replace(",", "")
    elif "," in text:
        if len(text.split(",")[-1]) == 3:
            text = text.replace(",", "")
        else:
            text = text.replace(",", ".", 1)
    return text


def apply_auto_fix(source: SourceData, issues: Sequence[DataQualityIssue]) -> SourceData:
    """
    Apply the mechanical fixes among ``issues`` to a copy of ``source``.

    Trims whitespace, normalizes amount text, title-cases mixed-case columns
    and drops duplicate rows (keeping the first). Other issue types are left
    for review.
    """
    rows = [dict(row) for row in source.rows]

    for issue in issues:
        if not issue.auto_fixable:
            continue
        column = issue.column

        if issue.type is IssueType.WHITESPACE:
            for row in rows:
                if column in row:
                    row[column] = (row[column] or "").strip()

        elif issue.type is IssueType.INCONSISTENT_AMOUNT_FORMAT:
            for row in rows:
                if column in row:
                    row[column] = normalize_amount_text(row[column] or "")

        elif issue.type is IssueType.MIXED_CASE:
            for row in rows:
                if row.get(column):
                    row[column] = _title_case(row[column])

        elif issue.type is IssueType.DUPLICATE_ROWS:
            seen: set[tuple] = set()
            unique: list[dict[str, str]] = []
            for row in rows:
                key = _row_key(row)
                if key not in seen:
                    seen.add(key)
                    unique.append(row)
            rows = unique

    return SourceData(headers=list(source.headers), rows=rows, filename=source.filename)

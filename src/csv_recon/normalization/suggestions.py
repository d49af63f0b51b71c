"""
Normalization suggestions for free-text columns.

Groups spelling, case, punctuation and abbreviation variants of the same
value (for example vendor names) and proposes one canonical form per group.
Applying a suggestion rewrites source data before a new engine run; the
engine itself is never called from here.
"""

from collections import Counter
from dataclasses import dataclass, replace
from enum import Enum
from typing import Iterable, Mapping, Optional, Sequence
import logging

from ..config import DEFAULT_ABBREVIATIONS
from ..models.transaction import ColumnMapping, SourceData, Transaction
from ..utils.text import comparison_key, text_similarity

logger = logging.getLogger(__name__)

DEFAULT_GROUPING_THRESHOLD = 0.7
HIGH_TIER_MIN = 0.9
MEDIUM_TIER_MIN = 0.8


class SuggestionTier(Enum):
    """How sure we are that a variant means the canonical value."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(frozen=True)
class ValueMapping:
    """Rewrite of one original string to the canonical form."""

    original: str
    normalized: str
    confidence: SuggestionTier
    similarity: float
    occurrences: int


@dataclass(frozen=True)
class NormalizationSuggestion:
    """A group of variants of one value and the mappings that unify them."""

    column: str
    canonical: str
    mappings: tuple[ValueMapping, ...]
    explanation: str

    @property
    def originals(self) -> set[str]:
        return {m.original for m in self.mappings}

    def to_dict(self) -> dict:
        return {
            "issueType": "vendor_name_variations",
            "column": self.column,
            "mappings": [
                {
                    "original": m.original,
                    "normalized": m.normalized,
                    "confidence": m.confidence.value,
                }
                for m in self.mappings
            ],
            "explanation": self.explanation,
        }


def _tier(key_a: str, key_b: str, similarity: float) -> SuggestionTier:
    if key_a == key_b or similarity >= HIGH_TIER_MIN:
        return SuggestionTier.HIGH
    if similarity >= MEDIUM_TIER_MIN:
        return SuggestionTier.MEDIUM
    return SuggestionTier.LOW


def suggest_normalizations(
    column: str,
    values_a: Iterable[Optional[str]],
    values_b: Iterable[Optional[str]],
    threshold: float = DEFAULT_GROUPING_THRESHOLD,
    abbreviations: Optional[Mapping[str, str]] = None,
) -> list[NormalizationSuggestion]:
    """
    Group near-duplicate values of a column across both sources.

    Values are compared on their comparison key (lowercased, punctuation
    stripped, whitespace collapsed, abbreviations expanded). Distinct values
    are visited most frequent first, then longest, then alphabetically; each
    unvisited value seeds a group and pulls in every later value whose key
    matches or is at least ``threshold`` similar. The seed is the canonical
    form.

    Args:
        column: Column the values came from
        values_a: Raw values from source A
        values_b: Raw values from source B
        threshold: Minimum key similarity for grouping
        abbreviations: Token expansions; defaults to the built-in table

    Returns:
        One suggestion per group of two or more distinct strings
    """
    if abbreviations is None:
        abbreviations = DEFAULT_ABBREVIATIONS

    counts: Counter = Counter()
    for value in list(values_a) + list(values_b):
        text = (value or "").strip()
        if text:
            counts[text] += 1

    keys = {value: comparison_key(value, abbreviations) for value in counts}
    ordered = sorted(
        (value for value in counts if keys[value]),
        key=lambda v: (-counts[v], -len(v), v),
    )

    used: set[str] = set()
    suggestions: list[NormalizationSuggestion] = []

    for i, seed in enumerate(ordered):
        if seed in used:
            continue
        used.add(seed)
        seed_key = keys[seed]

        mappings: list[ValueMapping] = []
        for other in ordered[i + 1 :]:
            if other in used:
                continue
            other_key = keys[other]
            similarity = text_similarity(seed_key, other_key)
            if other_key != seed_key and similarity < threshold:
                continue
            used.add(other)
            mappings.append(
                ValueMapping(
                    original=other,
                    normalized=seed,
                    confidence=_tier(seed_key, other_key, similarity),
                    similarity=round(similarity, 4),
                    occurrences=counts[other],
                )
            )

        if mappings:
            variants = ", ".join(repr(m.original) for m in mappings)
            suggestions.append(
                NormalizationSuggestion(
                    column=column,
                    canonical=seed,
                    mappings=tuple(mappings),
                    explanation=(
                        f"{variants} look like variants of {seed!r} "
                        f"({counts[seed]} occurrence(s))"
                    ),
                )
            )

    logger.debug(f"Column {column}: {len(suggestions)} normalization group(s)")
    return suggestions


def suggest_for_sources(
    source_a: SourceData,
    source_b: SourceData,
    column: str,
    threshold: float = DEFAULT_GROUPING_THRESHOLD,
    abbreviations: Optional[Mapping[str, str]] = None,
) -> list[NormalizationSuggestion]:
    """Collect the column's values from both sources and suggest groupings."""
    values_a = [row.get(column) for row in source_a.rows] if column in source_a.headers else []
    values_b = [row.get(column) for row in source_b.rows] if column in source_b.headers else []
    return suggest_normalizations(column, values_a, values_b, threshold, abbreviations)


def _rewrite(raw: Mapping[str, str], column: str, lookup: Mapping[str, str]) -> dict[str, str]:
    rewritten = dict(raw)
    value = rewritten.get(column)
    if value is not None and value.strip() in lookup:
        rewritten[column] = lookup[value.strip()]
    return rewritten


def apply_suggestion(source: SourceData, suggestion: NormalizationSuggestion) -> SourceData:
    """
    Rewrite every cell of the suggestion's column that holds a mapped original.

    Returns:
        A new SourceData; the input is left untouched
    """
    lookup = {m.original: m.normalized for m in suggestion.mappings}
    rows = [_rewrite(row, suggestion.column, lookup) for row in source.rows]
    return SourceData(headers=list(source.headers), rows=rows, filename=source.filename)


def apply_to_transactions(
    transactions: Sequence[Transaction],
    suggestion: NormalizationSuggestion,
    mapping: Optional[ColumnMapping] = None,
) -> list[Transaction]:
    """
    Rewrite the suggestion's column in each transaction's raw row.

    When ``mapping`` says the column feeds the reference, the reference is
    rewritten too.
    """
    lookup = {m.original: m.normalized for m in suggestion.mappings}
    updates_reference = mapping is not None and mapping.reference == suggestion.column

    rewritten: list[Transaction] = []
    for txn in transactions:
        raw = _rewrite(txn.raw, suggestion.column, lookup)
        if raw == txn.raw:
            rewritten.append(txn)
            continue
        reference = txn.reference
        if updates_reference:
            reference = raw[suggestion.column].strip() or None
        rewritten.append(replace(txn, raw=raw, reference=reference))
    return rewritten

"""Text normalization and the string-similarity primitive shared by matching and normalization."""

from difflib import SequenceMatcher
from typing import Mapping, Optional
import re

_WHITESPACE_RE = re.compile(r"\s+")
_PUNCTUATION_RE = re.compile(r"[^\w\s]")


def collapse_whitespace(value: str) -> str:
    """Strip and collapse internal whitespace runs to a single space."""
    return _WHITESPACE_RE.sub(" ", value).strip()


def fold_text(value: Optional[str]) -> str:
    """Case-fold and collapse whitespace; ``None`` becomes an empty string."""
    if value is None:
        return ""
    return collapse_whitespace(str(value)).lower()


def text_similarity(a: str, b: str) -> float:
    """
    Normalized similarity ratio between two already-folded strings.

    Returns 1.0 for identical strings and 0.0 when either is empty.
    """
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0
    return SequenceMatcher(None, a, b).ratio()


def comparison_key(value: str, abbreviations: Optional[Mapping[str, str]] = None) -> str:
    """
    Build the key used to spot case, punctuation and abbreviation variants.

    "ACME Corp." and "acme corporation" share a key when ``corp`` is mapped
    to ``corporation``.
    """
    text = _PUNCTUATION_RE.sub("", str(value).lower())
    tokens = text.split()
    if abbreviations:
        tokens = [abbreviations.get(token, token) for token in tokens]
    return " ".join(tokens)

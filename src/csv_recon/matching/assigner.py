"""
Pair assignment under the one-to-one constraint.

Candidates are produced one A record at a time and only those at or above
the confidence floor are kept. Acceptance is greedy: highest confidence
first, ties broken by lower A row index, then lower B row index. This is an
approximation of maximum-weight bipartite matching with stable, explainable
output.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Iterator, Sequence
import logging
import math

from ..models.transaction import MatchResult, Transaction
from .scoring import CONFIDENCE_PRECISION, ConfidenceScorer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Candidate:
    """A scored (A-record, B-record) pair that cleared the confidence floor."""

    confidence: float
    txn_a: Transaction
    txn_b: Transaction

    @property
    def sort_key(self) -> tuple[float, int, int]:
        return (-self.confidence, self.txn_a.row_index, self.txn_b.row_index)


def candidate_row(
    txn_a: Transaction,
    transactions_b: Sequence[Transaction],
    scorer: ConfidenceScorer,
    min_confidence: float,
) -> list[Candidate]:
    """Score one A record against every B record and keep those above the floor."""
    # Compared at the precision confidences are rounded to
    floor = round(min_confidence, CONFIDENCE_PRECISION)
    row: list[Candidate] = []
    for txn_b in transactions_b:
        confidence = scorer.score(txn_a, txn_b)
        if confidence >= floor:
            row.append(Candidate(confidence, txn_a, txn_b))
    return row


def generate_candidates(
    transactions_a: Sequence[Transaction],
    transactions_b: Sequence[Transaction],
    scorer: ConfidenceScorer,
    min_confidence: float,
) -> Iterator[list[Candidate]]:
    """Yield the surviving candidates of each A record in turn."""
    for txn_a in transactions_a:
        yield candidate_row(txn_a, transactions_b, scorer, min_confidence)


def _score_slice(
    slice_a: Sequence[Transaction],
    transactions_b: Sequence[Transaction],
    scorer: ConfidenceScorer,
    min_confidence: float,
) -> list[Candidate]:
    candidates: list[Candidate] = []
    for row in generate_candidates(slice_a, transactions_b, scorer, min_confidence):
        candidates.extend(row)
    return candidates


def collect_candidates(
    transactions_a: Sequence[Transaction],
    transactions_b: Sequence[Transaction],
    scorer: ConfidenceScorer,
    min_confidence: float,
    max_workers: int = 1,
) -> list[Candidate]:
    """
    Gather every candidate at or above the floor.

    With ``max_workers > 1`` the A records are split into contiguous,
    disjoint slices scored on a thread pool. Inputs are read-only and each
    worker returns its own list, so no locking is involved.

    Args:
        transactions_a: Source A transactions
        transactions_b: Source B transactions
        scorer: Confidence scorer for the run
        min_confidence: Confidence floor (inclusive)
        max_workers: Worker threads for scoring

    Returns:
        Candidates in A-record order (unsorted)
    """
    if not transactions_a or not transactions_b or not scorer.has_applicable_rules:
        return []

    if max_workers <= 1 or len(transactions_a) < 2:
        return _score_slice(transactions_a, transactions_b, scorer, min_confidence)

    workers = min(max_workers, len(transactions_a))
    chunk_size = math.ceil(len(transactions_a) / workers)
    slices = [
        transactions_a[start : start + chunk_size]
        for start in range(0, len(transactions_a), chunk_size)
    ]
    logger.debug(f"Scoring {len(slices)} slices on {workers} threads")

    candidates: list[Candidate] = []
    with ThreadPoolExecutor(max_workers=workers) as executor:
        for result in executor.map(
            lambda part: _score_slice(part, transactions_b, scorer, min_confidence),
            slices,
        ):
            candidates.extend(result)
    return candidates


def assign_one_to_one(
    candidates: list[Candidate],
    transactions_a: Sequence[Transaction],
    transactions_b: Sequence[Transaction],
) -> tuple[list[MatchResult], list[Transaction], list[Transaction]]:
    """
    Greedily accept candidates while both records are unclaimed.

    Args:
        candidates: Candidates at or above the floor
        transactions_a: All source A transactions in original order
        transactions_b: All source B transactions in original order

    Returns:
        Tuple of (matches in acceptance order, unmatched A, unmatched B),
        the unmatched lists keeping original row order
    """
    ordered = sorted(candidates, key=lambda c: c.sort_key)

    claimed_a: set[int] = set()
    claimed_b: set[int] = set()
    matches: list[MatchResult] = []

    for candidate in ordered:
        index_a = candidate.txn_a.row_index
        index_b = candidate.txn_b.row_index
        if index_a in claimed_a or index_b in claimed_b:
            continue
        claimed_a.add(index_a)
        claimed_b.add(index_b)
        matches.append(
            MatchResult(
                transactions_a=(candidate.txn_a,),
                transactions_b=(candidate.txn_b,),
                confidence=candidate.confidence,
            )
        )

    unmatched_a = [t for t in transactions_a if t.row_index not in claimed_a]
    unmatched_b = [t for t in transactions_b if t.row_index not in claimed_b]
    return matches, unmatched_a, unmatched_b

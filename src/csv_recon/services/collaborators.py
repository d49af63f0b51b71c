"""
External collaborators: AI explanation, natural-language rule compiler and
run persistence.

Only the interfaces and the guarded call sites live here. A collaborator
failure or timeout is raised as a CollaboratorError at its own call site and
never touches a reconciliation result that was already computed.
"""

from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeoutError
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Optional, Sequence
import logging
import uuid

from ..analysis.hints import AnomalyHint, HintKind, detect_unmatched_hints, hints_for
from ..config import MatchingConfig, MatchingRule
from ..matching.validation import parse_matching_config, validate_config
from ..models.transaction import (
    ConfidenceLevel,
    ReconciliationResult,
    Transaction,
    TransactionSource,
)
from ..utils.exceptions import CollaboratorError, CollaboratorTimeoutError
from ..utils.text import fold_text, text_similarity
from .matching_service import serialize_transaction

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_MAX_CANDIDATES = 10


def call_with_timeout(name: str, func: Callable[..., Any], timeout: float, *args: Any) -> Any:
    """
    Run a collaborator call with a deadline.

    The worker thread is abandoned on timeout; its eventual result is ignored.

    Raises:
        CollaboratorTimeoutError: If the call does not finish in time
        CollaboratorError: If the call raises
    """
    executor = ThreadPoolExecutor(max_workers=1)
    future = executor.submit(func, *args)
    try:
        return future.result(timeout=timeout)
    except FuturesTimeoutError as e:
        logger.warning(f"{name} timed out after {timeout}s")
        raise CollaboratorTimeoutError(f"{name} did not respond within {timeout}s") from e
    except CollaboratorError:
        raise
    except Exception as e:
        logger.error(f"{name} failed: {e}")
        raise CollaboratorError(f"{name} failed: {e}") from e
    finally:
        executor.shutdown(wait=False)


# ---------------------------------------------------------------------------
# AI explanation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SuggestedMatch:
    candidate: Transaction
    reason: str
    confidence: ConfidenceLevel
    amount_diff: Optional[Decimal] = None
    date_diff_days: Optional[int] = None
    name_similarity_pct: Optional[float] = None


@dataclass(frozen=True)
class DifferenceDetails:
    amount_diff: Optional[Decimal] = None
    date_diff_days: Optional[int] = None
    reference_similarity: Optional[float] = None


@dataclass(frozen=True)
class ExceptionAnalysis:
    """Explanation of why a record did not match."""

    probable_cause: str
    recommended_action: str
    difference_details: DifferenceDetails = field(default_factory=DifferenceDetails)
    suggested_match: Optional[SuggestedMatch] = None

    def to_dict(self) -> dict[str, Any]:
        details = self.difference_details
        body: dict[str, Any] = {
            "probableCause": self.probable_cause,
            "recommendedAction": self.recommended_action,
            "differenceDetails": {
                "amountDiff": None if details.amount_diff is None else str(details.amount_diff),
                "dateDiffDays": details.date_diff_days,
                "referenceSimilarity": details.reference_similarity,
            },
            "suggestedMatch": None,
        }
        if self.suggested_match is not None:
            match = self.suggested_match
            body["suggestedMatch"] = {
                "candidate": serialize_transaction(match.candidate),
                "reason": match.reason,
                "confidence": match.confidence.value,
                "amountDiff": None if match.amount_diff is None else str(match.amount_diff),
                "dateDiffDays": match.date_diff_days,
                "nameSimilarityPct": match.name_similarity_pct,
            }
        return body


@dataclass(frozen=True)
class ExplanationRequest:
    """Everything the explanation service gets about one unmatched record."""

    transaction: Transaction
    candidates: tuple[Transaction, ...]
    rules: tuple[MatchingRule, ...]
    matched_count: int
    hints: tuple[AnomalyHint, ...] = ()


class ExplanationService(ABC):
    """Explains unmatched records (typically backed by an LLM)."""

    @abstractmethod
    def explain(self, request: ExplanationRequest) -> ExceptionAnalysis:
        pass


def nearest_candidates(
    transaction: Transaction,
    result: ReconciliationResult,
    limit: int = DEFAULT_MAX_CANDIDATES,
) -> list[Transaction]:
    """
    Other-source records closest to ``transaction``.

    Ranked by absolute amount difference, then day gap, then row index;
    records missing an amount or date sort after those that have one.
    """
    if transaction.source is TransactionSource.SOURCE_A:
        others = result.all_b()
    else:
        others = result.all_a()

    def rank(other: Transaction) -> tuple:
        if transaction.amount is None or other.amount is None:
            amount_key: tuple = (1, Decimal("0"))
        else:
            amount_key = (0, abs(transaction.amount - other.amount))
        if transaction.date is None or other.date is None:
            date_key: tuple = (1, 0)
        else:
            date_key = (0, abs((transaction.date - other.date).days))
        return (amount_key, date_key, other.row_index)

    return sorted(others, key=rank)[:limit]


def build_explanation_request(
    transaction: Transaction,
    result: ReconciliationResult,
    max_candidates: int = DEFAULT_MAX_CANDIDATES,
    hints: Optional[Sequence[AnomalyHint]] = None,
) -> ExplanationRequest:
    if hints is None:
        hints = detect_unmatched_hints(result)
    return ExplanationRequest(
        transaction=transaction,
        candidates=tuple(nearest_candidates(transaction, result, max_candidates)),
        rules=tuple(result.config.rules),
        matched_count=result.matched_count,
        hints=tuple(hints_for(hints, transaction)),
    )


def explain_unmatched(
    service: ExplanationService,
    transaction: Transaction,
    result: ReconciliationResult,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    max_candidates: int = DEFAULT_MAX_CANDIDATES,
    hints: Optional[Sequence[AnomalyHint]] = None,
) -> ExceptionAnalysis:
    """
    Ask the explanation service about one unmatched record.

    Raises:
        CollaboratorTimeoutError: If the service misses the deadline
        CollaboratorError: If the service fails or answers with the wrong type
    """
    request = build_explanation_request(transaction, result, max_candidates, hints)
    analysis = call_with_timeout("Explanation service", service.explain, timeout, request)
    if not isinstance(analysis, ExceptionAnalysis):
        raise CollaboratorError(
            f"Explanation service returned {type(analysis).__name__}, expected ExceptionAnalysis"
        )
    return analysis


def difference_details(txn: Transaction, candidate: Transaction) -> DifferenceDetails:
    """Measured differences between a record and a candidate counterpart."""
    amount_diff = None
    if txn.amount is not None and candidate.amount is not None:
        amount_diff = txn.amount - candidate.amount
    date_diff = None
    if txn.date is not None and candidate.date is not None:
        date_diff = abs((txn.date - candidate.date).days)
    similarity = None
    if txn.reference and candidate.reference:
        similarity = round(
            text_similarity(fold_text(txn.reference), fold_text(candidate.reference)), 4
        )
    return DifferenceDetails(
        amount_diff=amount_diff, date_diff_days=date_diff, reference_similarity=similarity
    )


class RuleBasedExplanationService(ExplanationService):
    """
    Offline explainer built from the hints and the closest candidate.

    Used when no AI service is configured.
    """

    def explain(self, request: ExplanationRequest) -> ExceptionAnalysis:
        txn = request.transaction
        kinds = {hint.kind for hint in request.hints}

        if not request.candidates:
            return ExceptionAnalysis(
                probable_cause=f"{txn.source.other.label} has no records to compare against.",
                recommended_action="This appears to be a new transaction with no counterpart.",
            )

        best = request.candidates[0]
        details = difference_details(txn, best)

        causes: list[str] = []
        if HintKind.DATE_GAP in kinds:
            causes.append("the date is outside the matching window of every counterpart")
        if details.amount_diff:
            causes.append(f"the closest amount differs by {details.amount_diff}")
        if details.reference_similarity is not None and details.reference_similarity < 0.8:
            causes.append("the reference does not match the closest candidate")
        if HintKind.DUPLICATE_REFERENCE in kinds:
            causes.append("its reference is duplicated within its own source")
        if not causes:
            causes.append("the combined rule confidence stayed below the threshold")

        exact_amount = details.amount_diff is not None and details.amount_diff == 0
        close_date = details.date_diff_days is not None and details.date_diff_days <= 3
        if exact_amount and close_date:
            level = ConfidenceLevel.HIGH
        elif exact_amount or close_date:
            level = ConfidenceLevel.MEDIUM
        else:
            level = ConfidenceLevel.LOW

        similarity_pct = None
        if details.reference_similarity is not None:
            similarity_pct = round(details.reference_similarity * 100, 1)

        return ExceptionAnalysis(
            probable_cause=f"Unmatched because {'; '.join(causes)}.",
            recommended_action=(
                f"Review {best.source.label} row {best.row_index} as a manual match"
                if level is not ConfidenceLevel.LOW
                else "Check whether a counterpart exists or widen the rule tolerances"
            ),
            difference_details=details,
            suggested_match=SuggestedMatch(
                candidate=best,
                reason="Closest amount and date in the other source",
                confidence=level,
                amount_diff=details.amount_diff,
                date_diff_days=details.date_diff_days,
                name_similarity_pct=similarity_pct,
            ),
        )


# ---------------------------------------------------------------------------
# Natural language to matching configuration
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CompiledRules:
    config: MatchingConfig
    explanation: str


class RuleCompiler(ABC):
    """Turns a plain-language description into a raw matching configuration."""

    @abstractmethod
    def compile(self, text: str, headers_a: Sequence[str], headers_b: Sequence[str]) -> dict[str, Any]:
        """Return ``{"config": {...}, "explanation": "..."}``."""
        pass


def compile_rules(
    compiler: RuleCompiler,
    text: str,
    headers_a: Sequence[str],
    headers_b: Sequence[str],
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> CompiledRules:
    """
    Compile a description into a validated MatchingConfig.

    The compiler's answer is untrusted and goes through the same validation
    as any user configuration.

    Raises:
        CollaboratorTimeoutError: If the compiler misses the deadline
        CollaboratorError: If the compiler fails or answers without a config
        ConfigurationError: If the returned configuration is invalid
    """
    if not text or not text.strip():
        raise ValueError("Rule description must not be empty")

    raw = call_with_timeout(
        "Rule compiler", compiler.compile, timeout, text, list(headers_a), list(headers_b)
    )
    if not isinstance(raw, dict) or not isinstance(raw.get("config"), dict):
        raise CollaboratorError("Rule compiler returned no configuration")

    config = parse_matching_config(raw["config"])
    validate_config(config, headers_a, headers_b)
    explanation = str(raw.get("explanation") or "")
    logger.info(f"Compiled {len(config.rules)} rule(s) from description")
    return CompiledRules(config=config, explanation=explanation)


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


@dataclass
class RunRecord:
    """One stored reconciliation run, keyed by organization."""

    organization_id: str
    source_a_name: str
    source_b_name: str
    source_a_rows: int
    source_b_rows: int
    matched_count: int
    unmatched_a_count: int
    unmatched_b_count: int
    match_rate: float
    matched_amount: Decimal
    matching_type: str
    rules_config: dict[str, Any]
    results_summary: dict[str, Any]
    id: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class AnalysisRecord:
    run_id: str
    transaction_data: dict[str, Any]
    analysis_result: dict[str, Any]


class RunRepository(ABC):
    """Storage for reconciliation runs and their explanations."""

    @abstractmethod
    def save_run(self, record: RunRecord) -> str:
        """Store a run and return its id."""
        pass

    @abstractmethod
    def list_runs(self, organization_id: str) -> list[RunRecord]:
        """Runs of an organization, newest first."""
        pass

    @abstractmethod
    def save_analysis(self, run_id: str, transaction: Transaction, analysis: ExceptionAnalysis) -> None:
        pass

    @abstractmethod
    def count_analyses(self, run_ids: Sequence[str]) -> int:
        pass


def build_run_record(
    result: ReconciliationResult,
    organization_id: str,
    source_a_name: str,
    source_b_name: str,
) -> RunRecord:
    """Summarize a result into the persisted run shape."""
    total = result.total_a + result.total_b
    levels = {level.value: 0 for level in ConfidenceLevel}
    for match in result.matched:
        levels[match.confidence_level.value] += 1

    return RunRecord(
        organization_id=organization_id,
        source_a_name=source_a_name,
        source_b_name=source_b_name,
        source_a_rows=result.total_a,
        source_b_rows=result.total_b,
        matched_count=result.matched_count,
        unmatched_a_count=len(result.unmatched_a),
        unmatched_b_count=len(result.unmatched_b),
        match_rate=(2 * result.matched_count / total) if total else 0.0,
        matched_amount=result.matched_amount,
        matching_type=result.config.matching_type,
        rules_config=result.config.to_wire(),
        results_summary={
            "matchedCount": result.matched_count,
            "unmatchedACount": len(result.unmatched_a),
            "unmatchedBCount": len(result.unmatched_b),
            "confidenceLevels": levels,
        },
    )


def run_statistics(repository: RunRepository, organization_id: str) -> dict[str, Any]:
    """Run count, average match rate and explanation count for an organization."""
    runs = repository.list_runs(organization_id)
    run_ids = [run.id for run in runs if run.id]
    average = sum(run.match_rate for run in runs) / len(runs) if runs else None
    return {
        "total_reconciliations": len(runs),
        "average_match_rate": average,
        "total_ai_analyses": repository.count_analyses(run_ids) if run_ids else 0,
    }


class InMemoryRunRepository(RunRepository):
    """Process-local repository for tests and single CLI sessions."""

    def __init__(self):
        self.runs: dict[str, RunRecord] = {}
        self.analyses: list[AnalysisRecord] = []

    def save_run(self, record: RunRecord) -> str:
        run_id = record.id or str(uuid.uuid4())
        record.id = run_id
        if record.created_at is None:
            record.created_at = datetime.now()
        self.runs[run_id] = record
        logger.debug(f"Saved run {run_id} for organization {record.organization_id}")
        return run_id

    def list_runs(self, organization_id: str) -> list[RunRecord]:
        runs = [r for r in self.runs.values() if r.organization_id == organization_id]
        # Insertion order breaks created_at ties
        indexed = list(enumerate(runs))
        indexed.sort(key=lambda item: (item[1].created_at or datetime.min, item[0]), reverse=True)
        return [run for _, run in indexed]

    def save_analysis(self, run_id: str, transaction: Transaction, analysis: ExceptionAnalysis) -> None:
        if run_id not in self.runs:
            raise KeyError(f"Unknown run: {run_id}")
        self.analyses.append(
            AnalysisRecord(
                run_id=run_id,
                transaction_data=serialize_transaction(transaction),
                analysis_result=analysis.to_dict(),
            )
        )

    def count_analyses(self, run_ids: Sequence[str]) -> int:
        wanted = set(run_ids)
        return sum(1 for a in self.analyses if a.run_id in wanted)

"""Request boundary and external collaborator interfaces."""

from .matching_service import (
    MatchRequest,
    handle_match_request,
    parse_match_request,
    run_stats,
    serialize_result,
    serialize_transaction,
)
from .collaborators import (
    CompiledRules,
    DifferenceDetails,
    ExceptionAnalysis,
    ExplanationRequest,
    ExplanationService,
    InMemoryRunRepository,
    RuleBasedExplanationService,
    RuleCompiler,
    RunRecord,
    RunRepository,
    SuggestedMatch,
    build_run_record,
    compile_rules,
    explain_unmatched,
    nearest_candidates,
    run_statistics,
)

__all__ = [
    "MatchRequest",
    "handle_match_request",
    "parse_match_request",
    "run_stats",
    "serialize_result",
    "serialize_transaction",
    "CompiledRules",
    "DifferenceDetails",
    "ExceptionAnalysis",
    "ExplanationRequest",
    "ExplanationService",
    "InMemoryRunRepository",
    "RuleBasedExplanationService",
    "RuleCompiler",
    "RunRecord",
    "RunRepository",
    "SuggestedMatch",
    "build_run_record",
    "compile_rules",
    "explain_unmatched",
    "nearest_candidates",
    "run_statistics",
]

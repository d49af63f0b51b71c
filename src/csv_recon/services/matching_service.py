"""
Matching request/response boundary.

Accepts the JSON request shape (camelCase keys, dates as ISO-8601 strings on
the way out), runs the engine and reports run statistics. Elapsed time is
measured here so the engine stays clock-free.
"""

from typing import Any, Optional
import logging
import time

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..config import ReconConfig
from ..matching.engine import ReconciliationEngine
from ..matching.validation import parse_matching_config
from ..models.transaction import (
    MatchResult,
    ReconciliationResult,
    SourceData,
    Transaction,
)
from ..utils.exceptions import RequestValidationError

logger = logging.getLogger(__name__)


class SourcePayload(BaseModel):
    """One source as sent by the client."""

    headers: list[str] = Field(default_factory=list)
    rows: list[dict[str, Any]] = Field(default_factory=list)
    filename: Optional[str] = None

    @field_validator("rows")
    @classmethod
    def _stringify_cells(cls, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        return [
            {str(k): "" if v is None else str(v) for k, v in row.items()} for row in rows
        ]

    def to_source_data(self) -> SourceData:
        return SourceData(headers=list(self.headers), rows=self.rows, filename=self.filename)


class MatchRequest(BaseModel):
    """Matching request: two sources and the matching configuration."""

    model_config = ConfigDict(populate_by_name=True)

    source_a: SourcePayload = Field(alias="sourceA")
    source_b: SourcePayload = Field(alias="sourceB")
    config: dict[str, Any]


def serialize_transaction(txn: Transaction) -> dict[str, Any]:
    """Transaction in the wire shape; invalid dates become ``None``."""
    return {
        "id": f"{txn.source.value}-{txn.row_index}",
        "source": txn.source.value,
        "rowIndex": txn.row_index,
        "amount": None if txn.amount is None else str(txn.amount),
        "date": None if txn.date is None else txn.date.isoformat(),
        "reference": txn.reference,
        "raw": dict(txn.raw),
    }


def serialize_match(match: MatchResult) -> dict[str, Any]:
    return {
        "transactionsA": [serialize_transaction(t) for t in match.transactions_a],
        "transactionsB": [serialize_transaction(t) for t in match.transactions_b],
        "confidence": match.confidence,
        "confidenceLevel": match.confidence_level.value,
    }


def run_stats(result: ReconciliationResult, processing_time_ms: int = 0) -> dict[str, Any]:
    """Counts and match rate, where match rate is ``2 * matched / (|A| + |B|)``."""
    total = result.total_a + result.total_b
    match_rate = (2 * result.matched_count / total) if total else 0.0
    return {
        "matchedCount": result.matched_count,
        "unmatchedACount": len(result.unmatched_a),
        "unmatchedBCount": len(result.unmatched_b),
        "matchRate": match_rate,
        "processingTimeMs": processing_time_ms,
    }


def serialize_result(result: ReconciliationResult, processing_time_ms: int = 0) -> dict[str, Any]:
    """Full response body for a reconciliation result."""
    return {
        "matched": [serialize_match(m) for m in result.matched],
        "unmatchedA": [serialize_transaction(t) for t in result.unmatched_a],
        "unmatchedB": [serialize_transaction(t) for t in result.unmatched_b],
        "config": result.config.to_wire(),
        "stats": run_stats(result, processing_time_ms),
    }


def parse_match_request(payload: Any, settings: Optional[ReconConfig] = None) -> MatchRequest:
    """
    Validate the request envelope and its size.

    Raises:
        RequestValidationError: If the body is malformed or too large
    """
    settings = settings or ReconConfig()
    if not isinstance(payload, dict):
        raise RequestValidationError("Request body must be a JSON object")

    try:
        request = MatchRequest.model_validate(payload)
    except ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        raise RequestValidationError(f"Invalid request at {location}: {first.get('msg')}") from e

    total_rows = len(request.source_a.rows) + len(request.source_b.rows)
    limit = settings.service.max_total_rows
    if total_rows > limit:
        raise RequestValidationError(
            f"Too many rows: {total_rows} exceeds the limit of {limit}"
        )
    return request


def handle_match_request(
    payload: Any, settings: Optional[ReconConfig] = None
) -> dict[str, Any]:
    """
    Serve one matching request.

    Args:
        payload: Decoded JSON body ``{sourceA, sourceB, config}``
        settings: Application settings (engine options, request limits)

    Returns:
        Response body ``{matched, unmatchedA, unmatchedB, config, stats}``

    Raises:
        RequestValidationError: If the request is malformed or too large
        ConfigurationError: If the matching configuration is invalid
    """
    settings = settings or ReconConfig()
    request = parse_match_request(payload, settings)
    config = parse_matching_config(request.config)

    source_a = request.source_a.to_source_data()
    source_b = request.source_b.to_source_data()

    engine = ReconciliationEngine(settings.engine)
    start = time.perf_counter()
    result = engine.reconcile_sources(source_a, source_b, config)
    elapsed_ms = int(round((time.perf_counter() - start) * 1000))

    logger.info(
        f"Match request served in {elapsed_ms} ms: {result.matched_count} matches "
        f"from {source_a.row_count} + {source_b.row_count} rows"
    )
    return serialize_result(result, elapsed_ms)

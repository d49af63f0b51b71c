"""
Rule-driven matching engine for two-source transaction reconciliation.
Validates the configuration, scores candidate pairs and assigns them one-to-one.
"""

from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional, Sequence
import logging

from ..config import EngineSettings, MatchingConfig
from ..models.transaction import (
    ReconciliationResult,
    ReconciliationSummary,
    SourceData,
    Transaction,
    TransactionSource,
)
from ..parsers.transactions import build_transactions, derive_column_mappings
from .assigner import assign_one_to_one, collect_candidates
from .scoring import ConfidenceScorer
from .validation import validate_config

logger = logging.getLogger(__name__)


def _headers_from_rows(transactions: Iterable[Transaction]) -> list[str]:
    headers: dict[str, None] = {}
    for txn in transactions:
        for column in txn.raw:
            headers.setdefault(column, None)
    return list(headers)


class ReconciliationEngine:
    """
    Main reconciliation engine.

    A run is a pure function of its inputs: no clock, randomness or I/O is
    consulted, and the inputs are never modified. Elapsed time is measured
    by callers.
    """

    def __init__(self, settings: Optional[EngineSettings] = None):
        """
        Initialize the reconciliation engine.

        Args:
            settings: Execution settings (scoring threads, date formats)
        """
        self.settings = settings or EngineSettings()

    def reconcile(
        self,
        transactions_a: Sequence[Transaction],
        transactions_b: Sequence[Transaction],
        config: MatchingConfig,
        headers_a: Optional[Sequence[str]] = None,
        headers_b: Optional[Sequence[str]] = None,
    ) -> ReconciliationResult:
        """
        Run reconciliation between two transaction sets.

        Args:
            transactions_a: Source A transactions, ``row_index`` unique
            transactions_b: Source B transactions, ``row_index`` unique
            config: Matching configuration
            headers_a: Source A columns; taken from the rows when omitted
            headers_b: Source B columns; taken from the rows when omitted

        Returns:
            Immutable reconciliation result

        Raises:
            ConfigurationError: If the configuration is invalid; nothing is
                scored in that case
        """
        # Column checks only apply to sources whose header row is known
        validate_config(config, headers_a or None, headers_b or None)
        config = config.model_copy(deep=True)

        columns_a = list(headers_a) if headers_a else _headers_from_rows(transactions_a)
        columns_b = list(headers_b) if headers_b else _headers_from_rows(transactions_b)

        logger.info(
            f"Starting reconciliation: {len(transactions_a)} source A txns, "
            f"{len(transactions_b)} source B txns, {len(config.rules)} rules"
        )

        scorer = ConfidenceScorer(
            config.rules, columns_a, columns_b, self.settings.date_formats
        )
        if not scorer.has_applicable_rules:
            logger.warning("No weighted rule applies to both sources; nothing can match")

        candidates = collect_candidates(
            transactions_a,
            transactions_b,
            scorer,
            config.min_confidence_threshold,
            max_workers=self.settings.max_workers,
        )
        logger.debug(
            f"{len(candidates)} candidate pairs at or above "
            f"{config.min_confidence_threshold}"
        )

        matches, unmatched_a, unmatched_b = assign_one_to_one(
            candidates, transactions_a, transactions_b
        )

        logger.info(
            f"Reconciliation complete: {len(matches)} matches, "
            f"{len(unmatched_a)} unmatched in A, {len(unmatched_b)} unmatched in B"
        )

        return ReconciliationResult(
            matched=tuple(matches),
            unmatched_a=tuple(unmatched_a),
            unmatched_b=tuple(unmatched_b),
            config=config,
        )

    def build_source_transactions(
        self,
        source_a: SourceData,
        source_b: SourceData,
        config: MatchingConfig,
    ) -> tuple[list[Transaction], list[Transaction]]:
        """
        Convert parsed rows of both sources into Transactions.

        The amount, date and reference columns are derived from the rules.
        """
        mapping_a, mapping_b = derive_column_mappings(
            config.rules, source_a.headers, source_b.headers
        )
        logger.debug(f"Column mapping A: {mapping_a}, B: {mapping_b}")

        date_formats = self.settings.date_formats
        transactions_a = build_transactions(
            source_a, mapping_a, TransactionSource.SOURCE_A, date_formats
        )
        transactions_b = build_transactions(
            source_b, mapping_b, TransactionSource.SOURCE_B, date_formats
        )
        return transactions_a, transactions_b

    def reconcile_sources(
        self,
        source_a: SourceData,
        source_b: SourceData,
        config: MatchingConfig,
    ) -> ReconciliationResult:
        """
        Validate, build transactions and reconcile two parsed sources.

        Raises:
            ConfigurationError: If the configuration is invalid for these
                headers
        """
        validate_config(config, source_a.headers or None, source_b.headers or None)
        transactions_a, transactions_b = self.build_source_transactions(
            source_a, source_b, config
        )
        return self.reconcile(
            transactions_a,
            transactions_b,
            config,
            headers_a=source_a.headers,
            headers_b=source_b.headers,
        )

    def generate_summary(
        self,
        result: ReconciliationResult,
        source_a_filename: str,
        source_b_filename: str,
        processing_time: float = 0.0,
        config_file: Optional[str] = None,
    ) -> ReconciliationSummary:
        """
        Generate a summary of the reconciliation results.

        Args:
            result: Engine output
            source_a_filename: Display name of source A
            source_b_filename: Display name of source B
            processing_time: Time taken in seconds, measured by the caller
            config_file: Configuration file used, if any

        Returns:
            Reconciliation summary object
        """
        variances = [m.amount_variance for m in result.matched]
        total_variance = sum((v for v in variances if v), Decimal("0"))
        variance_count = sum(1 for v in variances if v)

        level_counts: dict[str, int] = {}
        for match in result.matched:
            level = match.confidence_level.value
            level_counts[level] = level_counts.get(level, 0) + 1

        return ReconciliationSummary(
            source_a_filename=source_a_filename,
            source_b_filename=source_b_filename,
            reconciliation_date=datetime.now(),
            total_a=result.total_a,
            total_b=result.total_b,
            matched_count=result.matched_count,
            unmatched_a_count=len(result.unmatched_a),
            unmatched_b_count=len(result.unmatched_b),
            matched_amount=result.matched_amount,
            total_amount_variance=total_variance,
            variance_count=variance_count,
            min_confidence_threshold=result.config.min_confidence_threshold,
            rule_count=len(result.config.rules),
            matches_by_level=level_counts,
            processing_time_seconds=processing_time,
            config_file_used=config_file,
        )

"""Matching engine, rule comparators and pair assignment."""

from .engine import ReconciliationEngine
from .strategies import (
    RuleComparator,
    ExactComparator,
    NumericToleranceComparator,
    DateToleranceComparator,
    SimilarTextComparator,
    build_comparator,
)
from .scoring import ConfidenceScorer
from .assigner import Candidate, assign_one_to_one, collect_candidates, generate_candidates
from .validation import collect_config_issues, parse_matching_config, validate_config

__all__ = [
    "ReconciliationEngine",
    "RuleComparator",
    "ExactComparator",
    "NumericToleranceComparator",
    "DateToleranceComparator",
    "SimilarTextComparator",
    "build_comparator",
    "ConfidenceScorer",
    "Candidate",
    "assign_one_to_one",
    "collect_candidates",
    "generate_candidates",
    "collect_config_issues",
    "parse_matching_config",
    "validate_config",
]

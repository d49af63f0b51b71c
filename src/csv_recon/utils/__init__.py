"""Utility modules."""

from .exceptions import (
    ReconciliationError,
    SourceParseError,
    ConfigurationError,
    ConfigIssue,
    RequestValidationError,
    CollaboratorError,
    CollaboratorTimeoutError,
    ReportGenerationError,
)
from .logging_config import setup_logging, setup_logging_from_config

__all__ = [
    "ReconciliationError",
    "SourceParseError",
    "ConfigurationError",
    "ConfigIssue",
    "RequestValidationError",
    "CollaboratorError",
    "CollaboratorTimeoutError",
    "ReportGenerationError",
    "setup_logging",
    "setup_logging_from_config",
]

"""Custom exceptions for the reconciliation application."""

from typing import Optional


class ReconciliationError(Exception):
    """Base exception for reconciliation errors."""

    pass


class SourceParseError(ReconciliationError):
    """Error reading a source CSV file."""

    pass


class ConfigurationError(ReconciliationError):
    """
    Invalid matching configuration.

    Carries the index of the offending rule (``None`` for config-level
    fields) and the field name, plus every issue found when the validator
    collected more than one.
    """

    def __init__(
        self,
        message: str,
        rule_index: Optional[int] = None,
        field: Optional[str] = None,
        issues: Optional[list["ConfigIssue"]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.rule_index = rule_index
        self.field = field
        self.issues = issues or [ConfigIssue(rule_index, field, message)]

    def __str__(self) -> str:
        if self.rule_index is not None:
            return f"rules[{self.rule_index}].{self.field}: {self.message}"
        if self.field:
            return f"{self.field}: {self.message}"
        return self.message


class ConfigIssue:
    """A single problem found while validating a matching configuration."""

    __slots__ = ("rule_index", "field", "message")

    def __init__(self, rule_index: Optional[int], field: Optional[str], message: str):
        self.rule_index = rule_index
        self.field = field
        self.message = message

    def __repr__(self) -> str:
        return f"ConfigIssue(rule_index={self.rule_index!r}, field={self.field!r}, message={self.message!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ConfigIssue):
            return NotImplemented
        return (self.rule_index, self.field, self.message) == (
            other.rule_index,
            other.field,
            other.message,
        )


class RequestValidationError(ReconciliationError):
    """Malformed or oversized matching request."""

    pass


class CollaboratorError(ReconciliationError):
    """An external collaborator (AI service, repository) failed."""

    pass


class CollaboratorTimeoutError(CollaboratorError):
    """An external collaborator did not answer in time. Safe to retry."""

    retryable = True


class ReportGenerationError(ReconciliationError):
    """Error generating Excel report."""

    pass

"""Post-match analysis: unmatched-record hints and risk scan."""

from .hints import AnomalyHint, HintKind, detect_unmatched_hints, hints_for, plausible_date_window
from .risk_scan import (
    Anomaly,
    AnomalyReport,
    AnomalyType,
    RiskScanner,
    Severity,
    scan_result,
)

__all__ = [
    "AnomalyHint",
    "HintKind",
    "detect_unmatched_hints",
    "hints_for",
    "plausible_date_window",
    "Anomaly",
    "AnomalyReport",
    "AnomalyType",
    "RiskScanner",
    "Severity",
    "scan_result",
]

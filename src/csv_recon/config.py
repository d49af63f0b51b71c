"""Configuration loader and models for reconciliation settings."""

from enum import Enum
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence
import logging
import re

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from .parsers.values import DEFAULT_DATE_FORMATS
from .utils.exceptions import ConfigurationError
from .utils.text import fold_text, text_similarity

logger = logging.getLogger(__name__)

ONE_TO_ONE = "oneToOne"

DEFAULT_ABBREVIATIONS: dict[str, str] = {
    "corp": "corporation",
    "inc": "incorporated",
    "co": "company",
    "ltd": "limited",
    "intl": "international",
    "svcs": "services",
    "svc": "service",
    "assoc": "associates",
    "mfg": "manufacturing",
    "bros": "brothers",
}


class MatchType(str, Enum):
    """How the two column values of a rule are compared."""

    EXACT = "exact"
    TOLERANCE_NUMERIC = "tolerance_numeric"
    TOLERANCE_DATE = "tolerance_date"
    SIMILAR_TEXT = "similar_text"


class ToleranceNumericMode(str, Enum):
    """Fixed = absolute amount; percentage = fraction of the larger magnitude."""

    FIXED = "fixed"
    PERCENTAGE = "percentage"


class _WireModel(BaseModel):
    """Accepts snake_case (YAML) and camelCase (JSON requests)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MatchingRule(_WireModel):
    """Compares one column of source A against one column of source B."""

    id: Optional[str] = None
    column_a: str
    column_b: str
    match_type: MatchType
    weight: float = 1.0
    tolerance_value: Optional[float] = None
    tolerance_numeric_mode: ToleranceNumericMode = ToleranceNumericMode.PERCENTAGE
    similarity_threshold: Optional[float] = None


class MatchingConfig(_WireModel):
    """Rules, confidence floor and assignment discipline for one run."""

    rules: list[MatchingRule] = Field(default_factory=list)
    min_confidence_threshold: float = 0.7
    matching_type: str = ONE_TO_ONE

    def to_wire(self) -> dict[str, Any]:
        """Serialize with camelCase keys for the request/response boundary."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class InputConfig(BaseModel):
    """Configuration for source CSV reading."""

    encoding: str = "utf-8"
    delimiter: str = ","


class EngineSettings(BaseModel):
    """Matching engine execution settings."""

    max_workers: int = 1
    date_formats: list[str] = Field(default_factory=lambda: list(DEFAULT_DATE_FORMATS))


class NormalizationSettings(BaseModel):
    """Settings for near-duplicate grouping of free-text values."""

    similarity_threshold: float = 0.7
    abbreviations: dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_ABBREVIATIONS)
    )


class AnomalySettings(BaseModel):
    """Thresholds for unmatched hints and the risk scan."""

    default_date_window_days: int = 3
    round_amount_min: float = 5000.0
    round_amount_step: float = 1000.0
    stale_after_days: int = 30
    splitting_window_days: int = 7
    weekend_min_count: int = 3


class ServiceSettings(BaseModel):
    """Limits applied at the request boundary and collaborator call sites."""

    max_total_rows: int = 50_000
    explanation_timeout_seconds: float = 30.0
    max_explanation_candidates: int = 10


class ExcelOutputConfig(BaseModel):
    """Configuration for Excel output."""

    filename_template: str = "reconciliation_report_{date}_{time}.xlsx"


class SheetConfig(BaseModel):
    """Configuration for a report sheet."""

    enabled: bool = True
    name: str


class SheetsConfig(BaseModel):
    """Configuration for all report sheets."""

    summary: SheetConfig = Field(default_factory=lambda: SheetConfig(name="Summary"))
    matched: SheetConfig = Field(default_factory=lambda: SheetConfig(name="Matched"))
    unmatched_a: SheetConfig = Field(default_factory=lambda: SheetConfig(name="Unmatched A"))
    unmatched_b: SheetConfig = Field(default_factory=lambda: SheetConfig(name="Unmatched B"))
    anomalies: SheetConfig = Field(default_factory=lambda: SheetConfig(name="Anomalies"))
    audit_trail: SheetConfig = Field(default_factory=lambda: SheetConfig(name="Audit Trail"))


class OutputConfig(BaseModel):
    """Configuration for output."""

    excel: ExcelOutputConfig = Field(default_factory=ExcelOutputConfig)
    sheets: SheetsConfig = Field(default_factory=SheetsConfig)


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file: Optional[str] = None


class ReconConfig(BaseModel):
    """Main configuration model for reconciliation."""

    input: InputConfig = Field(default_factory=InputConfig)
    matching: MatchingConfig = Field(default_factory=MatchingConfig)
    engine: EngineSettings = Field(default_factory=EngineSettings)
    normalization: NormalizationSettings = Field(default_factory=NormalizationSettings)
    anomalies: AnomalySettings = Field(default_factory=AnomalySettings)
    service: ServiceSettings = Field(default_factory=ServiceSettings)
    output: OutputConfig = Field(default_factory=OutputConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    config_file_path: Optional[str] = None


def get_default_config() -> dict[str, Any]:
    """Return the default configuration as a dictionary."""
    return {
        "input": {
            "encoding": "utf-8",
            "delimiter": ",",
        },
        "matching": {
            "rules": [
                {
                    "id": "amount",
                    "column_a": "Amount",
                    "column_b": "Amount",
                    "match_type": "tolerance_numeric",
                    "tolerance_numeric_mode": "percentage",
                    "tolerance_value": 0.005,
                    "weight": 1.0,
                },
                {
                    "id": "date",
                    "column_a": "Date",
                    "column_b": "Date",
                    "match_type": "tolerance_date",
                    "tolerance_value": 3,
                    "weight": 1.0,
                },
                {
                    "id": "reference",
                    "column_a": "Reference",
                    "column_b": "Reference",
                    "match_type": "exact",
                    "weight": 1.0,
                },
            ],
            "min_confidence_threshold": 0.7,
            "matching_type": ONE_TO_ONE,
        },
        "engine": {
            "max_workers": 1,
            "date_formats": list(DEFAULT_DATE_FORMATS),
        },
        "normalization": {
            "similarity_threshold": 0.7,
            "abbreviations": dict(DEFAULT_ABBREVIATIONS),
        },
        "anomalies": {
            "default_date_window_days": 3,
            "round_amount_min": 5000.0,
            "round_amount_step": 1000.0,
            "stale_after_days": 30,
            "splitting_window_days": 7,
            "weekend_min_count": 3,
        },
        "service": {
            "max_total_rows": 50_000,
            "explanation_timeout_seconds": 30.0,
            "max_explanation_candidates": 10,
        },
        "output": {
            "excel": {
                "filename_template": "reconciliation_report_{date}_{time}.xlsx",
            },
            "sheets": {
                "summary": {"enabled": True, "name": "Summary"},
                "matched": {"enabled": True, "name": "Matched"},
                "unmatched_a": {"enabled": True, "name": "Unmatched A"},
                "unmatched_b": {"enabled": True, "name": "Unmatched B"},
                "anomalies": {"enabled": True, "name": "Anomalies"},
                "audit_trail": {"enabled": True, "name": "Audit Trail"},
            },
        },
        "logging": {
            "level": "INFO",
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            "file": None,
        },
    }


def load_config(config_path: Optional[Path] = None) -> ReconConfig:
    """
    Load configuration from a YAML file or use defaults.

    Args:
        config_path: Path to YAML configuration file (optional)

    Returns:
        ReconConfig object with loaded or default settings
    """
    config_dict = get_default_config()

    if config_path and config_path.exists():
        logger.info(f"Loading configuration from: {config_path}")
        with open(config_path, "r") as f:
            user_config = yaml.safe_load(f) or {}

        # Lists (such as matching.rules) replace the defaults wholesale
        config_dict = _deep_merge(config_dict, user_config)
        config_dict["config_file_path"] = str(config_path)
    else:
        logger.info("Using default configuration")

    try:
        return ReconConfig(**config_dict)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration file {config_path}: {e}") from e


def _deep_merge(base: dict, override: dict) -> dict:
    """
    Deep merge two dictionaries.

    Args:
        base: Base dictionary
        override: Dictionary to merge on top

    Returns:
        Merged dictionary
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def generate_default_config(output_path: Path) -> None:
    """
    Generate a default configuration file.

    Args:
        output_path: Path to write the configuration file
    """
    config_dict = get_default_config()

    yaml_content = """# CSV reconciliation configuration
# Generated configuration file - customize as needed

"""
    yaml_content += yaml.dump(config_dict, default_flow_style=False, sort_keys=False)

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w") as f:
        f.write(yaml_content)

    logger.info(f"Generated configuration file: {output_path}")


# Column roles in priority order: (role, include pattern, exclude pattern)
_COLUMN_ROLES: list[tuple[str, re.Pattern, Optional[re.Pattern]]] = [
    (
        "amount",
        re.compile(r"amount|amt|total|sum|value|price|cost|paid|balance"),
        re.compile(r"date"),
    ),
    (
        "date",
        re.compile(r"date|posted|\bdt\b"),
        re.compile(r"due\s*_?date|duedate|maturity|expiry"),
    ),
    (
        "reference",
        re.compile(r"code|ref|id|number|num|invoice"),
        re.compile(r"name|description"),
    ),
    (
        "entity_name",
        re.compile(r"vendor|payee|customer|company|supplier|client|name"),
        re.compile(r"description"),
    ),
    ("description", re.compile(r"description|desc|memo|note|narrative|details"), None),
]

_ROLE_WEIGHTS = {
    "amount": 0.4,
    "date": 0.25,
    "reference": 0.2,
    "entity_name": 0.15,
    "description": 0.1,
}

MAX_STARTER_RULES = 4
_REFERENCE_SAMPLE_SIZE = 10
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")


def column_role(header: str) -> Optional[str]:
    """Return the first role whose pattern names this header, or None."""
    lowered = header.lower()
    for role, include, exclude in _COLUMN_ROLES:
        if include.search(lowered) and not (exclude and exclude.search(lowered)):
            return role
    return None


def _best_column_pair(
    role: str, headers_a: list[str], headers_b: list[str], used_a: set, used_b: set
) -> Optional[tuple[str, str]]:
    candidates_a = [h for h in headers_a if h not in used_a and column_role(h) == role]
    candidates_b = [h for h in headers_b if h not in used_b and column_role(h) == role]

    best = None
    best_similarity = -1.0
    for column_a in candidates_a:
        for column_b in candidates_b:
            similarity = text_similarity(fold_text(column_a), fold_text(column_b))
            if similarity > best_similarity:
                best = (column_a, column_b)
                best_similarity = similarity
    return best


def _reference_rule_params(
    column_a: str,
    column_b: str,
    rows_a: Optional[Sequence[Mapping[str, str]]],
    rows_b: Optional[Sequence[Mapping[str, str]]],
) -> dict[str, Any]:
    """
    Sample the first rows of both sources to pick the reference comparison.

    References that only agree once punctuation and case are stripped
    ("INV-001" vs "inv001") get a similar_text rule; otherwise exact.
    """
    exact = {"match_type": MatchType.EXACT}
    if not rows_a or not rows_b:
        return exact

    def sample(rows, column):
        values = [str(row.get(column) or "").strip() for row in rows[:_REFERENCE_SAMPLE_SIZE]]
        return [v for v in values if v]

    samples_a = sample(rows_a, column_a)
    samples_b = sample(rows_b, column_b)
    if not samples_a:
        return exact

    raw_b = set(samples_b)
    loose_b = {_NON_ALNUM_RE.sub("", v.lower()) for v in samples_b}
    loose_only = sum(
        1
        for v in samples_a
        if v not in raw_b and _NON_ALNUM_RE.sub("", v.lower()) in loose_b
    )
    if loose_only / len(samples_a) > 0.3:
        return {"match_type": MatchType.SIMILAR_TEXT, "similarity_threshold": 0.8}
    return exact


def default_rules_for_headers(
    headers_a: list[str],
    headers_b: list[str],
    rows_a: Optional[Sequence[Mapping[str, str]]] = None,
    rows_b: Optional[Sequence[Mapping[str, str]]] = None,
) -> list[MatchingRule]:
    """
    Build starter rules by giving each header one role from its name.

    Roles are tried in priority order (amount, date, reference, entity name,
    description) and each column is used by at most one rule. A role with no
    column on either side is skipped. Weights are normalized to sum to 1.

    Args:
        headers_a: Column names of source A
        headers_b: Column names of source B
        rows_a: Optional source A rows, sampled to choose the reference rule type
        rows_b: Optional source B rows

    Returns:
        Up to four matching rules (empty when no role pairs up)
    """
    if not headers_a or not headers_b:
        return []

    used_a: set = set()
    used_b: set = set()
    rules = []
    for role, _include, _exclude in _COLUMN_ROLES:
        if len(rules) >= MAX_STARTER_RULES:
            break
        pair = _best_column_pair(role, headers_a, headers_b, used_a, used_b)
        if pair is None:
            continue
        column_a, column_b = pair
        used_a.add(column_a)
        used_b.add(column_b)

        if role == "amount":
            params = {
                "match_type": MatchType.TOLERANCE_NUMERIC,
                "tolerance_numeric_mode": ToleranceNumericMode.PERCENTAGE,
                "tolerance_value": 0.005,
            }
        elif role == "date":
            params = {"match_type": MatchType.TOLERANCE_DATE, "tolerance_value": 3}
        elif role == "reference":
            params = _reference_rule_params(column_a, column_b, rows_a, rows_b)
        elif role == "entity_name":
            params = {"match_type": MatchType.SIMILAR_TEXT, "similarity_threshold": 0.7}
        else:
            params = {"match_type": MatchType.SIMILAR_TEXT, "similarity_threshold": 0.6}

        rules.append(
            MatchingRule(
                id=role, column_a=column_a, column_b=column_b, weight=_ROLE_WEIGHTS[role], **params
            )
        )

    total = sum(rule.weight for rule in rules)
    return [rule.model_copy(update={"weight": rule.weight / total}) for rule in rules]


# Built-in rule presets. Column names are placeholders mapped onto real headers.
RULE_TEMPLATES: dict[str, dict[str, Any]] = {
    "ap-bank": {
        "description": "AP vs Bank: amount (0.5%), date (3 days), reference (exact)",
        "min_confidence_threshold": 0.6,
        "rules": [
            {
                "id": "amount",
                "column_a": "Amount",
                "column_b": "Amount",
                "match_type": "tolerance_numeric",
                "tolerance_numeric_mode": "percentage",
                "tolerance_value": 0.005,
            },
            {
                "id": "date",
                "column_a": "Date",
                "column_b": "Date",
                "match_type": "tolerance_date",
                "tolerance_value": 3,
            },
            {"id": "reference", "column_a": "Reference", "column_b": "Reference", "match_type": "exact"},
        ],
    },
    "invoice": {
        "description": "Invoice matching: amount (0.1%), invoice number and vendor code (exact)",
        "min_confidence_threshold": 0.6,
        "rules": [
            {
                "id": "amount",
                "column_a": "Amount",
                "column_b": "Amount",
                "match_type": "tolerance_numeric",
                "tolerance_numeric_mode": "percentage",
                "tolerance_value": 0.001,
            },
            {
                "id": "invoice",
                "column_a": "Invoice Number",
                "column_b": "Invoice Number",
                "match_type": "exact",
            },
            {"id": "vendor", "column_a": "Vendor Code", "column_b": "Vendor Code", "match_type": "exact"},
        ],
    },
}


def _map_template_column(column: str, headers: Optional[list[str]]) -> str:
    """Map a placeholder column onto the header sharing its role and name."""
    if not headers or column in headers:
        return column
    role = column_role(column)
    candidates = [h for h in headers if role is not None and column_role(h) == role]
    if not candidates:
        return column
    folded = fold_text(column)
    return max(candidates, key=lambda h: (text_similarity(folded, fold_text(h)), -len(h)))


def matching_config_from_template(
    name: str,
    headers_a: Optional[list[str]] = None,
    headers_b: Optional[list[str]] = None,
) -> MatchingConfig:
    """
    Build a matching configuration from a built-in template.

    Placeholder columns missing from the given headers are mapped onto the
    closest header with the same role. Unmapped columns are left for the
    validator to report. Weights are split equally.

    Raises:
        ConfigurationError: If the template name is unknown
    """
    if name not in RULE_TEMPLATES:
        raise ConfigurationError(
            f"Unknown rule template '{name}' (available: {', '.join(sorted(RULE_TEMPLATES))})"
        )

    template = RULE_TEMPLATES[name]
    weight = 1.0 / len(template["rules"])
    rules = []
    for raw in template["rules"]:
        rule = dict(raw, weight=weight)
        rule["column_a"] = _map_template_column(raw["column_a"], headers_a)
        rule["column_b"] = _map_template_column(raw["column_b"], headers_b)
        rules.append(MatchingRule(**rule))

    logger.info(f"Using rule template '{name}' ({len(rules)} rules)")
    return MatchingConfig(
        rules=rules,
        min_confidence_threshold=template["min_confidence_threshold"],
        matching_type=ONE_TO_ONE,
    )

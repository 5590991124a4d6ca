"""Egress validation: model output becomes typed, bounded, allow-listed records."""

from agent_guard.validation.models import (
    ReviewIssue,
    ReviewResult,
    ReviewSuggestion,
    SubIssue,
    TriageResult,
)
from agent_guard.validation.output_validator import (
    default_review_result,
    default_triage_result,
    extract_json_text,
    parse_positive_int,
    safe_parse_json,
    sanitize_text_field,
    validate_review_output,
    validate_triage_output,
)
from agent_guard.validation.paths import UNKNOWN_PATH, sanitize_file_path
from agent_guard.validation.vocabulary import (
    ALLOWED_LABELS,
    ENUM_DEFAULTS,
    NEEDS_HUMAN_REVIEW_LABEL,
    Assessment,
    Classification,
    Priority,
    RecommendedAction,
    Severity,
    coerce_enum,
    filter_labels,
    is_allowed_label,
)

__all__ = [
    "ALLOWED_LABELS",
    "Assessment",
    "Classification",
    "ENUM_DEFAULTS",
    "NEEDS_HUMAN_REVIEW_LABEL",
    "Priority",
    "RecommendedAction",
    "ReviewIssue",
    "ReviewResult",
    "ReviewSuggestion",
    "Severity",
    "SubIssue",
    "TriageResult",
    "UNKNOWN_PATH",
    "coerce_enum",
    "default_review_result",
    "default_triage_result",
    "extract_json_text",
    "filter_labels",
    "is_allowed_label",
    "parse_positive_int",
    "safe_parse_json",
    "sanitize_file_path",
    "sanitize_text_field",
    "validate_review_output",
    "validate_triage_output",
]

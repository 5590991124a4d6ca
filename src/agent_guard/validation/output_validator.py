"""
agent-guard — egress validation of model output

File: src/agent_guard/validation/output_validator.py

Purpose
- Turn raw, untrusted model output into a typed triage or review record that is
  safe to act on.

Functional requirements
- Accept a JSON string (optionally inside a fenced code block) or an already
  parsed mapping.
- Any parse failure, or a payload that is not a JSON object, yields the safe
  default record carrying the failure reason. Failures are logged, never raised.
- Closed-vocabulary fields are coerced through ``coerce_enum``; labels are
  filtered against the allow-list; free text is stripped of shell
  metacharacters, whitespace-collapsed and capped; file paths are made relative.

Non-functional requirements
- Deterministic and synchronous. The model is never re-invoked from here.
"""

from __future__ import annotations

import json
import math
import re
from collections.abc import Mapping
from typing import Final

import structlog

from agent_guard.constants import (
    MAX_DESCRIPTION_CHARS,
    MAX_FILE_REFERENCES,
    MAX_INJECTION_FLAG_CHARS,
    MAX_REASONING_CHARS,
    MAX_REVIEW_ISSUES,
    MAX_REVIEW_SUGGESTIONS,
    MAX_SUB_ISSUE_BODY_CHARS,
    MAX_SUB_ISSUE_TITLE_CHARS,
    MAX_SUB_ISSUES,
    MAX_SUGGESTION_CHARS,
    MAX_SUMMARY_CHARS,
)
from agent_guard.security.sanitizer import strip_shell_metacharacters
from agent_guard.validation.models import (
    ReviewIssue,
    ReviewResult,
    ReviewSuggestion,
    SubIssue,
    TriageResult,
)
from agent_guard.validation.paths import UNKNOWN_PATH, sanitize_file_path
from agent_guard.validation.vocabulary import (
    NEEDS_HUMAN_REVIEW_LABEL,
    Assessment,
    Classification,
    Priority,
    RecommendedAction,
    Severity,
    coerce_enum,
    filter_labels,
)

_LOGGER = structlog.get_logger(__name__)

PARSE_FAILURE_REASON: Final[str] = "Failed to parse model output as JSON"
NOT_AN_OBJECT_REASON: Final[str] = "Model output is not a JSON object"
FALLBACK_REASONING: Final[str] = "Automatic fallback due to processing error"
FALLBACK_ASSESSMENT_REASON: Final[str] = "Unable to assess due to processing error"

_FENCED_BLOCK: Final[re.Pattern[str]] = re.compile(r"```(?:json)?\s*([\s\S]*?)```")
_WHITESPACE_RUN: Final[re.Pattern[str]] = re.compile(r"\s+")
_INTEGER_PREFIX: Final[re.Pattern[str]] = re.compile(r"^\s*([+-]?\d+)")
_ELLIPSIS: Final[str] = "..."

_TRUE_STRINGS: Final[frozenset[str]] = frozenset({"true", "yes", "1"})
_FALSE_STRINGS: Final[frozenset[str]] = frozenset({"false", "no", "0", ""})


def safe_parse_json(text: object) -> object | None:
    """Parse ``text`` as JSON, returning ``None`` instead of raising."""

    if not isinstance(text, str):
        return None
    try:
        return json.loads(text)
    except (ValueError, RecursionError):
        return None


def extract_json_text(raw: str) -> str:
    """Return the first fenced code block in ``raw``, or ``raw`` itself, trimmed."""

    match = _FENCED_BLOCK.search(raw)
    candidate = match.group(1) if match is not None else raw
    return candidate.strip()


def sanitize_text_field(text: object, max_length: int) -> str:
    """Strip metacharacters, collapse whitespace and cap ``text`` at ``max_length``."""

    if max_length <= len(_ELLIPSIS):
        raise ValueError(f"max_length must be greater than {len(_ELLIPSIS)}")
    sanitized = strip_shell_metacharacters(_as_text(text))
    sanitized = _WHITESPACE_RUN.sub(" ", sanitized).strip()
    if len(sanitized) > max_length:
        sanitized = sanitized[: max_length - len(_ELLIPSIS)] + _ELLIPSIS
    return sanitized


def parse_positive_int(value: object) -> int | None:
    """Return ``value`` as a positive integer, or ``None`` when it is not one.

    Integers are taken as-is, finite floats are floored and strings contribute
    their leading integer digits (``"42abc"`` -> 42). Booleans are rejected.
    """

    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        parsed = value
    elif isinstance(value, float):
        if not math.isfinite(value):
            return None
        parsed = math.floor(value)
    elif isinstance(value, str):
        match = _INTEGER_PREFIX.match(value)
        if match is None:
            return None
        parsed = int(match.group(1))
    else:
        return None
    return parsed if parsed > 0 else None


def validate_triage_output(raw: object) -> TriageResult:
    """Validate raw triage output; never raises."""

    payload, failure = _load_payload(raw)
    if payload is None:
        _LOGGER.warning("model_output_rejected", result_kind="triage", reason=failure)
        return default_triage_result(failure)

    return TriageResult(
        classification=coerce_enum(Classification, _field(payload, "classification")),
        labels=filter_labels(_field(payload, "labels")),
        priority=coerce_enum(Priority, _field(payload, "priority")),
        summary=sanitize_text_field(_field(payload, "summary"), MAX_SUMMARY_CHARS),
        reasoning=sanitize_text_field(_field(payload, "reasoning"), MAX_REASONING_CHARS),
        duplicate_of=parse_positive_int(_field(payload, "duplicateOf", "duplicate_of")),
        needs_human_review=_as_bool(
            _field(payload, "needsHumanReview", "needs_human_review"), default=False
        ),
        injection_flags_detected=_injection_flags(
            _field(payload, "injectionFlagsDetected", "injection_flags_detected")
        ),
        is_actionable=_as_bool(_field(payload, "isActionable", "is_actionable"), default=False),
        actionability_reason=sanitize_text_field(
            _field(payload, "actionabilityReason", "actionability_reason"),
            MAX_REASONING_CHARS,
        ),
        aligns_with_vision=_as_bool(
            _field(payload, "alignsWithVision", "aligns_with_vision"), default=True
        ),
        vision_alignment_reason=sanitize_text_field(
            _field(payload, "visionAlignmentReason", "vision_alignment_reason"),
            MAX_REASONING_CHARS,
        ),
        recommended_action=coerce_enum(
            RecommendedAction, _field(payload, "recommendedAction", "recommended_action")
        ),
        sub_issues=_sub_issues(_field(payload, "subIssues", "sub_issues")),
        files_examined=_file_references(_field(payload, "filesExamined", "files_examined")),
        files_to_modify=_file_references(_field(payload, "filesToModify", "files_to_modify")),
    )


def validate_review_output(raw: object) -> ReviewResult:
    """Validate raw review output; never raises."""

    payload, failure = _load_payload(raw)
    if payload is None:
        _LOGGER.warning("model_output_rejected", result_kind="review", reason=failure)
        return default_review_result(failure)

    return ReviewResult(
        overall_assessment=coerce_enum(
            Assessment, _field(payload, "overallAssessment", "overall_assessment")
        ),
        security_issues=_review_issues(_field(payload, "securityIssues", "security_issues")),
        code_quality_issues=_review_issues(
            _field(payload, "codeQualityIssues", "code_quality_issues")
        ),
        suggestions=_review_suggestions(_field(payload, "suggestions")),
        summary=sanitize_text_field(_field(payload, "summary"), MAX_SUMMARY_CHARS),
    )


def default_triage_result(reason: str) -> TriageResult:
    """Fail-safe triage record routing the issue to a human."""

    return TriageResult(
        classification=Classification.QUESTION,
        labels=(NEEDS_HUMAN_REVIEW_LABEL,),
        priority=Priority.MEDIUM,
        summary=reason,
        reasoning=FALLBACK_REASONING,
        needs_human_review=True,
        injection_flags_detected=(),
        is_actionable=False,
        actionability_reason=FALLBACK_ASSESSMENT_REASON,
        aligns_with_vision=True,
        vision_alignment_reason=FALLBACK_ASSESSMENT_REASON,
        recommended_action=RecommendedAction.HUMAN_REVIEW,
    )


def default_review_result(reason: str) -> ReviewResult:
    return ReviewResult(
        overall_assessment=Assessment.COMMENT,
        security_issues=(),
        code_quality_issues=(),
        suggestions=(),
        summary=reason,
    )


def _load_payload(raw: object) -> tuple[Mapping[str, object] | None, str]:
    if isinstance(raw, Mapping):
        return raw, ""
    if not isinstance(raw, str):
        return None, NOT_AN_OBJECT_REASON

    parsed = safe_parse_json(extract_json_text(raw))
    if parsed is None:
        return None, PARSE_FAILURE_REASON
    if not isinstance(parsed, dict):
        return None, NOT_AN_OBJECT_REASON
    return parsed, ""


def _field(payload: Mapping[str, object], *keys: str) -> object:
    for key in keys:
        if key in payload:
            return payload[key]
    return None


def _as_text(value: object) -> str:
    # Missing, false-y and structured values contribute no text.
    if value is None or value is False or isinstance(value, (dict, list, tuple, set)):
        return ""
    if isinstance(value, str):
        return value
    return str(value)


def _as_bool(value: object, *, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return default
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in _TRUE_STRINGS:
            return True
        if normalized in _FALSE_STRINGS:
            return False
    return default


def _injection_flags(value: object) -> tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    return tuple(
        flag for flag in value if isinstance(flag, str) and len(flag) < MAX_INJECTION_FLAG_CHARS
    )


def _file_path_or_unknown(value: object) -> str:
    if value is None or value == "":
        return UNKNOWN_PATH
    return sanitize_file_path(value if isinstance(value, str) else _as_text(value))


def _review_issues(value: object) -> tuple[ReviewIssue, ...]:
    if not isinstance(value, list):
        return ()

    issues: list[ReviewIssue] = []
    for item in value[:MAX_REVIEW_ISSUES]:
        if not isinstance(item, Mapping):
            continue
        raw_suggestion = _as_text(item.get("suggestion"))
        issues.append(
            ReviewIssue(
                severity=coerce_enum(Severity, item.get("severity")),
                file=_file_path_or_unknown(item.get("file")),
                line=parse_positive_int(item.get("line")),
                description=sanitize_text_field(item.get("description"), MAX_DESCRIPTION_CHARS),
                suggestion=(
                    sanitize_text_field(raw_suggestion, MAX_SUGGESTION_CHARS)
                    if raw_suggestion
                    else None
                ),
            )
        )
    return tuple(issues)


def _review_suggestions(value: object) -> tuple[ReviewSuggestion, ...]:
    if not isinstance(value, list):
        return ()

    suggestions: list[ReviewSuggestion] = []
    for item in value[:MAX_REVIEW_SUGGESTIONS]:
        if not isinstance(item, Mapping):
            continue
        suggestions.append(
            ReviewSuggestion(
                file=_file_path_or_unknown(item.get("file")),
                line=parse_positive_int(item.get("line")),
                suggestion=sanitize_text_field(item.get("suggestion"), MAX_SUGGESTION_CHARS),
                rationale=sanitize_text_field(item.get("rationale"), MAX_REASONING_CHARS),
            )
        )
    return tuple(suggestions)


def _sub_issues(value: object) -> tuple[SubIssue, ...]:
    if not isinstance(value, list):
        return ()

    sub_issues: list[SubIssue] = []
    for item in value[:MAX_SUB_ISSUES]:
        if not isinstance(item, Mapping):
            continue
        title = sanitize_text_field(item.get("title"), MAX_SUB_ISSUE_TITLE_CHARS)
        if not title:
            continue
        sub_issues.append(
            SubIssue(
                title=title,
                body=_multiline_text_field(item.get("body"), MAX_SUB_ISSUE_BODY_CHARS),
                labels=filter_labels(item.get("labels")),
            )
        )
    return tuple(sub_issues)


def _multiline_text_field(value: object, max_length: int) -> str:
    # Sub-issue bodies are markdown, so line structure is kept.
    sanitized = strip_shell_metacharacters(_as_text(value))
    sanitized = sanitized.replace("\r\n", "\n").replace("\r", "\n").strip()
    if len(sanitized) > max_length:
        sanitized = sanitized[: max_length - len(_ELLIPSIS)] + _ELLIPSIS
    return sanitized


def _file_references(value: object) -> tuple[str, ...]:
    if not isinstance(value, list):
        return ()

    paths: list[str] = []
    for item in value[:MAX_FILE_REFERENCES]:
        if not isinstance(item, str) or not item.strip():
            continue
        path = sanitize_file_path(item)
        if path != UNKNOWN_PATH and path not in paths:
            paths.append(path)
    return tuple(paths)


__all__ = [
    "FALLBACK_ASSESSMENT_REASON",
    "FALLBACK_REASONING",
    "NOT_AN_OBJECT_REASON",
    "PARSE_FAILURE_REASON",
    "default_review_result",
    "default_triage_result",
    "extract_json_text",
    "parse_positive_int",
    "safe_parse_json",
    "sanitize_text_field",
    "validate_review_output",
    "validate_triage_output",
]

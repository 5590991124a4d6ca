"""Closed vocabularies for model output and the one coercion rule applied to them."""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING, Final, TypeVar

if TYPE_CHECKING:
    from collections.abc import Iterable

E = TypeVar("E", bound=StrEnum)


class Classification(StrEnum):
    BUG = "bug"
    FEATURE = "feature"
    QUESTION = "question"
    DOCUMENTATION = "documentation"
    SPAM = "spam"


class Priority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Assessment(StrEnum):
    APPROVE = "approve"
    REQUEST_CHANGES = "request-changes"
    COMMENT = "comment"


class Severity(StrEnum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class RecommendedAction(StrEnum):
    ASSIGN_TO_AGENT = "assign-to-agent"
    REQUEST_CLARIFICATION = "request-clarification"
    CLOSE_AS_WONTFIX = "close-as-wontfix"
    CLOSE_AS_DUPLICATE = "close-as-duplicate"
    HUMAN_REVIEW = "human-review"
    CREATE_SUB_ISSUES = "create-sub-issues"
    ROUTE_TO_RESEARCH = "route-to-research"


# Fallback applied whenever the model emits a value outside the vocabulary.
ENUM_DEFAULTS: Final[dict[type[StrEnum], StrEnum]] = {
    Classification: Classification.QUESTION,
    Priority: Priority.MEDIUM,
    Assessment: Assessment.COMMENT,
    Severity: Severity.MEDIUM,
    RecommendedAction: RecommendedAction.HUMAN_REVIEW,
}

NEEDS_HUMAN_REVIEW_LABEL: Final[str] = "needs-human-review"

ALLOWED_LABELS: Final[tuple[str, ...]] = (
    "bug",
    "feature",
    "question",
    "documentation",
    "good-first-issue",
    NEEDS_HUMAN_REVIEW_LABEL,
    "duplicate",
    "wontfix",
    "performance",
    "breaking-change",
    "security",
    "enhancement",
    "help-wanted",
    "status:triage",
    "status:needs-info",
    "status:spec-ready",
    "status:ready-for-dev",
    "status:in-progress",
    "status:blocked",
    "priority:low",
    "priority:medium",
    "priority:high",
    "priority:critical",
    "copilot-assigned",
    "agent-assigned",
    "ready-for-agent",
    "assigned-to-agent",
    "agent-coded",
    "ready-for-research",
    "has-sub-issues",
    "triaged",
    "stale",
    "research-report",
)

_ALLOWED_LABEL_SET: Final[frozenset[str]] = frozenset(ALLOWED_LABELS)


def coerce_enum(enum_type: type[E], value: object) -> E:
    """Return the member of ``enum_type`` matching ``value`` or the documented default.

    Matching is case-insensitive and ignores surrounding whitespace. Missing, empty,
    and unrecognized values all resolve to ``ENUM_DEFAULTS[enum_type]``.
    """

    default = ENUM_DEFAULTS.get(enum_type)
    if default is None:
        raise KeyError(f"no default registered for {enum_type.__name__}")

    if value is None or isinstance(value, (dict, list, tuple, set)):
        return enum_type(default.value)

    normalized = str(value).strip().lower()
    for member in enum_type:
        if member.value == normalized:
            return member
    return enum_type(default.value)


def is_allowed_label(value: object) -> bool:
    return isinstance(value, str) and value in _ALLOWED_LABEL_SET


def filter_labels(values: object) -> tuple[str, ...]:
    """Keep allow-listed labels only, lower-cased and de-duplicated in input order."""

    if not isinstance(values, (list, tuple)):
        return ()

    kept: list[str] = []
    for item in values:
        if item is None or isinstance(item, (dict, list, tuple, set)):
            continue
        label = str(item).strip().lower()
        if label in _ALLOWED_LABEL_SET and label not in kept:
            kept.append(label)
    return tuple(kept)


def vocabulary(enum_type: type[StrEnum]) -> tuple[str, ...]:
    return tuple(member.value for member in enum_type)


def labels_subset(labels: Iterable[str]) -> bool:
    return all(label in _ALLOWED_LABEL_SET for label in labels)


__all__ = [
    "ALLOWED_LABELS",
    "Assessment",
    "Classification",
    "ENUM_DEFAULTS",
    "NEEDS_HUMAN_REVIEW_LABEL",
    "Priority",
    "RecommendedAction",
    "Severity",
    "coerce_enum",
    "filter_labels",
    "is_allowed_label",
    "labels_subset",
    "vocabulary",
]

"""
agent-guard — validated model-output records

File: src/agent_guard/validation/models.py

Purpose
- Typed, immutable records produced by the output validator. Instances of these
  classes are the only model-derived data allowed to drive actions.

Functional requirements
- Every enum field is a member of its vocabulary; labels are a subset of the
  allow-list; nested collections are bounded.
- ``to_dict`` yields a deterministic, JSON-serializable mapping.
"""

from __future__ import annotations

from dataclasses import dataclass

from agent_guard.constants import (
    MAX_FILE_REFERENCES,
    MAX_REVIEW_ISSUES,
    MAX_REVIEW_SUGGESTIONS,
    MAX_SUB_ISSUES,
)
from agent_guard.validation.vocabulary import (
    Assessment,
    Classification,
    Priority,
    RecommendedAction,
    Severity,
    labels_subset,
)


@dataclass(frozen=True, slots=True)
class SubIssue:
    title: str
    body: str
    labels: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not labels_subset(self.labels):
            raise ValueError("SubIssue.labels must be allow-listed")

    def to_dict(self) -> dict[str, object]:
        return {"title": self.title, "body": self.body, "labels": list(self.labels)}


@dataclass(frozen=True, slots=True)
class ReviewIssue:
    """One security or code-quality finding reported by the review model."""

    severity: Severity
    file: str
    description: str
    line: int | None = None
    suggestion: str | None = None

    def __post_init__(self) -> None:
        if self.line is not None and self.line <= 0:
            raise ValueError("ReviewIssue.line must be positive")

    def to_dict(self) -> dict[str, object]:
        return {
            "severity": self.severity.value,
            "file": self.file,
            "line": self.line,
            "description": self.description,
            "suggestion": self.suggestion,
        }


@dataclass(frozen=True, slots=True)
class ReviewSuggestion:
    file: str
    suggestion: str
    rationale: str
    line: int | None = None

    def __post_init__(self) -> None:
        if self.line is not None and self.line <= 0:
            raise ValueError("ReviewSuggestion.line must be positive")

    def to_dict(self) -> dict[str, object]:
        return {
            "file": self.file,
            "line": self.line,
            "suggestion": self.suggestion,
            "rationale": self.rationale,
        }


@dataclass(frozen=True, slots=True)
class TriageResult:
    """Validated triage decision for one issue."""

    classification: Classification
    labels: tuple[str, ...]
    priority: Priority
    summary: str
    reasoning: str
    needs_human_review: bool
    injection_flags_detected: tuple[str, ...]
    is_actionable: bool
    actionability_reason: str
    aligns_with_vision: bool
    vision_alignment_reason: str
    recommended_action: RecommendedAction
    duplicate_of: int | None = None
    sub_issues: tuple[SubIssue, ...] = ()
    files_examined: tuple[str, ...] = ()
    files_to_modify: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not labels_subset(self.labels):
            raise ValueError("TriageResult.labels must be allow-listed")
        if self.duplicate_of is not None and self.duplicate_of <= 0:
            raise ValueError("TriageResult.duplicate_of must be positive")
        if len(self.sub_issues) > MAX_SUB_ISSUES:
            raise ValueError(f"TriageResult.sub_issues is capped at {MAX_SUB_ISSUES}")
        if len(self.files_examined) > MAX_FILE_REFERENCES:
            raise ValueError(f"TriageResult.files_examined is capped at {MAX_FILE_REFERENCES}")
        if len(self.files_to_modify) > MAX_FILE_REFERENCES:
            raise ValueError(f"TriageResult.files_to_modify is capped at {MAX_FILE_REFERENCES}")

    def to_dict(self) -> dict[str, object]:
        return {
            "classification": self.classification.value,
            "labels": list(self.labels),
            "priority": self.priority.value,
            "summary": self.summary,
            "reasoning": self.reasoning,
            "duplicate_of": self.duplicate_of,
            "needs_human_review": self.needs_human_review,
            "injection_flags_detected": list(self.injection_flags_detected),
            "is_actionable": self.is_actionable,
            "actionability_reason": self.actionability_reason,
            "aligns_with_vision": self.aligns_with_vision,
            "vision_alignment_reason": self.vision_alignment_reason,
            "recommended_action": self.recommended_action.value,
            "sub_issues": [item.to_dict() for item in self.sub_issues],
            "files_examined": list(self.files_examined),
            "files_to_modify": list(self.files_to_modify),
        }


@dataclass(frozen=True, slots=True)
class ReviewResult:
    """Validated pull request review."""

    overall_assessment: Assessment
    security_issues: tuple[ReviewIssue, ...]
    code_quality_issues: tuple[ReviewIssue, ...]
    suggestions: tuple[ReviewSuggestion, ...]
    summary: str

    def __post_init__(self) -> None:
        if len(self.security_issues) > MAX_REVIEW_ISSUES:
            raise ValueError(f"ReviewResult.security_issues is capped at {MAX_REVIEW_ISSUES}")
        if len(self.code_quality_issues) > MAX_REVIEW_ISSUES:
            raise ValueError(f"ReviewResult.code_quality_issues is capped at {MAX_REVIEW_ISSUES}")
        if len(self.suggestions) > MAX_REVIEW_SUGGESTIONS:
            raise ValueError(f"ReviewResult.suggestions is capped at {MAX_REVIEW_SUGGESTIONS}")

    @property
    def has_blocking_issues(self) -> bool:
        return any(
            issue.severity in (Severity.CRITICAL, Severity.HIGH) for issue in self.security_issues
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "overall_assessment": self.overall_assessment.value,
            "security_issues": [item.to_dict() for item in self.security_issues],
            "code_quality_issues": [item.to_dict() for item in self.code_quality_issues],
            "suggestions": [item.to_dict() for item in self.suggestions],
            "summary": self.summary,
        }


__all__ = [
    "ReviewIssue",
    "ReviewResult",
    "ReviewSuggestion",
    "SubIssue",
    "TriageResult",
]

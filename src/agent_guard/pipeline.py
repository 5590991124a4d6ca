"""
agent-guard — guarded agent pipelines

File: src/agent_guard/pipeline.py

Purpose
- Chain the guard layers around one model call for issue triage and pull
  request review.

Functional requirements
- Order: trigger gate, circuit breaker check, sanitize and prompt assembly,
  model call under a timeout, output validation, breaker update, audit entry.
- A skipped trigger never reaches the model and produces no audit entry.
- Flagged untrusted input always yields a triage result that needs human
  review, whatever the model answered.
- Circuit breaker and timeout failures propagate as ``CircuitBreakerError``.

Non-functional requirements
- The model client is injected; nothing here performs network I/O itself.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Final

from agent_guard.constants import MAX_INPUT_LENGTH
from agent_guard.control_plane.circuit_breaker import (
    DEFAULT_LIMITS,
    BreakerLimits,
    CircuitBreakerContext,
    check_circuit_breaker,
    create_circuit_breaker_context,
    update_circuit_breaker,
    with_timeout,
)
from agent_guard.control_plane.gate import TriggerDecision, evaluate_trigger
from agent_guard.observability.audit import (
    AgentAuditEntry,
    create_audit_entry,
    record_audit_entry,
)
from agent_guard.observability.logging import correlation_scope
from agent_guard.prompting.secure_prompt import (
    RenderedPrompt,
    build_review_prompt,
    build_secure_prompt,
)
from agent_guard.validation.output_validator import (
    validate_review_output,
    validate_triage_output,
)
from agent_guard.validation.vocabulary import NEEDS_HUMAN_REVIEW_LABEL

if TYPE_CHECKING:
    from agent_guard.interfaces import ModelClient
    from agent_guard.validation.models import ReviewResult, TriageResult

DEFAULT_MODEL_TIMEOUT_SECONDS: Final[float] = 300.0
TRIAGE_AGENT: Final[str] = "triage-agent"
REVIEW_AGENT: Final[str] = "code-review-agent"


@dataclass(frozen=True, slots=True)
class PipelineOutcome:
    """What one pipeline run decided. Only ``decision`` is set when the trigger was skipped."""

    decision: TriggerDecision
    context: CircuitBreakerContext
    prompt: RenderedPrompt | None = None
    result: TriageResult | ReviewResult | None = None
    audit_entry: AgentAuditEntry | None = None

    @property
    def skipped(self) -> bool:
        return not self.decision.proceed

    def to_dict(self) -> dict[str, object]:
        return {
            "decision": self.decision.to_dict(),
            "context": self.context.to_dict(),
            "prompt_hash": self.prompt.prompt_hash if self.prompt is not None else None,
            "detected_patterns": (
                list(self.prompt.detected_patterns) if self.prompt is not None else []
            ),
            "result": self.result.to_dict() if self.result is not None else None,
            "audit": self.audit_entry.to_dict() if self.audit_entry is not None else None,
        }


async def triage_issue(
    client: ModelClient,
    *,
    instructions: str,
    actor: object,
    title: object,
    body: object,
    model: str,
    agent: str = TRIAGE_AGENT,
    context: CircuitBreakerContext | None = None,
    limits: BreakerLimits = DEFAULT_LIMITS,
    timeout_seconds: float = DEFAULT_MODEL_TIMEOUT_SECONDS,
    max_input_length: int = MAX_INPUT_LENGTH,
) -> PipelineOutcome:
    """Triage one issue through every guard layer."""

    current = context if context is not None else create_circuit_breaker_context()
    with correlation_scope(agent=agent, actor=_actor_text(actor)):
        decision = evaluate_trigger(actor, title, body)
        if not decision.proceed:
            return PipelineOutcome(decision=decision, context=current)

        check_circuit_breaker(current, limits=limits)
        prompt = build_secure_prompt(
            instructions, title=title, body=body, max_input_length=max_input_length
        )
        raw_output = await with_timeout(
            client.complete(prompt.prompt), timeout_seconds, f"{agent} model call"
        )
        result = _escalate_flagged(validate_triage_output(raw_output), prompt)
        current = update_circuit_breaker(current, raw_output, limits=limits)

        entry = create_audit_entry(
            agent,
            _raw_input(title, body),
            prompt.detected_patterns,
            _triage_actions(result),
            model,
        )
        record_audit_entry(entry)
        return PipelineOutcome(
            decision=decision,
            context=current,
            prompt=prompt,
            result=result,
            audit_entry=entry,
        )


async def review_pull_request(
    client: ModelClient,
    *,
    instructions: str,
    actor: object,
    diff: object,
    model: str,
    title: object = None,
    body: object = None,
    agent: str = REVIEW_AGENT,
    context: CircuitBreakerContext | None = None,
    limits: BreakerLimits = DEFAULT_LIMITS,
    timeout_seconds: float = DEFAULT_MODEL_TIMEOUT_SECONDS,
    max_input_length: int = MAX_INPUT_LENGTH,
) -> PipelineOutcome:
    """Review one pull request diff through every guard layer."""

    current = context if context is not None else create_circuit_breaker_context()
    with correlation_scope(agent=agent, actor=_actor_text(actor)):
        decision = evaluate_trigger(actor, title, body)
        if not decision.proceed:
            return PipelineOutcome(decision=decision, context=current)

        check_circuit_breaker(current, limits=limits)
        prompt = build_review_prompt(
            instructions, diff=diff, title=title, body=body, max_input_length=max_input_length
        )
        raw_output = await with_timeout(
            client.complete(prompt.prompt), timeout_seconds, f"{agent} model call"
        )
        result = validate_review_output(raw_output)
        current = update_circuit_breaker(current, raw_output, limits=limits)

        entry = create_audit_entry(
            agent,
            _raw_input(title, body, diff),
            prompt.detected_patterns,
            _review_actions(result),
            model,
        )
        record_audit_entry(entry)
        return PipelineOutcome(
            decision=decision,
            context=current,
            prompt=prompt,
            result=result,
            audit_entry=entry,
        )


def _escalate_flagged(result: TriageResult, prompt: RenderedPrompt) -> TriageResult:
    if not prompt.is_flagged:
        return result
    labels = result.labels
    if NEEDS_HUMAN_REVIEW_LABEL not in labels:
        labels = (*labels, NEEDS_HUMAN_REVIEW_LABEL)
    flags = tuple(dict.fromkeys((*result.injection_flags_detected, *prompt.detected_patterns)))
    return replace(
        result,
        needs_human_review=True,
        labels=labels,
        injection_flags_detected=flags,
    )


def _triage_actions(result: TriageResult) -> list[str]:
    actions = [
        f"classify:{result.classification.value}",
        f"priority:{result.priority.value}",
        f"recommend:{result.recommended_action.value}",
    ]
    actions.extend(f"label:{label}" for label in result.labels)
    if result.needs_human_review:
        actions.append("escalate:human-review")
    return actions


def _review_actions(result: ReviewResult) -> list[str]:
    actions = [f"assess:{result.overall_assessment.value}"]
    if result.security_issues:
        actions.append(f"security-issues:{len(result.security_issues)}")
    if result.code_quality_issues:
        actions.append(f"quality-issues:{len(result.code_quality_issues)}")
    if result.has_blocking_issues:
        actions.append("block:security")
    return actions


def _raw_input(*parts: object) -> str:
    return "\n".join(part for part in parts if isinstance(part, str))


def _actor_text(actor: object) -> str | None:
    if not isinstance(actor, str):
        return None
    return actor.strip() or None


__all__ = [
    "DEFAULT_MODEL_TIMEOUT_SECONDS",
    "PipelineOutcome",
    "REVIEW_AGENT",
    "TRIAGE_AGENT",
    "review_pull_request",
    "triage_issue",
]

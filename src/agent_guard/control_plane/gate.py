"""Trigger gate: decide whether an inbound event may start an agent run at all."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

import structlog

from agent_guard.control_plane.circuit_breaker import has_stop_command, is_bot

_LOGGER = structlog.get_logger(__name__)


class SkipReason(StrEnum):
    BOT_ACTOR = "bot-actor"
    STOP_COMMAND = "stop-command"


@dataclass(frozen=True, slots=True)
class TriggerDecision:
    """Outcome of gating one inbound event."""

    proceed: bool
    reason: SkipReason | None = None

    def __post_init__(self) -> None:
        if self.proceed and self.reason is not None:
            raise ValueError("a proceeding decision carries no skip reason")
        if not self.proceed and self.reason is None:
            raise ValueError("a skip decision requires a reason")

    def to_dict(self) -> dict[str, object]:
        return {
            "proceed": self.proceed,
            "reason": self.reason.value if self.reason is not None else None,
        }


PROCEED = TriggerDecision(proceed=True)


def evaluate_trigger(actor: object, *texts: object) -> TriggerDecision:
    """Skip events raised by bots or carrying a stop command in any of ``texts``.

    Bot actors are checked first so an automation can never re-trigger itself,
    whatever its comment says.
    """

    if is_bot(actor):
        return _skip(SkipReason.BOT_ACTOR, actor)
    if any(has_stop_command(text) for text in texts):
        return _skip(SkipReason.STOP_COMMAND, actor)
    return PROCEED


def _skip(reason: SkipReason, actor: object) -> TriggerDecision:
    _LOGGER.info(
        "trigger_skipped",
        reason=reason.value,
        actor=actor if isinstance(actor, str) else None,
    )
    return TriggerDecision(proceed=False, reason=reason)


__all__ = [
    "PROCEED",
    "SkipReason",
    "TriggerDecision",
    "evaluate_trigger",
]

"""
agent-guard — agent decision audit entries

File: src/agent_guard/observability/audit.py

Purpose
- Describe what an agent decided for one input without retaining the input itself.

Functional requirements
- The input is identified by a short SHA-256 prefix only.
- ``format_audit_log`` renders a collapsed markdown block suitable for posting as
  a comment; ``record_audit_entry`` emits a structured log event. Persisting
  entries elsewhere is the caller's concern.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import structlog

from agent_guard.constants import AUDIT_INPUT_HASH_CHARS
from agent_guard.utils.hashing import short_digest

if TYPE_CHECKING:
    from collections.abc import Iterable

_LOGGER = structlog.get_logger(__name__)

AUDIT_SUMMARY_TITLE = "Agent Decision Log"


@dataclass(frozen=True, slots=True)
class AgentAuditEntry:
    timestamp: str
    agent: str
    input_hash: str
    injection_flags: tuple[str, ...]
    actions_taken: tuple[str, ...]
    model: str

    def __post_init__(self) -> None:
        if not self.agent.strip():
            raise ValueError("AgentAuditEntry.agent must not be empty")
        if len(self.input_hash) != AUDIT_INPUT_HASH_CHARS:
            raise ValueError(
                f"AgentAuditEntry.input_hash must be {AUDIT_INPUT_HASH_CHARS} hex characters"
            )

    def to_dict(self) -> dict[str, object]:
        return {
            "timestamp": self.timestamp,
            "agent": self.agent,
            "input_hash": self.input_hash,
            "injection_flags": list(self.injection_flags),
            "actions_taken": list(self.actions_taken),
            "model": self.model,
        }


def create_audit_entry(
    agent: str,
    raw_input: str,
    injection_flags: Iterable[str],
    actions: Iterable[str],
    model: str,
    *,
    now: datetime | None = None,
) -> AgentAuditEntry:
    """Build an audit entry for one agent decision over ``raw_input``."""

    moment = now if now is not None else datetime.now(tz=UTC)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    timestamp = (
        moment.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")
    )
    return AgentAuditEntry(
        timestamp=timestamp,
        agent=agent,
        input_hash=short_digest(raw_input, AUDIT_INPUT_HASH_CHARS),
        injection_flags=tuple(injection_flags),
        actions_taken=tuple(actions),
        model=model,
    )


def format_audit_log(entry: AgentAuditEntry) -> str:
    body = json.dumps(entry.to_dict(), indent=2, ensure_ascii=False)
    return (
        f"<details><summary>{AUDIT_SUMMARY_TITLE}</summary>\n\n"
        f"```json\n{body}\n```\n</details>"
    )


def record_audit_entry(entry: AgentAuditEntry) -> None:
    _LOGGER.info("agent_decision_recorded", **entry.to_dict())


__all__ = [
    "AUDIT_SUMMARY_TITLE",
    "AgentAuditEntry",
    "create_audit_entry",
    "format_audit_log",
    "record_audit_entry",
]

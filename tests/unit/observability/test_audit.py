"""Unit tests for agent decision audit entries."""

from __future__ import annotations

import hashlib
import json
from datetime import UTC, datetime, timedelta, timezone

import pytest
from structlog.testing import capture_logs

from agent_guard.observability import (
    AgentAuditEntry,
    create_audit_entry,
    format_audit_log,
    record_audit_entry,
)

_NOW = datetime(2026, 3, 4, 5, 6, 7, 891_000, tzinfo=UTC)


def test_entry_hashes_input_without_retaining_it() -> None:
    entry = create_audit_entry(
        "triage-agent",
        "secret issue body",
        ["role-override"],
        ["classify:bug"],
        "claude-sonnet-4.5",
        now=_NOW,
    )

    assert entry.input_hash == hashlib.sha256(b"secret issue body").hexdigest()[:12]
    assert "secret issue body" not in json.dumps(entry.to_dict())
    assert entry.timestamp == "2026-03-04T05:06:07.891Z"
    assert entry.injection_flags == ("role-override",)
    assert entry.actions_taken == ("classify:bug",)


def test_timestamps_are_normalized_to_utc() -> None:
    offset = timezone(timedelta(hours=2))
    local = datetime(2026, 3, 4, 7, 6, 7, tzinfo=offset)
    naive = datetime(2026, 3, 4, 5, 6, 7)

    assert create_audit_entry("a", "x", [], [], "m", now=local).timestamp == (
        "2026-03-04T05:06:07.000Z"
    )
    assert create_audit_entry("a", "x", [], [], "m", now=naive).timestamp == (
        "2026-03-04T05:06:07.000Z"
    )


def test_format_audit_log_is_collapsed_markdown_with_json() -> None:
    entry = create_audit_entry("review-agent", "diff", [], ["assess:approve"], "m", now=_NOW)
    rendered = format_audit_log(entry)

    assert rendered.startswith("<details><summary>Agent Decision Log</summary>\n\n```json\n")
    assert rendered.endswith("\n```\n</details>")
    body = rendered.split("```json\n", 1)[1].rsplit("\n```", 1)[0]
    assert json.loads(body) == entry.to_dict()


def test_record_audit_entry_emits_event() -> None:
    entry = create_audit_entry("triage-agent", "x", ["pwned-marker"], ["a"], "m", now=_NOW)

    with capture_logs() as logs:
        record_audit_entry(entry)

    assert logs == [{"event": "agent_decision_recorded", "log_level": "info", **entry.to_dict()}]


@pytest.mark.parametrize(
    "kwargs",
    [
        {"agent": "  ", "input_hash": "a" * 12},
        {"agent": "triage", "input_hash": "abc"},
    ],
)
def test_entry_validation(kwargs: dict[str, str]) -> None:
    with pytest.raises(ValueError):
        AgentAuditEntry(
            timestamp="t",
            injection_flags=(),
            actions_taken=(),
            model="m",
            **kwargs,
        )

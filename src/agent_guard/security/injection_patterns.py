"""
agent-guard — prompt injection pattern table

File: src/agent_guard/security/injection_patterns.py

Purpose
- Heuristic, detection-only scan of untrusted text for instruction-like content.

Functional requirements
- Pure: ``(text) -> matches``; never mutates or drops content.
- One match per rule, reported in table order.

Non-functional requirements
- The table is approximate (false positives and negatives are expected). Call sites
  depend only on ``detect_injection_patterns`` so the table can be replaced by a
  classifier later.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Final


@dataclass(frozen=True, slots=True)
class PatternMatch:
    """One detection-only finding for a rule in the pattern table."""

    tag: str
    reason: str
    start: int
    end: int
    matched_text: str

    def __post_init__(self) -> None:
        if not self.tag.strip():
            raise ValueError("PatternMatch.tag must not be empty")
        if self.start < 0:
            raise ValueError("PatternMatch.start must be >= 0")
        if self.end < self.start:
            raise ValueError("PatternMatch.end must be >= start")


@dataclass(frozen=True, slots=True)
class _InjectionRule:
    tag: str
    reason: str
    pattern: re.Pattern[str]


_INJECTION_RULES: Final[tuple[_InjectionRule, ...]] = (
    _InjectionRule(
        tag="ignore-instructions",
        reason="Attempts to override earlier instructions.",
        pattern=re.compile(
            r"ignore\s+(previous|prior|above|all)\s+(instructions?|prompts?|rules?)",
            re.IGNORECASE,
        ),
    ),
    _InjectionRule(
        tag="disregard-previous",
        reason="Asks the model to disregard earlier context.",
        pattern=re.compile(r"disregard\s+(previous|prior|above|all)", re.IGNORECASE),
    ),
    _InjectionRule(
        tag="system-prompt-reference",
        reason="References the privileged system prompt channel.",
        pattern=re.compile(r"system\s*prompt", re.IGNORECASE),
    ),
    _InjectionRule(
        tag="role-override",
        reason="Attempts to redefine the assistant's role.",
        pattern=re.compile(r"you\s+are\s+now", re.IGNORECASE),
    ),
    _InjectionRule(
        tag="fake-important",
        reason="Fake authority marker.",
        pattern=re.compile(r"IMPORTANT\s+(INSTRUCTION|NOTE|UPDATE|OVERRIDE)", re.IGNORECASE),
    ),
    _InjectionRule(
        tag="execute-command",
        reason="Requests command execution.",
        pattern=re.compile(r"execute\s+(the\s+following|this\s+command)", re.IGNORECASE),
    ),
    _InjectionRule(
        tag="fake-system-block",
        reason="Fake system/admin/root block delimiter.",
        pattern=re.compile(r"---\s*BEGIN\s+(SYSTEM|ADMIN|ROOT)", re.IGNORECASE),
    ),
    _InjectionRule(
        tag="authority-claim",
        reason="Claims maintainer authority.",
        pattern=re.compile(r"as\s+(the|a)\s+(project\s+)?maintainer", re.IGNORECASE),
    ),
    _InjectionRule(
        tag="admin-override",
        reason="Claims an administrator override.",
        pattern=re.compile(r"admin(istrator)?\s+override", re.IGNORECASE),
    ),
    _InjectionRule(
        tag="bypass-attempt",
        reason="Asks to bypass a security control.",
        pattern=re.compile(r"bypass\s+(security|filter|check)", re.IGNORECASE),
    ),
    _InjectionRule(
        tag="pwned-marker",
        reason="Exploit marker.",
        pattern=re.compile(r"\bpwned\b|\bhacked\b", re.IGNORECASE),
    ),
    _InjectionRule(
        tag="encoding-attempt",
        reason="Encoding obfuscation hint.",
        pattern=re.compile(r"base64\s*decode|atob\s*\(", re.IGNORECASE),
    ),
    _InjectionRule(
        tag="forged-trust-boundary",
        reason="Imitates the BEGIN/END UNTRUSTED markers that delimit prompt fields.",
        pattern=re.compile(r"---\s*(BEGIN|END)\s+UNTRUSTED\b", re.IGNORECASE),
    ),
)

INJECTION_PATTERN_TAGS: Final[tuple[str, ...]] = tuple(rule.tag for rule in _INJECTION_RULES)


def detect_injection_patterns(text: str) -> tuple[PatternMatch, ...]:
    """Return the first match of every rule that fires on ``text``, in table order."""

    if not isinstance(text, str) or not text:
        return ()

    matches: list[PatternMatch] = []
    for rule in _INJECTION_RULES:
        found = rule.pattern.search(text)
        if found is None:
            continue
        start, end = found.span()
        matches.append(
            PatternMatch(
                tag=rule.tag,
                reason=rule.reason,
                start=start,
                end=end,
                matched_text=found.group(0),
            )
        )
    return tuple(matches)


__all__ = [
    "INJECTION_PATTERN_TAGS",
    "PatternMatch",
    "detect_injection_patterns",
]

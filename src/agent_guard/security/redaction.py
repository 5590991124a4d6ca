"""
agent-guard — credential redaction for logs and config dumps

File: src/agent_guard/security/redaction.py

Purpose
- Recognize credential-bearing keys and scrub credential-shaped text before
  it leaves the process in a log line or a printed config.

Functional requirements
- Key checks split ``camelCase``, ``kebab-case`` and ``snake_case`` names into
  words; a key is sensitive when any word names a credential.
- Text rules run in table order and replace only the secret part of a match.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Final

REDACTED_VALUE: Final[str] = "***REDACTED***"

# Matched per word; a trailing plural "s" is ignored.
_SECRET_WORDS: Final[frozenset[str]] = frozenset(
    {
        "apikey",
        "auth",
        "authorization",
        "cookie",
        "credential",
        "key",
        "passphrase",
        "passwd",
        "password",
        "private",
        "secret",
        "token",
    }
)
# Setting names that mention secrets without holding one.
_KEYS_NAMING_SECRETS: Final[frozenset[str]] = frozenset({"redact_secrets"})

_CAMEL_HUMP: Final[re.Pattern[str]] = re.compile(r"([a-z0-9])([A-Z])")
_KEY_SEPARATORS: Final[re.Pattern[str]] = re.compile(r"[^a-z0-9]+")


@dataclass(frozen=True, slots=True)
class _TextRule:
    name: str
    pattern: re.Pattern[str]
    replacement: str


_TEXT_RULES: Final[tuple[_TextRule, ...]] = (
    _TextRule(
        name="bearer_token",
        pattern=re.compile(r"(?i)\bbearer\s+[A-Za-z0-9._~+/-]+=*"),
        replacement=f"Bearer {REDACTED_VALUE}",
    ),
    _TextRule(
        name="secret_assignment",
        pattern=re.compile(
            r"(?i)\b(?P<name>api[_-]?key|token|password|secret|client_secret|authorization)\b"
            r"\s*(?P<sep>[:=])\s*[^\s,;]+"
        ),
        replacement=rf"\g<name>\g<sep>{REDACTED_VALUE}",
    ),
    _TextRule(
        name="github_token",
        pattern=re.compile(r"\b(?:gh[pousr]_[A-Za-z0-9]{20,}|github_pat_[A-Za-z0-9_]{20,})\b"),
        replacement=REDACTED_VALUE,
    ),
)


def looks_like_secret_key(key: str) -> bool:
    """True for keys such as ``api_key``, ``githubToken`` or ``client-secrets``."""

    spaced = _CAMEL_HUMP.sub(r"\1_\2", key.strip()).lower()
    normalized = _KEY_SEPARATORS.sub("_", spaced).strip("_")
    if normalized in _KEYS_NAMING_SECRETS:
        return False
    return any(
        word in _SECRET_WORDS or word.removesuffix("s") in _SECRET_WORDS
        for word in normalized.split("_")
    )


def scrub_secrets(text: str) -> str:
    """Replace bearer tokens, ``key=value`` secrets and GitHub tokens in ``text``."""

    for rule in _TEXT_RULES:
        text = rule.pattern.sub(rule.replacement, text)
    return text


def redact_structure(value: object, *, replacement: str = REDACTED_VALUE) -> object:
    """Deep copy of JSON-like ``value`` with sensitive keys replaced and strings scrubbed."""

    if isinstance(value, str):
        return scrub_secrets(value)
    if isinstance(value, Mapping):
        return {
            key: (
                replacement
                if looks_like_secret_key(str(key))
                else redact_structure(item, replacement=replacement)
            )
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [redact_structure(item, replacement=replacement) for item in value]
    return value


__all__ = [
    "REDACTED_VALUE",
    "looks_like_secret_key",
    "redact_structure",
    "scrub_secrets",
]

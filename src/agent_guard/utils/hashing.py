"""
agent-guard — hashing utilities

File: src/agent_guard/utils/hashing.py

Purpose
- Deterministic SHA-256 helpers for text digests used by the circuit breaker,
  prompt fingerprints, and audit entries.

Non-functional requirements
- Standard library only; identical input yields identical digest on every platform.
"""

from __future__ import annotations

import hashlib

_SHA256_HEX_LENGTH = 64

__all__ = [
    "sha256_bytes",
    "sha256_text",
    "short_digest",
]


def sha256_bytes(data: bytes) -> str:
    """Return SHA-256 hex digest for raw bytes."""

    return hashlib.sha256(data).hexdigest()


def sha256_text(text: str, *, encoding: str = "utf-8") -> str:
    """Return SHA-256 hex digest for text encoded with ``encoding``."""

    return sha256_bytes(text.encode(encoding, errors="surrogatepass"))


def short_digest(text: str, length: int) -> str:
    """Return the first ``length`` hex characters of the SHA-256 digest of ``text``."""

    if length <= 0 or length > _SHA256_HEX_LENGTH:
        raise ValueError(f"length must be within 1..{_SHA256_HEX_LENGTH}")
    return sha256_text(text)[:length]

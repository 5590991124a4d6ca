"""Shared utility helpers."""

from agent_guard.utils.concurrency import CancellationToken, run_with_timeout
from agent_guard.utils.hashing import sha256_bytes, sha256_text, short_digest

__all__ = [
    "CancellationToken",
    "run_with_timeout",
    "sha256_bytes",
    "sha256_text",
    "short_digest",
]

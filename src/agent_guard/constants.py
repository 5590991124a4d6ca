"""Stable constants shared across the trust-boundary pipeline."""

from __future__ import annotations

from typing import Final

# Schema version for persisted config files.
CONFIG_SCHEMA_VERSION: Final[int] = 1

# Ingress limits.
MAX_INPUT_LENGTH: Final[int] = 100_000
TRUNCATION_MARKER: Final[str] = "\n[...TRUNCATED]"
COMMENT_PLACEHOLDER: Final[str] = "[COMMENT_REMOVED]"

# Egress limits for validated free text.
MAX_SUMMARY_CHARS: Final[int] = 2000
MAX_REASONING_CHARS: Final[int] = 1000
MAX_DESCRIPTION_CHARS: Final[int] = 500
MAX_SUGGESTION_CHARS: Final[int] = 500
MAX_SUB_ISSUE_TITLE_CHARS: Final[int] = 200
MAX_SUB_ISSUE_BODY_CHARS: Final[int] = 2000
MAX_INJECTION_FLAG_CHARS: Final[int] = 100
MAX_FILE_PATH_CHARS: Final[int] = 256

# Egress caps for nested collections.
MAX_REVIEW_ISSUES: Final[int] = 50
MAX_REVIEW_SUGGESTIONS: Final[int] = 20
MAX_SUB_ISSUES: Final[int] = 10
MAX_FILE_REFERENCES: Final[int] = 50

# Circuit breaker thresholds.
MAX_ITERATIONS: Final[int] = 5
MAX_DISPATCH_DEPTH: Final[int] = 3
MAX_HASH_HISTORY: Final[int] = 10
OUTPUT_DIGEST_CHARS: Final[int] = 16
DISPATCH_DEPTH_CEILING: Final[int] = 2**31 - 1

# Audit trail.
AUDIT_INPUT_HASH_CHARS: Final[int] = 12

__all__ = [
    "AUDIT_INPUT_HASH_CHARS",
    "COMMENT_PLACEHOLDER",
    "CONFIG_SCHEMA_VERSION",
    "DISPATCH_DEPTH_CEILING",
    "MAX_DESCRIPTION_CHARS",
    "MAX_DISPATCH_DEPTH",
    "MAX_FILE_PATH_CHARS",
    "MAX_FILE_REFERENCES",
    "MAX_HASH_HISTORY",
    "MAX_INJECTION_FLAG_CHARS",
    "MAX_INPUT_LENGTH",
    "MAX_ITERATIONS",
    "MAX_REASONING_CHARS",
    "MAX_REVIEW_ISSUES",
    "MAX_REVIEW_SUGGESTIONS",
    "MAX_SUB_ISSUES",
    "MAX_SUB_ISSUE_BODY_CHARS",
    "MAX_SUB_ISSUE_TITLE_CHARS",
    "MAX_SUGGESTION_CHARS",
    "MAX_SUMMARY_CHARS",
    "OUTPUT_DIGEST_CHARS",
    "TRUNCATION_MARKER",
]

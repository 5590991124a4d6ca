"""
agent-guard — public security utilities

File: src/agent_guard/security/__init__.py

Purpose
- Ingress defenses for untrusted text: sanitization, injection-pattern detection,
  trust-boundary wrapping, URL allow-listing and
  credential redaction for logs.

Non-functional requirements
- Fail safe: malformed input yields neutral results, never exceptions.
"""

from agent_guard.security.injection_patterns import (
    INJECTION_PATTERN_TAGS,
    PatternMatch,
    detect_injection_patterns,
)
from agent_guard.security.redaction import (
    REDACTED_VALUE,
    looks_like_secret_key,
    redact_structure,
    scrub_secrets,
)
from agent_guard.security.sanitizer import (
    TAG_EXCESSIVE_LENGTH,
    TAG_HTML_COMMENTS,
    TAG_INVISIBLE_CHARACTERS,
    TAG_MARKDOWN_COMMENTS,
    IssueSanitization,
    SanitizeResult,
    build_warning_prefix,
    sanitize,
    sanitize_input,
    sanitize_issue,
    sanitize_url,
    strip_shell_metacharacters,
    wrap_with_trust_boundary,
)

__all__ = [
    "INJECTION_PATTERN_TAGS",
    "IssueSanitization",
    "PatternMatch",
    "REDACTED_VALUE",
    "SanitizeResult",
    "TAG_EXCESSIVE_LENGTH",
    "TAG_HTML_COMMENTS",
    "TAG_INVISIBLE_CHARACTERS",
    "TAG_MARKDOWN_COMMENTS",
    "build_warning_prefix",
    "detect_injection_patterns",
    "looks_like_secret_key",
    "redact_structure",
    "sanitize",
    "sanitize_input",
    "sanitize_issue",
    "sanitize_url",
    "scrub_secrets",
    "strip_shell_metacharacters",
    "wrap_with_trust_boundary",
]

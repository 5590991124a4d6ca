"""
agent-guard — file path sanitization for model output

File: src/agent_guard/validation/paths.py

Purpose
- Force model-reported file paths into safe relative form before they are rendered
  as inline file references in posted comments.

Functional requirements
- Never begins with ``/``; never contains ``..``; no drive letter or UNC prefix.
- Result is at most 256 characters; an empty result becomes ``unknown``.
"""

from __future__ import annotations

import re
from typing import Final

from agent_guard.constants import MAX_FILE_PATH_CHARS

UNKNOWN_PATH: Final[str] = "unknown"

_CONTROL_CHARACTERS: Final[re.Pattern[str]] = re.compile(r"[\x00-\x1f\x7f]")
_DRIVE_LETTER: Final[re.Pattern[str]] = re.compile(r"^[a-zA-Z]:[/\\]?")
_UNC_PREFIX: Final[re.Pattern[str]] = re.compile(r"^[/\\]{2,}[^/\\]+[/\\]?")
_REPEATED_SEPARATORS: Final[re.Pattern[str]] = re.compile(r"/{2,}")


def sanitize_file_path(path: object) -> str:
    """Return a relative, traversal-free rendition of ``path``."""

    if not isinstance(path, str):
        return UNKNOWN_PATH

    sanitized = _CONTROL_CHARACTERS.sub("", path)
    # Stripping one prefix can expose another (``\\?\C:\``, ``/C:/``).
    previous = None
    while sanitized != previous:
        previous = sanitized
        sanitized = _strip_once(sanitized)

    if len(sanitized) > MAX_FILE_PATH_CHARS:
        sanitized = sanitized[:MAX_FILE_PATH_CHARS]

    return sanitized or UNKNOWN_PATH


def _strip_once(path: str) -> str:
    stripped = _DRIVE_LETTER.sub("", path)
    stripped = _UNC_PREFIX.sub("", stripped)
    stripped = stripped.replace("\\", "/")
    stripped = stripped.replace("..", "")
    stripped = _REPEATED_SEPARATORS.sub("/", stripped)
    return stripped.lstrip("/")


__all__ = [
    "UNKNOWN_PATH",
    "sanitize_file_path",
]

"""
agent-guard — circuit breaker for autonomous agent runs

File: src/agent_guard/control_plane/circuit_breaker.py

Purpose
- Bound a run by iteration count, cross-automation dispatch depth and output
  repetition, and bound each external call by a timeout.

Functional requirements
- ``check_circuit_breaker`` evaluates max-depth, then max-iterations, then
  repetitive-output, and raises ``CircuitBreakerError`` on the first violation.
- Contexts are immutable; transitions return new instances and never decrease
  ``iteration_count`` or ``dispatch_depth``.
- Inbound dispatch depth parsing never lowers a value that would trip the
  depth threshold; magnitudes saturate at ``DISPATCH_DEPTH_CEILING``.

Non-functional requirements
- No module-level mutable state; one context per run, threaded by value.
- Trips and timeouts emit structured ``structlog`` events.
"""

from __future__ import annotations

import math
import re
from collections.abc import Mapping
from dataclasses import dataclass, replace
from enum import StrEnum
from typing import TYPE_CHECKING, Final, NoReturn, TypeVar

import structlog

from agent_guard.constants import (
    DISPATCH_DEPTH_CEILING,
    MAX_DISPATCH_DEPTH,
    MAX_HASH_HISTORY,
    MAX_ITERATIONS,
    OUTPUT_DIGEST_CHARS,
)
from agent_guard.utils.concurrency import run_with_timeout
from agent_guard.utils.hashing import short_digest

if TYPE_CHECKING:
    from collections.abc import Awaitable

T = TypeVar("T")

_LOGGER = structlog.get_logger(__name__)

DISPATCH_DEPTH_KEY: Final[str] = "dispatch_depth"
ITERATION_COUNT_KEY: Final[str] = "iteration_count"

_INTEGER_PREFIX: Final[re.Pattern[str]] = re.compile(r"^\s*([+-]?\d+)")

_BOT_PATTERNS: Final[tuple[re.Pattern[str], ...]] = (
    re.compile(r"\[bot\]$", re.IGNORECASE),
    re.compile(r"^github-actions(\[bot\])?$", re.IGNORECASE),
    re.compile(r"^dependabot(\[bot\])?$", re.IGNORECASE),
    re.compile(r"^renovate(\[bot\])?$", re.IGNORECASE),
    re.compile(r"^copilot-swe-agent$", re.IGNORECASE),
    re.compile(r"^codecov(\[bot\])?$", re.IGNORECASE),
    re.compile(r"^greenkeeper(\[bot\])?$", re.IGNORECASE),
    re.compile(r"^snyk-bot$", re.IGNORECASE),
)

STOP_COMMANDS: Final[tuple[str, ...]] = ("/stop", "/override", "/human", "/halt", "/cancel")


class CircuitBreakerErrorType(StrEnum):
    """Which bound a run violated."""

    MAX_ITERATIONS = "max-iterations"
    MAX_DEPTH = "max-depth"
    REPETITIVE_OUTPUT = "repetitive-output"
    TIMEOUT = "timeout"


class CircuitBreakerError(RuntimeError):
    """Fatal policy violation. Callers halt the run; it is never retried."""

    def __init__(self, message: str, *, kind: CircuitBreakerErrorType) -> None:
        super().__init__(message)
        self.kind = kind

    def to_dict(self) -> dict[str, object]:
        return {"kind": self.kind.value, "message": str(self)}


def _require_non_negative_int(value: object, field_name: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{field_name} must be an int")
    if value < 0:
        raise ValueError(f"{field_name} must be >= 0")


def _require_bounded_int(value: object, ceiling: int, field_name: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{field_name} must be an int")
    if value < 1 or value > ceiling:
        raise ValueError(f"{field_name} must be within 1..{ceiling}")


@dataclass(frozen=True, slots=True)
class BreakerLimits:
    """Thresholds for one run. Each may be tightened below its constant, never raised."""

    max_iterations: int = MAX_ITERATIONS
    max_dispatch_depth: int = MAX_DISPATCH_DEPTH
    max_hash_history: int = MAX_HASH_HISTORY

    def __post_init__(self) -> None:
        _require_bounded_int(self.max_iterations, MAX_ITERATIONS, "max_iterations")
        _require_bounded_int(self.max_dispatch_depth, MAX_DISPATCH_DEPTH, "max_dispatch_depth")
        _require_bounded_int(self.max_hash_history, MAX_HASH_HISTORY, "max_hash_history")

    def to_dict(self) -> dict[str, object]:
        return {
            "max_iterations": self.max_iterations,
            "max_dispatch_depth": self.max_dispatch_depth,
            "max_hash_history": self.max_hash_history,
        }


DEFAULT_LIMITS: Final[BreakerLimits] = BreakerLimits()


@dataclass(frozen=True, slots=True)
class CircuitBreakerContext:
    """Immutable per-run breaker state."""

    dispatch_depth: int = 0
    iteration_count: int = 0
    recent_output_hashes: tuple[str, ...] = ()
    last_output: str | None = None

    def __post_init__(self) -> None:
        _require_non_negative_int(self.dispatch_depth, "dispatch_depth")
        _require_non_negative_int(self.iteration_count, "iteration_count")
        if len(self.recent_output_hashes) > MAX_HASH_HISTORY:
            raise ValueError(f"recent_output_hashes holds at most {MAX_HASH_HISTORY} entries")

    def to_dict(self) -> dict[str, object]:
        return {
            "dispatch_depth": self.dispatch_depth,
            "iteration_count": self.iteration_count,
            "recent_output_hashes": list(self.recent_output_hashes),
            "has_last_output": self.last_output is not None,
        }


def create_circuit_breaker_context(
    dispatch_depth: int = 0,
    iteration_count: int = 0,
) -> CircuitBreakerContext:
    """Return a fresh context with empty history and no last output."""

    return CircuitBreakerContext(
        dispatch_depth=min(dispatch_depth, DISPATCH_DEPTH_CEILING),
        iteration_count=iteration_count,
    )


def output_digest(output: str) -> str:
    return short_digest(output, OUTPUT_DIGEST_CHARS)


def check_circuit_breaker(
    context: CircuitBreakerContext,
    *,
    limits: BreakerLimits = DEFAULT_LIMITS,
) -> None:
    """Raise ``CircuitBreakerError`` if ``context`` violates ``limits``; never mutates."""

    if context.dispatch_depth >= limits.max_dispatch_depth:
        _trip(
            CircuitBreakerErrorType.MAX_DEPTH,
            f"Maximum dispatch depth ({limits.max_dispatch_depth}) exceeded. "
            f"Current depth: {context.dispatch_depth}. "
            "This prevents infinite cross-repository trigger loops.",
            context,
        )

    if context.iteration_count >= limits.max_iterations:
        _trip(
            CircuitBreakerErrorType.MAX_ITERATIONS,
            f"Maximum iterations ({limits.max_iterations}) exceeded. "
            f"Current count: {context.iteration_count}. "
            "This prevents runaway agent behavior.",
            context,
        )

    if context.last_output is not None and _is_repetitive(
        context.last_output, context.recent_output_hashes
    ):
        _trip(
            CircuitBreakerErrorType.REPETITIVE_OUTPUT,
            "Detected repetitive output pattern. The agent is producing identical "
            "outputs, indicating a potential loop.",
            context,
        )


def update_circuit_breaker(
    context: CircuitBreakerContext,
    output: str,
    *,
    limits: BreakerLimits = DEFAULT_LIMITS,
) -> CircuitBreakerContext:
    """Record one iteration's output and return the successor context."""

    history = (*context.recent_output_hashes, output_digest(output))
    return replace(
        context,
        iteration_count=context.iteration_count + 1,
        recent_output_hashes=history[-limits.max_hash_history :],
        last_output=output,
    )


def increment_dispatch_depth(context: CircuitBreakerContext) -> CircuitBreakerContext:
    return replace(
        context,
        dispatch_depth=min(context.dispatch_depth + 1, DISPATCH_DEPTH_CEILING),
    )


def parse_dispatch_depth(payload: object) -> int:
    """Read ``dispatch_depth`` from an inbound event payload.

    Integers, floats (floored) and strings with a leading integer are accepted.
    Negative, missing or unreadable values yield 0. Large values saturate at
    ``DISPATCH_DEPTH_CEILING`` so an oversized depth still trips the breaker.
    """

    if not isinstance(payload, Mapping):
        return 0

    raw = payload.get(DISPATCH_DEPTH_KEY)
    if isinstance(raw, bool) or raw is None:
        return 0

    if isinstance(raw, int):
        depth = raw
    elif isinstance(raw, float):
        if math.isnan(raw):
            return 0
        if math.isinf(raw):
            return DISPATCH_DEPTH_CEILING if raw > 0 else 0
        depth = math.floor(raw)
    elif isinstance(raw, str):
        match = _INTEGER_PREFIX.match(raw)
        if match is None:
            return 0
        depth = int(match.group(1))
    else:
        return 0

    if depth < 0:
        return 0
    return min(depth, DISPATCH_DEPTH_CEILING)


def create_dispatch_payload(
    context: CircuitBreakerContext,
    extra: Mapping[str, object] | None = None,
) -> dict[str, object]:
    """Build the outbound payload for triggering another automation."""

    payload: dict[str, object] = dict(extra or {})
    payload[DISPATCH_DEPTH_KEY] = min(context.dispatch_depth + 1, DISPATCH_DEPTH_CEILING)
    payload[ITERATION_COUNT_KEY] = context.iteration_count
    return payload


def is_bot(actor: object) -> bool:
    if not isinstance(actor, str):
        return False
    candidate = actor.strip().lower()
    return any(pattern.search(candidate) for pattern in _BOT_PATTERNS)


def has_stop_command(text: object) -> bool:
    if not isinstance(text, str):
        return False
    lowered = text.lower()
    return any(command in lowered for command in STOP_COMMANDS)


async def with_timeout(
    awaitable: Awaitable[T],
    timeout_seconds: float,
    operation: str,
) -> T:
    """Await ``awaitable``, raising ``CircuitBreakerError(kind=timeout)`` on expiry.

    ``timeout_seconds`` is in seconds, as everywhere in asyncio, not in
    milliseconds. A 30 second bound is ``with_timeout(call, 30.0, "post")``.

    A timeout means the outcome is unknown: the pending task is cancelled, but
    any side effect it already caused is not rolled back.
    """

    try:
        return await run_with_timeout(awaitable, timeout_seconds)
    except TimeoutError:
        _LOGGER.warning(
            "operation_timed_out",
            operation=operation,
            timeout_seconds=timeout_seconds,
            outcome="unknown",
        )
        raise CircuitBreakerError(
            f'Operation "{operation}" timed out after {timeout_seconds} seconds',
            kind=CircuitBreakerErrorType.TIMEOUT,
        ) from None


def _is_repetitive(last_output: str, hashes: tuple[str, ...]) -> bool:
    digest = output_digest(last_output)
    # The latest entry is normally the last output's own digest.
    prior = hashes[:-1] if hashes and hashes[-1] == digest else hashes
    return digest in prior


def _trip(
    kind: CircuitBreakerErrorType,
    message: str,
    context: CircuitBreakerContext,
) -> NoReturn:
    _LOGGER.error(
        "circuit_breaker_tripped",
        kind=kind.value,
        dispatch_depth=context.dispatch_depth,
        iteration_count=context.iteration_count,
    )
    raise CircuitBreakerError(message, kind=kind)


__all__ = [
    "BreakerLimits",
    "CircuitBreakerContext",
    "CircuitBreakerError",
    "CircuitBreakerErrorType",
    "DEFAULT_LIMITS",
    "DISPATCH_DEPTH_KEY",
    "ITERATION_COUNT_KEY",
    "STOP_COMMANDS",
    "check_circuit_breaker",
    "create_circuit_breaker_context",
    "create_dispatch_payload",
    "has_stop_command",
    "increment_dispatch_depth",
    "is_bot",
    "output_digest",
    "parse_dispatch_depth",
    "update_circuit_breaker",
    "with_timeout",
]

"""
agent-guard — guarded iteration loop

File: src/agent_guard/control_plane/runner.py

Purpose
- Drive an agent's iterative step function under the circuit breaker so the
  ``check -> step -> update`` ordering cannot be skipped by call sites.

Functional requirements
- The breaker is checked before every step, including the first.
- A step returning ``None`` ends the run normally; any string output is
  recorded in the context before the next check.
- ``CircuitBreakerError`` (including step timeouts) propagates to the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from agent_guard.control_plane.circuit_breaker import (
    DEFAULT_LIMITS,
    BreakerLimits,
    CircuitBreakerContext,
    check_circuit_breaker,
    create_circuit_breaker_context,
    update_circuit_breaker,
    with_timeout,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    StepFunction = Callable[[CircuitBreakerContext], Awaitable[str | None]]

_LOGGER = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class GuardedRunResult:
    context: CircuitBreakerContext
    outputs: tuple[str, ...]

    @property
    def iterations(self) -> int:
        return len(self.outputs)

    def to_dict(self) -> dict[str, object]:
        return {
            "context": self.context.to_dict(),
            "iterations": self.iterations,
        }


async def run_guarded_loop(
    step: StepFunction,
    *,
    context: CircuitBreakerContext | None = None,
    limits: BreakerLimits = DEFAULT_LIMITS,
    iteration_timeout_seconds: float | None = None,
    operation: str = "agent-iteration",
) -> GuardedRunResult:
    """Run ``step`` until it returns ``None`` or the breaker trips."""

    if iteration_timeout_seconds is not None and iteration_timeout_seconds <= 0:
        raise ValueError("iteration_timeout_seconds must be > 0")

    current = context if context is not None else create_circuit_breaker_context()
    outputs: list[str] = []

    while True:
        check_circuit_breaker(current, limits=limits)

        pending = step(current)
        if iteration_timeout_seconds is None:
            output = await pending
        else:
            output = await with_timeout(
                pending,
                iteration_timeout_seconds,
                f"{operation} #{current.iteration_count + 1}",
            )

        if output is None:
            break
        outputs.append(output)
        current = update_circuit_breaker(current, output, limits=limits)

    _LOGGER.debug(
        "guarded_loop_finished",
        operation=operation,
        iterations=len(outputs),
        dispatch_depth=current.dispatch_depth,
    )
    return GuardedRunResult(context=current, outputs=tuple(outputs))


__all__ = [
    "GuardedRunResult",
    "run_guarded_loop",
]

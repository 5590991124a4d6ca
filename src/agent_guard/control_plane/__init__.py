"""Control plane: circuit breaker, trigger gate and guarded run loop."""

from agent_guard.control_plane.circuit_breaker import (
    DEFAULT_LIMITS,
    STOP_COMMANDS,
    BreakerLimits,
    CircuitBreakerContext,
    CircuitBreakerError,
    CircuitBreakerErrorType,
    check_circuit_breaker,
    create_circuit_breaker_context,
    create_dispatch_payload,
    has_stop_command,
    increment_dispatch_depth,
    is_bot,
    output_digest,
    parse_dispatch_depth,
    update_circuit_breaker,
    with_timeout,
)
from agent_guard.control_plane.gate import SkipReason, TriggerDecision, evaluate_trigger
from agent_guard.control_plane.runner import GuardedRunResult, run_guarded_loop

__all__ = [
    "BreakerLimits",
    "CircuitBreakerContext",
    "CircuitBreakerError",
    "CircuitBreakerErrorType",
    "DEFAULT_LIMITS",
    "GuardedRunResult",
    "STOP_COMMANDS",
    "SkipReason",
    "TriggerDecision",
    "check_circuit_breaker",
    "create_circuit_breaker_context",
    "create_dispatch_payload",
    "evaluate_trigger",
    "has_stop_command",
    "increment_dispatch_depth",
    "is_bot",
    "output_digest",
    "parse_dispatch_depth",
    "run_guarded_loop",
    "update_circuit_breaker",
    "with_timeout",
]

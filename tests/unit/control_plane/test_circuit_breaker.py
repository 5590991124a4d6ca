"""
agent-guard — unit tests for the circuit breaker

File: tests/unit/control_plane/test_circuit_breaker.py

Purpose
- Validate the pure breaker state machine, dispatch depth handling and the
  async timeout wrapper.

What this test file should cover
- Check ordering (max-depth, max-iterations, repetitive-output) and non-mutation.
- Update transitions, bounded hash history, monotonic counters.
- Untrusted dispatch depth parsing, outbound payloads, bot and stop detection.
- ``with_timeout`` tagging and ``operation_timed_out`` events.
"""

from __future__ import annotations

import asyncio

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st
from structlog.testing import capture_logs

from agent_guard.constants import DISPATCH_DEPTH_CEILING, MAX_HASH_HISTORY
from agent_guard.control_plane import (
    DEFAULT_LIMITS,
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


def _kind_of(context: CircuitBreakerContext, limits: BreakerLimits = DEFAULT_LIMITS) -> str:
    with pytest.raises(CircuitBreakerError) as excinfo:
        check_circuit_breaker(context, limits=limits)
    return excinfo.value.kind.value


def test_fresh_context_passes_check() -> None:
    context = create_circuit_breaker_context()

    check_circuit_breaker(context)
    assert context.to_dict() == {
        "dispatch_depth": 0,
        "iteration_count": 0,
        "recent_output_hashes": [],
        "has_last_output": False,
    }


def test_depth_at_threshold_raises_max_depth_regardless_of_other_fields() -> None:
    digest = output_digest("same")
    context = CircuitBreakerContext(
        dispatch_depth=3,
        iteration_count=99,
        recent_output_hashes=(digest, digest),
        last_output="same",
    )

    assert _kind_of(context) == "max-depth"
    assert _kind_of(CircuitBreakerContext(dispatch_depth=3)) == "max-depth"


def test_five_distinct_updates_then_check_raises_max_iterations() -> None:
    context = create_circuit_breaker_context()
    for index in range(5):
        check_circuit_breaker(context)
        context = update_circuit_breaker(context, f"output {index}")

    assert context.iteration_count == 5
    assert _kind_of(context) == "max-iterations"


def test_identical_output_twice_raises_repetitive_output() -> None:
    context = create_circuit_breaker_context()
    context = update_circuit_breaker(context, "same answer")
    check_circuit_breaker(context)
    context = update_circuit_breaker(context, "same answer")

    assert _kind_of(context) == "repetitive-output"


def test_repetition_of_an_older_output_is_detected() -> None:
    context = create_circuit_breaker_context()
    for output in ("a", "b", "a"):
        context = update_circuit_breaker(context, output)

    assert _kind_of(context) == "repetitive-output"


def test_check_does_not_mutate_context() -> None:
    context = update_circuit_breaker(create_circuit_breaker_context(), "x")
    before = context.to_dict()

    check_circuit_breaker(context)
    assert context.to_dict() == before


def test_fifteen_updates_keep_exactly_ten_most_recent_hashes() -> None:
    context = create_circuit_breaker_context()
    outputs = [f"distinct output {index}" for index in range(15)]
    for output in outputs:
        context = update_circuit_breaker(context, output)

    assert len(context.recent_output_hashes) == MAX_HASH_HISTORY
    assert context.recent_output_hashes == tuple(output_digest(item) for item in outputs[-10:])
    assert context.iteration_count == 15
    assert context.last_output == outputs[-1]


@given(outputs=st.lists(st.text(max_size=20), max_size=30))
@settings(max_examples=75, deadline=None)
def test_property_update_is_monotonic_and_bounded(outputs: list[str]) -> None:
    context = create_circuit_breaker_context(dispatch_depth=1)
    for output in outputs:
        successor = update_circuit_breaker(context, output)
        assert successor.iteration_count == context.iteration_count + 1
        assert successor.dispatch_depth == context.dispatch_depth
        assert len(successor.recent_output_hashes) <= MAX_HASH_HISTORY
        context = successor


def test_tightened_limits_trip_earlier() -> None:
    limits = BreakerLimits(max_iterations=2, max_dispatch_depth=1, max_hash_history=3)

    assert _kind_of(CircuitBreakerContext(dispatch_depth=1), limits) == "max-depth"
    assert _kind_of(CircuitBreakerContext(iteration_count=2), limits) == "max-iterations"

    context = create_circuit_breaker_context()
    for output in ("a", "b", "c", "d"):
        context = update_circuit_breaker(context, output, limits=limits)
    assert len(context.recent_output_hashes) == 3


@pytest.mark.parametrize(
    "kwargs",
    [
        {"max_iterations": 6},
        {"max_dispatch_depth": 4},
        {"max_hash_history": 11},
        {"max_iterations": 0},
    ],
)
def test_limits_can_only_tighten(kwargs: dict[str, int]) -> None:
    with pytest.raises(ValueError):
        BreakerLimits(**kwargs)


def test_limits_reject_non_integers() -> None:
    with pytest.raises(TypeError):
        BreakerLimits(max_iterations=True)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"dispatch_depth": -1},
        {"iteration_count": -5},
        {"recent_output_hashes": tuple(str(i) for i in range(11))},
    ],
)
def test_context_rejects_invalid_state(kwargs: dict[str, object]) -> None:
    with pytest.raises(ValueError):
        CircuitBreakerContext(**kwargs)  # type: ignore[arg-type]


def test_trip_emits_structured_event() -> None:
    with capture_logs() as logs:
        with pytest.raises(CircuitBreakerError):
            check_circuit_breaker(CircuitBreakerContext(dispatch_depth=5))

    assert logs == [
        {
            "event": "circuit_breaker_tripped",
            "log_level": "error",
            "kind": "max-depth",
            "dispatch_depth": 5,
            "iteration_count": 0,
        }
    ]


def test_error_serializes_kind_and_message() -> None:
    error = CircuitBreakerError("boom", kind=CircuitBreakerErrorType.TIMEOUT)

    assert error.to_dict() == {"kind": "timeout", "message": "boom"}


def test_increment_dispatch_depth_is_pure() -> None:
    context = create_circuit_breaker_context(dispatch_depth=1)
    incremented = increment_dispatch_depth(context)

    assert context.dispatch_depth == 1
    assert incremented.dispatch_depth == 2


def test_increment_dispatch_depth_saturates_at_ceiling() -> None:
    context = CircuitBreakerContext(dispatch_depth=DISPATCH_DEPTH_CEILING)

    assert increment_dispatch_depth(context).dispatch_depth == DISPATCH_DEPTH_CEILING


@pytest.mark.parametrize(
    ("payload", "expected"),
    [
        ({"dispatch_depth": 2}, 2),
        ({"dispatch_depth": "2"}, 2),
        ({"dispatch_depth": " 3 "}, 3),
        ({"dispatch_depth": "4 levels"}, 4),
        ({"dispatch_depth": 2.9}, 2),
        ({"dispatch_depth": -1}, 0),
        ({"dispatch_depth": "-7"}, 0),
        ({"dispatch_depth": "abc"}, 0),
        ({"dispatch_depth": True}, 0),
        ({"dispatch_depth": None}, 0),
        ({"dispatch_depth": [3]}, 0),
        ({"dispatch_depth": float("nan")}, 0),
        ({"dispatch_depth": float("-inf")}, 0),
        ({"dispatch_depth": float("inf")}, DISPATCH_DEPTH_CEILING),
        ({"dispatch_depth": 10**40}, DISPATCH_DEPTH_CEILING),
        ({"dispatch_depth": "9" * 60}, DISPATCH_DEPTH_CEILING),
        ({}, 0),
        (None, 0),
        ("dispatch_depth=3", 0),
    ],
)
def test_parse_dispatch_depth(payload: object, expected: int) -> None:
    assert parse_dispatch_depth(payload) == expected


def test_oversized_inbound_depth_still_trips_max_depth() -> None:
    depth = parse_dispatch_depth({"dispatch_depth": "1" * 50})
    context = create_circuit_breaker_context(dispatch_depth=depth)

    assert _kind_of(context) == "max-depth"


@given(raw=st.one_of(st.integers(), st.floats(), st.text(max_size=30), st.none(), st.booleans()))
@settings(max_examples=150, deadline=None)
def test_property_parsed_depth_is_bounded_and_never_below_threshold_when_large(
    raw: object,
) -> None:
    depth = parse_dispatch_depth({"dispatch_depth": raw})

    assert 0 <= depth <= DISPATCH_DEPTH_CEILING
    if isinstance(raw, int) and not isinstance(raw, bool) and raw >= 3:
        assert depth >= 3


def test_create_dispatch_payload_increments_depth_and_carries_iterations() -> None:
    context = CircuitBreakerContext(dispatch_depth=1, iteration_count=2)
    payload = create_dispatch_payload(context, {"repository": "org/repo", "dispatch_depth": 99})

    assert payload == {"repository": "org/repo", "dispatch_depth": 2, "iteration_count": 2}
    assert parse_dispatch_depth(payload) == 2


@pytest.mark.parametrize(
    "actor",
    [
        "dependabot[bot]",
        "github-actions",
        "github-actions[bot]",
        "copilot-swe-agent",
        "Renovate[bot]",
        "some-custom-app[bot]",
        "  CODECOV  ",
        "snyk-bot",
    ],
)
def test_is_bot_detects_automation_accounts(actor: str) -> None:
    assert is_bot(actor) is True


@pytest.mark.parametrize("actor", ["octocat", "botanist", "dependabot-fan", "", None, 42])
def test_is_bot_rejects_humans_and_non_strings(actor: object) -> None:
    assert is_bot(actor) is False


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("/stop", True),
        ("Please /STOP this now", True),
        ("/human needed", True),
        ("/halt", True),
        ("/cancel the run", True),
        ("maintainer /override", True),
        ("stop the bot", False),
        ("", False),
        (None, False),
    ],
)
def test_has_stop_command(text: object, expected: bool) -> None:
    assert has_stop_command(text) is expected


@pytest.mark.asyncio
async def test_with_timeout_returns_result_when_fast() -> None:
    async def fast() -> str:
        return "done"

    assert await with_timeout(fast(), 1.0, "fast-op") == "done"


@pytest.mark.asyncio
async def test_with_timeout_raises_tagged_error_naming_operation() -> None:
    async def slow() -> str:
        await asyncio.sleep(5)
        return "late"

    with capture_logs() as logs:
        with pytest.raises(CircuitBreakerError) as excinfo:
            await with_timeout(slow(), 0.01, "post-comment")

    assert excinfo.value.kind is CircuitBreakerErrorType.TIMEOUT
    assert 'Operation "post-comment" timed out after 0.01 seconds' == str(excinfo.value)
    assert logs == [
        {
            "event": "operation_timed_out",
            "log_level": "warning",
            "operation": "post-comment",
            "timeout_seconds": 0.01,
            "outcome": "unknown",
        }
    ]


@pytest.mark.asyncio
async def test_with_timeout_propagates_operation_errors() -> None:
    async def failing() -> str:
        raise KeyError("missing")

    with pytest.raises(KeyError):
        await with_timeout(failing(), 1.0, "lookup")


@pytest.mark.asyncio
async def test_with_timeout_rejects_non_positive_timeouts() -> None:
    async def fast() -> str:
        return "done"

    with pytest.raises(ValueError):
        await with_timeout(fast(), 0, "zero")

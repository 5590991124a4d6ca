"""Command-line interface router for agent-guard."""

from __future__ import annotations

import argparse
import json
import sys
import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Final

from agent_guard.config import (
    ConfigLoadError,
    ConfigValidationError,
    effective_config,
    limits_from_config,
    load_config,
)
from agent_guard.control_plane import (
    CircuitBreakerError,
    check_circuit_breaker,
    create_circuit_breaker_context,
    create_dispatch_payload,
    evaluate_trigger,
    parse_dispatch_depth,
)
from agent_guard.observability import setup_logging, shutdown_logging
from agent_guard.security import sanitize, sanitize_url
from agent_guard.validation import safe_parse_json, validate_review_output, validate_triage_output

STDIN_MARKER: Final[str] = "-"

EXIT_SUCCESS: Final[int] = 0
EXIT_REJECTED: Final[int] = 1
EXIT_CONFIG_ERROR: Final[int] = 2
EXIT_CIRCUIT_BREAKER: Final[int] = 3


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = EXIT_CONFIG_ERROR

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router for all supported CLI workflows."""

    parser = argparse.ArgumentParser(
        prog="agent-guard",
        description=(
            "agent-guard — security guards for LLM agents acting on untrusted repository text.\n\n"
            "Common workflows:\n"
            "  agent-guard sanitize --context issue-body < body.md\n"
            "  agent-guard validate triage < model-output.json\n"
            "  agent-guard gate --actor octocat --text '/stop'\n"
            "  agent-guard dispatch --payload '{\"dispatch_depth\": 1}'\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to agent_guard TOML config (default: ./agent_guard.toml if present).",
    )
    common.add_argument(
        "--profile",
        default=None,
        help="Optional config profile overlay name.",
    )
    common.add_argument(
        "--log-file",
        action="store_true",
        default=False,
        help="Also write JSON log lines under the configured log_dir.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # sanitize ------------------------------------------------------------
    sanitize_parser = subparsers.add_parser(
        "sanitize",
        parents=[common],
        help="Sanitize untrusted text and report what was found",
        description=(
            "Strip hidden content from untrusted text and flag injection patterns.\n\n"
            "Examples:\n"
            "  agent-guard sanitize --context issue-body < body.md\n"
            "  agent-guard sanitize --file body.md\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sanitize_parser.add_argument(
        "--context", default="unknown", help="Context label used in the warning prefix"
    )
    sanitize_parser.add_argument(
        "--file", dest="input_path", default=STDIN_MARKER, help="Input file (default: stdin)"
    )
    sanitize_parser.set_defaults(handler=_cmd_sanitize)

    # validate ------------------------------------------------------------
    validate_parser = subparsers.add_parser(
        "validate",
        parents=[common],
        help="Validate raw model output into a bounded, allow-listed result",
        description=(
            "Parse raw model output and emit the validated result. Unparseable output\n"
            "yields the safe fallback result.\n\n"
            "Examples:\n"
            "  agent-guard validate triage < output.json\n"
            "  agent-guard validate review --file output.json\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    validate_parser.add_argument("kind", choices=("triage", "review"), help="Result kind")
    validate_parser.add_argument(
        "--file", dest="input_path", default=STDIN_MARKER, help="Input file (default: stdin)"
    )
    validate_parser.set_defaults(handler=_cmd_validate)

    # check-url -----------------------------------------------------------
    check_url_parser = subparsers.add_parser(
        "check-url",
        parents=[common],
        help="Check a URL against the allowed domain patterns",
        description=(
            "Exit 0 when the URL is https and its host is allowed, 1 otherwise.\n\n"
            "Examples:\n"
            "  agent-guard check-url https://github.com/org/repo\n"
            "  agent-guard check-url https://example.com --allow-domain '*.example.com'\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    check_url_parser.add_argument("url", help="URL to check")
    check_url_parser.add_argument(
        "--allow-domain",
        action="append",
        dest="allowed_domains",
        default=None,
        help="Allowed domain pattern (repeatable; default: sanitizer.allowed_url_domains)",
    )
    check_url_parser.set_defaults(handler=_cmd_check_url)

    # gate ----------------------------------------------------------------
    gate_parser = subparsers.add_parser(
        "gate",
        parents=[common],
        help="Decide whether an inbound event may trigger an agent run",
        description=(
            "Exit 0 when the event may proceed, 1 when it is skipped (bot actor or\n"
            "stop command).\n\n"
            "Examples:\n"
            "  agent-guard gate --actor octocat --text 'please triage'\n"
            "  agent-guard gate --actor 'dependabot[bot]'\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    gate_parser.add_argument("--actor", required=True, help="Login of the triggering actor")
    gate_parser.add_argument(
        "--text",
        action="append",
        dest="texts",
        default=None,
        help="Event text to scan for stop commands (repeatable)",
    )
    gate_parser.set_defaults(handler=_cmd_gate)

    # dispatch ------------------------------------------------------------
    dispatch_parser = subparsers.add_parser(
        "dispatch",
        parents=[common],
        help="Check limits for an inbound dispatch and build the outbound payload",
        description=(
            "Read dispatch_depth from the inbound payload, check the circuit breaker and\n"
            "emit the payload for the next hop. Exit 3 when the breaker trips.\n\n"
            "Examples:\n"
            "  agent-guard dispatch --payload '{\"dispatch_depth\": 1}'\n"
            "  agent-guard dispatch --payload - --iteration-count 2 < payload.json\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    dispatch_parser.add_argument(
        "--payload", default=None, help="Inbound JSON payload, or '-' for stdin"
    )
    dispatch_parser.add_argument(
        "--iteration-count",
        type=int,
        default=0,
        help="Iterations already completed in this run (default: 0)",
    )
    dispatch_parser.set_defaults(handler=_cmd_dispatch)

    # config --------------------------------------------------------------
    config_parser = subparsers.add_parser(
        "config",
        parents=[common],
        help="Show effective configuration (redacted)",
        description=(
            "Display the effective config after merging defaults, file, env, and profile.\n"
            "Sensitive values are redacted.\n\n"
            "Examples:\n"
            "  agent-guard config\n"
            "  agent-guard config --profile strict\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    config_parser.set_defaults(handler=_cmd_config)

    return parser


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return EXIT_CONFIG_ERROR

    try:
        config = _load_effective_config(namespace)
        _start_logging(config, persist=_flag(namespace, "log_file"))
        try:
            result = handler(namespace, config)
        finally:
            shutdown_logging()
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    return int(result)


def main(argv: Sequence[str] | None = None) -> int:
    """Compatibility wrapper for main-module wiring."""

    return run_cli(argv)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_sanitize(args: argparse.Namespace, config: Mapping[str, object]) -> int:
    text = _read_input(getattr(args, "input_path", STDIN_MARKER))
    context = _optional_str(getattr(args, "context", None)) or "unknown"
    max_length = _section(config, "sanitizer").get("max_input_length")

    result = sanitize(text, context, max_length=_positive_int(max_length, "max_input_length"))
    _emit_json({"command": "sanitize", "context": context, **result.to_dict()})
    return EXIT_SUCCESS


def _cmd_validate(args: argparse.Namespace, config: Mapping[str, object]) -> int:
    del config
    raw = _read_input(getattr(args, "input_path", STDIN_MARKER))
    kind = _require_str(getattr(args, "kind", None), "kind")

    if kind == "triage":
        payload = validate_triage_output(raw).to_dict()
    else:
        payload = validate_review_output(raw).to_dict()
    _emit_json({"command": "validate", "kind": kind, "result": payload})
    return EXIT_SUCCESS


def _cmd_check_url(args: argparse.Namespace, config: Mapping[str, object]) -> int:
    url = _require_str(getattr(args, "url", None), "url")
    domains = _string_sequence(getattr(args, "allowed_domains", None))
    if not domains:
        domains = _string_sequence(_section(config, "sanitizer").get("allowed_url_domains"))

    sanitized = sanitize_url(url, domains)
    _emit_json(
        {
            "command": "check-url",
            "allowed": sanitized is not None,
            "url": sanitized,
        }
    )
    return EXIT_SUCCESS if sanitized is not None else EXIT_REJECTED


def _cmd_gate(args: argparse.Namespace, config: Mapping[str, object]) -> int:
    del config
    actor = _require_str(getattr(args, "actor", None), "actor")
    texts = _string_sequence(getattr(args, "texts", None))

    decision = evaluate_trigger(actor, *texts)
    _emit_json({"command": "gate", "actor": actor, **decision.to_dict()})
    return EXIT_SUCCESS if decision.proceed else EXIT_REJECTED


def _cmd_dispatch(args: argparse.Namespace, config: Mapping[str, object]) -> int:
    raw_payload = getattr(args, "payload", None)
    inbound: object = None
    if raw_payload is not None:
        inbound = safe_parse_json(_read_input(raw_payload, inline=True))

    iteration_count = getattr(args, "iteration_count", 0)
    if isinstance(iteration_count, bool) or not isinstance(iteration_count, int):
        raise CLIError("invalid iteration-count: expected integer")
    if iteration_count < 0:
        raise CLIError("invalid iteration-count: must be >= 0")

    limits = limits_from_config(config)
    context = create_circuit_breaker_context(
        dispatch_depth=parse_dispatch_depth(inbound),
        iteration_count=iteration_count,
    )
    try:
        check_circuit_breaker(context, limits=limits)
    except CircuitBreakerError as exc:
        _emit_json({"command": "dispatch", "context": context.to_dict(), "error": exc.to_dict()})
        return EXIT_CIRCUIT_BREAKER

    _emit_json(
        {
            "command": "dispatch",
            "context": context.to_dict(),
            "payload": create_dispatch_payload(context),
        }
    )
    return EXIT_SUCCESS


def _cmd_config(args: argparse.Namespace, config: Mapping[str, object]) -> int:
    profile = _optional_str(getattr(args, "profile", None))
    _emit_json(
        {
            "command": "config",
            "active_profile": profile,
            "config": effective_config(config),
        }
    )
    return EXIT_SUCCESS


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _emit_json(payload: Mapping[str, object]) -> None:
    """Emit a JSON payload to stdout with deterministic formatting."""

    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))


def _load_effective_config(args: argparse.Namespace) -> dict[str, object]:
    config_path = _optional_str(getattr(args, "config_path", None))
    profile = _optional_str(getattr(args, "profile", None))

    try:
        loaded = load_config(config_path, profile=profile)
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=EXIT_CONFIG_ERROR) from exc

    return {key: value for key, value in loaded.items()}


def _start_logging(config: Mapping[str, object], *, persist: bool) -> None:
    observability = dict(_section(config, "observability"))
    if not persist:
        observability.pop("log_dir", None)
    setup_logging(observability, run_id=uuid.uuid4().hex)


def _section(config: Mapping[str, object], name: str) -> Mapping[str, object]:
    value = config.get(name)
    return value if isinstance(value, Mapping) else {}


def _read_input(source: object, *, inline: bool = False) -> str:
    if not isinstance(source, str):
        raise CLIError("invalid input source")
    if source == STDIN_MARKER:
        return sys.stdin.read()
    if inline:
        return source
    try:
        return Path(source).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise CLIError(f"unable to read input file {source}: {exc}") from exc


def _require_str(value: object, name: str) -> str:
    if not isinstance(value, str):
        raise CLIError(f"invalid {name}: expected string")
    cleaned = value.strip()
    if not cleaned:
        raise CLIError(f"invalid {name}: value cannot be empty")
    return cleaned


def _optional_str(value: object) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise CLIError("invalid optional string argument")
    cleaned = value.strip()
    return cleaned or None


def _positive_int(value: object, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise CLIError(f"invalid {name}: expected positive integer")
    return value


def _flag(args: argparse.Namespace, name: str) -> bool:
    value = getattr(args, name, False)
    return bool(value)


def _string_sequence(value: object) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        cleaned = value.strip()
        return () if not cleaned else (cleaned,)
    if not isinstance(value, Sequence):
        raise CLIError("invalid sequence argument")

    parsed: list[str] = []
    for item in value:
        if not isinstance(item, str):
            raise CLIError("invalid sequence argument")
        cleaned = item.strip()
        if cleaned:
            parsed.append(cleaned)
    return tuple(parsed)


__all__ = [
    "CLIError",
    "build_parser",
    "main",
    "run_cli",
]

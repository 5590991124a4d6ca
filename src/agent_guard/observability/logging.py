"""
agent-guard — per-run structured logging

File: src/agent_guard/observability/logging.py

Purpose
- Send stdlib and ``structlog`` records to stderr and, when a log directory is
  configured, to ``<log_dir>/<run_id>/agent_guard.jsonl``.

Functional requirements
- Every line carries the run id plus the correlation fields bound in scope.
- Messages, extras and tracebacks pass through a redactor before rendering.
- One setup is active at a time; a new setup closes the previous one.
"""

from __future__ import annotations

import contextvars
import json
import logging
import math
import sys
import threading
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Final

import structlog

from agent_guard.security.redaction import redact_structure

Redactor = Callable[[object], object]

ROOT_LOGGER_NAME: Final[str] = "agent_guard"
LOG_FILENAME: Final[str] = "agent_guard.jsonl"

_FORMATS: Final[tuple[str, ...]] = ("json", "text")
_CORRELATION_KEYS: Final[tuple[str, ...]] = (
    "run_id",
    "correlation_id",
    "agent",
    "actor",
    "repository",
    "event_id",
)
# Attributes every LogRecord carries; anything else arrived through ``extra``.
_RECORD_ATTRIBUTES: Final[frozenset[str]] = frozenset(vars(logging.makeLogRecord({}))) | {
    "asctime",
    "message",
    "taskName",
}

_correlation: contextvars.ContextVar[dict[str, str] | None] = contextvars.ContextVar(
    "agent_guard_correlation", default=None
)

_active_lock = threading.Lock()
_active: StructuredLoggingHandle | None = None


def default_log_redactor(value: object) -> object:
    """Drop values under credential-looking keys and scrub tokens from strings."""

    return redact_structure(value)


def _keep(value: object) -> object:
    return value


def _level_number(level: object) -> int:
    if isinstance(level, bool):
        raise ValueError(f"unsupported logging level {level!r}")
    if isinstance(level, int):
        return level
    if isinstance(level, str):
        number = logging.getLevelNamesMapping().get(level.strip().upper())
        if number is not None:
            return number
    raise ValueError(f"unsupported logging level {level!r}")


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Sinks and rendering for one run. Invalid values raise ``ValueError``."""

    run_id: str
    base_log_dir: Path | str | None = None
    logger_name: str = ROOT_LOGGER_NAME
    level: int | str = "INFO"
    log_format: str = "json"
    log_filename: str = LOG_FILENAME
    log_to_console: bool = True
    redactor: Redactor | None = None

    def __post_init__(self) -> None:
        for name in ("run_id", "logger_name", "log_filename"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value.strip():
                raise ValueError(f"{name} must be a non-empty string")
        if Path(self.log_filename).name != self.log_filename:
            raise ValueError(f"log_filename {self.log_filename!r} must be a bare file name")
        if str(self.log_format).lower() not in _FORMATS:
            raise ValueError(f"log_format must be 'json' or 'text', got {self.log_format!r}")
        _level_number(self.level)

    @property
    def level_number(self) -> int:
        return _level_number(self.level)


@dataclass(eq=False)
class StructuredLoggingHandle:
    """Installed sinks of one setup; ``shutdown`` is safe to call repeatedly."""

    logger: logging.Logger
    run_id: str
    log_path: Path | None
    handlers: tuple[logging.Handler, ...]
    _closed: bool = field(default=False, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    @property
    def is_shutdown(self) -> bool:
        return self._closed

    def shutdown(self) -> None:
        with self._lock:
            if self._closed:
                return
            for handler in self.handlers:
                handler.flush()
                self.logger.removeHandler(handler)
                handler.close()
            self._closed = True


class _RunLogFormatter(logging.Formatter):
    def __init__(self, *, run_id: str, redactor: Redactor, json_lines: bool) -> None:
        super().__init__()
        self._run_id = run_id
        self._redact = redactor
        self._json_lines = json_lines

    def format(self, record: logging.LogRecord) -> str:
        timestamp = (
            datetime.fromtimestamp(record.created, tz=UTC)
            .isoformat(timespec="milliseconds")
            .replace("+00:00", "Z")
        )
        message = _as_text(self._redact(record.getMessage()))
        correlation = {"run_id": self._run_id, **get_correlation_context()}
        for key in _CORRELATION_KEYS:
            value = getattr(record, key, None)
            if isinstance(value, str) and value.strip():
                correlation[key] = value.strip()
        extras = self._redact(
            {
                key: _jsonable(value)
                for key, value in vars(record).items()
                if key not in _RECORD_ATTRIBUTES
                and key not in _CORRELATION_KEYS
                and not key.startswith("_")
            }
        )
        traceback = (
            _as_text(self._redact(self.formatException(record.exc_info)))
            if record.exc_info
            else None
        )

        if self._json_lines:
            entry: dict[str, object] = {
                "timestamp": timestamp,
                "level": record.levelname,
                "logger": record.name,
                "message": message,
                **correlation,
            }
            if extras:
                entry["fields"] = extras
            if traceback is not None:
                entry["exception"] = traceback
            return json.dumps(entry, sort_keys=True, separators=(",", ":"), ensure_ascii=False)

        pairs: dict[str, object] = dict(correlation)
        if isinstance(extras, Mapping):
            pairs.update(extras)
        line = " ".join(
            [
                timestamp,
                record.levelname,
                record.name,
                message,
                *(f"{key}={_as_text(pairs[key])}" for key in sorted(pairs)),
            ]
        )
        return line if traceback is None else f"{line}\n{traceback}"


def setup_structured_logging(config: LoggingConfig) -> StructuredLoggingHandle:
    """Install the run's sinks on ``config.logger_name`` and make them active."""

    global _active

    level = config.level_number
    run_id = config.run_id.strip()
    shutdown_logging()

    handlers: list[logging.Handler] = []
    log_path: Path | None = None
    if config.base_log_dir is not None:
        log_path = Path(config.base_log_dir) / run_id / config.log_filename
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))
    if config.log_to_console:
        # stdout carries command results only.
        handlers.append(logging.StreamHandler(sys.stderr))

    formatter = _RunLogFormatter(
        run_id=run_id,
        redactor=config.redactor or default_log_redactor,
        json_lines=config.log_format.lower() == "json",
    )
    logger = logging.getLogger(config.logger_name)
    for stale in list(logger.handlers):
        logger.removeHandler(stale)
        stale.close()
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False

    handle = StructuredLoggingHandle(
        logger=logger, run_id=run_id, log_path=log_path, handlers=tuple(handlers)
    )
    with _active_lock:
        _active = handle
    return handle


def setup_logging(
    observability: Mapping[str, object] | None = None,
    *,
    run_id: str,
    log_dir: Path | str | None = None,
    logger_name: str = ROOT_LOGGER_NAME,
) -> logging.Logger:
    """Configure logging from an ``[observability]`` table and return the logger.

    ``log_dir`` takes precedence over the table's ``log_dir``. With neither, only
    the stderr sink is installed. ``redact_secrets = false`` turns redaction off.
    """

    table = dict(observability or {})
    base_dir = log_dir if log_dir is not None else table.get("log_dir")
    handle = setup_structured_logging(
        LoggingConfig(
            run_id=run_id,
            base_log_dir=base_dir if isinstance(base_dir, (str, Path)) else None,
            logger_name=logger_name,
            level=str(table.get("log_level", "INFO")),
            log_format=str(table.get("log_format", "json")),
            redactor=None if table.get("redact_secrets", True) else _keep,
        )
    )
    configure_structlog()
    return handle.logger


def configure_structlog() -> None:
    """Route ``structlog`` events through the stdlib handlers installed here.

    Event keyword arguments become record extras, so they land in the ``fields``
    object of each JSON line.
    """

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.render_to_log_kwargs,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


def shutdown_logging(handle: StructuredLoggingHandle | None = None) -> None:
    """Close ``handle``, or the active setup when none is given."""

    global _active

    with _active_lock:
        target = handle if handle is not None else _active
        if target is not None and target is _active:
            _active = None
    if target is not None:
        target.shutdown()


def get_active_logging_handle() -> StructuredLoggingHandle | None:
    with _active_lock:
        return _active


def get_correlation_context() -> dict[str, str]:
    return dict(_correlation.get() or {})


@contextmanager
def correlation_scope(**fields: str | None) -> Iterator[None]:
    """Bind correlation fields (``run_id``, ``agent``, ``actor``...) for records in the block.

    ``None`` unbinds a field set by an enclosing scope; blank strings are rejected.
    """

    bound = get_correlation_context()
    for key, value in fields.items():
        if value is None:
            bound.pop(key, None)
        elif not value.strip():
            raise ValueError(f"correlation field {key!r} must not be blank")
        else:
            bound[key] = value.strip()
    token = _correlation.set(bound)
    try:
        yield
    finally:
        _correlation.reset(token)


def _jsonable(value: object) -> object:
    if value is None or isinstance(value, (str, bool, int)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else str(value)
    if isinstance(value, Mapping):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    if isinstance(value, (set, frozenset)):
        return sorted((_jsonable(item) for item in value), key=repr)
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def _as_text(value: object) -> str:
    if isinstance(value, str):
        return value
    if value is None:
        return ""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


__all__ = [
    "LOG_FILENAME",
    "ROOT_LOGGER_NAME",
    "LoggingConfig",
    "Redactor",
    "StructuredLoggingHandle",
    "configure_structlog",
    "correlation_scope",
    "default_log_redactor",
    "get_active_logging_handle",
    "get_correlation_context",
    "setup_logging",
    "setup_structured_logging",
    "shutdown_logging",
]

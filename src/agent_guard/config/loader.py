"""
agent-guard — runtime config loader.

File: src/agent_guard/config/loader.py

Purpose
- Build the effective config for one agent run.

Functional requirements
- Layers, lowest first: built-in defaults, ``agent_guard.toml``, the selected
  profile, ``AGENT_GUARD_<SECTION>_<KEY>`` environment variables, then
  ``section.key`` overrides passed by the caller.
- The profile comes from the ``profile`` argument, a ``profile`` override or
  ``AGENT_GUARD_PROFILE``, in that order.
- ``observability.log_dir`` is resolved against the config file's directory.
- Every layer is validated; breaker limits are derived from the result.

Non-functional requirements
- Environment variables are read only for fields listed in ``FIELD_RULES``.
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Final

from agent_guard.config.schema import (
    FIELD_RULES,
    FieldRule,
    apply_profile_overlay,
    assert_valid_config,
    default_config,
    merge_config,
    redact_config,
)
from agent_guard.control_plane.circuit_breaker import BreakerLimits

DEFAULT_CONFIG_FILE: Final[str] = "agent_guard.toml"
ENV_PREFIX: Final[str] = "AGENT_GUARD_"
PROFILE_ENV_VAR: Final[str] = f"{ENV_PREFIX}PROFILE"

_TRUE_WORDS: Final[frozenset[str]] = frozenset({"1", "true", "t", "yes", "y", "on"})
_FALSE_WORDS: Final[frozenset[str]] = frozenset({"0", "false", "f", "no", "n", "off"})
_LIMIT_KEYS: Final[tuple[str, ...]] = ("max_iterations", "max_dispatch_depth", "max_hash_history")


class ConfigLoadError(ValueError):
    """Raised when the config file is unreadable or an override cannot be parsed."""


def load_config(
    config_path: str | Path | None = None,
    *,
    profile: str | None = None,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Return the validated effective config.

    Without ``config_path`` the loader looks for ``agent_guard.toml`` in the
    working directory and falls back to defaults when it is absent; an explicit
    path must exist.
    """

    env = os.environ if environ is None else environ
    overrides = dict(cli_overrides or {})
    path = (
        Path.cwd() / DEFAULT_CONFIG_FILE if config_path is None else Path(config_path).expanduser()
    ).resolve()

    config = assert_valid_config(
        merge_config(default_config(), _read_toml(path, required=config_path is not None))
    )

    selected = _select_profile(profile, overrides.pop("profile", None), env.get(PROFILE_ENV_VAR))
    if selected is not None:
        config = apply_profile_overlay(config, selected)

    config = merge_config(config, _env_layer(env))
    config = merge_config(config, _override_layer(overrides))
    config = assert_valid_config(config, active_profile=selected)

    observability = config["observability"]
    observability["log_dir"] = resolve_log_dir(observability["log_dir"], base_dir=path.parent)
    return config


def env_var_name(rule: FieldRule) -> str:
    """``circuit_breaker.max_iterations`` reads ``AGENT_GUARD_CIRCUIT_BREAKER_MAX_ITERATIONS``."""

    return f"{ENV_PREFIX}{rule.section}_{rule.key}".upper()


def resolve_log_dir(raw: str, *, base_dir: Path) -> str:
    """Expand ``~`` and ``$VARS`` and anchor relative directories at ``base_dir``."""

    candidate = Path(os.path.expandvars(raw)).expanduser()
    if not candidate.is_absolute():
        candidate = base_dir / candidate
    return Path(os.path.normpath(candidate)).as_posix()


def limits_from_config(config: Mapping[str, object]) -> BreakerLimits:
    """Build ``BreakerLimits`` from the ``[circuit_breaker]`` table."""

    section = config.get("circuit_breaker")
    if not isinstance(section, Mapping):
        return BreakerLimits()

    values: dict[str, Any] = {
        key: section[key]
        for key in _LIMIT_KEYS
        if isinstance(section.get(key), int) and not isinstance(section.get(key), bool)
    }
    try:
        return BreakerLimits(**values)
    except (TypeError, ValueError) as exc:
        raise ConfigLoadError(f"invalid circuit_breaker limits: {exc}") from exc


def effective_config(config: Mapping[str, object]) -> dict[str, Any]:
    """Config with credential-looking values redacted, safe to log or print."""

    return redact_config(config)


def dump_effective_config(config: Mapping[str, object]) -> str:
    return json.dumps(
        effective_config(config), sort_keys=True, separators=(",", ":"), ensure_ascii=False
    )


def _read_toml(path: Path, *, required: bool) -> dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        if required:
            raise ConfigLoadError(f"config file not found: {path}") from None
        return {}
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc

    try:
        return tomllib.loads(text)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc


def _select_profile(*candidates: object) -> str | None:
    for candidate in candidates:
        if candidate is None:
            continue
        if not isinstance(candidate, str):
            raise ConfigLoadError("profile must be a string")
        return candidate.strip() or None
    return None


def _env_layer(env: Mapping[str, str]) -> dict[str, dict[str, object]]:
    layer: dict[str, dict[str, object]] = {}
    for rule in FIELD_RULES:
        name = env_var_name(rule)
        raw = env.get(name)
        if raw is not None:
            layer.setdefault(rule.section, {})[rule.key] = _parse_env_value(rule, name, raw)
    return layer


def _parse_env_value(rule: FieldRule, name: str, raw: str) -> object:
    text = raw.strip()
    where = f"{name} -> {rule.path}"

    if rule.kind == "domains":
        # Comma-separated; blanks dropped.
        return [item.strip() for item in text.split(",") if item.strip()]
    if rule.kind == "int":
        try:
            return int(text)
        except ValueError as exc:
            raise ConfigLoadError(f"{where} must be an integer") from exc
    if rule.kind == "seconds":
        try:
            return float(text)
        except ValueError as exc:
            raise ConfigLoadError(f"{where} must be a number") from exc
    if rule.kind == "bool":
        if text.lower() in _TRUE_WORDS:
            return True
        if text.lower() in _FALSE_WORDS:
            return False
        raise ConfigLoadError(f"{where} must be a boolean (true/false/1/0/yes/no/on/off)")
    return text


def _override_layer(overrides: Mapping[str, object]) -> dict[str, dict[str, object]]:
    layer: dict[str, dict[str, object]] = {}
    for dotted in sorted(overrides):
        section, _, key = dotted.partition(".")
        if not section or not key or "." in key:
            raise ConfigLoadError(f"invalid override key {dotted!r}; expected <section>.<key>")
        layer.setdefault(section, {})[key] = overrides[dotted]
    return layer


__all__ = [
    "ConfigLoadError",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "PROFILE_ENV_VAR",
    "dump_effective_config",
    "effective_config",
    "env_var_name",
    "limits_from_config",
    "load_config",
    "resolve_log_dir",
]

"""
agent-guard — configuration schema and validation.

File: src/agent_guard/config/schema.py

Purpose
- Describe every agent-guard setting once, in ``FIELD_RULES``, and validate
  config documents against that table.

Functional requirements
- Report every problem as a ``ConfigValidationIssue`` (dotted path + message).
- Breaker and sanitizer limits may only tighten the built-in ceilings.
- Unknown keys are rejected; keys that look like credentials are rejected
  with a pointer to the environment.
- Profile overlays (``strict``, ``permissive``, or user-defined) are partial
  sections checked against the same rules.

Non-functional requirements
- Deterministic issue order: root keys, ``meta``, sections in table order,
  then profiles sorted by name.
"""

from __future__ import annotations

import copy
import math
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, Literal, TypedDict

from agent_guard.constants import (
    CONFIG_SCHEMA_VERSION,
    MAX_DISPATCH_DEPTH,
    MAX_HASH_HISTORY,
    MAX_INPUT_LENGTH,
    MAX_ITERATIONS,
)
from agent_guard.security.redaction import looks_like_secret_key

ConfigSchemaVersion: Final[int] = CONFIG_SCHEMA_VERSION
BUILTIN_PROFILE_NAMES: Final[tuple[str, ...]] = ("strict", "permissive")
REDACTED: Final[str] = "<redacted>"

FieldKind = Literal["int", "seconds", "bool", "text", "choice", "path", "domains"]


@dataclass(frozen=True, slots=True)
class FieldRule:
    """Type and bounds of one ``section.key`` setting."""

    section: str
    key: str
    kind: FieldKind
    minimum: int | None = None
    maximum: int | None = None
    choices: tuple[str, ...] = ()

    @property
    def path(self) -> str:
        return f"{self.section}.{self.key}"


FIELD_RULES: Final[tuple[FieldRule, ...]] = (
    FieldRule("sanitizer", "max_input_length", "int", minimum=1, maximum=MAX_INPUT_LENGTH),
    FieldRule("sanitizer", "allowed_url_domains", "domains"),
    FieldRule("circuit_breaker", "max_iterations", "int", minimum=1, maximum=MAX_ITERATIONS),
    FieldRule(
        "circuit_breaker", "max_dispatch_depth", "int", minimum=1, maximum=MAX_DISPATCH_DEPTH
    ),
    FieldRule("circuit_breaker", "max_hash_history", "int", minimum=1, maximum=MAX_HASH_HISTORY),
    FieldRule("circuit_breaker", "model_timeout_seconds", "seconds"),
    FieldRule("circuit_breaker", "api_timeout_seconds", "seconds"),
    FieldRule("agent", "name", "text"),
    FieldRule("agent", "model", "text"),
    FieldRule("agent", "dry_run", "bool"),
    FieldRule(
        "observability", "log_level", "choice", choices=("DEBUG", "INFO", "WARNING", "ERROR")
    ),
    FieldRule("observability", "log_format", "choice", choices=("json", "text")),
    FieldRule("observability", "log_dir", "path"),
    FieldRule("observability", "redact_secrets", "bool"),
)

SECTION_NAMES: Final[tuple[str, ...]] = tuple(dict.fromkeys(rule.section for rule in FIELD_RULES))
_RULES_BY_SECTION: Final[dict[str, dict[str, FieldRule]]] = {
    section: {rule.key: rule for rule in FIELD_RULES if rule.section == section}
    for section in SECTION_NAMES
}

_PROFILE_NAME: Final[re.Pattern[str]] = re.compile(r"^[a-z][a-z0-9_-]*$")
_HOST_LABEL: Final[str] = r"[a-z0-9]([a-z0-9-]*[a-z0-9])?"
_DOMAIN_PATTERN: Final[re.Pattern[str]] = re.compile(
    rf"^(\*\.)?{_HOST_LABEL}(\.{_HOST_LABEL})*$"
)
_SECRET_KEY_MESSAGE: Final[str] = (
    "embedded secret values are forbidden; pass credentials through the environment"
)


class MetaConfig(TypedDict):
    schema_version: int


class SanitizerConfig(TypedDict):
    max_input_length: int
    allowed_url_domains: list[str]


class CircuitBreakerConfig(TypedDict):
    max_iterations: int
    max_dispatch_depth: int
    max_hash_history: int
    model_timeout_seconds: float
    api_timeout_seconds: float


class AgentConfig(TypedDict):
    name: str
    model: str
    dry_run: bool


class ObservabilityConfig(TypedDict):
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"]
    log_format: Literal["json", "text"]
    log_dir: str
    redact_secrets: bool


class ProfileOverlay(TypedDict, total=False):
    sanitizer: dict[str, object]
    circuit_breaker: dict[str, object]
    agent: dict[str, object]
    observability: dict[str, object]


class AgentGuardConfig(TypedDict):
    meta: MetaConfig
    sanitizer: SanitizerConfig
    circuit_breaker: CircuitBreakerConfig
    agent: AgentConfig
    observability: ObservabilityConfig
    profiles: dict[str, ProfileOverlay]


DEFAULT_CONFIG: Final[AgentGuardConfig] = {
    "meta": {"schema_version": ConfigSchemaVersion},
    "sanitizer": {
        "max_input_length": MAX_INPUT_LENGTH,
        "allowed_url_domains": ["github.com", "*.github.com", "*.githubusercontent.com"],
    },
    "circuit_breaker": {
        "max_iterations": MAX_ITERATIONS,
        "max_dispatch_depth": MAX_DISPATCH_DEPTH,
        "max_hash_history": MAX_HASH_HISTORY,
        "model_timeout_seconds": 300.0,
        "api_timeout_seconds": 30.0,
    },
    "agent": {
        "name": "triage-agent",
        "model": "claude-sonnet-4.5",
        "dry_run": False,
    },
    "observability": {
        "log_level": "INFO",
        "log_format": "json",
        "log_dir": "logs/",
        "redact_secrets": True,
    },
    "profiles": {
        "strict": {
            "sanitizer": {"max_input_length": 50_000},
            "circuit_breaker": {"max_iterations": 3, "max_dispatch_depth": 2},
        },
        "permissive": {},
    },
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """One validation failure at a dotted config path."""

    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    """Checked config, or ``None`` alongside the issues that rejected it."""

    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """Raised when a config document fails validation."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        lines = [f"- {issue.path}: {issue.message}" for issue in self.issues]
        super().__init__("invalid config:\n" + ("\n".join(lines) or "unknown validation failure"))


def default_config() -> AgentGuardConfig:
    """Return an independent copy of the built-in defaults."""

    return copy.deepcopy(DEFAULT_CONFIG)


def migration_guidance(found_version: int) -> str:
    if found_version < ConfigSchemaVersion:
        return (
            f"schema version {found_version} is older than supported {ConfigSchemaVersion}; "
            "upgrade agent_guard.toml to the current schema"
        )
    if found_version > ConfigSchemaVersion:
        return (
            f"schema version {found_version} is newer than supported {ConfigSchemaVersion}; "
            "upgrade the agent-guard runtime"
        )
    return "schema version is current"


def merge_config(base: Mapping[str, Any], overlay: Mapping[str, Any]) -> dict[str, Any]:
    """Return ``base`` with ``overlay`` merged in table by table. Neither input is aliased."""

    merged: dict[str, Any] = copy.deepcopy(dict(base))
    for key, value in overlay.items():
        if isinstance(value, Mapping):
            current = merged.get(key)
            merged[key] = merge_config(current if isinstance(current, Mapping) else {}, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def apply_profile_overlay(config: Mapping[str, Any], profile: str | None) -> dict[str, Any]:
    """Merge the named profile over ``config`` and validate the result."""

    selected = profile.strip() if profile else ""
    if not selected:
        return merge_config({}, config)

    profiles = config.get("profiles")
    overlay = profiles.get(selected) if isinstance(profiles, Mapping) else None
    if not isinstance(overlay, Mapping):
        raise ConfigValidationError(
            (ConfigValidationIssue("profiles", f"profile {selected!r} is not defined"),)
        )
    return assert_valid_config(merge_config(config, overlay), active_profile=selected)


def validate_config(
    config: Mapping[str, object] | object,
    *,
    active_profile: str | None = None,
) -> ConfigValidationResult:
    """Check a whole config document; with ``active_profile`` the merged view is checked too."""

    issues: list[ConfigValidationIssue] = []
    if not isinstance(config, Mapping):
        issues.append(
            ConfigValidationIssue("<root>", f"expected object, got {type(config).__name__}")
        )
        return ConfigValidationResult(config=None, issues=tuple(issues))

    checked = _check_document(config, issues)

    selected = active_profile.strip() if isinstance(active_profile, str) else ""
    if selected:
        overlay = checked.get("profiles", {}).get(selected)
        if overlay is None:
            issues.append(ConfigValidationIssue("profiles", f"profile {selected!r} is not defined"))
        else:
            _check_document(merge_config(checked, overlay), issues)

    if issues:
        return ConfigValidationResult(config=None, issues=tuple(issues))
    return ConfigValidationResult(config=checked, issues=())


def assert_valid_config(
    config: Mapping[str, object] | object,
    *,
    active_profile: str | None = None,
) -> dict[str, Any]:
    result = validate_config(config, active_profile=active_profile)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def redact_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Copy ``config`` with the value of every credential-looking key replaced."""

    if not isinstance(config, Mapping):
        return {}
    redacted: dict[str, Any] = {}
    for key in sorted(config, key=str):
        value = config[key]
        if looks_like_secret_key(str(key)):
            redacted[key] = REDACTED
        elif isinstance(value, Mapping):
            redacted[key] = redact_config(value)
        else:
            redacted[key] = copy.deepcopy(value)
    return redacted


def _check_document(
    payload: Mapping[str, object], issues: list[ConfigValidationIssue]
) -> dict[str, Any]:
    _check_keys(
        payload,
        allowed={"meta", "profiles", *SECTION_NAMES},
        required={"meta", *SECTION_NAMES},
        path="",
        issues=issues,
    )
    checked: dict[str, Any] = {}

    meta = _table_at(payload, "meta", "meta", issues)
    if meta is not None:
        checked["meta"] = _check_meta(meta, issues)

    for section in SECTION_NAMES:
        table = _table_at(payload, section, section, issues)
        if table is not None:
            checked[section] = _check_section(section, table, section, issues, partial=False)

    profiles = _table_at(payload, "profiles", "profiles", issues)
    if profiles is not None:
        checked["profiles"] = _check_profiles(profiles, issues)
    return checked


def _check_meta(table: Mapping[str, object], issues: list[ConfigValidationIssue]) -> dict[str, Any]:
    _check_keys(
        table, allowed={"schema_version"}, required={"schema_version"}, path="meta", issues=issues
    )
    if "schema_version" not in table:
        return {}
    rule = FieldRule("meta", "schema_version", "int", minimum=1)
    version = _coerce(rule, table["schema_version"], rule.path, issues)
    if version is None:
        return {}
    if version != ConfigSchemaVersion:
        issues.append(ConfigValidationIssue(rule.path, migration_guidance(version)))
    return {"schema_version": version}


def _check_section(
    section: str,
    table: Mapping[str, object],
    path: str,
    issues: list[ConfigValidationIssue],
    *,
    partial: bool,
) -> dict[str, Any]:
    rules = _RULES_BY_SECTION[section]
    _check_keys(
        table,
        allowed=set(rules),
        required=set() if partial else set(rules),
        path=path,
        issues=issues,
    )
    checked: dict[str, Any] = {}
    for key, rule in rules.items():
        if key not in table:
            continue
        value = _coerce(rule, table[key], f"{path}.{key}", issues)
        if value is not None:
            checked[key] = value
    return checked


def _check_profiles(
    profiles: Mapping[str, object], issues: list[ConfigValidationIssue]
) -> dict[str, Any]:
    checked: dict[str, Any] = {}
    for name in sorted(profiles, key=str):
        path = f"profiles.{name}"
        if not isinstance(name, str) or not _PROFILE_NAME.fullmatch(name):
            issues.append(ConfigValidationIssue(path, "profile name must match ^[a-z][a-z0-9_-]*$"))
            continue
        overlay = _table_at(profiles, name, path, issues)
        if overlay is None:
            continue
        _check_keys(overlay, allowed=set(SECTION_NAMES), required=set(), path=path, issues=issues)
        sections: dict[str, Any] = {}
        for section in SECTION_NAMES:
            table = _table_at(overlay, section, f"{path}.{section}", issues)
            if table is not None:
                sections[section] = _check_section(
                    section, table, f"{path}.{section}", issues, partial=True
                )
        checked[name] = sections
    return checked


def _check_keys(
    payload: Mapping[str, object],
    *,
    allowed: set[str],
    required: set[str],
    path: str,
    issues: list[ConfigValidationIssue],
) -> None:
    prefix = f"{path}." if path else ""
    for key in sorted(payload, key=str):
        if key in allowed:
            continue
        message = _SECRET_KEY_MESSAGE if looks_like_secret_key(str(key)) else "unknown field"
        issues.append(ConfigValidationIssue(f"{prefix}{key}", message))
    for key in sorted(required - set(payload)):
        issues.append(ConfigValidationIssue(f"{prefix}{key}", "missing required field"))


def _table_at(
    payload: Mapping[str, object],
    key: str,
    path: str,
    issues: list[ConfigValidationIssue],
) -> Mapping[str, object] | None:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, Mapping):
        issues.append(ConfigValidationIssue(path, f"expected object, got {type(value).__name__}"))
        return None
    return value


def _coerce(
    rule: FieldRule, value: object, path: str, issues: list[ConfigValidationIssue]
) -> Any:
    """Return the checked value for ``rule``, or ``None`` after recording an issue."""

    problem: str | None = None
    type_name = type(value).__name__

    if rule.kind == "bool":
        if isinstance(value, bool):
            return value
        problem = f"expected boolean, got {type_name}"

    elif rule.kind == "int":
        if isinstance(value, bool) or not isinstance(value, int):
            problem = f"expected integer, got {type_name}"
        elif rule.minimum is not None and value < rule.minimum:
            problem = f"must be >= {rule.minimum}"
        elif rule.maximum is not None and value > rule.maximum:
            problem = f"must be <= {rule.maximum}"
        else:
            return value

    elif rule.kind == "seconds":
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            problem = f"expected number, got {type_name}"
        elif not math.isfinite(value) or value <= 0:
            problem = "must be a finite number of seconds > 0"
        else:
            return float(value)

    elif rule.kind == "domains":
        return _coerce_domains(value, path, issues)

    elif not isinstance(value, str):
        problem = f"expected string, got {type_name}"
    elif not value.strip():
        problem = "must not be empty"
    elif rule.kind == "choice" and value.strip() not in rule.choices:
        expected = ", ".join(sorted(rule.choices))
        problem = f"invalid value {value.strip()!r}; expected one of: {expected}"
    elif rule.kind == "path" and "\x00" in value:
        problem = "must not contain NUL bytes"
    else:
        return value.strip()

    issues.append(ConfigValidationIssue(path, problem))
    return None


def _coerce_domains(
    value: object, path: str, issues: list[ConfigValidationIssue]
) -> list[str] | None:
    if not isinstance(value, (list, tuple)):
        issues.append(
            ConfigValidationIssue(path, f"expected array of strings, got {type(value).__name__}")
        )
        return None
    before = len(issues)
    domains: list[str] = []
    for index, item in enumerate(value):
        item_path = f"{path}[{index}]"
        if not isinstance(item, str):
            issues.append(
                ConfigValidationIssue(item_path, f"expected string, got {type(item).__name__}")
            )
            continue
        domain = item.strip().lower()
        if not _DOMAIN_PATTERN.fullmatch(domain):
            issues.append(
                ConfigValidationIssue(item_path, "must be a hostname or a *.suffix pattern")
            )
        elif domain not in domains:
            domains.append(domain)
    return domains if len(issues) == before else None


__all__ = [
    "AgentGuardConfig",
    "BUILTIN_PROFILE_NAMES",
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "FIELD_RULES",
    "FieldRule",
    "ProfileOverlay",
    "REDACTED",
    "SECTION_NAMES",
    "apply_profile_overlay",
    "assert_valid_config",
    "default_config",
    "looks_like_secret_key",
    "merge_config",
    "migration_guidance",
    "redact_config",
    "validate_config",
]

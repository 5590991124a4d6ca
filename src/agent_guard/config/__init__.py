"""
agent-guard config package public API.

File: src/agent_guard/config/__init__.py

Purpose
- Export config loading/validation entrypoints and public error types.

Functional requirements
- Support loading from ``agent_guard.toml`` + ``AGENT_GUARD_`` env overrides.
- Fail fast with clear structured validation/load errors.
"""

from agent_guard.config.loader import (
    DEFAULT_CONFIG_FILE,
    ENV_PREFIX,
    PROFILE_ENV_VAR,
    ConfigLoadError,
    dump_effective_config,
    effective_config,
    env_var_name,
    limits_from_config,
    load_config,
    resolve_log_dir,
)
from agent_guard.config.schema import (
    BUILTIN_PROFILE_NAMES,
    DEFAULT_CONFIG,
    FIELD_RULES,
    SECTION_NAMES,
    AgentGuardConfig,
    ConfigSchemaVersion,
    ConfigValidationError,
    ConfigValidationIssue,
    ConfigValidationResult,
    FieldRule,
    ProfileOverlay,
    apply_profile_overlay,
    assert_valid_config,
    default_config,
    looks_like_secret_key,
    merge_config,
    migration_guidance,
    redact_config,
    validate_config,
)

__all__ = [
    "AgentGuardConfig",
    "BUILTIN_PROFILE_NAMES",
    "ConfigLoadError",
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "FIELD_RULES",
    "FieldRule",
    "PROFILE_ENV_VAR",
    "ProfileOverlay",
    "SECTION_NAMES",
    "apply_profile_overlay",
    "assert_valid_config",
    "default_config",
    "dump_effective_config",
    "effective_config",
    "env_var_name",
    "limits_from_config",
    "load_config",
    "looks_like_secret_key",
    "merge_config",
    "migration_guidance",
    "redact_config",
    "resolve_log_dir",
    "validate_config",
]

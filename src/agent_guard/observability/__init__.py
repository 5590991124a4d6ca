"""Observability: structured logging and agent decision audit entries."""

from agent_guard.observability.audit import (
    AgentAuditEntry,
    create_audit_entry,
    format_audit_log,
    record_audit_entry,
)
from agent_guard.observability.logging import (
    LoggingConfig,
    StructuredLoggingHandle,
    configure_structlog,
    correlation_scope,
    default_log_redactor,
    get_correlation_context,
    setup_logging,
    setup_structured_logging,
    shutdown_logging,
)

__all__ = [
    "AgentAuditEntry",
    "LoggingConfig",
    "StructuredLoggingHandle",
    "configure_structlog",
    "correlation_scope",
    "create_audit_entry",
    "default_log_redactor",
    "format_audit_log",
    "get_correlation_context",
    "record_audit_entry",
    "setup_logging",
    "setup_structured_logging",
    "shutdown_logging",
]

"""
agent-guard — security guards for LLM agents acting on untrusted repository text.

File: src/agent_guard/__init__.py

Purpose
- Package root. Defines public package-level metadata and import boundaries.

Layers
- ``security``: ingress sanitization of untrusted text and URLs.
- ``validation``: egress validation of model output into bounded records.
- ``control_plane``: circuit breaker, trigger gate and guarded run loop.
- ``prompting`` / ``pipeline``: prompt assembly and the guarded agent flows.

Functional requirements
- Must not have side effects at import time (no config loading, no logging init).
"""

__version__ = "0.1.0"

__all__ = ["__version__"]

"""Command-line surface for agent-guard."""

from agent_guard.ui.cli import CLIError, build_parser, run_cli

__all__ = ["CLIError", "build_parser", "run_cli"]

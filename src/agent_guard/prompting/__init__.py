"""Prompt assembly with explicit trust boundaries."""

from agent_guard.prompting.secure_prompt import (
    RESPONSE_DIRECTIVE,
    PromptAssemblyError,
    RenderedPrompt,
    UntrustedField,
    build_review_prompt,
    build_secure_prompt,
    render_prompt,
)

__all__ = [
    "PromptAssemblyError",
    "RESPONSE_DIRECTIVE",
    "RenderedPrompt",
    "UntrustedField",
    "build_review_prompt",
    "build_secure_prompt",
    "render_prompt",
]

"""
agent-guard — prompt assembly around untrusted content

File: src/agent_guard/prompting/secure_prompt.py

Purpose
- Render model prompts in which trusted instructions and untrusted fields are
  separated by explicit trust-boundary markers.

Functional requirements
- Every untrusted field passes through the sanitizer first; a flagged field is
  preceded by its warning line inside the boundary.
- Rendering is deterministic; the prompt hash identifies the exact text sent.

Non-functional requirements
- Untrusted values are template data only and are never evaluated as template
  source.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final

from jinja2 import Environment, StrictUndefined

from agent_guard.constants import MAX_INPUT_LENGTH
from agent_guard.security.sanitizer import SanitizeResult, sanitize, wrap_with_trust_boundary
from agent_guard.utils.hashing import sha256_text

RESPONSE_DIRECTIVE: Final[str] = (
    "Respond with valid JSON only. Do not include any explanatory text outside the JSON."
)

_PROMPT_TEMPLATE_SOURCE: Final[str] = (
    "{{ instructions }}\n"
    "{% for block in untrusted_blocks %}\n{{ block }}\n{% endfor %}\n"
    "{{ response_directive }}"
)

_ENVIRONMENT: Final[Environment] = Environment(
    undefined=StrictUndefined,
    autoescape=False,
    trim_blocks=False,
    lstrip_blocks=False,
    newline_sequence="\n",
    keep_trailing_newline=True,
)
_PROMPT_TEMPLATE = _ENVIRONMENT.from_string(_PROMPT_TEMPLATE_SOURCE)


class PromptAssemblyError(ValueError):
    """Raised when trusted prompt inputs are unusable."""


@dataclass(frozen=True, slots=True)
class UntrustedField:
    """One untrusted value and the boundary label it is rendered under."""

    label: str
    context_label: str
    value: object


@dataclass(frozen=True, slots=True)
class RenderedPrompt:
    """Rendered prompt, its fingerprint and the tags found in its untrusted fields."""

    prompt: str
    prompt_hash: str
    detected_patterns: tuple[str, ...]

    @property
    def is_flagged(self) -> bool:
        return bool(self.detected_patterns)

    def to_dict(self) -> dict[str, object]:
        return {
            "prompt": self.prompt,
            "prompt_hash": self.prompt_hash,
            "detected_patterns": list(self.detected_patterns),
        }


def build_secure_prompt(
    instructions: str,
    *,
    title: object,
    body: object,
    max_input_length: int = MAX_INPUT_LENGTH,
) -> RenderedPrompt:
    """Render an issue prompt with sanitized, boundary-wrapped title and body."""

    return render_prompt(
        instructions,
        (
            UntrustedField("ISSUE TITLE", "issue-title", title),
            UntrustedField("ISSUE BODY", "issue-body", body),
        ),
        max_input_length=max_input_length,
    )


def build_review_prompt(
    instructions: str,
    *,
    diff: object,
    title: object = None,
    body: object = None,
    max_input_length: int = MAX_INPUT_LENGTH,
) -> RenderedPrompt:
    """Render a pull request review prompt; title and body are optional."""

    fields: list[UntrustedField] = []
    if title is not None:
        fields.append(UntrustedField("PR TITLE", "pr-title", title))
    if body is not None:
        fields.append(UntrustedField("PR BODY", "pr-body", body))
    fields.append(UntrustedField("CODE DIFF", "pr-diff", diff))
    return render_prompt(instructions, fields, max_input_length=max_input_length)


def render_prompt(
    instructions: str,
    fields: tuple[UntrustedField, ...] | list[UntrustedField],
    *,
    max_input_length: int = MAX_INPUT_LENGTH,
) -> RenderedPrompt:
    if not isinstance(instructions, str) or not instructions.strip():
        raise PromptAssemblyError("instructions must be a non-empty string")

    blocks: list[str] = []
    detected: list[str] = []
    for field in fields:
        result = sanitize(field.value, field.context_label, max_length=max_input_length)
        blocks.append(wrap_with_trust_boundary(_field_content(result), field.label))
        for tag in result.detected_patterns:
            if tag not in detected:
                detected.append(tag)

    prompt = _PROMPT_TEMPLATE.render(
        instructions=instructions.strip(),
        untrusted_blocks=blocks,
        response_directive=RESPONSE_DIRECTIVE,
    ).strip()
    return RenderedPrompt(
        prompt=prompt,
        prompt_hash=sha256_text(prompt),
        detected_patterns=tuple(detected),
    )


def _field_content(result: SanitizeResult) -> str:
    if result.warning_prefix is None:
        return result.sanitized_text
    return f"{result.warning_prefix}\n{result.sanitized_text}"


__all__ = [
    "PromptAssemblyError",
    "RESPONSE_DIRECTIVE",
    "RenderedPrompt",
    "UntrustedField",
    "build_review_prompt",
    "build_secure_prompt",
    "render_prompt",
]

"""Injectable boundaries between the guard layer and the outside world."""

from __future__ import annotations

from typing import Protocol


class ModelClient(Protocol):
    """Sends one fully assembled prompt to a language model and returns its raw text."""

    async def complete(self, prompt: str) -> str: ...


__all__ = ["ModelClient"]

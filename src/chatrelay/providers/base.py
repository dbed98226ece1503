"""
Provider base classes — the AI backend boundary.

A chat provider takes the stored conversation plus the new prompt parts
and returns one ChatResult, or None when the backend produced no
structured result at all. Implementations must honor that contract.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Sequence

from chatrelay.session.models import ContentPart, Turn


@dataclass
class ChatResult:
    """
    Outcome of one chat turn.

    Exactly one of these holds for a well-formed result:
      - text is a non-empty reply
      - text is empty and block_reason says why the backend declined
      - text is empty and block_reason is None (declined without a reason)
    """

    text: str | None = None
    block_reason: str | None = None
    safety_ratings: list[dict] = field(default_factory=list)
    finish_reason: str | None = None

    @property
    def blocked(self) -> bool:
        return not self.text


class ChatProvider(ABC):
    """Generative chat backend interface."""

    name: str = "base"

    @abstractmethod
    async def start(self) -> None:
        ...

    @abstractmethod
    async def stop(self) -> None:
        ...

    @abstractmethod
    async def send_turn(
        self,
        history: Sequence[Turn],
        prompt: Sequence[ContentPart],
    ) -> ChatResult | None:
        """Send one user turn on top of history and return the model's answer."""
        ...

    async def health_check(self) -> dict:
        return {"provider": self.__class__.__name__, "status": "unknown"}

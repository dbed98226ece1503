"""
Session Models — data structures for per-user conversation state.

Hierarchy:
  ConversationSession → Turn → ContentPart

ContentPart is a closed union of TextPart and ImagePart. Consumers match
on it exhaustively and raise TypeError for anything else.

All models are frozen dataclasses — create new instances for modifications.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Union


class Role(str, Enum):
    """Who a turn is attributed to."""

    USER = "user"
    MODEL = "model"


@dataclass(frozen=True)
class TextPart:
    text: str


@dataclass(frozen=True)
class ImagePart:
    """Inline image bytes with their MIME type."""

    data: bytes = field(repr=False)
    mime_type: str

    def __repr__(self) -> str:
        return f"ImagePart(mime_type={self.mime_type!r}, size={len(self.data)})"


ContentPart = Union[TextPart, ImagePart]


@dataclass(frozen=True)
class Turn:
    """One message-equivalent unit. Part order is reading order."""

    role: Role
    parts: tuple[ContentPart, ...]

    @classmethod
    def user(cls, *parts: ContentPart) -> Turn:
        return cls(role=Role.USER, parts=tuple(parts))

    @classmethod
    def model(cls, text: str) -> Turn:
        return cls(role=Role.MODEL, parts=(TextPart(text),))


@dataclass(frozen=True)
class ConversationSession:
    """
    The ordered conversation history for one sender.

    turns[0] is the persona turn, turns[1] the greeting turn. After that
    turns only ever grow in (user, model) pairs, so len(turns) is even
    and at least 2.
    """

    session_id: str
    turns: tuple[Turn, ...]
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)

    @classmethod
    def seeded(cls, session_id: str, persona: str, greeting: str) -> ConversationSession:
        return cls(
            session_id=session_id,
            turns=(Turn.user(TextPart(persona)), Turn.model(greeting)),
        )

    def with_exchange(self, user_turn: Turn, model_turn: Turn) -> ConversationSession:
        """Return a copy with one committed exchange appended."""
        if user_turn.role is not Role.USER or model_turn.role is not Role.MODEL:
            raise ValueError("An exchange is a user turn followed by a model turn")
        return ConversationSession(
            session_id=self.session_id,
            turns=self.turns + (user_turn, model_turn),
            created_at=self.created_at,
            updated_at=time.time(),
        )


def describe_part(part: ContentPart) -> str:
    """Short human-readable form for logs."""
    if isinstance(part, TextPart):
        return f"text({len(part.text)} chars)"
    if isinstance(part, ImagePart):
        return f"image({part.mime_type}, {len(part.data) / 1024:.1f} KB)"
    raise TypeError(f"Unknown content part: {type(part).__name__}")

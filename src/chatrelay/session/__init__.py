"""
Session management — per-sender conversation history.

Key components:
- ConversationSession / Turn / ContentPart: immutable history models
- SessionStore: in-memory get-or-create / replace with per-session locks
"""

from chatrelay.session.models import (
    ContentPart,
    ConversationSession,
    ImagePart,
    Role,
    TextPart,
    Turn,
)
from chatrelay.session.store import SessionStore

__all__ = [
    "ContentPart",
    "ConversationSession",
    "ImagePart",
    "Role",
    "TextPart",
    "Turn",
    "SessionStore",
]

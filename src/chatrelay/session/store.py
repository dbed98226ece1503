"""
Session Store — in-memory conversation state, one session per sender.

Sessions are created lazily on first contact, seeded with the persona and
greeting turns, and live for the process lifetime. Nothing is persisted;
a restart starts every conversation over.

Usage:
    store = SessionStore(persona="...", greeting="...")

    session = store.get_or_create("6281234567890@c.us")
    async with store.lock(session.session_id):
        ...
        store.replace(session.session_id, session.with_exchange(user, model))
"""

from __future__ import annotations

import asyncio
import logging

from chatrelay.session.models import ConversationSession

logger = logging.getLogger(__name__)


class SessionStore:
    """
    Owns the session_id → ConversationSession map.

    Sessions are immutable, so a borrower can read one freely; the only
    way to grow history is replace(). Per-session locks let callers
    serialize read-modify-replace cycles for one sender.
    """

    def __init__(self, persona: str, greeting: str) -> None:
        self._persona = persona
        self._greeting = greeting
        self._sessions: dict[str, ConversationSession] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def get_or_create(self, session_id: str) -> ConversationSession:
        """Return the stored session, creating a seeded one on first contact."""
        session = self._sessions.get(session_id)
        if session is None:
            session = ConversationSession.seeded(
                session_id, self._persona, self._greeting
            )
            self._sessions[session_id] = session
            logger.info("Started new conversation for %s", session_id)
        else:
            logger.debug(
                "Continuing conversation for %s (turns=%d)",
                session_id,
                len(session.turns),
            )
        return session

    def get(self, session_id: str) -> ConversationSession | None:
        return self._sessions.get(session_id)

    def replace(self, session_id: str, session: ConversationSession) -> None:
        """Store an updated session. Single-step, so never observed half-written."""
        if session.session_id != session_id:
            raise ValueError(
                f"Session id mismatch: {session.session_id!r} stored as {session_id!r}"
            )
        count = len(session.turns)
        if count < 2 or count % 2:
            raise ValueError(f"Session {session_id} has an invalid turn count: {count}")
        self._sessions[session_id] = session

    def lock(self, session_id: str) -> asyncio.Lock:
        """The lock guarding exchanges for one session. Waiters are FIFO."""
        lock = self._locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[session_id] = lock
        return lock

    def stats(self) -> dict:
        return {
            "sessions": len(self._sessions),
            "turns": sum(len(s.turns) for s in self._sessions.values()),
        }

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

"""
Presence Signaler — the "typing..." indicator around an AI call.

Fire-and-forget: failures are logged and never propagated, so a broken
typing indicator can't fail an exchange.

Without per-session serialization several exchanges can hold presence for
one sender at once. Each registers under its own holder id, and typing is
only cleared when the last holder ends.
"""

from __future__ import annotations

import logging

from chatrelay.transport.base import ChatTransport

logger = logging.getLogger(__name__)


class PresenceSignaler:
    def __init__(self, transport: ChatTransport) -> None:
        self._transport = transport
        self._holders: dict[str, set[str]] = {}

    async def begin(self, session_id: str, holder: str = "") -> None:
        self._holders.setdefault(session_id, set()).add(holder)
        try:
            await self._transport.start_typing(session_id)
        except Exception as e:
            logger.warning("Could not start typing for %s: %s", session_id, e)

    async def end(self, session_id: str, holder: str = "") -> None:
        holders = self._holders.get(session_id)
        if holders is not None:
            holders.discard(holder)
            if holders:
                logger.debug(
                    "Typing for %s still held by %d exchange(s)", session_id, len(holders)
                )
                return
            del self._holders[session_id]
        try:
            await self._transport.clear_typing(session_id)
        except Exception as e:
            logger.warning("Could not clear typing for %s: %s", session_id, e)

    def is_active(self, session_id: str, holder: str | None = None) -> bool:
        """True between begin() and end(). With a holder, only for that holder."""
        holders = self._holders.get(session_id, ())
        if holder is None:
            return bool(holders)
        return holder in holders

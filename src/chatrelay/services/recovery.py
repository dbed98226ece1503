"""
Error Recovery Handler — the exchange's last-resort boundary.

On an unhandled failure: clear the typing indicator if it is still on,
then tell the user something went wrong, quoting the error message. If
that apology can't be sent either, log it and stop. Never raises.
"""

from __future__ import annotations

import logging

from chatrelay.core.metrics import metrics
from chatrelay.services.presence import PresenceSignaler
from chatrelay.transport.base import ChatTransport

logger = logging.getLogger(__name__)

APOLOGY = (
    "Whoops, something went wrong on my side. Please try again later."
    "\n\n(Error detail: {detail})"
)


def error_detail(exc: BaseException) -> str:
    return str(exc) or "Unknown error"


class ErrorRecoveryHandler:
    def __init__(self, transport: ChatTransport, presence: PresenceSignaler) -> None:
        self._transport = transport
        self._presence = presence

    async def recover(self, sender_id: str, exc: BaseException, holder: str = "") -> None:
        logger.error(
            "Exchange failed for %s: %s",
            sender_id,
            exc,
            exc_info=exc,
            extra={"session_id": sender_id},
        )

        if self._presence.is_active(sender_id, holder):
            await self._presence.end(sender_id, holder)

        try:
            await self._transport.send_message(
                sender_id, APOLOGY.format(detail=error_detail(exc))
            )
        except Exception as send_error:
            metrics.inc("exchange.secondary_failures")
            logger.error(
                "Could not send error reply to %s: %s",
                sender_id,
                send_error,
                extra={"session_id": sender_id},
            )

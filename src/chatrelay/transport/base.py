"""
Base Transport Interface — abstract base class for chat transports.

A transport connects the relay to a chat network. Inbound traffic is
published on the EventBus as typed events; outbound traffic goes through
the send/reply/typing methods below. Outbound failures raise
TransportError.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from fastapi import APIRouter

from chatrelay.kernel.event_bus import TRANSPORT_TOPIC, EventBus
from chatrelay.transport.events import InboundMessage, TransportEvent


class ChatTransport(ABC):
    """Base class for all chat transports."""

    # Transport name - must be unique
    name: str = "base"

    def __init__(self, event_bus: EventBus):
        self._event_bus = event_bus
        self._running = False

    @abstractmethod
    async def start(self) -> None:
        """Connect to the chat network. Raises TransportError on failure."""

    @abstractmethod
    async def stop(self) -> None:
        """Graceful shutdown."""

    @abstractmethod
    async def reply(self, message: InboundMessage, text: str) -> None:
        """Reply to a specific inbound message (quoted reply)."""

    @abstractmethod
    async def send_message(self, chat_id: str, text: str) -> None:
        """Send a plain message to a chat."""

    @abstractmethod
    async def start_typing(self, chat_id: str) -> None:
        """Show the typing indicator in a chat."""

    @abstractmethod
    async def clear_typing(self, chat_id: str) -> None:
        """Clear the typing indicator in a chat."""

    @abstractmethod
    async def get_status(self) -> dict:
        ...

    def create_router(self) -> APIRouter | None:
        """HTTP routes the transport needs mounted (webhooks). None if none."""
        return None

    async def _emit(self, event: TransportEvent) -> None:
        await self._event_bus.publish(TRANSPORT_TOPIC, event)

    @property
    def is_running(self) -> bool:
        return self._running

    def __repr__(self) -> str:
        return f"<{self.name} Transport>"

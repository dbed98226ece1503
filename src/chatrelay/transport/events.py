"""
Transport Events — the typed messages a chat transport emits.

Lifecycle events describe the connection (pairing QR, authentication,
readiness). MessageReceived carries one inbound chat message, normalized
to InboundMessage so the exchange pipeline never sees transport payloads.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Awaitable, Callable, Union


@dataclass(frozen=True)
class MediaPayload:
    """A downloaded attachment."""

    data: bytes = field(repr=False)
    mime_type: str

    @property
    def is_image(self) -> bool:
        return self.mime_type.lower().startswith("image/")


MediaFetcher = Callable[[], Awaitable["MediaPayload | None"]]


async def _no_media() -> MediaPayload | None:
    return None


@dataclass(frozen=True)
class InboundMessage:
    """
    One inbound chat message.

    sender_id doubles as the session id and as the chat id replies go to.
    Media is not downloaded up front; download_media() fetches it lazily
    and returns None when the transport could not provide it.
    """

    message_id: str
    sender_id: str
    text_body: str | None = None
    has_media: bool = False
    is_status: bool = False
    is_from_self: bool = False
    fetch_media: MediaFetcher = field(default=_no_media, repr=False, compare=False)

    async def download_media(self) -> MediaPayload | None:
        return await self.fetch_media()


@dataclass(frozen=True)
class QRReady:
    code: str


@dataclass(frozen=True)
class Authenticated:
    pass


@dataclass(frozen=True)
class AuthFailed:
    reason: str = ""


@dataclass(frozen=True)
class Ready:
    pass


@dataclass(frozen=True)
class Disconnected:
    reason: str = ""


@dataclass(frozen=True)
class MessageReceived:
    message: InboundMessage


TransportEvent = Union[QRReady, Authenticated, AuthFailed, Ready, Disconnected, MessageReceived]

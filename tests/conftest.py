"""
Shared fixtures for relay tests.

FakeTransport and FakeProvider stand in for the WhatsApp bridge and the
AI backend: they record every call and can be told to fail.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from chatrelay.core.metrics import metrics
from chatrelay.kernel.event_bus import EventBus
from chatrelay.providers.base import ChatProvider, ChatResult
from chatrelay.services.dispatcher import TurnDispatcher
from chatrelay.services.normalizer import MessageNormalizer
from chatrelay.services.presence import PresenceSignaler
from chatrelay.services.recovery import ErrorRecoveryHandler
from chatrelay.session.store import SessionStore
from chatrelay.transport.base import ChatTransport
from chatrelay.transport.events import InboundMessage, MediaPayload

PERSONA = "You are TestBot."
GREETING = "Hi! I'm TestBot."
FIXED_NOW = datetime(2024, 5, 17, 14, 30, 5, tzinfo=timezone.utc)


# ── Fakes ──────────────────────────────────────────────────


class FakeTransport(ChatTransport):
    name = "fake"

    def __init__(self, event_bus: EventBus | None = None):
        super().__init__(event_bus or EventBus())
        self.sent: list[tuple[str, str]] = []
        self.replies: list[tuple[str, str]] = []
        self.typing: list[tuple[str, str]] = []
        self.send_error: Exception | None = None
        self.reply_error: Exception | None = None
        self.typing_error: Exception | None = None
        self.started = False
        self.stopped = False

    async def start(self) -> None:
        self.started = True
        self._running = True

    async def stop(self) -> None:
        self.stopped = True
        self._running = False

    async def reply(self, message: InboundMessage, text: str) -> None:
        if self.reply_error:
            raise self.reply_error
        self.replies.append((message.message_id, text))

    async def send_message(self, chat_id: str, text: str) -> None:
        if self.send_error:
            raise self.send_error
        self.sent.append((chat_id, text))

    async def start_typing(self, chat_id: str) -> None:
        if self.typing_error:
            raise self.typing_error
        self.typing.append(("start", chat_id))

    async def clear_typing(self, chat_id: str) -> None:
        if self.typing_error:
            raise self.typing_error
        self.typing.append(("clear", chat_id))

    async def get_status(self) -> dict:
        return {"transport": self.name, "running": self._running}


class FakeProvider(ChatProvider):
    """Returns queued results (or raises queued exceptions) in order.

    With a gate set, every call waits on it before answering.
    """

    name = "fake"

    def __init__(self, results=None, gate: asyncio.Event | None = None):
        self.results = list(results or [])
        self.gate = gate
        self.calls: list[tuple[tuple, tuple]] = []
        self.started = False

    async def start(self) -> None:
        self.started = True

    async def stop(self) -> None:
        self.started = False

    async def send_turn(self, history, prompt):
        self.calls.append((tuple(history), tuple(prompt)))
        if self.gate is not None:
            await self.gate.wait()
        result = self.results.pop(0) if self.results else ChatResult(text=f"reply {len(self.calls)}")
        if isinstance(result, BaseException):
            raise result
        return result

    async def health_check(self) -> dict:
        return {"provider": self.name, "status": "ready" if self.started else "not_started"}


def make_message(
    text: str | None = "Hello",
    sender: str = "6281234567890@c.us",
    message_id: str = "msg-1",
    media: MediaPayload | None = None,
    has_media: bool | None = None,
    media_error: Exception | None = None,
    is_status: bool = False,
    is_from_self: bool = False,
) -> InboundMessage:
    async def fetch() -> MediaPayload | None:
        if media_error is not None:
            raise media_error
        return media

    return InboundMessage(
        message_id=message_id,
        sender_id=sender,
        text_body=text,
        has_media=(media is not None or media_error is not None) if has_media is None else has_media,
        is_status=is_status,
        is_from_self=is_from_self,
        fetch_media=fetch,
    )


async def settle(rounds: int = 20) -> None:
    """Let every ready task run until it blocks."""
    for _ in range(rounds):
        await asyncio.sleep(0)


# ── Fixtures ───────────────────────────────────────────────


@pytest.fixture(autouse=True)
def _reset_metrics():
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def store() -> SessionStore:
    return SessionStore(persona=PERSONA, greeting=GREETING)


@pytest.fixture
def normalizer() -> MessageNormalizer:
    return MessageNormalizer(clock=lambda: FIXED_NOW)


@pytest.fixture
def make_dispatcher(store, normalizer, transport):
    """Build a TurnDispatcher around the shared fakes."""

    def _make(provider: ChatProvider, **kwargs) -> TurnDispatcher:
        presence = PresenceSignaler(transport)
        return TurnDispatcher(
            store=store,
            normalizer=normalizer,
            provider=provider,
            transport=transport,
            presence=presence,
            recovery=ErrorRecoveryHandler(transport, presence),
            **kwargs,
        )

    return _make

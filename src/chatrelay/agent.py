"""
RelayApp — wires the transport, the AI backend and the exchange pipeline.

Owns the long-lived pieces (EventBus, SessionStore, provider, transport)
and the task that routes transport events:

  - MessageReceived → one independent exchange task per message
  - QRReady / Authenticated / Ready / Disconnected → logged
  - AuthFailed → fatal: exit_code becomes 1 and the on_fatal callbacks fire
    (main.py uses that to stop the HTTP server)
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

import chatrelay.core.config as config_module
from chatrelay.core.config import ChatRelayConfig
from chatrelay.core.errors import AuthFailure
from chatrelay.core.metrics import metrics
from chatrelay.kernel.event_bus import TRANSPORT_TOPIC, EventBus
from chatrelay.persona import greeting, persona_prompt
from chatrelay.providers.base import ChatProvider
from chatrelay.providers.registry import get_chat_provider
from chatrelay.services.dispatcher import ExchangeOutcome, TurnDispatcher
from chatrelay.services.normalizer import MessageNormalizer
from chatrelay.services.presence import PresenceSignaler
from chatrelay.services.recovery import ErrorRecoveryHandler
from chatrelay.session.store import SessionStore
from chatrelay.transport.base import ChatTransport
from chatrelay.transport.bridge import BridgeTransport
from chatrelay.transport.events import (
    Authenticated,
    AuthFailed,
    Disconnected,
    InboundMessage,
    MessageReceived,
    QRReady,
    Ready,
    TransportEvent,
)

logger = logging.getLogger(__name__)


class RelayApp:
    def __init__(
        self,
        cfg: ChatRelayConfig | None = None,
        event_bus: EventBus | None = None,
        transport: ChatTransport | None = None,
        provider: ChatProvider | None = None,
    ) -> None:
        self.config = cfg or config_module.config
        self.event_bus = event_bus or EventBus()
        self.transport = transport or BridgeTransport(self.event_bus, self.config.bridge)
        self.provider = provider or get_chat_provider(self.config.llm)

        self.store = SessionStore(
            persona=persona_prompt(self.config.bot),
            greeting=greeting(self.config.bot),
        )
        self.presence = PresenceSignaler(self.transport)
        self.recovery = ErrorRecoveryHandler(self.transport, self.presence)
        self.dispatcher = TurnDispatcher(
            store=self.store,
            normalizer=MessageNormalizer(),
            provider=self.provider,
            transport=self.transport,
            presence=self.presence,
            recovery=self.recovery,
            llm_timeout=self.config.llm.timeout,
            max_history_turns=self.config.llm.max_history_turns,
            serialize=self.config.relay.serialize_exchanges,
        )

        self.exit_code = 0
        self.fatal_error: Exception | None = None
        self._fatal_callbacks: list[Callable[[], None]] = []
        self._queue: asyncio.Queue | None = None
        self._listener: asyncio.Task | None = None
        self._exchanges: set[asyncio.Task] = set()

    # ─── Lifecycle ───────────────────────────────────────────────

    async def start(self) -> None:
        """Start the event listener, the provider, then the transport."""
        self._queue = self.event_bus.subscribe(TRANSPORT_TOPIC)
        self._listener = asyncio.create_task(self._listen())

        logger.info("Using AI model: %s (%s)", self.config.llm.model, self.provider.name)
        try:
            await self.provider.start()
            logger.info("Initializing WhatsApp client...")
            await self.transport.start()
        except Exception as e:
            self.exit_code = 1
            logger.critical("Startup failed: %s", e)
            # uvicorn runs no shutdown hook after a failed startup
            await self._stop_listener()
            await self.provider.stop()
            raise

        logger.info("ChatRelay started (bot=%s)", self.config.bot.name)

    async def stop(self) -> None:
        """Close the transport gracefully, then drop in-flight work."""
        logger.info("Closing WhatsApp connection...")
        await self.transport.stop()

        # Stop routing first so no new exchange starts while we cancel
        await self._stop_listener()

        for task in list(self._exchanges):
            task.cancel()
        if self._exchanges:
            await asyncio.gather(*self._exchanges, return_exceptions=True)

        await self.provider.stop()
        logger.info("Connection closed. Goodbye!")

    async def _stop_listener(self) -> None:
        if self._listener is not None:
            self._listener.cancel()
            try:
                await self._listener
            except asyncio.CancelledError:
                pass
            self._listener = None
        if self._queue is not None:
            self.event_bus.unsubscribe(TRANSPORT_TOPIC, self._queue)
            self._queue = None

    def on_fatal(self, callback: Callable[[], None]) -> None:
        self._fatal_callbacks.append(callback)

    # ─── Event routing ───────────────────────────────────────────

    async def _listen(self) -> None:
        assert self._queue is not None
        async for event in self.event_bus.listen(self._queue):
            try:
                self.route(event)
            except Exception as e:
                logger.error("Error routing %s: %s", type(event).__name__, e, exc_info=True)

    def route(self, event: TransportEvent) -> asyncio.Task | None:
        """Act on one transport event. Returns the exchange task for messages."""
        if isinstance(event, MessageReceived):
            return self.spawn_exchange(event.message)
        if isinstance(event, QRReady):
            # Rendering is the bridge's job; the raw payload is enough to pair
            logger.info("QR code received, scan it with WhatsApp on your phone: %s", event.code)
        elif isinstance(event, Authenticated):
            logger.info("Authenticated with WhatsApp")
        elif isinstance(event, AuthFailed):
            self._fail(AuthFailure(event.reason or "authentication rejected"))
        elif isinstance(event, Ready):
            logger.info("WhatsApp client ready! Connected as %s", self.config.bot.name)
        elif isinstance(event, Disconnected):
            logger.warning("WhatsApp client disconnected: %s", event.reason)
        else:
            raise TypeError(f"Unknown transport event: {type(event).__name__}")
        return None

    def spawn_exchange(self, message: InboundMessage) -> asyncio.Task:
        task: asyncio.Task[ExchangeOutcome] = asyncio.create_task(
            self.dispatcher.handle(message)
        )
        self._exchanges.add(task)
        task.add_done_callback(self._exchanges.discard)
        return task

    def _fail(self, error: Exception) -> None:
        logger.critical("Authentication FAILED: %s", error)
        self.fatal_error = error
        self.exit_code = 1
        for callback in self._fatal_callbacks:
            callback()

    # ─── Health ──────────────────────────────────────────────────

    async def health(self) -> dict:
        return {
            "status": "error" if self.fatal_error else "ok",
            "provider": await self.provider.health_check(),
            "transport": await self.transport.get_status(),
            "sessions": self.store.stats(),
            "in_flight": len(self._exchanges),
            "metrics": metrics.snapshot(),
        }

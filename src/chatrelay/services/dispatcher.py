"""
Turn Dispatcher — runs one exchange from inbound message to committed turn.

State machine per exchange:

    normalizing → presence_on → calling → presence_off
                → interpreting → replying → committing → done
                                                      ↘ failed

- normalizing: skip / ping / unsupported media / failed download end here
  with at most a fixed reply, never touching the model.
- calling: the request is the stored history plus the new prompt parts.
- interpreting: a text reply goes on to replying and committing. A reply
  blocked by the backend's safety filter is sent as a notice and NOT
  committed. No response at all is reported as a failure.
- committing: the (user, model) pair is appended only after the reply was
  handed to the transport, so history matches what the user received.

Anything else that raises goes to ErrorRecoveryHandler and the session is
left untouched.

With serialization on, an exchange holds its sender's session lock from
normalization to commit, so back-to-back messages from one sender are
answered and committed in receipt order.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum

from chatrelay.core.logging import ExchangeTimer
from chatrelay.core.metrics import metrics
from chatrelay.providers.base import ChatProvider
from chatrelay.services.normalizer import (
    Command,
    FetchFailed,
    MessageNormalizer,
    Normalized,
    Skip,
    Unsupported,
    summarize_message,
)
from chatrelay.services.presence import PresenceSignaler
from chatrelay.services.recovery import ErrorRecoveryHandler, error_detail
from chatrelay.session.models import ConversationSession, Turn, describe_part
from chatrelay.session.store import SessionStore
from chatrelay.transport.base import ChatTransport
from chatrelay.transport.events import InboundMessage

logger = logging.getLogger(__name__)

PONG_REPLY = "Pong!"
UNSUPPORTED_REPLY = (
    "Sorry, I can only process text and image messages right now. "
    "Other media isn't supported yet."
)
FETCH_FAILED_REPLY = (
    "Sorry, there was a problem downloading the media you sent. Please try again."
)
BLOCKED_REPLY = "Sorry, I can't give a response to that."
NO_RESPONSE_REPLY = "Sorry, something went wrong while processing your request."


class ExchangeState(str, Enum):
    NORMALIZING = "normalizing"
    PRESENCE_ON = "presence_on"
    CALLING = "calling"
    PRESENCE_OFF = "presence_off"
    INTERPRETING = "interpreting"
    REPLYING = "replying"
    COMMITTING = "committing"
    DONE = "done"
    FAILED = "failed"


@dataclass
class ExchangeOutcome:
    """What one exchange ended with."""

    state: ExchangeState
    reply: str | None = None
    committed: bool = False
    reason: str = ""
    exchange_id: str = ""


@dataclass
class _Exchange:
    """Per-exchange bookkeeping. Never outlives handle()."""

    message: InboundMessage
    exchange_id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    state: ExchangeState = ExchangeState.NORMALIZING
    timer: ExchangeTimer = field(default_factory=ExchangeTimer)

    @property
    def sender(self) -> str:
        return self.message.sender_id

    def enter(self, state: ExchangeState) -> None:
        self.state = state
        logger.debug(
            "Exchange %s → %s",
            self.exchange_id,
            state.value,
            extra={"exchange_id": self.exchange_id, "state": state.value},
        )

    def outcome(self, state: ExchangeState, **kwargs) -> ExchangeOutcome:
        self.state = state
        return ExchangeOutcome(state=state, exchange_id=self.exchange_id, **kwargs)


def window_history(turns: tuple[Turn, ...], max_turns: int) -> tuple[Turn, ...]:
    """Seed pair plus the most recent max_turns turns, in whole pairs. 0 keeps all."""
    if max_turns <= 0 or len(turns) - 2 <= max_turns:
        return turns
    keep = max_turns - max_turns % 2
    if not keep:
        return turns[:2]
    return turns[:2] + turns[-keep:]


class TurnDispatcher:
    def __init__(
        self,
        store: SessionStore,
        normalizer: MessageNormalizer,
        provider: ChatProvider,
        transport: ChatTransport,
        presence: PresenceSignaler,
        recovery: ErrorRecoveryHandler,
        llm_timeout: float = 60.0,
        max_history_turns: int = 0,
        serialize: bool = True,
    ) -> None:
        self._store = store
        self._normalizer = normalizer
        self._provider = provider
        self._transport = transport
        self._presence = presence
        self._recovery = recovery
        self._llm_timeout = llm_timeout
        self._max_history_turns = max_history_turns
        self._serialize = serialize

    async def handle(self, message: InboundMessage) -> ExchangeOutcome:
        """Run one exchange. Never raises for exchange-level failures."""
        ex = _Exchange(message)
        logger.info(
            "Message from %s: %s",
            ex.sender,
            summarize_message(message),
            extra={"session_id": ex.sender, "exchange_id": ex.exchange_id},
        )

        screened = self._normalizer.screen(message)
        if isinstance(screened, Skip):
            logger.info("Ignoring message from %s (%s)", ex.sender, screened.reason)
            return self._finish(ex, ex.outcome(ExchangeState.DONE, reason=screened.reason))

        metrics.gauge_inc("exchange.active")
        try:
            if isinstance(screened, Command):
                outcome = await self._guarded(ex, self._run_command(ex, screened))
            elif self._serialize:
                async with self._store.lock(ex.sender):
                    outcome = await self._guarded(ex, self._run(ex))
            else:
                outcome = await self._guarded(ex, self._run(ex))
        finally:
            metrics.gauge_dec("exchange.active")
        return self._finish(ex, outcome)

    async def _guarded(self, ex: _Exchange, work) -> ExchangeOutcome:
        try:
            return await work
        except Exception as e:
            failed_in = ex.state
            await self._recovery.recover(ex.sender, e, holder=ex.exchange_id)
            return ex.outcome(
                ExchangeState.FAILED,
                reason=f"{failed_in.value}: {error_detail(e)}",
            )

    async def _run_command(self, ex: _Exchange, command: Command) -> ExchangeOutcome:
        if command.name != "ping":
            raise ValueError(f"Unknown command: {command.name}")
        ex.enter(ExchangeState.REPLYING)
        await self._transport.reply(ex.message, PONG_REPLY)
        return ex.outcome(ExchangeState.DONE, reply=PONG_REPLY, reason="command")

    async def _run(self, ex: _Exchange) -> ExchangeOutcome:
        ex.enter(ExchangeState.NORMALIZING)
        result = await self._normalizer.normalize(ex.message)
        ex.timer.mark("normalize")

        if isinstance(result, Skip):
            return ex.outcome(ExchangeState.DONE, reason=result.reason)
        if isinstance(result, Command):
            return await self._run_command(ex, result)
        if isinstance(result, Unsupported):
            await self._transport.reply(ex.message, UNSUPPORTED_REPLY)
            return ex.outcome(
                ExchangeState.DONE, reply=UNSUPPORTED_REPLY, reason="unsupported"
            )
        if isinstance(result, FetchFailed):
            await self._transport.reply(ex.message, FETCH_FAILED_REPLY)
            return ex.outcome(
                ExchangeState.DONE, reply=FETCH_FAILED_REPLY, reason="fetch-failed"
            )
        if not isinstance(result, Normalized):
            raise TypeError(f"Unexpected normalizer result: {type(result).__name__}")

        ex.enter(ExchangeState.PRESENCE_ON)
        await self._presence.begin(ex.sender, ex.exchange_id)

        ex.enter(ExchangeState.CALLING)
        session = self._store.get_or_create(ex.sender)
        response = await self._call_backend(ex, session, result)
        ex.timer.mark("llm")

        ex.enter(ExchangeState.PRESENCE_OFF)
        await self._presence.end(ex.sender, ex.exchange_id)

        ex.enter(ExchangeState.INTERPRETING)
        if response is None:
            logger.error("Empty AI response for %s", ex.sender)
            ex.enter(ExchangeState.REPLYING)
            await self._transport.send_message(ex.sender, NO_RESPONSE_REPLY)
            return ex.outcome(
                ExchangeState.FAILED, reply=NO_RESPONSE_REPLY, reason="no-response"
            )

        if response.blocked:
            logger.warning(
                "AI gave no text for %s. Block reason: %s",
                ex.sender,
                response.block_reason,
            )
            logger.warning("Safety ratings: %s", response.safety_ratings)
            reply = BLOCKED_REPLY
            if response.block_reason:
                reply += f" (Reason: {response.block_reason})"
            ex.enter(ExchangeState.REPLYING)
            await self._transport.send_message(ex.sender, reply)
            return ex.outcome(
                ExchangeState.DONE,
                reply=reply,
                reason=response.block_reason or "blocked",
            )

        logger.info("AI reply for %s: %r", ex.sender, response.text[:100])
        ex.enter(ExchangeState.REPLYING)
        await self._transport.send_message(ex.sender, response.text)
        ex.timer.mark("reply")

        ex.enter(ExchangeState.COMMITTING)
        updated = session.with_exchange(
            Turn.user(*result.user_parts), Turn.model(response.text)
        )
        self._store.replace(ex.sender, updated)
        return ex.outcome(ExchangeState.DONE, reply=response.text, committed=True)

    async def _call_backend(
        self, ex: _Exchange, session: ConversationSession, result: Normalized
    ):
        history = window_history(session.turns, self._max_history_turns)
        logger.info(
            "Sending to AI for %s (%d turns, %s): %r",
            ex.sender,
            len(history),
            ", ".join(describe_part(p) for p in result.user_parts),
            result.log_summary,
        )
        try:
            return await asyncio.wait_for(
                self._provider.send_turn(history, result.prompt_parts),
                timeout=self._llm_timeout,
            )
        except asyncio.TimeoutError:
            raise TimeoutError(
                f"AI backend did not answer within {self._llm_timeout:.0f}s"
            ) from None

    def _finish(self, ex: _Exchange, outcome: ExchangeOutcome) -> ExchangeOutcome:
        metrics.inc("exchange.outcome", labels={"state": outcome.state.value})
        logger.info(
            "Exchange %s for %s ended %s (%s)",
            ex.exchange_id,
            ex.sender,
            outcome.state.value,
            ex.timer.summary(),
            extra={
                "session_id": ex.sender,
                "exchange_id": ex.exchange_id,
                "state": outcome.state.value,
                "duration_ms": round(ex.timer.total() * 1000, 1),
            },
        )
        return outcome

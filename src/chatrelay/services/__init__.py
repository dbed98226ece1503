"""
Exchange pipeline services.

- MessageNormalizer: inbound message → user turn parts + prompt parts
- PresenceSignaler: best-effort typing indicator
- TurnDispatcher: one exchange, from message to committed turn
- ErrorRecoveryHandler: last-resort apology on failure
"""

from chatrelay.services.dispatcher import ExchangeOutcome, ExchangeState, TurnDispatcher
from chatrelay.services.normalizer import MessageNormalizer
from chatrelay.services.presence import PresenceSignaler
from chatrelay.services.recovery import ErrorRecoveryHandler

__all__ = [
    "ErrorRecoveryHandler",
    "ExchangeOutcome",
    "ExchangeState",
    "MessageNormalizer",
    "PresenceSignaler",
    "TurnDispatcher",
]

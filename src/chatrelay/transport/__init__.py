"""
Transport layer — how the relay reaches the chat network.

- ChatTransport: abstract send/reply/typing surface plus event publishing
- BridgeTransport: WhatsApp through an HTTP bridge sidecar
- events: typed lifecycle and message events published on the EventBus
"""

from chatrelay.transport.base import ChatTransport
from chatrelay.transport.bridge import BridgeTransport
from chatrelay.transport.events import (
    Authenticated,
    AuthFailed,
    Disconnected,
    InboundMessage,
    MediaPayload,
    MessageReceived,
    QRReady,
    Ready,
    TransportEvent,
)

__all__ = [
    "ChatTransport",
    "BridgeTransport",
    "Authenticated",
    "AuthFailed",
    "Disconnected",
    "InboundMessage",
    "MediaPayload",
    "MessageReceived",
    "QRReady",
    "Ready",
    "TransportEvent",
]

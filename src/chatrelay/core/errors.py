"""Exception types shared across the relay."""

from __future__ import annotations


class ChatRelayError(Exception):
    """Base class for relay errors."""


class ConfigError(ChatRelayError):
    """Configuration is missing or invalid. Fatal at startup."""


class AuthFailure(ChatRelayError):
    """The chat transport rejected authentication. Fatal."""


class TransportError(ChatRelayError):
    """A call to the chat transport failed."""


class MediaFetchError(TransportError):
    """Downloading an inbound media attachment failed."""

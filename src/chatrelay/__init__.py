"""ChatRelay — WhatsApp ↔ generative-AI relay with per-user conversation memory."""

__version__ = "0.1.0"

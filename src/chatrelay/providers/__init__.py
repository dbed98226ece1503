"""
ChatRelay Providers — the AI backend interface and its implementations.

Gemini is the default; any OpenAI-compatible endpoint works as well.
Swap providers by changing CHATRELAY_LLM_PROVIDER.
"""

from chatrelay.providers.base import ChatProvider, ChatResult
from chatrelay.providers.registry import get_chat_provider

__all__ = [
    "ChatProvider",
    "ChatResult",
    "get_chat_provider",
]

"""
Provider Registry — pick the chat provider by config.

Add a new provider? Just add an elif.
"""

from __future__ import annotations

import chatrelay.core.config as config_module
from chatrelay.core.config import LLMConfig
from chatrelay.providers.base import ChatProvider


def get_chat_provider(llm: LLMConfig | None = None) -> ChatProvider:
    llm = llm or config_module.config.llm
    provider = llm.provider.lower()
    if provider == "gemini":
        from chatrelay.providers.gemini_chat import GeminiChatProvider

        return GeminiChatProvider(llm)
    elif provider == "openai":
        from chatrelay.providers.openai_chat import OpenAIChatProvider

        return OpenAIChatProvider(llm)
    raise ValueError(f"Unknown chat provider: {provider}")

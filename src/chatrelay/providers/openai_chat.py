"""
OpenAI Chat Provider — chat completions with inline image parts.

Works against any OpenAI-compatible endpoint via CHATRELAY_LLM_BASE_URL.
Model turns map to the "assistant" role. A completion that stops on the
content filter without text is reported as blocked with reason
"content_filter".
"""

from __future__ import annotations

import base64
import logging
import time
from typing import Any, Sequence

from openai import AsyncOpenAI

import chatrelay.core.config as config_module
from chatrelay.core.config import LLMConfig
from chatrelay.core.metrics import metrics
from chatrelay.providers.base import ChatProvider, ChatResult
from chatrelay.session.models import ContentPart, ImagePart, Role, TextPart, Turn

logger = logging.getLogger(__name__)

CONTENT_FILTER = "content_filter"


def to_openai_content(part: ContentPart) -> dict[str, Any]:
    if isinstance(part, TextPart):
        return {"type": "text", "text": part.text}
    if isinstance(part, ImagePart):
        encoded = base64.b64encode(part.data).decode("ascii")
        return {
            "type": "image_url",
            "image_url": {"url": f"data:{part.mime_type};base64,{encoded}"},
        }
    raise TypeError(f"Unknown content part: {type(part).__name__}")


def to_openai_messages(
    history: Sequence[Turn], prompt: Sequence[ContentPart]
) -> list[dict[str, Any]]:
    messages: list[dict[str, Any]] = []
    for turn in history:
        if turn.role is Role.MODEL:
            # Assistant content must be text
            text = "".join(p.text for p in turn.parts if isinstance(p, TextPart))
            messages.append({"role": "assistant", "content": text})
        else:
            messages.append(
                {"role": "user", "content": [to_openai_content(p) for p in turn.parts]}
            )
    messages.append({"role": "user", "content": [to_openai_content(p) for p in prompt]})
    return messages


def result_from_completion(completion: Any) -> ChatResult | None:
    if completion is None or not getattr(completion, "choices", None):
        return None
    choice = completion.choices[0]
    text = choice.message.content if choice.message else None
    block_reason = None
    if not text and choice.finish_reason == CONTENT_FILTER:
        block_reason = CONTENT_FILTER
    return ChatResult(
        text=text or None,
        block_reason=block_reason,
        finish_reason=choice.finish_reason,
    )


class OpenAIChatProvider(ChatProvider):
    name = "openai"

    def __init__(self, llm: LLMConfig | None = None):
        self._llm = llm or config_module.config.llm
        self.client: AsyncOpenAI | None = None

    async def start(self) -> None:
        if self.client:
            return  # Already started

        client_kwargs: dict[str, Any] = {"api_key": self._llm.api_key}
        if self._llm.base_url:
            client_kwargs["base_url"] = self._llm.base_url
            logger.info("Using custom base_url: %s", self._llm.base_url)

        self.client = AsyncOpenAI(**client_kwargs)
        logger.info("OpenAI chat ready (model=%s)", self._llm.model)

    async def stop(self) -> None:
        if self.client:
            await self.client.close()
            self.client = None

    async def send_turn(
        self,
        history: Sequence[Turn],
        prompt: Sequence[ContentPart],
    ) -> ChatResult | None:
        if not self.client:
            raise RuntimeError("OpenAI chat not started")

        started = time.time()
        metrics.inc("provider.chat.requests", labels={"provider": self.name})
        try:
            completion = await self.client.chat.completions.create(
                model=self._llm.model,
                messages=to_openai_messages(history, prompt),
            )
        except Exception:
            metrics.inc("provider.chat.errors", labels={"provider": self.name})
            raise

        metrics.observe(
            "provider.chat.latency_ms",
            (time.time() - started) * 1000,
            labels={"provider": self.name},
        )
        return result_from_completion(completion)

    async def health_check(self) -> dict:
        return {
            "provider": self.name,
            "model": self._llm.model,
            "status": "ready" if self.client else "not_started",
        }

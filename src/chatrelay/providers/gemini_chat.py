"""
Gemini Chat Provider — multimodal chat turns via google-genai.

Safety thresholds are fixed: harassment, hate speech, sexually explicit
and dangerous content all block at medium probability and above.
A prompt that trips them comes back without text and with
prompt_feedback.block_reason set.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Sequence

from google import genai
from google.genai import types

import chatrelay.core.config as config_module
from chatrelay.core.config import LLMConfig
from chatrelay.core.metrics import metrics
from chatrelay.providers.base import ChatProvider, ChatResult
from chatrelay.session.models import ContentPart, ImagePart, TextPart, Turn

logger = logging.getLogger(__name__)

SAFETY_SETTINGS = [
    types.SafetySetting(
        category=category,
        threshold=types.HarmBlockThreshold.BLOCK_MEDIUM_AND_ABOVE,
    )
    for category in (
        types.HarmCategory.HARM_CATEGORY_HARASSMENT,
        types.HarmCategory.HARM_CATEGORY_HATE_SPEECH,
        types.HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT,
        types.HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT,
    )
]


# Finish reasons that mean the model answered normally
COMPLETED = ("STOP", "FINISH_REASON_UNSPECIFIED")


def _enum_value(value: Any) -> str:
    return str(getattr(value, "value", value))


def to_gemini_part(part: ContentPart) -> types.Part:
    if isinstance(part, TextPart):
        return types.Part(text=part.text)
    if isinstance(part, ImagePart):
        return types.Part.from_bytes(data=part.data, mime_type=part.mime_type)
    raise TypeError(f"Unknown content part: {type(part).__name__}")


def to_gemini_contents(
    history: Sequence[Turn], prompt: Sequence[ContentPart]
) -> list[types.Content]:
    contents = [
        types.Content(
            role=turn.role.value,
            parts=[to_gemini_part(p) for p in turn.parts],
        )
        for turn in history
    ]
    contents.append(
        types.Content(role="user", parts=[to_gemini_part(p) for p in prompt])
    )
    return contents


def _response_text(response: Any) -> str:
    """Concatenate the text parts of the first candidate, skipping thoughts."""
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return ""
    content = getattr(candidates[0], "content", None)
    parts = getattr(content, "parts", None) or []
    return "".join(
        p.text for p in parts if getattr(p, "text", None) and not getattr(p, "thought", False)
    )


def _ratings(source: Any) -> list[dict]:
    return [
        {
            "category": _enum_value(rating.category),
            "probability": _enum_value(rating.probability),
        }
        for rating in getattr(source, "safety_ratings", None) or []
    ]


def result_from_response(response: Any) -> ChatResult | None:
    """Map a GenerateContentResponse onto ChatResult.

    The prompt can be blocked (prompt_feedback.block_reason) or the answer
    itself can be cut off (candidate finish_reason SAFETY, PROHIBITED_CONTENT
    and so on). Either way the reason ends up in block_reason.
    """
    if response is None:
        return None

    block_reason = None
    ratings: list[dict] = []
    feedback = getattr(response, "prompt_feedback", None)
    if feedback is not None:
        if getattr(feedback, "block_reason", None):
            block_reason = _enum_value(feedback.block_reason)
        ratings = _ratings(feedback)

    finish_reason = None
    candidates = getattr(response, "candidates", None) or []
    if candidates and getattr(candidates[0], "finish_reason", None):
        finish_reason = _enum_value(candidates[0].finish_reason)

    text = _response_text(response) or None
    if not text and block_reason is None and finish_reason not in (None, *COMPLETED):
        block_reason = finish_reason
        ratings = ratings or _ratings(candidates[0])

    return ChatResult(
        text=text,
        block_reason=block_reason,
        safety_ratings=ratings,
        finish_reason=finish_reason,
    )


class GeminiChatProvider(ChatProvider):
    name = "gemini"

    def __init__(self, llm: LLMConfig | None = None):
        self._llm = llm or config_module.config.llm
        self.client: genai.Client | None = None

    async def start(self) -> None:
        if self.client:
            return  # Already started
        if not self._llm.api_key:
            raise ValueError("GOOGLE_API_KEY not set")
        self.client = genai.Client(api_key=self._llm.api_key)
        logger.info("Gemini chat ready (model=%s)", self._llm.model)

    async def stop(self) -> None:
        self.client = None

    async def send_turn(
        self,
        history: Sequence[Turn],
        prompt: Sequence[ContentPart],
    ) -> ChatResult | None:
        if not self.client:
            raise RuntimeError("Gemini chat not started")

        started = time.time()
        metrics.inc("provider.chat.requests", labels={"provider": self.name})
        try:
            response = await self.client.aio.models.generate_content(
                model=self._llm.model,
                contents=to_gemini_contents(history, prompt),
                config=types.GenerateContentConfig(safety_settings=SAFETY_SETTINGS),
            )
        except Exception:
            metrics.inc("provider.chat.errors", labels={"provider": self.name})
            raise

        metrics.observe(
            "provider.chat.latency_ms",
            (time.time() - started) * 1000,
            labels={"provider": self.name},
        )
        return result_from_response(response)

    async def health_check(self) -> dict:
        return {
            "provider": self.name,
            "model": self._llm.model,
            "status": "ready" if self.client else "not_started",
        }

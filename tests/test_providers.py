"""Tests for chat providers and the registry."""

import base64
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from google.genai import types

import chatrelay.core.config as config_module
from chatrelay.core.config import LLMConfig, reload_config
from chatrelay.core.metrics import metrics
from chatrelay.providers.base import ChatProvider, ChatResult
from chatrelay.providers.gemini_chat import (
    SAFETY_SETTINGS,
    GeminiChatProvider,
    result_from_response,
    to_gemini_contents,
    to_gemini_part,
)
from chatrelay.providers.openai_chat import (
    OpenAIChatProvider,
    result_from_completion,
    to_openai_messages,
)
from chatrelay.providers.registry import get_chat_provider
from chatrelay.session.models import ImagePart, TextPart, Turn

PNG = ImagePart(data=b"\x89PNG\r\n", mime_type="image/png")
HISTORY = (Turn.user(TextPart("persona")), Turn.model("greeting"))


def test_chat_provider_is_abstract():
    with pytest.raises(TypeError):
        ChatProvider()  # type: ignore


def test_blocked_result():
    assert ChatResult(block_reason="SAFETY").blocked
    assert not ChatResult(text="hi").blocked


# ─── Registry ──────────────────────────────────────────────


def test_registry_returns_gemini_by_default():
    provider = get_chat_provider(LLMConfig(api_key="k"))
    assert provider.__class__.__name__ == "GeminiChatProvider"


def test_registry_returns_openai():
    provider = get_chat_provider(LLMConfig(provider="openai", api_key="k"))
    assert provider.__class__.__name__ == "OpenAIChatProvider"


def test_registry_rejects_unknown():
    with pytest.raises(ValueError):
        get_chat_provider(LLMConfig(provider="nope"))


def test_registry_uses_reloaded_config(monkeypatch):
    previous = config_module.config
    monkeypatch.setenv("CHATRELAY_LLM_PROVIDER", "openai")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    reload_config()
    try:
        assert get_chat_provider().name == "openai"
    finally:
        # Restore original config object after the test.
        config_module.config = previous


# ─── Gemini ────────────────────────────────────────────────


def test_safety_settings_cover_four_categories():
    assert len(SAFETY_SETTINGS) == 4
    assert {s.threshold for s in SAFETY_SETTINGS} == {
        types.HarmBlockThreshold.BLOCK_MEDIUM_AND_ABOVE
    }


def test_gemini_parts():
    text = to_gemini_part(TextPart("hello"))
    assert text.text == "hello"

    image = to_gemini_part(PNG)
    assert image.inline_data.data == PNG.data
    assert image.inline_data.mime_type == "image/png"

    with pytest.raises(TypeError):
        to_gemini_part("raw string")  # type: ignore


def test_gemini_contents_keep_roles_and_order():
    contents = to_gemini_contents(HISTORY, (TextPart("look"), PNG))
    assert [c.role for c in contents] == ["user", "model", "user"]
    assert contents[1].parts[0].text == "greeting"
    assert contents[2].parts[0].text == "look"
    assert contents[2].parts[1].inline_data.mime_type == "image/png"


def _gemini_response(text=None, block_reason=None, finish_reason="STOP"):
    parts = [SimpleNamespace(text=text, thought=False)] if text else []
    candidate = SimpleNamespace(
        content=SimpleNamespace(parts=parts),
        finish_reason=SimpleNamespace(value=finish_reason),
    )
    feedback = None
    if block_reason:
        feedback = SimpleNamespace(
            block_reason=SimpleNamespace(value=block_reason),
            safety_ratings=[
                SimpleNamespace(
                    category=SimpleNamespace(value="HARM_CATEGORY_HARASSMENT"),
                    probability=SimpleNamespace(value="HIGH"),
                )
            ],
        )
    return SimpleNamespace(
        candidates=[candidate] if text else [],
        prompt_feedback=feedback,
    )


def test_gemini_result_with_text():
    result = result_from_response(_gemini_response(text="Hello!"))
    assert result.text == "Hello!"
    assert result.block_reason is None
    assert result.finish_reason == "STOP"


def test_gemini_result_blocked():
    result = result_from_response(_gemini_response(block_reason="SAFETY"))
    assert result.text is None
    assert result.block_reason == "SAFETY"
    assert result.safety_ratings == [
        {"category": "HARM_CATEGORY_HARASSMENT", "probability": "HIGH"}
    ]


def test_gemini_result_candidate_safety_block():
    response = types.GenerateContentResponse(
        candidates=[
            types.Candidate(
                finish_reason=types.FinishReason.SAFETY,
                safety_ratings=[
                    types.SafetyRating(
                        category=types.HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT,
                        probability=types.HarmProbability.HIGH,
                    )
                ],
            )
        ]
    )

    result = result_from_response(response)

    assert result.text is None
    assert result.blocked
    assert result.block_reason == "SAFETY"
    assert result.finish_reason == "SAFETY"
    assert result.safety_ratings == [
        {"category": "HARM_CATEGORY_DANGEROUS_CONTENT", "probability": "HIGH"}
    ]


def test_gemini_result_empty_stop_has_no_block_reason():
    response = types.GenerateContentResponse(
        candidates=[types.Candidate(finish_reason=types.FinishReason.STOP)]
    )

    result = result_from_response(response)

    assert result.blocked
    assert result.block_reason is None


def test_gemini_result_skips_thought_parts():
    response = SimpleNamespace(
        candidates=[
            SimpleNamespace(
                content=SimpleNamespace(
                    parts=[
                        SimpleNamespace(text="thinking...", thought=True),
                        SimpleNamespace(text="Answer", thought=False),
                    ]
                ),
                finish_reason=None,
            )
        ],
        prompt_feedback=None,
    )
    assert result_from_response(response).text == "Answer"


def test_gemini_result_none():
    assert result_from_response(None) is None


@pytest.mark.asyncio
async def test_gemini_send_turn_uses_async_client():
    provider = GeminiChatProvider(LLMConfig(api_key="k", model="gemini-test"))
    generate = AsyncMock(return_value=_gemini_response(text="Hi"))
    provider.client = SimpleNamespace(
        aio=SimpleNamespace(models=SimpleNamespace(generate_content=generate))
    )

    result = await provider.send_turn(HISTORY, (TextPart("hello"),))

    assert result.text == "Hi"
    kwargs = generate.await_args.kwargs
    assert kwargs["model"] == "gemini-test"
    assert len(kwargs["contents"]) == 3
    assert kwargs["config"].safety_settings == SAFETY_SETTINGS
    assert metrics.counter("provider.chat.requests", labels={"provider": "gemini"}) == 1


@pytest.mark.asyncio
async def test_gemini_send_turn_propagates_errors():
    provider = GeminiChatProvider(LLMConfig(api_key="k"))
    provider.client = SimpleNamespace(
        aio=SimpleNamespace(
            models=SimpleNamespace(
                generate_content=AsyncMock(side_effect=RuntimeError("quota"))
            )
        )
    )

    with pytest.raises(RuntimeError, match="quota"):
        await provider.send_turn(HISTORY, (TextPart("hello"),))
    assert metrics.counter("provider.chat.errors", labels={"provider": "gemini"}) == 1


@pytest.mark.asyncio
async def test_gemini_requires_start():
    provider = GeminiChatProvider(LLMConfig(api_key="k"))
    with pytest.raises(RuntimeError):
        await provider.send_turn(HISTORY, (TextPart("hello"),))
    assert (await provider.health_check())["status"] == "not_started"


@pytest.mark.asyncio
async def test_gemini_start_requires_key():
    with pytest.raises(ValueError):
        await GeminiChatProvider(LLMConfig(api_key="")).start()


# ─── OpenAI ────────────────────────────────────────────────


def test_openai_messages():
    messages = to_openai_messages(HISTORY, (TextPart("look"), PNG))

    assert messages[0] == {"role": "user", "content": [{"type": "text", "text": "persona"}]}
    assert messages[1] == {"role": "assistant", "content": "greeting"}
    image = messages[2]["content"][1]
    encoded = base64.b64encode(PNG.data).decode("ascii")
    assert image == {
        "type": "image_url",
        "image_url": {"url": f"data:image/png;base64,{encoded}"},
    }


def _completion(content, finish_reason="stop"):
    return SimpleNamespace(
        choices=[
            SimpleNamespace(
                message=SimpleNamespace(content=content),
                finish_reason=finish_reason,
            )
        ]
    )


def test_openai_result_with_text():
    result = result_from_completion(_completion("Hello"))
    assert result.text == "Hello"
    assert result.finish_reason == "stop"


def test_openai_result_content_filter():
    result = result_from_completion(_completion(None, finish_reason="content_filter"))
    assert result.text is None
    assert result.block_reason == "content_filter"


def test_openai_result_without_choices():
    assert result_from_completion(SimpleNamespace(choices=[])) is None


@pytest.mark.asyncio
async def test_openai_send_turn():
    provider = OpenAIChatProvider(LLMConfig(provider="openai", api_key="k", model="gpt-4o"))
    create = AsyncMock(return_value=_completion("Hi"))
    provider.client = SimpleNamespace(
        chat=SimpleNamespace(completions=SimpleNamespace(create=create))
    )

    result = await provider.send_turn(HISTORY, (TextPart("hello"),))

    assert result.text == "Hi"
    assert create.await_args.kwargs["model"] == "gpt-4o"
    assert len(create.await_args.kwargs["messages"]) == 3


@pytest.mark.asyncio
async def test_openai_start_and_stop():
    provider = OpenAIChatProvider(
        LLMConfig(provider="openai", api_key="sk-test", base_url="http://localhost:1234/v1")
    )
    await provider.start()
    assert (await provider.health_check())["status"] == "ready"
    assert str(provider.client.base_url).startswith("http://localhost:1234/v1")

    await provider.stop()
    assert provider.client is None

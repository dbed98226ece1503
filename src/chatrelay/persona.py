"""
Persona — the seed pair every new conversation starts with.

The persona prompt is sent as the first user turn and the greeting as the
first model turn, so the backend sees the bot's identity in every request.
Config values are interpolated verbatim.
"""

from __future__ import annotations

from chatrelay.core.config import BotConfig

PERSONA_PROMPT = (
    "You are a very helpful AI assistant. Your name is {name}. "
    "You use the {model_identity} model. "
    "You were created and developed by {company_name}. "
    "Answer every question in a friendly and informative tone. "
    "When possible, format answers so they are easy to read "
    "(for example bullet points or short paragraphs). "
    "Do not end the conversation with a question unless you need clarification."
)

GREETING = "Hi! I'm {name}, your AI assistant. How can I help you today?"


def persona_prompt(bot: BotConfig) -> str:
    return PERSONA_PROMPT.format(
        name=bot.name,
        model_identity=bot.model_identity,
        company_name=bot.company_name,
    )


def greeting(bot: BotConfig) -> str:
    return GREETING.format(name=bot.name)

"""
Message Normalizer — inbound chat message → canonical turn + AI prompt.

Two steps:
- screen(): synchronous, no I/O. Drops status updates, our own echoes
  and empty messages, and recognizes the /ping command.
- normalize(): downloads media if any and builds the user turn parts
  (what goes into history) and the prompt parts (what the model sees,
  with a current-time header).

Every outcome is a small dataclass; the dispatcher branches on its type.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Union

from chatrelay.session.models import ContentPart, ImagePart, TextPart
from chatrelay.transport.events import InboundMessage

logger = logging.getLogger(__name__)

PING_COMMAND = "/ping"

TIME_HEADER = "(current time: {now})\n"
TEXT_PROMPT = "User message:\n{body}"
IMAGE_PROMPT = "User message (with image):\n{caption}"
IMAGE_ONLY_PROMPT = (
    "User message (analyze this image and give a description "
    "or an answer about it):"
)


@dataclass(frozen=True)
class Skip:
    reason: str  # "status" | "self-echo" | "empty"


@dataclass(frozen=True)
class Command:
    name: str


@dataclass(frozen=True)
class Normalized:
    user_parts: tuple[ContentPart, ...]
    prompt_parts: tuple[ContentPart, ...]
    log_summary: str


@dataclass(frozen=True)
class Unsupported:
    mime_type: str


@dataclass(frozen=True)
class FetchFailed:
    reason: str = ""


ScreenResult = Union[Skip, Command, None]
NormalizeResult = Union[Skip, Command, Normalized, Unsupported, FetchFailed]


def format_now(now: datetime | None = None) -> str:
    """Local long-form date/time with timezone name."""
    now = (now or datetime.now()).astimezone()
    return now.strftime("%A, %d %B %Y %H:%M:%S %Z")


def summarize_message(message: InboundMessage) -> str:
    """One-line description of an inbound message for the receive log."""
    if message.has_media:
        summary = "[MEDIA]"
        if message.text_body:
            summary += f' Caption: "{message.text_body}"'
        return summary
    if message.text_body:
        return f'"{message.text_body}"'
    return "[EMPTY OR UNKNOWN TYPE]"


class MessageNormalizer:
    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self._clock = clock or datetime.now

    def screen(self, message: InboundMessage) -> ScreenResult:
        """Classify messages that never reach the model. None means proceed."""
        if message.is_status:
            return Skip("status")
        if message.is_from_self:
            return Skip("self-echo")
        if not message.text_body and not message.has_media:
            return Skip("empty")
        if message.text_body and message.text_body.strip().lower() == PING_COMMAND:
            return Command("ping")
        return None

    async def normalize(self, message: InboundMessage) -> NormalizeResult:
        screened = self.screen(message)
        if screened is not None:
            return screened

        header = TIME_HEADER.format(now=format_now(self._clock()))

        if not message.has_media:
            body = message.text_body or ""
            prompt = header + TEXT_PROMPT.format(body=body)
            return Normalized(
                user_parts=(TextPart(body),),
                prompt_parts=(TextPart(prompt),),
                log_summary=prompt[:100],
            )

        try:
            media = await message.download_media()
        except Exception as e:
            logger.warning("Media download failed for %s: %s", message.sender_id, e)
            return FetchFailed(str(e))

        if media is None:
            logger.warning("Media download returned nothing for %s", message.sender_id)
            return FetchFailed("no media returned")

        if not media.is_image:
            logger.info(
                "Non-image media from %s (%s), not supported",
                message.sender_id,
                media.mime_type,
            )
            return Unsupported(media.mime_type)

        caption = message.text_body or ""
        image = ImagePart(data=media.data, mime_type=media.mime_type)
        if caption:
            user_parts: tuple[ContentPart, ...] = (TextPart(caption), image)
            prompt = header + IMAGE_PROMPT.format(caption=caption)
        else:
            user_parts = (image,)
            prompt = header + IMAGE_ONLY_PROMPT

        logger.info(
            "Image from %s (%s). Caption: %r", message.sender_id, media.mime_type, caption
        )
        return Normalized(
            user_parts=user_parts,
            prompt_parts=(TextPart(prompt), image),
            log_summary=f"{prompt[:70]}... [PLUS IMAGE {media.mime_type}]",
        )

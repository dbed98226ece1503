"""
Bridge Transport — WhatsApp via an HTTP bridge sidecar.

The sidecar owns the WhatsApp Web session (pairing, reconnection, local
auth storage). We talk to it in two directions:

Inbound (webhook, POST /webhook):
    {"event": "qr", "data": {"qr": "..."}}
    {"event": "authenticated"}
    {"event": "auth_failure", "data": {"message": "..."}}
    {"event": "ready"}
    {"event": "disconnected", "data": {"reason": "..."}}
    {"event": "message", "data": {"id", "from", "body", "hasMedia", "isStatus", "fromMe"}}

Outbound (REST on CHATRELAY_BRIDGE_URL):
    POST   /client/initialize        {"webhook_url": "..."}
    POST   /client/destroy
    GET    /messages/{id}/media      -> {"mimetype": "...", "data": "<base64>"}, 404 if none
    POST   /messages/{id}/reply      {"text": "..."}
    POST   /chats/{chat_id}/messages {"text": "..."}
    POST   /chats/{chat_id}/typing
    DELETE /chats/{chat_id}/typing

When CHATRELAY_BRIDGE_TOKEN is set it is sent as X-Bridge-Token on every
REST call and required on every webhook.
"""

from __future__ import annotations

import base64
import binascii
import hmac
import logging
from typing import Any
from urllib.parse import quote

import httpx
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

import chatrelay.core.config as config_module
from chatrelay.core.config import BridgeConfig
from chatrelay.core.errors import MediaFetchError, TransportError
from chatrelay.kernel.event_bus import EventBus
from chatrelay.transport.base import ChatTransport
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

logger = logging.getLogger(__name__)

TOKEN_HEADER = "X-Bridge-Token"


def _path_id(value: str) -> str:
    return quote(value, safe="@")


class BridgeTransport(ChatTransport):
    name = "bridge"

    def __init__(
        self,
        event_bus: EventBus,
        bridge: BridgeConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        super().__init__(event_bus)
        self._bridge = bridge or config_module.config.bridge
        self._client = client
        self._owns_client = client is None
        self._events_received = 0

    # ─── Lifecycle ────────────────────────────────────────────────

    async def start(self) -> None:
        if self._client is None:
            headers = {TOKEN_HEADER: self._bridge.token} if self._bridge.token else {}
            self._client = httpx.AsyncClient(
                base_url=self._bridge.url,
                timeout=httpx.Timeout(self._bridge.timeout),
                headers=headers,
            )

        webhook_url = f"{self._bridge.public_url}/webhook"
        logger.info("Initializing WhatsApp bridge at %s", self._bridge.url)
        await self._request(
            "POST", "/client/initialize", json={"webhook_url": webhook_url}
        )
        self._running = True
        logger.info("Bridge initialized (webhook=%s)", webhook_url)

    async def stop(self) -> None:
        if self._client is None:
            return
        try:
            if self._running:
                await self._request("POST", "/client/destroy")
                logger.info("Bridge session closed")
        except TransportError as e:
            logger.warning("Bridge shutdown failed: %s", e)
        finally:
            self._running = False
            if self._owns_client:
                await self._client.aclose()
                self._client = None

    # ─── Outbound ─────────────────────────────────────────────────

    async def reply(self, message: InboundMessage, text: str) -> None:
        await self._request(
            "POST", f"/messages/{_path_id(message.message_id)}/reply", json={"text": text}
        )

    async def send_message(self, chat_id: str, text: str) -> None:
        await self._request(
            "POST", f"/chats/{_path_id(chat_id)}/messages", json={"text": text}
        )

    async def start_typing(self, chat_id: str) -> None:
        await self._request("POST", f"/chats/{_path_id(chat_id)}/typing")

    async def clear_typing(self, chat_id: str) -> None:
        await self._request("DELETE", f"/chats/{_path_id(chat_id)}/typing")

    async def fetch_media(self, message_id: str) -> MediaPayload | None:
        """Download a message's attachment. None when the bridge has none."""
        client = self._require_client()
        path = f"/messages/{_path_id(message_id)}/media"
        try:
            response = await client.get(path)
        except httpx.HTTPError as e:
            raise MediaFetchError(f"GET {path} failed: {e}") from e

        if response.status_code == 404:
            return None
        if response.is_error:
            raise MediaFetchError(f"GET {path} returned {response.status_code}")

        body = response.json()
        if not body or not body.get("data"):
            return None
        try:
            data = base64.b64decode(body["data"], validate=True)
        except (binascii.Error, ValueError) as e:
            raise MediaFetchError(f"Media for {message_id} is not valid base64") from e
        return MediaPayload(
            data=data, mime_type=body.get("mimetype") or "application/octet-stream"
        )

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        client = self._require_client()
        try:
            response = await client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise TransportError(f"{method} {path} failed: {e}") from e
        return response

    def _require_client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise TransportError("Bridge transport not started")
        return self._client

    # ─── Inbound ──────────────────────────────────────────────────

    def parse_event(self, payload: Any) -> TransportEvent | None:
        """Turn a webhook payload into a typed event.

        Returns None for event types we don't handle. Raises ValueError on
        a malformed payload.
        """
        if not isinstance(payload, dict) or not isinstance(payload.get("event"), str):
            raise ValueError("Webhook payload must be an object with an 'event' string")

        kind = payload["event"]
        data = payload.get("data") or {}
        if not isinstance(data, dict):
            raise ValueError("Webhook 'data' must be an object")

        if kind == "qr":
            return QRReady(code=str(data.get("qr", "")))
        if kind == "authenticated":
            return Authenticated()
        if kind == "auth_failure":
            return AuthFailed(reason=str(data.get("message") or data.get("reason") or ""))
        if kind == "ready":
            return Ready()
        if kind == "disconnected":
            return Disconnected(reason=str(data.get("reason", "")))
        if kind == "message":
            return MessageReceived(message=self._parse_message(data))

        logger.debug("Ignoring bridge event: %s", kind)
        return None

    def _parse_message(self, data: dict) -> InboundMessage:
        message_id = data.get("id")
        sender = data.get("from")
        if not message_id or not sender:
            raise ValueError("Message event needs 'id' and 'from'")
        message_id = str(message_id)

        async def fetch() -> MediaPayload | None:
            return await self.fetch_media(message_id)

        body = data.get("body")
        return InboundMessage(
            message_id=message_id,
            sender_id=str(sender),
            text_body=str(body) if body else None,
            has_media=bool(data.get("hasMedia", False)),
            is_status=bool(data.get("isStatus", False)),
            is_from_self=bool(data.get("fromMe", False)),
            fetch_media=fetch,
        )

    async def handle_webhook(self, payload: Any) -> TransportEvent | None:
        event = self.parse_event(payload)
        if event is not None:
            self._events_received += 1
            await self._emit(event)
        return event

    def _token_ok(self, request: Request) -> bool:
        if not self._bridge.token:
            return True
        supplied = request.headers.get(TOKEN_HEADER, "")
        return hmac.compare_digest(supplied, self._bridge.token)

    def create_router(self) -> APIRouter:
        """FastAPI routes the bridge posts to."""
        router = APIRouter(tags=["bridge"])

        @router.post("/webhook")
        async def bridge_webhook(request: Request) -> JSONResponse:
            if not self._token_ok(request):
                logger.warning("Rejected webhook with a bad token")
                return JSONResponse({"error": "unauthorized"}, status_code=401)
            try:
                payload = await request.json()
                await self.handle_webhook(payload)
            except ValueError as e:
                logger.warning("Bad webhook payload: %s", e)
                return JSONResponse({"error": str(e)}, status_code=400)
            return JSONResponse({"ok": True})

        return router

    async def get_status(self) -> dict:
        return {
            "transport": self.name,
            "bridge_url": self._bridge.url,
            "running": self._running,
            "events_received": self._events_received,
        }

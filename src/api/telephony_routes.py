"""Carrier-facing routes.

This module provides:
- Inbound call webhook (TeXML) that points the carrier at the media stream.
- Media stream WebSocket, bridged to the realtime relay for the lifetime of the call.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable, Mapping
from typing import Any
from xml.sax.saxutils import escape

from fastapi import APIRouter, Depends, Request, Response, WebSocket, WebSocketDisconnect

from api.dependencies import get_instructions, get_realtime_factory, get_registry, get_webhook
from calls.registry import CallRegistry
from config.settings import get_settings
from integrations.realtime_client import RealtimeTransport
from integrations.webhook import CallSummaryWebhook
from relay.controller import SessionController

LOGGER = logging.getLogger(__name__)

router = APIRouter(tags=["telephony"])

MEDIA_STREAM_PATH = "/media-stream"


def _texml_response(xml: str) -> Response:
    # Carriers expect text/xml for TeXML documents.
    return Response(content=xml, media_type="text/xml")


def _to_ws_url(http_url: str) -> str:
    if http_url.startswith("https://"):
        return "wss://" + http_url.removeprefix("https://")
    if http_url.startswith("http://"):
        return "ws://" + http_url.removeprefix("http://")
    return http_url


def _stream_url(request: Request) -> str:
    settings = get_settings()
    if settings.public_base_url:
        return _to_ws_url(settings.public_base_url.rstrip("/")) + MEDIA_STREAM_PATH
    host = request.headers.get("host") or request.url.netloc
    return f"wss://{host}{MEDIA_STREAM_PATH}"


def _texml_stream(*, greeting: str, prompt: str, stream_url: str) -> str:
    return (
        "<?xml version=\"1.0\" encoding=\"UTF-8\"?>"
        "<Response>"
        f"<Say>{escape(greeting)}</Say>"
        "<Pause length=\"1\"/>"
        f"<Say>{escape(prompt)}</Say>"
        f"<Stream url=\"{escape(stream_url)}\" />"
        "</Response>"
    )


async def _caller_number(request: Request) -> str | None:
    params: Mapping[str, Any] = request.query_params
    if request.method == "POST":
        params = await request.form()
    caller = str(params.get("from") or params.get("From") or "").strip()
    return caller or None


class CarrierSocket:
    """Media stream channel over the carrier WebSocket.

    Frames are yielded raw, text or binary, so a frame that is not JSON is
    rejected by the message parser instead of ending the call.
    """

    def __init__(self, websocket: WebSocket) -> None:
        self._websocket = websocket

    async def send_json(self, data: Any) -> None:
        await self._websocket.send_json(data)

    async def iter_messages(self) -> AsyncIterator[str | bytes]:
        while True:
            message = await self._websocket.receive()
            if message["type"] == "websocket.disconnect":
                return
            text = message.get("text")
            yield text if text is not None else (message.get("bytes") or b"")


@router.api_route("/incoming-call", methods=["GET", "POST"])
async def incoming_call(
    request: Request,
    registry: CallRegistry = Depends(get_registry),
) -> Response:
    settings = get_settings()
    caller = await _caller_number(request)
    if caller:
        await registry.remember_caller(caller)
    stream_url = _stream_url(request)
    LOGGER.info("Answering incoming call from %s, streaming to %s", caller or "unknown", stream_url)
    return _texml_response(
        _texml_stream(
            greeting=settings.greeting_text,
            prompt=settings.prompt_text,
            stream_url=stream_url,
        )
    )


@router.websocket(MEDIA_STREAM_PATH)
async def media_stream(
    websocket: WebSocket,
    registry: CallRegistry = Depends(get_registry),
    webhook: CallSummaryWebhook = Depends(get_webhook),
    realtime_factory: Callable[[], RealtimeTransport] = Depends(get_realtime_factory),
    instructions: str = Depends(get_instructions),
) -> None:
    await websocket.accept()
    LOGGER.info("Client connected")

    controller = SessionController(
        CarrierSocket(websocket),
        realtime_factory(),
        settings=get_settings(),
        registry=registry,
        webhook=webhook,
        instructions=instructions,
    )
    try:
        await controller.run()
    except WebSocketDisconnect:
        return

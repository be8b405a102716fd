"""Connection to the realtime speech relay and the events exchanged with it."""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from typing import Any, Protocol

import websockets
from websockets.protocol import State

from calls.errors import MalformedMessageError
from calls.session import StreamMillis
from config.settings import Settings

LOGGER = logging.getLogger(__name__)

AUDIO_FORMAT = "g711_ulaw"
TRANSCRIPTION_MODEL = "whisper-1"


class RealtimeSender(Protocol):
    @property
    def is_open(self) -> bool: ...

    async def send(self, event: dict[str, Any]) -> None: ...


class RealtimeTransport(RealtimeSender, Protocol):
    async def open(self) -> None: ...

    def messages(self) -> AsyncIterator[str | bytes]: ...

    async def close(self) -> None: ...


def build_session_update(
    *,
    voice: str,
    instructions: str,
    temperature: float,
    transcribe_input: bool = False,
) -> dict[str, Any]:
    session: dict[str, Any] = {
        "turn_detection": {"type": "server_vad"},
        "input_audio_format": AUDIO_FORMAT,
        "output_audio_format": AUDIO_FORMAT,
        "voice": voice,
        "instructions": instructions,
        "modalities": ["text", "audio"],
        "temperature": temperature,
    }
    if transcribe_input:
        session["input_audio_transcription"] = {"model": TRANSCRIPTION_MODEL}
    return {"type": "session.update", "session": session}


def build_audio_append(payload: str) -> dict[str, Any]:
    return {"type": "input_audio_buffer.append", "audio": payload}


def build_truncate_event(item_id: str, audio_end_ms: StreamMillis) -> dict[str, Any]:
    return {
        "type": "conversation.item.truncate",
        "item_id": item_id,
        "content_index": 0,
        "audio_end_ms": audio_end_ms,
    }


def build_greeting_item(greeting: str) -> dict[str, Any]:
    return {
        "type": "conversation.item.create",
        "item": {
            "type": "message",
            "role": "user",
            "content": [
                {
                    "type": "input_text",
                    "text": f'Greet the user with "{greeting}"',
                }
            ],
        },
    }


def build_response_create() -> dict[str, Any]:
    return {"type": "response.create"}


def parse_realtime_event(raw: str | bytes) -> dict[str, Any]:
    try:
        event = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise MalformedMessageError(f"Unparseable relay event: {exc}") from exc
    if not isinstance(event, dict) or not isinstance(event.get("type"), str):
        raise MalformedMessageError("Relay event must be an object with a string type.")
    return event


class RealtimeConnection:
    """One WebSocket session with the realtime speech relay.

    Opened once per call; never reconnected.
    """

    def __init__(self, url: str, api_key: str, *, ping_interval: float = 20, ping_timeout: float = 20) -> None:
        self._url = url
        self._api_key = api_key
        self._ping_interval = ping_interval
        self._ping_timeout = ping_timeout
        self._ws: websockets.ClientConnection | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> RealtimeConnection:
        settings.require_relay_credentials()
        return cls(settings.realtime_endpoint, settings.openai_api_key or "")

    async def open(self) -> None:
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "OpenAI-Beta": "realtime=v1",
        }
        self._ws = await websockets.connect(
            self._url,
            additional_headers=headers,
            ping_interval=self._ping_interval,
            ping_timeout=self._ping_timeout,
        )
        LOGGER.info("Connected to the realtime relay")

    @property
    def is_open(self) -> bool:
        return self._ws is not None and self._ws.state is State.OPEN

    async def send(self, event: dict[str, Any]) -> None:
        if self._ws is None:
            raise RuntimeError("Realtime connection is not open")
        await self._ws.send(json.dumps(event))

    async def messages(self) -> AsyncIterator[str | bytes]:
        """Yield raw relay messages until the connection closes.

        A clean close ends the iteration; an abnormal close raises
        ``websockets.exceptions.ConnectionClosedError``.
        """

        if self._ws is None:
            return
        async for message in self._ws:
            yield message

    async def close(self) -> None:
        if self._ws is not None and self._ws.state is not State.CLOSED:
            await self._ws.close()

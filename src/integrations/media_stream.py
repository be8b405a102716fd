"""Wire format of the carrier's bidirectional media stream WebSocket.

Inbound messages are JSON objects tagged by ``event``:
``start``, ``media``, ``mark`` and ``stop``. Outbound frames are ``media``,
``mark`` and ``clear``. Audio payloads are base64 strings that are passed
through untouched.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any, Protocol

from calls.errors import MalformedMessageError
from calls.session import MARK_NAME, StreamMillis


class TelephonySender(Protocol):
    async def send_json(self, data: Any) -> None: ...


class TelephonyChannel(TelephonySender, Protocol):
    def iter_messages(self) -> AsyncIterator[str | bytes]: ...


@dataclass(frozen=True)
class StreamStart:
    stream_id: str
    caller_number: str | None


@dataclass(frozen=True)
class MediaFrame:
    timestamp: StreamMillis
    payload: str


def parse_media_stream_message(text: str | bytes) -> dict[str, Any]:
    try:
        message = json.loads(text)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise MalformedMessageError(f"Unparseable media stream message: {exc}") from exc
    if not isinstance(message, dict):
        raise MalformedMessageError("Media stream message must be a JSON object.")
    return message


def event_name(message: dict[str, Any]) -> str:
    return str(message.get("event") or "")


def parse_start(message: dict[str, Any]) -> StreamStart:
    start = message.get("start")
    if not isinstance(start, dict):
        raise MalformedMessageError("start event without start block")
    stream_id = start.get("streamId") or start.get("stream_id")
    if not stream_id:
        raise MalformedMessageError("start event without streamId")
    caller = start.get("from")
    return StreamStart(stream_id=str(stream_id), caller_number=str(caller) if caller else None)


def parse_media(message: dict[str, Any]) -> MediaFrame:
    media = message.get("media")
    if not isinstance(media, dict):
        raise MalformedMessageError("media event without media block")
    try:
        # Carriers send the timestamp as a decimal string.
        timestamp = StreamMillis(int(media["timestamp"]))
    except (KeyError, TypeError, ValueError) as exc:
        raise MalformedMessageError(f"media event with invalid timestamp: {exc}") from exc
    payload = media.get("payload")
    if not isinstance(payload, str):
        raise MalformedMessageError("media event without payload")
    return MediaFrame(timestamp=timestamp, payload=payload)


def build_media_frame(stream_id: str, payload: str) -> dict[str, Any]:
    return {"event": "media", "streamId": stream_id, "media": {"payload": payload}}


def build_mark_frame(stream_id: str, name: str = MARK_NAME) -> dict[str, Any]:
    return {"event": "mark", "streamId": stream_id, "mark": {"name": name}}


def build_clear_frame(stream_id: str | None) -> dict[str, Any]:
    return {"event": "clear", "streamId": stream_id}

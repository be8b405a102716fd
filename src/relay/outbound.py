"""Realtime -> telephony relay."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any, Final

from calls.interruption import handle_speech_started
from calls.session import MARK_NAME, CallSession
from calls.transcript import TranscriptAggregator
from integrations.media_stream import TelephonySender, build_mark_frame, build_media_frame
from integrations.realtime_client import RealtimeSender

LOGGER = logging.getLogger(__name__)

LOG_EVENT_TYPES: Final[frozenset[str]] = frozenset(
    {
        "error",
        "response.content.done",
        "rate_limits.updated",
        "response.done",
        "input_audio_buffer.committed",
        "input_audio_buffer.speech_stopped",
        "input_audio_buffer.speech_started",
        "session.created",
        "session.updated",
    }
)


class OutboundRelay:
    """Turns relay events into carrier frames, transcript updates and barge-in handling."""

    def __init__(
        self,
        session: CallSession,
        *,
        telephony: TelephonySender,
        realtime: RealtimeSender,
        aggregator: TranscriptAggregator,
        interrupt: Callable[[], Awaitable[Any]] | None = None,
    ) -> None:
        self._session = session
        self._telephony = telephony
        self._realtime = realtime
        self._aggregator = aggregator
        self._interrupt = interrupt or self._interrupt_playback
        # Item id -> event type that supplies its text.
        self._text_sources: dict[str, str] = {}
        self._handlers: dict[str, Callable[[dict[str, Any]], Awaitable[None]]] = {
            "response.audio.delta": self._on_audio_delta,
            "response.content.delta": self._on_content_delta,
            "response.audio_transcript.delta": self._on_audio_transcript_delta,
            "conversation.item.input_audio_transcription.completed": self._on_caller_transcript,
            "input_audio_buffer.speech_started": self._on_speech_started,
        }

    async def handle(self, event: dict[str, Any]) -> None:
        event_type = event.get("type")
        if event_type == "error":
            LOGGER.error("Relay error event: %s", event.get("error") or event)
        elif event_type in LOG_EVENT_TYPES:
            LOGGER.info("Received event: %s", event_type)

        handler = self._handlers.get(event_type)
        if handler is not None:
            await handler(event)

    async def _on_audio_delta(self, event: dict[str, Any]) -> None:
        payload = event.get("delta")
        if not payload:
            return
        stream_id = self._session.stream_id
        if not stream_id:
            # The call has not started yet; there is nowhere to play this.
            return

        await self._telephony.send_json(build_media_frame(stream_id, payload))

        # The first frame of a response anchors its playback clock.
        if self._session.response_start_timestamp is None:
            self._session.response_start_timestamp = self._session.latest_media_timestamp
            LOGGER.debug("Setting start timestamp for new response: %sms", self._session.response_start_timestamp)

        item_id = event.get("item_id")
        if item_id:
            self._session.last_assistant_item_id = item_id

        self._session.mark_queue.append(MARK_NAME)
        await self._telephony.send_json(build_mark_frame(stream_id))

    async def _on_content_delta(self, event: dict[str, Any]) -> None:
        delta = event.get("delta")
        if not isinstance(delta, dict) or delta.get("type") != "text":
            return
        self._add_assistant_text(event, delta.get("text"))

    async def _on_audio_transcript_delta(self, event: dict[str, Any]) -> None:
        self._add_assistant_text(event, event.get("delta"))

    def _add_assistant_text(self, event: dict[str, Any], text: Any) -> None:
        if not isinstance(text, str) or not text:
            return
        item_id = event.get("item_id")
        if item_id:
            # The first event type to carry text for an item owns it.
            source = self._text_sources.setdefault(item_id, event["type"])
            if source != event["type"]:
                return
        self._aggregator.add_assistant_delta(item_id, text)

    async def _on_caller_transcript(self, event: dict[str, Any]) -> None:
        transcript = event.get("transcript")
        if isinstance(transcript, str):
            self._aggregator.add_caller_turn(transcript, event.get("item_id"))

    async def _on_speech_started(self, event: dict[str, Any]) -> None:
        await self._interrupt()

    async def _interrupt_playback(self) -> Any:
        return await handle_speech_started(self._session, realtime=self._realtime, telephony=self._telephony)

"""Telephony -> realtime relay."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from calls.registry import CallRegistry
from calls.session import CallSession
from integrations.media_stream import event_name, parse_media, parse_start
from integrations.realtime_client import RealtimeSender, build_audio_append

LOGGER = logging.getLogger(__name__)


class InboundRelay:
    """Applies carrier stream events to the call session and forwards caller audio."""

    def __init__(
        self,
        session: CallSession,
        *,
        realtime: RealtimeSender,
        on_stop: Callable[[], Awaitable[None]],
        registry: CallRegistry | None = None,
        is_finalized: Callable[[], bool] = lambda: False,
    ) -> None:
        self._session = session
        self._realtime = realtime
        self._on_stop = on_stop
        self._registry = registry
        self._is_finalized = is_finalized
        self._handlers: dict[str, Callable[[dict[str, Any]], Awaitable[None]]] = {
            "media": self._on_media,
            "start": self._on_start,
            "mark": self._on_mark,
            "stop": self._on_stop_event,
        }

    async def handle(self, message: dict[str, Any]) -> None:
        event = event_name(message)
        handler = self._handlers.get(event)
        if handler is None:
            LOGGER.debug("Received non-media event: %s", event)
            return
        await handler(message)

    async def _on_media(self, message: dict[str, Any]) -> None:
        frame = parse_media(message)
        self._session.latest_media_timestamp = frame.timestamp
        if not self._realtime.is_open:
            # No buffering: a dropped frame is a short gap in a continuous stream.
            return
        await self._realtime.send(build_audio_append(frame.payload))

    async def _on_start(self, message: dict[str, Any]) -> None:
        start = parse_start(message)
        previous = self._session.stream_id
        caller = start.caller_number
        if self._registry is not None and self._session.caller_number is None:
            # The stream's own number wins; the webhook's is the fallback.
            pending = await self._registry.take_pending_caller()
            caller = caller or pending
        self._session.start_stream(start.stream_id, caller)
        LOGGER.info("Incoming stream has started %s (caller %s)", start.stream_id, self._session.caller_number)

        if self._registry is None:
            return
        if self._is_finalized():
            LOGGER.warning("Stream %s started after the call was finalized, not registering it", start.stream_id)
            return
        if previous and previous != start.stream_id:
            await self._registry.remove(previous, self._session)
        await self._registry.register(start.stream_id, self._session)

    async def _on_mark(self, message: dict[str, Any]) -> None:
        if self._session.mark_queue:
            self._session.mark_queue.popleft()

    async def _on_stop_event(self, message: dict[str, Any]) -> None:
        LOGGER.info("Stream %s stopped, saving call data", self._session.stream_id)
        await self._on_stop()

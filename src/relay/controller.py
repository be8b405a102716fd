"""Per-call orchestration of the telephony stream and the realtime relay session."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

from websockets.exceptions import WebSocketException

from calls.interruption import handle_speech_started
from calls.registry import CallRegistry
from calls.session import CallSession, StreamMillis
from calls.transcript import TranscriptAggregator
from config.settings import Settings
from integrations.media_stream import TelephonyChannel, parse_media_stream_message
from integrations.realtime_client import (
    RealtimeTransport,
    build_greeting_item,
    build_response_create,
    build_session_update,
    parse_realtime_event,
)
from integrations.webhook import CallSummaryWebhook
from relay.inbound import InboundRelay
from relay.outbound import OutboundRelay

LOGGER = logging.getLogger(__name__)


class ControllerState(str, Enum):
    CONNECTING = "connecting"
    SESSION_INITIALIZING = "session_initializing"
    ACTIVE = "active"
    INTERRUPTING = "interrupting"
    CLOSING = "closing"
    FINALIZED = "finalized"


class SessionController:
    """Owns one call: its session state, both relays and the relay connection lifecycle.

    Messages from both sides are handled one at a time under a per-call lock,
    so the read-then-write sequences on the playback fields never interleave.
    """

    def __init__(
        self,
        telephony: TelephonyChannel,
        realtime: RealtimeTransport,
        *,
        settings: Settings,
        registry: CallRegistry,
        webhook: CallSummaryWebhook,
        instructions: str,
    ) -> None:
        self._telephony = telephony
        self._realtime = realtime
        self._settings = settings
        self._registry = registry
        self._webhook = webhook
        self._instructions = instructions

        self.session = CallSession(user_id=settings.company_uuid)
        self.aggregator = TranscriptAggregator(self.session, notes_max_length=settings.notes_max_length)
        self.inbound = InboundRelay(
            self.session,
            realtime=realtime,
            on_stop=self._request_stop,
            registry=registry,
            is_finalized=lambda: self._finalized,
        )
        self.outbound = OutboundRelay(
            self.session,
            telephony=telephony,
            realtime=realtime,
            aggregator=self.aggregator,
            interrupt=self._interrupt,
        )

        self.state = ControllerState.CONNECTING
        self.record: dict[str, Any] | None = None
        self._lock = asyncio.Lock()
        self._session_configured = False
        self._stop_requested = False
        self._finalized = False

    async def run(self) -> None:
        """Relay until the telephony side goes away, then finalize the call."""

        relay_task: asyncio.Task | None = None
        try:
            if await self._open_realtime():
                relay_task = asyncio.create_task(self._pump_realtime())
            await self._pump_telephony()
        finally:
            await self._shutdown(relay_task)

    async def initialize_session(self) -> bool:
        """Send the one-time session configuration. Returns False if it was not sent."""

        async with self._lock:
            if self._session_configured or not self._realtime.is_open:
                return False
            self._session_configured = True

            update = build_session_update(
                voice=self._settings.voice,
                instructions=self._instructions,
                temperature=self._settings.temperature,
                transcribe_input=self._settings.transcribe_caller_audio,
            )
            LOGGER.info("Sending session update (voice=%s)", self._settings.voice)
            await self._realtime.send(update)

            if self._settings.ai_speaks_first:
                await self._send_greeting()

            if self.state is ControllerState.SESSION_INITIALIZING:
                self.state = ControllerState.ACTIVE
            return True

    async def finalize(self) -> dict[str, Any] | None:
        """Compute notes and hand the record off. Runs at most once per call."""

        if self._finalized:
            return None
        self._finalized = True
        self.state = ControllerState.CLOSING

        self.aggregator.finalize()
        record = self.session.to_record()
        self.record = record
        await self._registry.remove(self.session.stream_id, self.session)
        self.state = ControllerState.FINALIZED

        await self._webhook.deliver(record)
        return record

    async def _open_realtime(self) -> bool:
        try:
            await self._realtime.open()
        except (OSError, WebSocketException) as exc:
            LOGGER.error("Could not connect to the realtime relay, continuing without AI audio: %s", exc)
            self.state = ControllerState.ACTIVE
            return False
        self.state = ControllerState.SESSION_INITIALIZING
        return True

    async def _pump_realtime(self) -> None:
        try:
            # Let the remote session settle before configuring it.
            await asyncio.sleep(self._settings.session_update_delay_seconds)
            await self.initialize_session()
            async for raw in self._realtime.messages():
                await self._dispatch(raw, parse_realtime_event, self.outbound.handle, "relay")
        except (OSError, WebSocketException) as exc:
            LOGGER.error("Error in the realtime relay connection: %s", exc)
        else:
            LOGGER.info("Disconnected from the realtime relay")

    async def _pump_telephony(self) -> None:
        async for raw in self._telephony.iter_messages():
            await self._dispatch(raw, parse_media_stream_message, self.inbound.handle, "media stream")
            if self._stop_requested:
                await self.finalize()
        LOGGER.info("Client disconnected")

    async def _dispatch(
        self,
        raw: str | bytes,
        parse: Callable[[str | bytes], dict[str, Any]],
        handle: Callable[[dict[str, Any]], Awaitable[None]],
        source: str,
    ) -> None:
        try:
            message = parse(raw)
            async with self._lock:
                await handle(message)
        except Exception:
            LOGGER.exception("Error processing %s message: %r", source, raw)

    async def _request_stop(self) -> None:
        # Finalization sends the webhook; it runs after the per-call lock is released.
        self._stop_requested = True

    async def _interrupt(self) -> StreamMillis | None:
        previous = self.state
        self.state = ControllerState.INTERRUPTING
        try:
            return await handle_speech_started(self.session, realtime=self._realtime, telephony=self._telephony)
        finally:
            self.state = previous

    async def _send_greeting(self) -> None:
        greeting = self._settings.assistant_greeting
        await self._realtime.send(build_greeting_item(greeting))
        await self._realtime.send(build_response_create())
        self.aggregator.add_assistant_turn(greeting)

    async def _shutdown(self, relay_task: asyncio.Task | None) -> None:
        if not self._finalized:
            self.state = ControllerState.CLOSING
        if self._realtime.is_open:
            await self._realtime.close()
        if relay_task is not None:
            relay_task.cancel()
            await asyncio.gather(relay_task, return_exceptions=True)
        await self.finalize()

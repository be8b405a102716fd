from __future__ import annotations

import asyncio
import logging

from calls.errors import CallNotFoundError
from calls.session import CallSession, CallStatus

LOGGER = logging.getLogger(__name__)


class CallRegistry:
    """In-memory map of active calls keyed by stream id.

    Note: This is a single-process registry. For multi-worker deployments, replace
    with Redis or another shared store.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._sessions: dict[str, CallSession] = {}
        self._latest: str | None = None
        self._pending_caller: str | None = None

    async def remember_caller(self, caller_number: str) -> None:
        """Hold the number from the inbound-call webhook until its media stream starts."""

        async with self._lock:
            self._pending_caller = caller_number

    async def take_pending_caller(self) -> str | None:
        async with self._lock:
            caller, self._pending_caller = self._pending_caller, None
        return caller

    async def register(self, stream_id: str, session: CallSession) -> None:
        async with self._lock:
            self._sessions[stream_id] = session
            self._latest = stream_id

    async def remove(self, stream_id: str | None, session: CallSession | None = None) -> None:
        if stream_id is None:
            return
        async with self._lock:
            current = self._sessions.get(stream_id)
            # A newer call may have reused the id; only drop our own entry.
            if current is None or (session is not None and current is not session):
                return
            del self._sessions[stream_id]
            if self._latest == stream_id:
                self._latest = next(reversed(self._sessions), None)

    async def get(self, stream_id: str | None = None) -> CallSession:
        """Return the call for ``stream_id``, or the most recently started call."""

        async with self._lock:
            key = stream_id if stream_id is not None else self._latest
            session = self._sessions.get(key) if key is not None else None
        if session is None:
            raise CallNotFoundError(f"No active call for stream {stream_id}" if stream_id else None)
        return session

    async def set_status(self, value: object, stream_id: str | None = None) -> CallSession:
        status = CallStatus.parse(value)
        session = await self.get(stream_id)
        session.status = status
        LOGGER.info("Status for stream %s set to %s", session.stream_id, status.value)
        return session

    def __len__(self) -> int:
        return len(self._sessions)


GLOBAL_CALL_REGISTRY = CallRegistry()

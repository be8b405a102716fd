from __future__ import annotations

import asyncio
import json
import os
import sys
from pathlib import Path
from typing import Any

import pytest
from websockets.exceptions import ConnectionClosedError

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))


class FakeTelephony:
    """Stands in for the carrier WebSocket: scripted inbound frames, recorded outbound frames."""

    def __init__(self, messages: list[dict[str, Any] | str | bytes] | None = None, *, wait_for: asyncio.Event | None = None):
        self.sent: list[dict[str, Any]] = []
        self._messages = list(messages or [])
        self._wait_for = wait_for

    async def send_json(self, data: Any) -> None:
        self.sent.append(data)

    async def iter_messages(self):
        if self._wait_for is not None:
            await self._wait_for.wait()
        for message in self._messages:
            await asyncio.sleep(0)
            yield message if isinstance(message, (str, bytes)) else json.dumps(message)

    def events(self, name: str) -> list[dict[str, Any]]:
        return [frame for frame in self.sent if frame.get("event") == name]


class FakeRealtime:
    """Stands in for the realtime relay connection."""

    def __init__(
        self,
        *,
        open_: bool = True,
        fail_open: bool = False,
        script: list[dict[str, Any]] | None = None,
        drop_after_script: bool = False,
    ):
        self.sent: list[dict[str, Any]] = []
        self.closed = False
        self.configured: asyncio.Event | None = None
        self._open = open_ and not fail_open
        self._fail_open = fail_open
        self._script = list(script or [])
        self._queue: asyncio.Queue | None = None
        self._drop_after_script = drop_after_script
        self.dropped = asyncio.Event()

    async def open(self) -> None:
        if self._fail_open:
            raise OSError("connection refused")
        self._open = True
        self._queue = asyncio.Queue()
        for event in self._script:
            self._queue.put_nowait(json.dumps(event))

    @property
    def is_open(self) -> bool:
        return self._open and not self.closed

    async def send(self, event: dict[str, Any]) -> None:
        self.sent.append(event)
        if event.get("type") == "session.update" and self.configured is not None:
            self.configured.set()

    async def messages(self):
        if self._queue is None:
            return
        if self._drop_after_script:
            while not self._queue.empty():
                yield self._queue.get_nowait()
            self._open = False
            self.dropped.set()
            raise ConnectionClosedError(None, None)
        while True:
            raw = await self._queue.get()
            if raw is None:
                return
            yield raw

    async def close(self) -> None:
        self.closed = True
        if self._queue is not None:
            self._queue.put_nowait(None)

    def of_type(self, event_type: str) -> list[dict[str, Any]]:
        return [event for event in self.sent if event.get("type") == event_type]


class RecordingWebhook:
    def __init__(self) -> None:
        self.records: list[dict[str, Any]] = []

    async def deliver(self, record: dict[str, Any]) -> bool:
        self.records.append(record)
        return True


@pytest.fixture()
def telephony() -> FakeTelephony:
    return FakeTelephony()


@pytest.fixture()
def realtime() -> FakeRealtime:
    return FakeRealtime()


@pytest.fixture()
def webhook() -> RecordingWebhook:
    return RecordingWebhook()


@pytest.fixture()
def settings():
    from config.settings import Settings

    return Settings(
        openai_api_key="sk-test",
        telnyx_api_key="KEY-test",
        company_uuid="company-1",
        session_update_delay_seconds=0,
        _env_file=None,
    )


@pytest.fixture(scope="session")
def app():
    # Must be set before importing modules that read settings at import time.
    os.environ["OPENAI_API_KEY"] = "sk-test"
    os.environ["TELNYX_API_KEY"] = "KEY-test"
    os.environ["COMPANY_UUID"] = "company-1"
    os.environ["SESSION_UPDATE_DELAY_SECONDS"] = "0"
    os.environ.pop("WEBHOOK_URL", None)
    os.environ.pop("PUBLIC_BASE_URL", None)

    import importlib

    # Ensure clean import with the test settings.
    for module_name in [
        "config.settings",
        "api.dependencies",
        "api.routes",
        "api.telephony_routes",
        "main",
    ]:
        sys.modules.pop(module_name, None)

    main = importlib.import_module("main")
    return main.app

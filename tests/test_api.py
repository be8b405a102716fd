from __future__ import annotations

import asyncio
import time

from fastapi.testclient import TestClient

from calls.session import CallSession
from conftest import FakeRealtime, RecordingWebhook


def _wait_for(webhook: RecordingWebhook) -> None:
    # The app runs in the client's portal thread; wait for it to finalize.
    for _ in range(200):
        if webhook.records:
            return
        time.sleep(0.01)


def test_index_reports_running(app):
    with TestClient(app) as client:
        response = client.get("/")
    assert response.status_code == 200
    assert response.json() == {"message": "Media Stream Server is running!"}


def test_incoming_call_returns_texml_stream(app):
    with TestClient(app) as client:
        response = client.post("/incoming-call", data={"From": "+1555"})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/xml")
    assert "<Say>" in response.text
    assert '<Pause length="1"/>' in response.text
    assert '<Stream url="wss://testserver/media-stream" />' in response.text


def test_incoming_call_caller_is_used_when_stream_has_none(app):
    import api.dependencies as deps

    realtime = FakeRealtime()
    webhook = RecordingWebhook()
    app.dependency_overrides[deps.get_realtime_factory] = lambda: (lambda: realtime)
    app.dependency_overrides[deps.get_webhook] = lambda: webhook

    try:
        with TestClient(app) as client:
            response = client.post("/incoming-call", data={"from": "+1777"})
            assert response.status_code == 200
            with client.websocket_connect("/media-stream") as ws:
                ws.send_json({"event": "start", "start": {"streamId": "ws-2"}})
                ws.send_json({"event": "stop"})
                _wait_for(webhook)
    finally:
        app.dependency_overrides.clear()

    assert len(webhook.records) == 1
    assert webhook.records[0]["caller_number"] == "+1777"
    assert webhook.records[0]["stream_id"] == "ws-2"


def test_update_status_applies_to_latest_call(app):
    from calls.registry import GLOBAL_CALL_REGISTRY

    session = CallSession()
    session.start_stream("status-1", "+1555")
    asyncio.run(GLOBAL_CALL_REGISTRY.register("status-1", session))
    try:
        with TestClient(app) as client:
            response = client.post("/update-status", json={"status": "Resolved"})
    finally:
        asyncio.run(GLOBAL_CALL_REGISTRY.remove("status-1", session))

    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "Resolution status updated to Resolved"}
    assert session.status.value == "Resolved"


def test_update_status_rejects_unknown_values(app):
    with TestClient(app) as client:
        response = client.post("/update-status", json={"status": "Maybe"})

    assert response.status_code == 400
    assert "Resolved" in response.json()["detail"]


def test_update_status_for_unknown_stream_is_404(app):
    with TestClient(app) as client:
        response = client.post("/update-status", json={"status": "Resolved", "stream_id": "nope"})
    assert response.status_code == 404


def test_media_stream_bridges_call_and_delivers_summary(app):
    import api.dependencies as deps

    realtime = FakeRealtime(script=[{"type": "response.audio.delta", "delta": "UklGRg==", "item_id": "r1"}])
    webhook = RecordingWebhook()
    app.dependency_overrides[deps.get_realtime_factory] = lambda: (lambda: realtime)
    app.dependency_overrides[deps.get_webhook] = lambda: webhook

    try:
        with TestClient(app) as client:
            with client.websocket_connect("/media-stream") as ws:
                ws.send_json({"event": "start", "start": {"streamId": "ws-1", "from": "+1555"}})
                ws.send_json({"event": "media", "media": {"timestamp": "20", "payload": "AAA="}})
                ws.send_json({"event": "stop"})
                _wait_for(webhook)
    finally:
        app.dependency_overrides.clear()

    assert len(webhook.records) == 1
    record = webhook.records[0]
    assert record["caller_number"] == "+1555"
    assert record["stream_id"] == "ws-1"
    assert "conversation_log" not in record
    assert len(realtime.of_type("session.update")) == 1


def test_binary_frame_does_not_end_the_call(app):
    import api.dependencies as deps

    realtime = FakeRealtime()
    webhook = RecordingWebhook()
    app.dependency_overrides[deps.get_realtime_factory] = lambda: (lambda: realtime)
    app.dependency_overrides[deps.get_webhook] = lambda: webhook

    try:
        with TestClient(app) as client:
            with client.websocket_connect("/media-stream") as ws:
                ws.send_bytes(b"\x00\x01")
                ws.send_json({"event": "start", "start": {"streamId": "bin-1", "from": "+1555"}})
                ws.send_json({"event": "media", "media": {"timestamp": "20", "payload": "AAA="}})
                ws.send_json({"event": "stop"})
                _wait_for(webhook)
    finally:
        app.dependency_overrides.clear()

    assert len(webhook.records) == 1
    record = webhook.records[0]
    assert record["stream_id"] == "bin-1"
    assert record["caller_number"] == "+1555"
    assert realtime.of_type("input_audio_buffer.append") == [{"type": "input_audio_buffer.append", "audio": "AAA="}]

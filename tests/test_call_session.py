from __future__ import annotations

import pytest

from calls.errors import InvalidStatusError
from calls.session import CallSession, CallStatus, ConversationTurn, Role


def test_start_stream_resets_playback_clock():
    session = CallSession()
    session.latest_media_timestamp = 900
    session.response_start_timestamp = 300

    session.start_stream("s1", "+1555")

    assert session.stream_id == "s1"
    assert session.caller_number == "+1555"
    assert session.latest_media_timestamp == 0
    assert session.response_start_timestamp is None


def test_caller_number_is_kept_across_stream_restarts():
    session = CallSession()
    session.start_stream("s1", "+1555")
    session.start_stream("s2", "+1999")

    assert session.stream_id == "s2"
    assert session.caller_number == "+1555"


def test_missing_caller_number_defaults_to_unknown():
    session = CallSession()
    session.start_stream("s1", None)
    assert session.caller_number == "unknown"


def test_record_leaves_out_conversation_log():
    session = CallSession(user_id="company-1")
    session.start_stream("s1", "+1555")
    session.conversation_log.append(ConversationTurn(role=Role.ASSISTANT, text="Hi", response_item_id="r1"))
    session.notes = "assistant: Hi"

    record = session.to_record()

    assert "conversation_log" not in record
    assert record == {
        "user_id": "company-1",
        "caller_number": "+1555",
        "stream_id": "s1",
        "status": "Unresolved",
        "notes": "assistant: Hi",
    }


def test_status_parse_accepts_only_exact_values():
    assert CallStatus.parse("Resolved") is CallStatus.RESOLVED
    assert CallStatus.parse("Unresolved") is CallStatus.UNRESOLVED
    for bad in ("resolved", "Done", "", None, 1):
        with pytest.raises(InvalidStatusError):
            CallStatus.parse(bad)

"""In-memory state for one active call."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, NewType

from calls.errors import InvalidStatusError

# Milliseconds on the telephony stream's own clock, reset at every stream start.
# Never mix with wall-clock time.
StreamMillis = NewType("StreamMillis", int)

MARK_NAME = "responsePart"
UNKNOWN_CALLER = "unknown"


class CallStatus(str, Enum):
    UNRESOLVED = "Unresolved"
    RESOLVED = "Resolved"

    @classmethod
    def parse(cls, value: Any) -> CallStatus:
        """Accept only the exact wire values; anything else is rejected."""

        for status in cls:
            if value == status.value:
                return status
        raise InvalidStatusError()


class Role(str, Enum):
    CALLER = "caller"
    ASSISTANT = "assistant"


@dataclass
class ConversationTurn:
    role: Role
    text: str
    response_item_id: str | None = None


@dataclass
class CallSession:
    """Mutable state shared by both relays for the lifetime of one call.

    Owned by a single session controller; the relays and the transcript
    aggregator receive it by reference.
    """

    user_id: str | None = None
    caller_number: str | None = None
    stream_id: str | None = None
    latest_media_timestamp: StreamMillis = StreamMillis(0)
    response_start_timestamp: StreamMillis | None = None
    last_assistant_item_id: str | None = None
    mark_queue: deque[str] = field(default_factory=deque)
    status: CallStatus = CallStatus.UNRESOLVED
    conversation_log: list[ConversationTurn] = field(default_factory=list)
    notes: str = ""

    def start_stream(self, stream_id: str, caller_number: str | None) -> None:
        """Bind the session to a fresh media stream and restart its playback clock."""

        self.stream_id = stream_id
        if self.caller_number is None:
            self.caller_number = caller_number or UNKNOWN_CALLER
        self.response_start_timestamp = None
        self.latest_media_timestamp = StreamMillis(0)

    def response_in_flight(self) -> bool:
        return bool(self.mark_queue) and self.response_start_timestamp is not None

    def reset_playback(self) -> None:
        self.mark_queue.clear()
        self.last_assistant_item_id = None
        self.response_start_timestamp = None

    def to_record(self) -> dict[str, Any]:
        """Summary payload for delivery; the conversation log is working state and stays out."""

        return {
            "user_id": self.user_id,
            "caller_number": self.caller_number,
            "stream_id": self.stream_id,
            "status": self.status.value,
            "notes": self.notes,
        }

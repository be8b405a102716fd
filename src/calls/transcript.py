"""Accumulates streamed assistant text into conversation turns and derives the call status."""

from __future__ import annotations

import logging
from typing import Final

from calls.session import CallSession, CallStatus, ConversationTurn, Role

LOGGER = logging.getLogger(__name__)

RESOLUTION_PHRASES: Final[tuple[str, ...]] = (
    "resolved",
    "issue fixed",
    "problem solved",
    "completed successfully",
)
ELLIPSIS: Final[str] = "..."


def mentions_resolution(text: str) -> bool:
    lowered = text.lower()
    return any(phrase in lowered for phrase in RESOLUTION_PHRASES)


class TranscriptAggregator:
    """Maintains ``CallSession.conversation_log`` for one call."""

    def __init__(self, session: CallSession, *, notes_max_length: int = 500) -> None:
        self._session = session
        self._notes_max_length = notes_max_length

    def add_assistant_delta(self, item_id: str | None, text: str) -> ConversationTurn:
        """Append a streamed text fragment to the turn for ``item_id``.

        Fragments for one item always concatenate in arrival order.
        """

        turn = self._find_assistant_turn(item_id)
        if turn is None:
            turn = ConversationTurn(role=Role.ASSISTANT, text=text, response_item_id=item_id)
            self._session.conversation_log.append(turn)
        else:
            turn.text += text

        # Only this turn changed; every other turn was checked when it last grew.
        if self._session.status is not CallStatus.RESOLVED and mentions_resolution(turn.text):
            LOGGER.info("Resolution phrase detected for stream %s", self._session.stream_id)
            self._session.status = CallStatus.RESOLVED
        return turn

    def add_assistant_turn(self, text: str) -> ConversationTurn:
        return self.add_assistant_delta(None, text)

    def add_caller_turn(self, text: str, item_id: str | None = None) -> ConversationTurn | None:
        text = text.strip()
        if not text:
            return None
        turn = ConversationTurn(role=Role.CALLER, text=text, response_item_id=item_id)
        self._session.conversation_log.append(turn)
        return turn

    def finalize(self) -> str:
        """Compute ``notes`` from the conversation log and return it."""

        log = self._session.conversation_log
        if not log:
            return self._session.notes

        summary = "\n".join(f"{turn.role.value}: {turn.text}" for turn in log)
        if len(summary) > self._notes_max_length:
            summary = summary[: self._notes_max_length - len(ELLIPSIS)] + ELLIPSIS
        self._session.notes = summary
        return summary

    def _find_assistant_turn(self, item_id: str | None) -> ConversationTurn | None:
        # Untagged text (e.g. a scripted greeting) always opens its own turn.
        if item_id is None:
            return None
        for turn in self._session.conversation_log:
            if turn.role is Role.ASSISTANT and turn.response_item_id == item_id:
                return turn
        return None

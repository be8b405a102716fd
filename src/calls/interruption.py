"""Barge-in handling: cut the assistant off when the caller starts talking."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from calls.session import CallSession, StreamMillis
from integrations.media_stream import build_clear_frame
from integrations.realtime_client import build_truncate_event

if TYPE_CHECKING:  # pragma: no cover
    from integrations.media_stream import TelephonySender
    from integrations.realtime_client import RealtimeSender

LOGGER = logging.getLogger(__name__)


def played_duration(session: CallSession) -> StreamMillis:
    """Milliseconds of the current response the caller actually heard.

    Negative differences mean the two clocks disagree; they count as nothing played.
    """

    start = session.response_start_timestamp or 0
    elapsed = StreamMillis(max(0, session.latest_media_timestamp - start))
    LOGGER.debug(
        "Elapsed time for truncation: %s - %s = %sms",
        session.latest_media_timestamp,
        start,
        elapsed,
    )
    return elapsed


async def handle_speech_started(
    session: CallSession,
    *,
    realtime: RealtimeSender,
    telephony: TelephonySender,
) -> StreamMillis | None:
    """Truncate the in-flight response and flush buffered playback.

    Returns the audible duration sent with the truncation, or ``None`` when no
    response was in flight and nothing was done.
    """

    if not session.response_in_flight():
        return None

    elapsed = played_duration(session)
    item_id = session.last_assistant_item_id
    stream_id = session.stream_id
    session.reset_playback()

    if item_id:
        if realtime.is_open:
            await realtime.send(build_truncate_event(item_id, elapsed))
        else:
            LOGGER.warning("Relay closed; cannot truncate item %s", item_id)

    await telephony.send_json(build_clear_frame(stream_id))
    LOGGER.info("Caller interrupted stream %s after %sms of playback", stream_id, elapsed)
    return elapsed

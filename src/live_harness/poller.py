"""
Live start detection for live-harness.

Polls a live video's state until the server stops reporting
``WAITING_FOR_LIVE``. There is no deadline here: wrap the call in
``asyncio.wait_for`` (or rely on the test timeout) when the server may
never receive the stream.
"""

from __future__ import annotations

import asyncio

import structlog

from live_harness.http_client import ServerConnection
from live_harness.models.video import VideoDetails
from live_harness.videos import get_video_with_token

logger = structlog.get_logger(__name__)

POLL_INTERVAL_S: float = 0.5


async def wait_until_live_starts(
    server: ServerConnection,
    video_id: int | str,
    *,
    interval_s: float = POLL_INTERVAL_S,
) -> VideoDetails:
    """Return the first video details whose state is not ``WAITING_FOR_LIVE``.

    Args:
        server: Authenticated connection to the server.
        video_id: Live video to watch.
        interval_s: Delay between two polls.
    """
    log = logger.bind(video_id=video_id)
    polls = 0
    while True:
        video = await get_video_with_token(server, video_id)
        polls += 1
        if not video.is_waiting_for_live:
            log.info("live_started", state=video.state.id, polls=polls)
            return video
        await asyncio.sleep(interval_s)

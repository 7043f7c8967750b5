"""
Video reads for live-harness.
"""

from __future__ import annotations

from live_harness.http_client import ServerConnection
from live_harness.models.video import VideoDetails

VIDEOS_PATH = "/api/v1/videos"


async def get_video_with_token(
    server: ServerConnection,
    video_id: int | str,
    *,
    status_code_expected: int = 200,
) -> VideoDetails:
    """Fetch full video details through an authenticated read."""
    response = await server.get(
        f"{VIDEOS_PATH}/{video_id}",
        status_code_expected=status_code_expected,
    )
    return VideoDetails.model_validate(response.json())

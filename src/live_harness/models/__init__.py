"""
Shared Pydantic data models for live-harness.

This package contains the live session payloads and the video slice
read back from the server.
"""

from live_harness.models.live import (
    CreatedLive,
    CreatedVideo,
    LiveSession,
    LiveVideoCreate,
    LiveVideoUpdate,
    VideoPrivacy,
)
from live_harness.models.video import (
    ServerInfo,
    VideoDetails,
    VideoState,
    VideoStateInfo,
)

__all__ = [
    "CreatedLive",
    "CreatedVideo",
    "LiveSession",
    "LiveVideoCreate",
    "LiveVideoUpdate",
    "ServerInfo",
    "VideoDetails",
    "VideoPrivacy",
    "VideoState",
    "VideoStateInfo",
]

"""
live-harness: test harness for live video sessions.

Drives a video server's live feature end to end: creates live videos,
pushes an emulated RTMP stream with ffmpeg, watches the server state,
and checks the HLS files left on disk once the stream ends.
"""

from live_harness.config import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
]

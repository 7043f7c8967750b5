"""
Shared fixtures for live-harness tests.

Provides an in-memory fake of the video server's live and video
endpoints (served through ``httpx.MockTransport``), a fake ``ffmpeg``
executable written as a small Python script, and settings pointing at
both.
"""

from __future__ import annotations

import asyncio
import json
import re
import stat
import sys
import time
import uuid
from collections.abc import AsyncIterator, Callable
from pathlib import Path
from typing import Any

import httpx
import pytest
import pytest_asyncio

from live_harness.config import Settings
from live_harness.ffmpeg import StreamEmulator, StreamProcess
from live_harness.http_client import ServerConnection
from live_harness.live import LiveClient
from live_harness.models.video import VideoState

SERVER_URL = "http://video.test"
ACCESS_TOKEN = "test-token"
RTMP_URL = "rtmp://video.test:1935/live"


# ---------------------------------------------------------------------------
# Fake video server
# ---------------------------------------------------------------------------


class FakeVideoServer:
    """In-memory stand-in for the live and video endpoints.

    Lives start in ``WAITING_FOR_LIVE``; ``start_live_after`` schedules
    the switch to ``PUBLISHED``.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.lives: dict[str, dict[str, Any]] = {}
        self.videos: dict[str, dict[str, Any]] = {}
        self.video_polls: list[float] = []
        self._live_at: dict[str, float] = {}
        self._next_id = 1

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def add_live(self, *, stream_key: str | None = None, save_replay: bool = False) -> str:
        video_id = str(self._next_id)
        self._next_id += 1
        self.lives[video_id] = {
            "rtmpUrl": RTMP_URL,
            "streamKey": stream_key or uuid.uuid4().hex,
            "saveReplay": save_replay,
        }
        self.videos[video_id] = {
            "id": int(video_id),
            "uuid": str(uuid.uuid4()),
            "name": f"live {video_id}",
            "isLive": True,
        }
        return video_id

    def start_live_after(self, video_id: str, delay_s: float) -> None:
        self._live_at[video_id] = time.monotonic() + delay_s

    def live_started_at(self, video_id: str) -> float:
        return self._live_at[video_id]

    def _state(self, video_id: str) -> int:
        live_at = self._live_at.get(video_id)
        if live_at is not None and time.monotonic() >= live_at:
            return VideoState.PUBLISHED.value
        return VideoState.WAITING_FOR_LIVE.value

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.headers.get("Authorization") != f"Bearer {ACCESS_TOKEN}":
            return httpx.Response(401, json={"error": "unauthorized"})

        path = request.url.path
        if path == "/api/v1/videos/live" and request.method == "POST":
            return self._create(request)

        match = re.fullmatch(r"/api/v1/videos/live/(\w+)", path)
        if match:
            live = self.lives.get(match.group(1))
            if live is None:
                return httpx.Response(404, json={"error": "not found"})
            if request.method == "GET":
                return httpx.Response(200, json=live)
            if request.method == "PUT":
                body = json.loads(request.content)
                if "saveReplay" in body:
                    live["saveReplay"] = body["saveReplay"]
                return httpx.Response(204)

        match = re.fullmatch(r"/api/v1/videos/(\w+)", path)
        if match and request.method == "GET":
            video_id = match.group(1)
            video = self.videos.get(video_id)
            if video is None:
                return httpx.Response(404, json={"error": "not found"})
            self.video_polls.append(time.monotonic())
            state = self._state(video_id)
            return httpx.Response(
                200,
                json={**video, "state": {"id": state, "label": VideoState(state).name}},
            )

        return httpx.Response(405)

    def _create(self, request: httpx.Request) -> httpx.Response:
        if b"channelId" not in request.content:
            return httpx.Response(400, json={"error": "channelId is required"})
        video_id = self.add_live()
        video = self.videos[video_id]
        return httpx.Response(200, json={"video": {"id": video["id"], "uuid": video["uuid"]}})


@pytest.fixture()
def fake_server() -> FakeVideoServer:
    return FakeVideoServer()


@pytest_asyncio.fixture
async def server(fake_server: FakeVideoServer, tmp_path: Path) -> AsyncIterator[ServerConnection]:
    """Authenticated connection to the fake server."""
    connection = ServerConnection(
        SERVER_URL,
        ACCESS_TOKEN,
        timeout=5.0,
        fixtures_dir=tmp_path,
        transport=fake_server.transport(),
    )
    yield connection
    await connection.close()


@pytest.fixture()
def live_client(server: ServerConnection) -> LiveClient:
    return LiveClient(server)


# ---------------------------------------------------------------------------
# Fake encoder
# ---------------------------------------------------------------------------

_FAKE_FFMPEG = """#!{python}
import json
import os
import signal
import sys
import time


def _stop(signum, frame):
    time.sleep({sigint_delay!r})
    sys.stderr.write("Exiting normally, received signal 2.\\n")
    sys.stderr.flush()
    sys.exit(255)


signal.signal(signal.SIGINT, _stop)
with open({argv_file!r} + ".tmp", "w") as f:
    json.dump(sys.argv[1:], f)
os.replace({argv_file!r} + ".tmp", {argv_file!r})

sys.stderr.write("ffmpeg version fake\\n")
sys.stderr.write("frame=    1 fps=0.0 q=0.0 size=       0kB\\r")
sys.stderr.flush()

fail_after = {fail_after!r}
started = time.monotonic()
while True:
    if fail_after is not None and time.monotonic() - started >= fail_after:
        sys.stderr.write({error_line!r} + "\\n")
        sys.stderr.flush()
        sys.exit(1)
    time.sleep(0.01)
"""

FakeFfmpegFactory = Callable[..., Path]


@pytest.fixture()
def fake_ffmpeg(tmp_path: Path) -> FakeFfmpegFactory:
    """Factory writing an executable that behaves like a streaming ffmpeg.

    It runs until SIGINT (then prints ffmpeg's "Exiting normally" line
    and exits 255, after *sigint_delay* seconds), or fails with exit
    status 1 after *fail_after* seconds. Its arguments are written to
    ``<script>.argv.json``.
    """

    def _make(
        fail_after: float | None = None,
        error_line: str = "rtmp://video.test:1935/live/key: Input/output error",
        name: str = "ffmpeg",
        sigint_delay: float = 0.0,
    ) -> Path:
        script = tmp_path / name
        script.write_text(
            _FAKE_FFMPEG.format(
                python=sys.executable,
                argv_file=str(script.with_suffix(".argv.json")),
                fail_after=fail_after,
                error_line=error_line,
                sigint_delay=sigint_delay,
            ),
        )
        script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return script

    return _make


async def read_fake_argv(script: Path, timeout_s: float = 5.0) -> list[str]:
    """Return the arguments the fake encoder was started with."""
    argv_file = script.with_suffix(".argv.json")
    deadline = time.monotonic() + timeout_s
    while not argv_file.exists():
        if time.monotonic() > deadline:
            raise AssertionError(f"{script} never recorded its arguments")
        await asyncio.sleep(0.01)
    return json.loads(argv_file.read_text())


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    """Settings pointing at the fake server with short windows."""
    return Settings(
        server_url=SERVER_URL,
        access_token=ACCESS_TOKEN,
        servers_root=tmp_path / "servers",
        fixtures_dir=tmp_path,
        ffmpeg_path=str(tmp_path / "ffmpeg"),
        poll_interval_s=0.05,
        stream_wait_s=0.5,
        stream_test_wait_s=0.8,
        stop_grace_s=0.05,
    )


@pytest.fixture()
def emulator_for(tmp_path: Path) -> Callable[[Path], StreamEmulator]:
    def _make(ffmpeg: Path, *, debug: bool = False) -> StreamEmulator:
        return StreamEmulator(ffmpeg_path=str(ffmpeg), fixtures_dir=tmp_path, debug=debug)

    return _make


@pytest_asyncio.fixture
async def streams() -> AsyncIterator[list[StreamProcess]]:
    """Collects stream handles and makes sure their processes are gone afterwards."""
    started: list[StreamProcess] = []
    yield started
    for stream in started:
        await stream.aclose()

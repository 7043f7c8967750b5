"""
RTMP stream emulation for live-harness.

Spawns one ``ffmpeg`` process per emulated stream. The process loops a
fixture file at native rate, re-encodes the video with live-friendly
keyframe settings and pushes FLV to ``<ingest base URL>/<stream key>``.

``StreamProcess`` is the handle to that process. A watcher task drains
its stderr and waits for it to exit, then classifies the exit:

* exit status 0 is clean;
* an exit whose message contains ``"Exiting normally"``, or a death
  by the SIGINT we sent, is the benign end of the stream;
* anything else is recorded as a ``StreamError`` and signalled to
  whoever waits on the handle.
"""

from __future__ import annotations

import asyncio
import re
import signal
from collections import deque
from pathlib import Path

import structlog
from pydantic import SecretStr

from live_harness.config import Settings
from live_harness.errors import StreamError
from live_harness.live import LiveClient

logger = structlog.get_logger(__name__)

# ffmpeg prints this when it stops on a signal it handles (SIGINT, SIGTERM).
BENIGN_EXIT_MARKER = "Exiting normally"

# ffmpeg's SIGINT handler prints the marker and exits 255. Without the
# marker a 255 may also be a status lost to an early reap, so only death
# by the signal itself counts as a stop.
INTERRUPT_EXIT_STATUS = -signal.SIGINT

_STDERR_TAIL_LINES = 20
_STDERR_CHUNK_SIZE = 4096
_LINE_SPLIT = re.compile(r"[\r\n]")


def build_ffmpeg_args(fixture: Path | str, ingest_url: str) -> list[str]:
    """Return the encoder arguments for one emulated live stream."""
    return [
        "-y",
        # input
        "-stream_loop", "-1",
        "-re",
        "-i", str(fixture),
        # output
        "-c:v", "libx264",
        "-g", "50",
        "-keyint_min", "2",
        "-f", "flv",
        ingest_url,
    ]


def _exit_message(returncode: int, stderr_tail: list[str]) -> str:
    if returncode < 0:
        try:
            name = signal.Signals(-returncode).name
        except ValueError:
            name = str(-returncode)
        message = f"ffmpeg was killed with signal {name}"
    else:
        message = f"ffmpeg exited with code {returncode}"
    if stderr_tail:
        message += ": " + "\n".join(stderr_tail)
    return message


class StreamProcess:
    """Ownership of one running encoder process.

    Built and started by ``StreamEmulator``; the caller supervises and
    eventually interrupts it. Interrupting is idempotent.

    Args:
        args: Encoder arguments (they embed the stream key).
        ingest_base_url: Ingest URL without the stream key, safe to log.
        debug: Log every stderr line and encoder errors at high level.
        video_id: Live video the stream belongs to, for log context.
    """

    def __init__(
        self,
        args: list[str],
        ingest_base_url: str,
        *,
        debug: bool = False,
        video_id: int | str | None = None,
    ) -> None:
        self.args = args
        self.ingest_base_url = ingest_base_url
        self.debug = debug
        self.process: asyncio.subprocess.Process | None = None
        self.error: StreamError | None = None

        self._error_event = asyncio.Event()
        self._closed = asyncio.Event()
        self._interrupted = False
        self._killed = False
        self._stderr_tail: deque[str] = deque(maxlen=_STDERR_TAIL_LINES)
        self._watcher: asyncio.Task[None] | None = None
        self._log = logger.bind(ingest_base_url=ingest_base_url, video_id=video_id)

    # ── lifecycle ──

    async def start(self, executable: str) -> None:
        """Spawn the encoder and its watcher, then return immediately.

        A spawn failure is recorded as the stream error instead of being
        raised, exactly like an encoder that dies on startup.
        """
        try:
            self.process = await asyncio.create_subprocess_exec(
                executable,
                *self.args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            self._record_error(StreamError(f"Cannot spawn {executable}: {exc}"))
            self._closed.set()
            return

        self._log = self._log.bind(pid=self.process.pid)
        self._log.info("stream_process_started")
        self._watcher = asyncio.create_task(
            self._watch(),
            name=f"stream-process-{self.process.pid}",
        )

    def interrupt(self) -> bool:
        """Send SIGINT to the encoder if it is still running.

        Only the first call signals; later calls are no-ops.

        Returns:
            ``True`` if a signal was sent, ``False`` if the process had
            already exited (or never started) or was interrupted before.
        """
        if self._interrupted or not self.running:
            return False
        assert self.process is not None
        try:
            self.process.send_signal(signal.SIGINT)
        except ProcessLookupError:
            return False
        self._interrupted = True
        self._log.info("stream_process_interrupted")
        return True

    async def wait_error(self) -> StreamError:
        """Block until the encoder reports an error and return it."""
        await self._error_event.wait()
        assert self.error is not None
        return self.error

    async def wait_closed(self) -> None:
        """Block until the encoder has exited and its exit is classified."""
        await self._closed.wait()

    async def aclose(self, timeout: float = 5.0) -> None:
        """Interrupt the encoder and make sure it is gone.

        The process is killed if it is still alive *timeout* seconds
        after the interrupt.
        """
        self.interrupt()
        try:
            await asyncio.wait_for(self.wait_closed(), timeout)
        except asyncio.TimeoutError:
            if self.running:
                assert self.process is not None
                self._log.warning("stream_process_killed", timeout_s=timeout)
                self._killed = True
                self.process.kill()
            await self.wait_closed()

    # ── state ──

    @property
    def running(self) -> bool:
        return self.process is not None and self.process.returncode is None

    @property
    def returncode(self) -> int | None:
        return None if self.process is None else self.process.returncode

    @property
    def stderr_tail(self) -> list[str]:
        return list(self._stderr_tail)

    # ── internal ──

    async def _watch(self) -> None:
        assert self.process is not None
        try:
            await self._drain_stderr()
            returncode = await self.process.wait()
            self._classify_exit(returncode)
        finally:
            self._closed.set()

    async def _drain_stderr(self) -> None:
        assert self.process is not None and self.process.stderr is not None
        pending = ""
        while chunk := await self.process.stderr.read(_STDERR_CHUNK_SIZE):
            pending += chunk.decode(errors="replace")
            *lines, pending = _LINE_SPLIT.split(pending)
            for line in lines:
                self._on_stderr_line(line)
        self._on_stderr_line(pending)

    def _on_stderr_line(self, line: str) -> None:
        line = line.strip()
        if not line:
            return
        self._stderr_tail.append(line)
        if self.debug:
            self._log.info("ffmpeg_stderr", line=line)

    def _classify_exit(self, returncode: int) -> None:
        if returncode == 0:
            self._log.info("stream_process_exited", returncode=returncode)
            return

        message = _exit_message(returncode, self.stderr_tail)
        if self._is_stop(returncode, message):
            self._log.info("stream_process_stopped", returncode=returncode)
            return

        self._record_error(
            StreamError(message, returncode=returncode, stderr_tail=self.stderr_tail),
        )

    def _is_stop(self, returncode: int, message: str) -> bool:
        if BENIGN_EXIT_MARKER in message:
            return True
        # an interrupt only explains exits carrying an interrupt status
        if self._interrupted and returncode == INTERRUPT_EXIT_STATUS:
            return True
        return self._killed and returncode == -signal.SIGKILL

    def _record_error(self, error: StreamError) -> None:
        self.error = error
        self._error_event.set()
        if self.debug:
            self._log.error("stream_process_error", error=str(error))
        else:
            self._log.debug("stream_process_error", error=str(error))


class StreamEmulator:
    """Starts emulated live streams against an ingest endpoint.

    Args:
        ffmpeg_path: Encoder executable.
        fixtures_dir: Directory holding the fixture media.
        fixture: File looped into every stream.
        debug: Verbose encoder logging, handed to every ``StreamProcess``.
    """

    def __init__(
        self,
        *,
        ffmpeg_path: str = "ffmpeg",
        fixtures_dir: Path = Path("tests/fixtures"),
        fixture: str = "video_short.mp4",
        debug: bool = False,
    ) -> None:
        self.ffmpeg_path = ffmpeg_path
        self.fixtures_dir = Path(fixtures_dir)
        self.fixture = fixture
        self.debug = debug

    @classmethod
    def from_settings(cls, settings: Settings) -> StreamEmulator:
        return cls(
            ffmpeg_path=settings.ffmpeg_path,
            fixtures_dir=settings.fixtures_dir,
            fixture=settings.stream_fixture,
            debug=settings.debug,
        )

    @property
    def fixture_path(self) -> Path:
        return (self.fixtures_dir / self.fixture).resolve()

    async def send_rtmp_stream(
        self,
        rtmp_base_url: str,
        stream_key: str | SecretStr,
        *,
        video_id: int | str | None = None,
    ) -> StreamProcess:
        """Start pushing the fixture to ``rtmp_base_url/stream_key``.

        Returns the handle as soon as the process is spawned.
        """
        if isinstance(stream_key, SecretStr):
            stream_key = stream_key.get_secret_value()
        ingest_url = f"{rtmp_base_url}/{stream_key}"

        stream = StreamProcess(
            build_ffmpeg_args(self.fixture_path, ingest_url),
            rtmp_base_url,
            debug=self.debug,
            video_id=video_id,
        )
        await stream.start(self.ffmpeg_path)
        return stream

    async def send_rtmp_stream_in_video(
        self,
        live_client: LiveClient,
        video_id: int | str,
    ) -> StreamProcess:
        """Resolve the ingest credentials of *video_id* and start a stream."""
        # a status other than 200 raises, so a session is always returned
        live = await live_client.get_live(video_id)
        assert live is not None
        return await self.send_rtmp_stream(live.rtmp_url, live.stream_key, video_id=video_id)

"""
Stream supervision for live-harness.

Runs an emulated stream for a bounded window, then stops it and turns
the outcome into a verdict:

* ``wait_ffmpeg_until_error`` races the encoder's error signal against a
  timer and reports which one came first;
* ``stop_ffmpeg`` interrupts the encoder and waits a short grace period
  so the server can flush its output before anyone inspects the disk;
* ``test_ffmpeg_stream_error`` chains the two and checks the outcome
  against what the scenario expected.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

import structlog

from live_harness.config import Settings
from live_harness.errors import StreamError, StreamExpectationError
from live_harness.ffmpeg import StreamEmulator, StreamProcess
from live_harness.live import LiveClient

logger = structlog.get_logger(__name__)

DEFAULT_WAIT_S: float = 10.0
DEFAULT_TEST_WAIT_S: float = 15.0
DEFAULT_STOP_GRACE_S: float = 0.5
DEFAULT_CLOSE_TIMEOUT_S: float = 5.0


@dataclass(frozen=True)
class StreamWaitOutcome:
    """Result of a bounded wait: either the window elapsed or the encoder failed.

    Attributes:
        error: The encoder error, ``None`` when the window elapsed first.
    """

    error: StreamError | None = None

    @property
    def timed_out(self) -> bool:
        return self.error is None

    @property
    def errored(self) -> bool:
        return self.error is not None

    def raise_for_error(self) -> None:
        """Re-raise the encoder error, if any."""
        if self.error is not None:
            raise self.error


async def wait_ffmpeg_until_error(
    stream: StreamProcess,
    success_after_s: float = DEFAULT_WAIT_S,
) -> StreamWaitOutcome:
    """Wait until the encoder fails or *success_after_s* elapses.

    Exactly one of the two resolves the wait; the other waiter is
    cancelled. An error recorded before the call wins immediately.
    """
    if stream.error is not None:
        return StreamWaitOutcome(error=stream.error)

    error_waiter = asyncio.create_task(stream.wait_error())
    timer = asyncio.create_task(asyncio.sleep(success_after_s))
    try:
        done, _ = await asyncio.wait(
            {error_waiter, timer},
            return_when=asyncio.FIRST_COMPLETED,
        )
    finally:
        for task in (error_waiter, timer):
            if not task.done():
                task.cancel()
        await asyncio.gather(error_waiter, timer, return_exceptions=True)

    if error_waiter in done:
        return StreamWaitOutcome(error=error_waiter.result())
    return StreamWaitOutcome()


async def stop_ffmpeg(stream: StreamProcess, grace_s: float = DEFAULT_STOP_GRACE_S) -> None:
    """Interrupt the encoder, then wait *grace_s* before returning.

    Safe on an encoder that already exited; the grace delay applies
    either way.
    """
    stream.interrupt()
    await asyncio.sleep(grace_s)


async def test_ffmpeg_stream_error(
    stream: StreamProcess,
    should_have_error: bool,
    *,
    window_s: float = DEFAULT_TEST_WAIT_S,
    grace_s: float = DEFAULT_STOP_GRACE_S,
) -> StreamWaitOutcome:
    """Run *stream* for *window_s*, stop it, and check the outcome.

    Raises:
        StreamExpectationError: An error was expected and none occurred.
        StreamError: No error was expected and the encoder failed.
    """
    outcome = await wait_ffmpeg_until_error(stream, window_s)
    await stop_ffmpeg(stream, grace_s)
    if outcome.timed_out and stream.error is not None:
        # failed on its own before the interrupt landed
        outcome = StreamWaitOutcome(error=stream.error)

    logger.info(
        "stream_window_finished",
        ingest_base_url=stream.ingest_base_url,
        errored=outcome.errored,
        should_have_error=should_have_error,
    )

    if should_have_error and outcome.timed_out:
        raise StreamExpectationError("Ffmpeg did not have an error")
    if not should_have_error:
        outcome.raise_for_error()
    return outcome


# Not a pytest test despite the name.
test_ffmpeg_stream_error.__test__ = False  # type: ignore[attr-defined]


async def run_and_test_ffmpeg_stream_error(
    emulator: StreamEmulator,
    live_client: LiveClient,
    video_id: int | str,
    should_have_error: bool,
    *,
    window_s: float = DEFAULT_TEST_WAIT_S,
    grace_s: float = DEFAULT_STOP_GRACE_S,
    close_timeout_s: float = DEFAULT_CLOSE_TIMEOUT_S,
) -> StreamWaitOutcome:
    """Start a stream for *video_id* and check it the way ``test_ffmpeg_stream_error`` does.

    The encoder is reaped before returning, killed if it outlives
    *close_timeout_s* after the interrupt.
    """
    stream = await emulator.send_rtmp_stream_in_video(live_client, video_id)
    try:
        return await test_ffmpeg_stream_error(
            stream,
            should_have_error,
            window_s=window_s,
            grace_s=grace_s,
        )
    finally:
        await stream.aclose(close_timeout_s)


class StreamSupervisor:
    """Stream supervision bound to one emulator, server and set of windows.

    Args:
        emulator: Starts the encoder processes.
        live_client: Resolves ingest credentials by video id.
        wait_s: Default bounded-wait window.
        test_wait_s: Window of ``run_and_verify``.
        stop_grace_s: Delay after each interrupt.
    """

    def __init__(
        self,
        emulator: StreamEmulator,
        live_client: LiveClient,
        *,
        wait_s: float = DEFAULT_WAIT_S,
        test_wait_s: float = DEFAULT_TEST_WAIT_S,
        stop_grace_s: float = DEFAULT_STOP_GRACE_S,
    ) -> None:
        self.emulator = emulator
        self.live_client = live_client
        self.wait_s = wait_s
        self.test_wait_s = test_wait_s
        self.stop_grace_s = stop_grace_s

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        emulator: StreamEmulator,
        live_client: LiveClient,
    ) -> StreamSupervisor:
        return cls(
            emulator,
            live_client,
            wait_s=settings.stream_wait_s,
            test_wait_s=settings.stream_test_wait_s,
            stop_grace_s=settings.stop_grace_s,
        )

    async def start(self, video_id: int | str) -> StreamProcess:
        return await self.emulator.send_rtmp_stream_in_video(self.live_client, video_id)

    async def wait_until_error(
        self,
        stream: StreamProcess,
        success_after_s: float | None = None,
    ) -> StreamWaitOutcome:
        if success_after_s is None:
            success_after_s = self.wait_s
        return await wait_ffmpeg_until_error(stream, success_after_s)

    async def stop(self, stream: StreamProcess) -> None:
        await stop_ffmpeg(stream, self.stop_grace_s)

    async def verify(self, stream: StreamProcess, should_have_error: bool) -> StreamWaitOutcome:
        return await test_ffmpeg_stream_error(
            stream,
            should_have_error,
            window_s=self.test_wait_s,
            grace_s=self.stop_grace_s,
        )

    async def run_and_verify(self, video_id: int | str, should_have_error: bool) -> StreamWaitOutcome:
        """Start a stream for *video_id*, run it for the test window and check it."""
        stream = await self.start(video_id)
        try:
            return await self.verify(stream, should_have_error)
        finally:
            await stream.aclose()

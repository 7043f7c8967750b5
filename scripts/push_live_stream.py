"""Push the fixture stream into a live video.

Resolves the ingest credentials of a live video on the configured
server (``LH_SERVER_URL``, ``LH_ACCESS_TOKEN``), pushes the looping
fixture for the requested duration, optionally waits for the server to
leave ``WAITING_FOR_LIVE``, then stops the encoder.

Usage:
    python scripts/push_live_stream.py 42
    python scripts/push_live_stream.py 42 --duration 60 --wait-live --debug
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import sys

import structlog

from live_harness.config import get_settings
from live_harness.errors import HarnessError
from live_harness.ffmpeg import StreamEmulator
from live_harness.http_client import ServerConnection
from live_harness.live import LiveClient
from live_harness.logging import configure_logging
from live_harness.poller import wait_until_live_starts
from live_harness.supervisor import stop_ffmpeg, wait_ffmpeg_until_error

logger = structlog.get_logger()


def parse_args() -> argparse.Namespace:
    """Parse command-line arguments for the stream push."""
    parser = argparse.ArgumentParser(description="Push an emulated RTMP stream into a live video")
    parser.add_argument("video_id", type=str, help="Live video id or uuid")
    parser.add_argument(
        "--duration",
        type=float,
        default=None,
        help="Seconds to stream (default: LH_STREAM_TEST_WAIT_S)",
    )
    parser.add_argument(
        "--wait-live",
        action="store_true",
        default=False,
        help="Also wait until the server reports the live as started",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        default=False,
        help="Log every encoder stderr line",
    )
    return parser.parse_args()


async def run(args: argparse.Namespace) -> int:
    """Stream into ``args.video_id`` and return the process exit code."""
    settings = get_settings()
    if args.debug:
        settings = settings.model_copy(update={"debug": True})
    configure_logging(settings.log_level, debug=settings.debug, json=settings.log_json)

    emulator = StreamEmulator.from_settings(settings)
    duration = settings.stream_test_wait_s if args.duration is None else args.duration

    async with ServerConnection.from_settings(settings) as server:
        live_client = LiveClient(server)
        stream = await emulator.send_rtmp_stream_in_video(live_client, args.video_id)
        try:
            if args.wait_live:
                live_waiter = asyncio.create_task(
                    wait_until_live_starts(server, args.video_id, interval_s=settings.poll_interval_s),
                )
                outcome = await wait_ffmpeg_until_error(stream, duration)
                if live_waiter.done():
                    video = live_waiter.result()
                    logger.info("live_state", state=video.state.id, label=video.state.label)
                else:
                    live_waiter.cancel()
                    with contextlib.suppress(asyncio.CancelledError):
                        await live_waiter
                    logger.warning("live_never_started", video_id=args.video_id)
            else:
                outcome = await wait_ffmpeg_until_error(stream, duration)
        finally:
            await stop_ffmpeg(stream, settings.stop_grace_s)
            await stream.aclose()

    if outcome.errored:
        logger.error("stream_failed", error=str(outcome.error))
        return 1
    logger.info("stream_finished", duration_s=duration)
    return 0


def main() -> None:
    """Entry point."""
    args = parse_args()
    try:
        code = asyncio.run(run(args))
    except HarnessError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()

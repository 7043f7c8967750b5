"""
Environment-based configuration management for live-harness.

Uses pydantic-settings to load configuration values from environment
variables and .env files. The emulator, supervisor and poller receive
their windows, intervals and the debug flag from this module instead of
reading the environment themselves.

All environment variables are prefixed with ``LH_`` to avoid collisions.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration loaded from ``LH_``-prefixed environment variables.

    Attributes:
        server_url: Base URL of the video server under test.
        access_token: OAuth bearer token used for authenticated calls.
        internal_server_number: Index of the server's storage tree (``test<N>``).
        servers_root: Directory holding the per-server storage trees.
        fixtures_dir: Directory holding fixture media and images.
        stream_fixture: Fixture file looped into the emulated stream.
        ffmpeg_path: Encoder executable spawned for each stream.
        debug: Verbose logging of encoder stderr and encoder errors.
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_json: Render log lines as JSON instead of console output.
        http_timeout_s: Per-request HTTP timeout in seconds.
        poll_interval_s: Delay between two video state polls.
        stream_wait_s: Default bounded-wait window for an encoder error.
        stream_test_wait_s: Window used by run-and-verify stream checks.
        stop_grace_s: Delay after interrupting the encoder before returning.
    """

    model_config = SettingsConfigDict(
        env_prefix="LH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Server ──
    server_url: str = Field(
        default="http://localhost:9001",
        description="Base URL of the video server under test.",
    )
    access_token: str = Field(default="", description="OAuth bearer token.")
    internal_server_number: int = Field(
        default=1,
        ge=1,
        description="Index of the server's storage tree.",
    )
    servers_root: Path = Field(
        default=Path("."),
        description="Directory holding the test<N> storage trees.",
    )

    # ── Fixtures ──
    fixtures_dir: Path = Field(
        default=Path("tests/fixtures"),
        description="Directory holding fixture media and images.",
    )
    stream_fixture: str = Field(
        default="video_short.mp4",
        description="Fixture looped into the emulated stream.",
    )

    # ── Encoder ──
    ffmpeg_path: str = Field(default="ffmpeg", description="Encoder executable.")
    debug: bool = Field(default=False, description="Verbose encoder logging.")

    # ── Logging ──
    log_level: str = Field(default="INFO", description="Logging level.")
    log_json: bool = Field(default=False, description="Render logs as JSON.")

    # ── Timing ──
    http_timeout_s: float = Field(default=30.0, gt=0, description="HTTP timeout.")
    poll_interval_s: float = Field(
        default=0.5,
        gt=0,
        description="Delay between two video state polls.",
    )
    stream_wait_s: float = Field(
        default=10.0,
        gt=0,
        description="Default bounded-wait window.",
    )
    stream_test_wait_s: float = Field(
        default=15.0,
        gt=0,
        description="Run-and-verify window.",
    )
    stop_grace_s: float = Field(
        default=0.5,
        ge=0,
        description="Delay after interrupting the encoder.",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the cached application settings singleton.

    Returns:
        The global ``Settings`` instance.
    """
    return Settings()

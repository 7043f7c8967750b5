"""
HLS artifact verification for live-harness.

Once a live ends, the server leaves one directory per video under
``<server storage>/streaming-playlists/hls/<video uuid>/`` holding, for
every resolution, a fragmented MP4 and a sub-playlist, plus one master
playlist and one segment hash manifest. A live that never produced
anything must leave no directory at all.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from uuid import UUID

import structlog

from live_harness.errors import ArtifactMismatchError
from live_harness.models.video import ServerInfo

logger = structlog.get_logger(__name__)

STREAMING_PLAYLISTS_DIR = "streaming-playlists"
HLS_DIR = "hls"
MASTER_PLAYLIST = "master.m3u8"
SEGMENTS_SHA256 = "segments-sha256.json"
FRAGMENTED_EXT = "mp4"
PLAYLIST_EXT = "m3u8"


def build_server_directory(root: Path, server: ServerInfo, directory: str) -> Path:
    """Return ``<root>/test<N>/<directory>`` for *server*."""
    return server.server_directory(root, directory)


def hls_directory(root: Path, server: ServerInfo, video_uuid: UUID | str) -> Path:
    """Return the streaming output directory of one video."""
    base = build_server_directory(root, server, STREAMING_PLAYLISTS_DIR)
    return base / HLS_DIR / str(video_uuid)


@dataclass(frozen=True)
class ArtifactSet:
    """Files a finished live leaves behind for the given resolutions."""

    video_uuid: str
    resolutions: tuple[int, ...] = field(default_factory=tuple)

    @classmethod
    def of(cls, video_uuid: UUID | str, resolutions: Sequence[int] = ()) -> ArtifactSet:
        return cls(str(video_uuid), tuple(resolutions))

    def fragmented_file(self, resolution: int) -> str:
        return f"{self.video_uuid}-{resolution}-fragmented.{FRAGMENTED_EXT}"

    @staticmethod
    def playlist_file(resolution: int) -> str:
        return f"{resolution}.{PLAYLIST_EXT}"

    @property
    def expected_files(self) -> frozenset[str]:
        if not self.resolutions:
            return frozenset()
        names = {MASTER_PLAYLIST, SEGMENTS_SHA256}
        for resolution in self.resolutions:
            names.add(self.fragmented_file(resolution))
            names.add(self.playlist_file(resolution))
        return frozenset(names)

    @property
    def expected_count(self) -> int:
        # fragmented file and playlist per resolution + master playlist + sha256 manifest
        if not self.resolutions:
            return 0
        return len(self.resolutions) * 2 + 2


def check_hls_directory(
    hls_path: Path,
    video_uuid: UUID | str,
    resolutions: Sequence[int] = (),
) -> None:
    """Check the content of one streaming output directory.

    With no resolutions the directory must not exist. Otherwise its
    immediate entries must be exactly the ``ArtifactSet``.

    Raises:
        ArtifactMismatchError: On any missing or extra entry, or when the
            directory exists (or not) against expectations.
    """
    expected = ArtifactSet.of(video_uuid, resolutions)
    log = logger.bind(video_uuid=expected.video_uuid, resolutions=list(expected.resolutions))

    if not expected.resolutions:
        if hls_path.exists():
            actual = sorted(p.name for p in hls_path.iterdir()) if hls_path.is_dir() else []
            raise ArtifactMismatchError(
                f"{hls_path} should not exist",
                actual=actual,
            )
        log.info("live_cleanup_checked", present=False)
        return

    if not hls_path.is_dir():
        raise ArtifactMismatchError(
            f"{hls_path} does not exist",
            expected=expected.expected_files,
        )

    files = sorted(p.name for p in hls_path.iterdir())
    if len(files) != expected.expected_count or set(files) != expected.expected_files:
        raise ArtifactMismatchError(
            f"{hls_path} holds {len(files)} files, expected {expected.expected_count}",
            expected=expected.expected_files,
            actual=files,
        )
    log.info("live_cleanup_checked", present=True, files=len(files))


def check_live_cleanup(
    root: Path,
    server: ServerInfo,
    video_uuid: UUID | str,
    resolutions: Sequence[int] = (),
) -> None:
    """Check the streaming output of *video_uuid* on *server*.

    Call this only after the encoder was stopped through ``stop_ffmpeg``
    so the server had its grace period to flush.
    """
    check_hls_directory(hls_directory(root, server, video_uuid), video_uuid, resolutions)

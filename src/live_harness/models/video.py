"""
Video data models for live-harness.

Only the slice of the server's video representation the harness reads:
identifiers, the live flag and the processing state.
"""

from __future__ import annotations

import enum
from pathlib import Path
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class VideoState(int, enum.Enum):
    """Server-reported video state identifiers."""

    PUBLISHED = 1
    TO_TRANSCODE = 2
    TO_IMPORT = 3
    WAITING_FOR_LIVE = 4
    LIVE_ENDED = 5


class VideoStateInfo(BaseModel):
    """``state`` object of a video: numeric id plus display label.

    The id is kept as a plain int so states unknown to ``VideoState``
    still parse.
    """

    id: int
    label: str = ""


class VideoDetails(BaseModel):
    """Video details as returned by ``GET /api/v1/videos/{id}``."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    id: int
    uuid: UUID
    name: str = ""
    is_live: bool = False
    state: VideoStateInfo

    @property
    def is_waiting_for_live(self) -> bool:
        return self.state.id == VideoState.WAITING_FOR_LIVE


class ServerInfo(BaseModel):
    """Coordinates of one server under test.

    Attributes:
        url: Base URL of the server.
        access_token: Bearer token for authenticated calls.
        internal_server_number: Index of the server's storage tree.
    """

    url: str
    access_token: str = ""
    internal_server_number: int = Field(default=1, ge=1)

    def server_directory(self, root: Path, directory: str) -> Path:
        """Return ``<root>/test<N>/<directory>`` for this server."""
        return Path(root) / f"test{self.internal_server_number}" / directory

"""
Live session data models for live-harness.

Defines the Pydantic models exchanged with the live endpoints of the
video server: the ingest credentials of a live video, the create and
update payloads, and the create response.
"""

from __future__ import annotations

import enum
from pathlib import Path
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, SecretStr
from pydantic.alias_generators import to_camel


class VideoPrivacy(int, enum.Enum):
    """Privacy levels accepted on video creation."""

    PUBLIC = 1
    UNLISTED = 2
    PRIVATE = 3
    INTERNAL = 4


class _WireModel(BaseModel):
    """Base for models whose JSON keys are camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LiveSession(_WireModel):
    """Ingest credentials and replay flag of a live video.

    Attributes:
        rtmp_url: Ingest base URL (``rtmp://host:port/live``).
        stream_key: Secret key appended to the ingest URL.
        save_replay: Whether the server keeps a replay once the live ends.
    """

    rtmp_url: str = Field(..., description="Ingest base URL.")
    stream_key: SecretStr = Field(..., description="Ingest stream key.")
    save_replay: bool = Field(default=False, description="Keep a replay after the live.")

    def ingest_url(self) -> str:
        """Return the full URL the encoder pushes to."""
        return f"{self.rtmp_url}/{self.stream_key.get_secret_value()}"


class LiveVideoCreate(_WireModel):
    """Fields of a live video creation request.

    ``thumbnailfile`` and ``previewfile`` are paths to image files; they
    are sent as multipart attachments, every other field as a form field.
    """

    channel_id: int = Field(..., description="Owning channel.")
    name: str = Field(..., min_length=3, max_length=120, description="Video name.")
    privacy: VideoPrivacy = Field(default=VideoPrivacy.PUBLIC, description="Privacy level.")
    save_replay: bool | None = Field(default=None, description="Keep a replay.")
    description: str | None = None
    category: int | None = None
    licence: int | None = None
    language: str | None = None
    nsfw: bool | None = None
    tags: list[str] | None = None
    comments_enabled: bool | None = None
    download_enabled: bool | None = None
    thumbnailfile: Path | None = Field(default=None, description="Thumbnail image.")
    previewfile: Path | None = Field(default=None, description="Preview image.")

    def to_fields(self) -> dict[str, Any]:
        """Return the wire form of the request, unset fields dropped."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class LiveVideoUpdate(_WireModel):
    """Partial update of a live video's mutable settings."""

    save_replay: bool | None = None

    def to_fields(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class CreatedVideo(BaseModel):
    """Identifiers of a freshly created video."""

    id: int
    uuid: UUID


class CreatedLive(BaseModel):
    """Body returned by the live creation endpoint."""

    video: CreatedVideo

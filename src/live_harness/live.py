"""
Live session control client for live-harness.

Typed wrappers over the ``/api/v1/videos/live`` collection: fetch the
ingest credentials of a live video, update its settings, and create a
new live video. Each call takes the status code it expects so negative
tests can assert failure codes; a mismatch raises
``UnexpectedStatusError`` and is never retried.
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any

import structlog

from live_harness.http_client import ServerConnection
from live_harness.models.live import CreatedLive, LiveSession, LiveVideoCreate, LiveVideoUpdate

logger = structlog.get_logger(__name__)

LIVE_PATH = "/api/v1/videos/live"

# Fields sent as multipart attachments rather than form fields.
ATTACHMENT_FIELDS: tuple[str, ...] = ("thumbnailfile", "previewfile")


def split_attachments(
    fields: Mapping[str, Any],
) -> tuple[dict[str, Any], dict[str, str | Path]]:
    """Separate attachment fields from plain fields.

    Returns:
        ``(plain, attaches)``: *plain* is *fields* minus
        ``thumbnailfile`` and ``previewfile``; *attaches* holds those two
        keys when they carry a value.
    """
    plain = {k: v for k, v in fields.items() if k not in ATTACHMENT_FIELDS}
    attaches = {k: fields[k] for k in ATTACHMENT_FIELDS if fields.get(k)}
    return plain, attaches


class LiveClient:
    """Create, read and update live videos on one server.

    Args:
        server: Connection to the server under test.
    """

    def __init__(self, server: ServerConnection) -> None:
        self.server = server

    async def get_live(
        self,
        video_id: int | str,
        *,
        status_code_expected: int = 200,
    ) -> LiveSession | None:
        """Fetch the ingest URL, stream key and replay flag of a live video.

        Returns:
            The parsed session, or ``None`` when a non-2xx status was
            expected (and received).
        """
        response = await self.server.get(
            f"{LIVE_PATH}/{video_id}",
            status_code_expected=status_code_expected,
        )
        if not response.is_success:
            return None
        return LiveSession.model_validate(response.json())

    async def update_live(
        self,
        video_id: int | str,
        fields: LiveVideoUpdate | Mapping[str, Any],
        *,
        status_code_expected: int = 204,
    ) -> None:
        """Partially update a live video. The server answers without a body."""
        if isinstance(fields, LiveVideoUpdate):
            fields = fields.to_fields()
        await self.server.put_body(
            f"{LIVE_PATH}/{video_id}",
            fields,
            status_code_expected=status_code_expected,
        )
        logger.info("live_updated", video_id=video_id, fields=sorted(fields))

    async def create_live(
        self,
        fields: LiveVideoCreate | Mapping[str, Any],
        *,
        status_code_expected: int = 200,
    ) -> CreatedLive | None:
        """Create a live video.

        ``thumbnailfile`` and ``previewfile`` travel as attachments and
        are left out of the form fields.

        Returns:
            The new video's id and uuid, or ``None`` when a non-2xx
            status was expected (and received).
        """
        if isinstance(fields, LiveVideoCreate):
            fields = fields.to_fields()
        plain, attaches = split_attachments(fields)

        response = await self.server.upload(
            LIVE_PATH,
            plain,
            attaches,
            status_code_expected=status_code_expected,
        )
        if not response.is_success:
            return None

        created = CreatedLive.model_validate(response.json())
        logger.info(
            "live_created",
            video_id=created.video.id,
            video_uuid=str(created.video.uuid),
            attachments=sorted(attaches),
        )
        return created

"""
HTTP plumbing for live-harness.

``ServerConnection`` wraps a lazily created ``httpx.AsyncClient`` bound
to one server. Every call states the status code it expects; any other
status raises ``UnexpectedStatusError`` straight away. Nothing is
retried.
"""

from __future__ import annotations

import enum
from collections.abc import Mapping
from pathlib import Path
from types import TracebackType
from typing import Any

import httpx
import structlog

from live_harness.config import Settings
from live_harness.errors import UnexpectedStatusError

logger = structlog.get_logger(__name__)

_DEFAULT_TIMEOUT_S = 30.0


def _form_value(value: Any) -> str:
    if isinstance(value, enum.Enum):
        value = value.value
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def encode_form_fields(fields: Mapping[str, Any]) -> dict[str, str | list[str]]:
    """Convert *fields* into multipart form values.

    ``None`` values are skipped, booleans become ``"true"``/``"false"``
    and lists are sent as repeated ``name[]`` entries.
    """
    form: dict[str, str | list[str]] = {}
    for name, value in fields.items():
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            form[f"{name}[]"] = [_form_value(item) for item in value]
        else:
            form[name] = _form_value(value)
    return form


class ServerConnection:
    """Authenticated HTTP access to one video server.

    Args:
        url: Base URL of the server.
        token: Bearer token; no ``Authorization`` header when empty.
        timeout: Per-request timeout in seconds.
        fixtures_dir: Base directory for relative attachment paths.
        transport: Optional ``httpx`` transport (tests pass a
            ``httpx.MockTransport``).
    """

    def __init__(
        self,
        url: str,
        token: str | None = None,
        *,
        timeout: float = _DEFAULT_TIMEOUT_S,
        fixtures_dir: Path | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url.rstrip("/")
        self.token = token or None
        self.timeout = timeout
        self.fixtures_dir = fixtures_dir
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> ServerConnection:
        """Build a connection to the configured server."""
        return cls(
            settings.server_url,
            settings.access_token,
            timeout=settings.http_timeout_s,
            fixtures_dir=settings.fixtures_dir,
            transport=transport,
        )

    async def __aenter__(self) -> ServerConnection:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def _get_client(self) -> httpx.AsyncClient:
        """Return (and lazily create) the shared ``httpx.AsyncClient``."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.url,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _check_status(self, response: httpx.Response, expected: int) -> httpx.Response:
        if response.status_code != expected:
            logger.warning(
                "unexpected_status",
                method=response.request.method,
                path=response.request.url.path,
                expected=expected,
                actual=response.status_code,
            )
            raise UnexpectedStatusError(
                response.request.method,
                str(response.request.url),
                expected,
                response.status_code,
                response.text,
            )
        return response

    def _resolve_attachment(self, path: str | Path) -> Path:
        candidate = Path(path)
        if candidate.is_absolute() or self.fixtures_dir is None:
            return candidate
        return self.fixtures_dir / candidate

    # ── requests ──

    async def get(
        self,
        path: str,
        *,
        status_code_expected: int = 200,
        query: Mapping[str, Any] | None = None,
    ) -> httpx.Response:
        client = await self._get_client()
        response = await client.get(path, params=query, headers=self._headers())
        return self._check_status(response, status_code_expected)

    async def put_body(
        self,
        path: str,
        fields: Mapping[str, Any],
        *,
        status_code_expected: int = 204,
    ) -> httpx.Response:
        """PUT *fields* as a JSON body."""
        client = await self._get_client()
        response = await client.put(path, json=dict(fields), headers=self._headers())
        return self._check_status(response, status_code_expected)

    async def upload(
        self,
        path: str,
        fields: Mapping[str, Any],
        attaches: Mapping[str, str | Path] | None = None,
        *,
        status_code_expected: int = 200,
    ) -> httpx.Response:
        """POST a multipart body made of form *fields* and file *attaches*.

        Relative attachment paths resolve against ``fixtures_dir``.
        """
        files: list[tuple[str, tuple[str, bytes]]] = []
        for name, attach_path in (attaches or {}).items():
            resolved = self._resolve_attachment(attach_path)
            files.append((name, (resolved.name, resolved.read_bytes())))

        client = await self._get_client()
        response = await client.post(
            path,
            data=encode_form_fields(fields),
            files=files or None,
            headers=self._headers(),
        )
        return self._check_status(response, status_code_expected)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

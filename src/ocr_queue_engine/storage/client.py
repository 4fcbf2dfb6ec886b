"""Async client for downloading documents from Supabase Storage."""

from __future__ import annotations

import mimetypes
from dataclasses import dataclass
from typing import TYPE_CHECKING, Self
from urllib.parse import quote

import httpx
import structlog

from ocr_queue_engine.storage.exceptions import (
    StorageNotFoundError,
    StorageTransportError,
)


if TYPE_CHECKING:
    from ocr_queue_engine.config.schema import StorageConfig


__all__ = [
    "StorageClient",
    "StoredFile",
]


DEFAULT_MIME_TYPE = "application/octet-stream"


@dataclass(frozen=True, slots=True)
class StoredFile:
    """A downloaded object.

    Attributes:
        content: Raw file bytes.
        mime_type: Content type of the object.
    """

    content: bytes
    mime_type: str

    @property
    def size(self) -> int:
        """Size of the content in bytes."""
        return len(self.content)


def _guess_mime_type(reference: str) -> str:
    guessed, _ = mimetypes.guess_type(reference)
    return guessed or DEFAULT_MIME_TYPE


class StorageClient:
    """Read-only client for a Supabase Storage bucket.

    Example:
        ```python
        async with StorageClient(
            base_url="https://project.supabase.co",
            service_key="...",
        ) as storage:
            stored = await storage.download("user-1/scan.png")
        ```

    Attributes:
        base_url: Supabase project URL.
        bucket: Bucket name documents are uploaded to.
        timeout: Request timeout configuration.
    """

    DEFAULT_BUCKET = "documents"
    DEFAULT_TIMEOUT = httpx.Timeout(60.0, connect=10.0)

    def __init__(
        self,
        base_url: str,
        service_key: str,
        *,
        bucket: str | None = None,
        timeout: httpx.Timeout | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.bucket = bucket or self.DEFAULT_BUCKET
        self.timeout = timeout or self.DEFAULT_TIMEOUT
        self._service_key = service_key
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._logger = structlog.get_logger(__name__)

    @classmethod
    def from_config(
        cls,
        config: StorageConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> Self:
        """Create a client from the ``storage`` settings section."""
        return cls(
            base_url=config.url or "",
            service_key=config.service_key or "",
            bucket=config.bucket,
            timeout=httpx.Timeout(config.timeout, connect=10.0),
            transport=transport,
        )

    async def __aenter__(self) -> Self:
        await self._ensure_client()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        await self.close()

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=f"{self.base_url}/storage/v1",
                headers={
                    "Authorization": f"Bearer {self._service_key}",
                    "apikey": self._service_key,
                },
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def download(self, reference: str) -> StoredFile:
        """Download an object by its path inside the bucket.

        Args:
            reference: Object path, e.g. ``"<user_id>/<uuid>.pdf"``.

        Returns:
            The object's bytes and MIME type.

        Raises:
            StorageNotFoundError: The object does not exist.
            StorageTransportError: Network, timeout or HTTP failure.
        """
        client = await self._ensure_client()
        path = f"/object/{quote(self.bucket)}/{quote(reference.lstrip('/'))}"

        try:
            response = await client.get(path)
        except httpx.TimeoutException as exc:
            msg = "Storage download timed out"
            raise StorageTransportError(msg, cause=exc) from exc
        except httpx.HTTPError as exc:
            msg = f"Storage download failed: {exc}"
            raise StorageTransportError(msg, cause=exc) from exc

        # Supabase answers 400 with an embedded 404 for missing objects
        if response.status_code == 404 or (  # noqa: PLR2004
            response.status_code == 400  # noqa: PLR2004
            and "not found" in response.text.lower()
        ):
            raise StorageNotFoundError(reference, response=response)

        if not response.is_success:
            msg = "Storage download failed"
            raise StorageTransportError(msg, response=response)

        content_type = response.headers.get("content-type", "")
        mime_type = content_type.split(";", 1)[0].strip()
        if not mime_type or mime_type == DEFAULT_MIME_TYPE:
            mime_type = _guess_mime_type(reference)

        self._logger.debug(
            "storage_downloaded",
            reference=reference,
            size_bytes=len(response.content),
            mime_type=mime_type,
        )
        return StoredFile(content=response.content, mime_type=mime_type)

"""Read access to uploaded document files."""

from __future__ import annotations

from ocr_queue_engine.storage.client import StorageClient, StoredFile
from ocr_queue_engine.storage.exceptions import (
    StorageError,
    StorageNotFoundError,
    StorageTransportError,
)


__all__ = [
    "StorageClient",
    "StorageError",
    "StorageNotFoundError",
    "StorageTransportError",
    "StoredFile",
]

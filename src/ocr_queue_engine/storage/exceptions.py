"""Exceptions raised by the file storage client."""

from __future__ import annotations

from typing import TYPE_CHECKING


if TYPE_CHECKING:
    import httpx


__all__ = [
    "StorageError",
    "StorageNotFoundError",
    "StorageTransportError",
]


class StorageError(Exception):
    """Base exception for all storage failures.

    Attributes:
        message: Human-readable error description.
        response: The HTTP response that caused this error, if available.
    """

    def __init__(
        self,
        message: str,
        *,
        response: httpx.Response | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.response = response

    def __str__(self) -> str:
        if self.response is not None:
            return f"{self.message} (status={self.response.status_code})"
        return self.message


class StorageNotFoundError(StorageError):
    """The referenced object does not exist in the bucket.

    Attributes:
        reference: The storage reference that was requested.
    """

    def __init__(
        self,
        reference: str,
        *,
        response: httpx.Response | None = None,
    ) -> None:
        super().__init__(f"File not found in storage: {reference}", response=response)
        self.reference = reference


class StorageTransportError(StorageError):
    """Network, timeout or unexpected HTTP failure during a download."""

    def __init__(
        self,
        message: str,
        *,
        cause: BaseException | None = None,
        response: httpx.Response | None = None,
    ) -> None:
        super().__init__(message, response=response)
        if cause is not None:
            self.__cause__ = cause

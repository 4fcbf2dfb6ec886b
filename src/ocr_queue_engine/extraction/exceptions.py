"""Exceptions raised by the text-extraction client."""

from __future__ import annotations

from typing import TYPE_CHECKING


if TYPE_CHECKING:
    import httpx


__all__ = [
    "ContentBlockedError",
    "EmptyResponseError",
    "ExtractionError",
    "ExtractionTransportError",
]


class ExtractionError(Exception):
    """Base exception for all extraction failures.

    Attributes:
        message: Human-readable error description.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class ContentBlockedError(ExtractionError):
    """The provider's safety filter refused the document.

    Attributes:
        reason: Block or finish reason reported by the provider.
    """

    def __init__(self, reason: str) -> None:
        super().__init__(f"Content blocked by safety filter: {reason}")
        self.reason = reason


class EmptyResponseError(ExtractionError):
    """The provider answered without a usable text candidate."""

    def __init__(
        self,
        message: str = "Extraction service returned no text",
    ) -> None:
        super().__init__(message)


class ExtractionTransportError(ExtractionError):
    """Network, timeout or HTTP-level failure talking to the provider.

    Attributes:
        response: The failing HTTP response, when one was received.
    """

    def __init__(
        self,
        message: str,
        *,
        cause: BaseException | None = None,
        response: httpx.Response | None = None,
    ) -> None:
        super().__init__(message)
        self.response = response
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        if self.response is not None:
            return f"{self.message} (status={self.response.status_code})"
        return self.message

"""Exceptions for the background queue runner."""

from __future__ import annotations


__all__ = ["RunnerError", "RunnerNotRunningError"]


class RunnerError(Exception):
    """Base exception for background runner errors.

    Attributes:
        message: Human-readable error description.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class RunnerNotRunningError(RunnerError):
    """Raised when work is handed to a runner that is not started."""

    def __init__(self) -> None:
        super().__init__("Queue runner is not running")

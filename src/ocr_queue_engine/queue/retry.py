"""Bounded exponential-backoff retry policy."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from datetime import datetime

    from ocr_queue_engine.config.schema import RetryConfig


__all__ = [
    "DEFAULT_MAX_RETRIES",
    "Exhausted",
    "Retry",
    "RetryDecision",
    "RetryPolicy",
]


DEFAULT_MAX_RETRIES = 3


@dataclass(frozen=True, slots=True)
class Retry:
    """Try again after ``delay``."""

    delay: timedelta

    def not_before(self, now: datetime) -> datetime:
        """Return the earliest time the job may be claimed again."""
        return now + self.delay


@dataclass(frozen=True, slots=True)
class Exhausted:
    """No attempts left; the job fails permanently."""

    max_retries: int


RetryDecision = Retry | Exhausted


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Map an attempt number to a retry decision.

    The delay after attempt ``n`` is ``2 ** n * base_delay`` (2s, 4s, 8s
    for attempts 1-3 with the default one-second base). Attempts beyond
    ``max_retries`` are exhausted. ``decide`` is pure per attempt number;
    ``is_final`` tells the processor that a failed attempt was the last one.

    Attributes:
        max_retries: Number of attempts a job gets before it fails.
        base_delay: Backoff multiplier.
    """

    max_retries: int = DEFAULT_MAX_RETRIES
    base_delay: timedelta = timedelta(seconds=1)

    @classmethod
    def from_config(cls, config: RetryConfig) -> RetryPolicy:
        """Build a policy from the ``retry`` settings section."""
        return cls(
            max_retries=config.max_retries,
            base_delay=timedelta(seconds=config.base_delay_seconds),
        )

    def delay_for(self, attempt_number: int) -> timedelta:
        """Return the backoff delay following ``attempt_number``."""
        return self.base_delay * (2**attempt_number)

    def is_exhausted(self, attempt_number: int) -> bool:
        """Return True if ``attempt_number`` exceeds the retry budget."""
        return attempt_number > self.max_retries

    def is_final(self, attempt_number: int) -> bool:
        """Return True if a failure of ``attempt_number`` must not be retried.

        Attempt ``max_retries`` is the last one that runs.
        """
        return attempt_number >= self.max_retries

    def decide(self, attempt_number: int) -> RetryDecision:
        """Decide what happens after attempt ``attempt_number`` fails."""
        if attempt_number < 1:
            msg = f"attempt_number must be >= 1, got {attempt_number}"
            raise ValueError(msg)
        if self.is_exhausted(attempt_number):
            return Exhausted(max_retries=self.max_retries)
        return Retry(delay=self.delay_for(attempt_number))

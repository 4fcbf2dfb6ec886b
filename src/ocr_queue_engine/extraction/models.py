"""Result models for text extraction."""

from __future__ import annotations

from dataclasses import dataclass


__all__ = [
    "ExtractedText",
    "count_words",
]


def count_words(text: str) -> int:
    """Count whitespace-separated words, ignoring empty tokens.

    Example:
        >>> count_words("Hello   world\\n\\nfoo")
        3
    """
    return len(text.split())


@dataclass(frozen=True, slots=True)
class ExtractedText:
    """Text extracted from a single document.

    Attributes:
        text: Raw extracted text.
        word_count: Number of whitespace-separated words in ``text``.
        duration_seconds: Wall-clock time spent in the extraction call.
    """

    text: str
    word_count: int
    duration_seconds: float

    @classmethod
    def from_text(cls, text: str, duration_seconds: float) -> ExtractedText:
        """Build a result, computing the word count from ``text``."""
        return cls(
            text=text,
            word_count=count_words(text),
            duration_seconds=duration_seconds,
        )

"""Vision-model text extraction.

Example:
    ```python
    from ocr_queue_engine.extraction import ExtractionClient, ExtractionError

    async with ExtractionClient(api_key="...") as client:
        try:
            result = await client.extract(image_bytes, "image/png")
        except ExtractionError as exc:
            print(f"failed: {exc}")
        else:
            print(result.text)
    ```
"""

from __future__ import annotations

from ocr_queue_engine.extraction.client import ExtractionClient
from ocr_queue_engine.extraction.exceptions import (
    ContentBlockedError,
    EmptyResponseError,
    ExtractionError,
    ExtractionTransportError,
)
from ocr_queue_engine.extraction.models import ExtractedText, count_words


__all__ = [
    "ContentBlockedError",
    "EmptyResponseError",
    "ExtractedText",
    "ExtractionClient",
    "ExtractionError",
    "ExtractionTransportError",
    "count_words",
]

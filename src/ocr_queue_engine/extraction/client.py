"""Async client for the Gemini vision text-extraction API."""

from __future__ import annotations

import base64
import time
from typing import TYPE_CHECKING, Any, Self

import httpx
import structlog

from ocr_queue_engine.config.schema import DEFAULT_INSTRUCTION
from ocr_queue_engine.extraction.exceptions import (
    ContentBlockedError,
    EmptyResponseError,
    ExtractionTransportError,
)
from ocr_queue_engine.extraction.models import ExtractedText


if TYPE_CHECKING:
    from ocr_queue_engine.config.schema import ExtractionConfig


__all__ = ["ExtractionClient"]


HARM_CATEGORIES = (
    "HARM_CATEGORY_HARASSMENT",
    "HARM_CATEGORY_HATE_SPEECH",
    "HARM_CATEGORY_SEXUALLY_EXPLICIT",
    "HARM_CATEGORY_DANGEROUS_CONTENT",
)

# finishReason values that mean the candidate was withheld
BLOCK_FINISH_REASONS = frozenset(
    {"SAFETY", "RECITATION", "BLOCKLIST", "PROHIBITED_CONTENT", "SPII"},
)


class ExtractionClient:
    """Extract raw text from document bytes with a Gemini vision model.

    The client performs exactly one provider call per ``extract``; retrying
    is the queue's job, not the client's.

    Example:
        ```python
        async with ExtractionClient(api_key="...") as client:
            result = await client.extract(pdf_bytes, "application/pdf")
            print(result.word_count)
        ```

    Attributes:
        base_url: Generative Language API base URL.
        model: Model used for ``generateContent``.
        timeout: Request timeout configuration.
    """

    DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
    DEFAULT_MODEL = "gemini-1.5-flash"
    DEFAULT_TIMEOUT = httpx.Timeout(120.0, connect=10.0)

    def __init__(  # noqa: PLR0913
        self,
        api_key: str,
        *,
        base_url: str | None = None,
        model: str | None = None,
        instruction: str = DEFAULT_INSTRUCTION,
        temperature: float = 0.1,
        top_p: float = 0.8,
        top_k: int = 40,
        max_output_tokens: int = 8192,
        safety_threshold: str = "BLOCK_MEDIUM_AND_ABOVE",
        timeout: httpx.Timeout | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or self.DEFAULT_BASE_URL).rstrip("/")
        self.model = model or self.DEFAULT_MODEL
        self.timeout = timeout or self.DEFAULT_TIMEOUT
        self.instruction = instruction
        self.generation_config: dict[str, Any] = {
            "temperature": temperature,
            "topP": top_p,
            "topK": top_k,
            "maxOutputTokens": max_output_tokens,
        }
        self.safety_settings = [
            {"category": category, "threshold": str(safety_threshold)}
            for category in HARM_CATEGORIES
        ]
        self._api_key = api_key
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._logger = structlog.get_logger(__name__)

    @classmethod
    def from_config(
        cls,
        config: ExtractionConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> Self:
        """Create a client from the ``extraction`` settings section."""
        return cls(
            api_key=config.api_key or "",
            base_url=config.base_url,
            model=config.model,
            instruction=config.instruction,
            temperature=config.temperature,
            top_p=config.top_p,
            top_k=config.top_k,
            max_output_tokens=config.max_output_tokens,
            safety_threshold=config.safety_threshold.value,
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
                base_url=self.base_url,
                headers={
                    "x-goog-api-key": self._api_key,
                    "Content-Type": "application/json",
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

    def build_payload(self, file_bytes: bytes, mime_type: str) -> dict[str, Any]:
        """Build the ``generateContent`` request body."""
        return {
            "contents": [
                {
                    "parts": [
                        {"text": self.instruction},
                        {
                            "inline_data": {
                                "mime_type": mime_type,
                                "data": base64.b64encode(file_bytes).decode("ascii"),
                            },
                        },
                    ],
                },
            ],
            "generationConfig": self.generation_config,
            "safetySettings": self.safety_settings,
        }

    async def extract(self, file_bytes: bytes, mime_type: str) -> ExtractedText:
        """Extract raw text from a document.

        Args:
            file_bytes: Raw file content.
            mime_type: MIME type of the content (image/* or application/pdf).

        Returns:
            Extracted text with word count and call duration.

        Raises:
            ContentBlockedError: The safety filter rejected the input.
            EmptyResponseError: No candidate carried usable text.
            ExtractionTransportError: Network, timeout or HTTP failure.
        """
        client = await self._ensure_client()
        log = self._logger.bind(model=self.model, mime_type=mime_type)
        started = time.monotonic()

        try:
            response = await client.post(
                f"/models/{self.model}:generateContent",
                json=self.build_payload(file_bytes, mime_type),
            )
        except httpx.TimeoutException as exc:
            msg = "Extraction request timed out"
            raise ExtractionTransportError(msg, cause=exc) from exc
        except httpx.HTTPError as exc:
            msg = f"Extraction request failed: {exc}"
            raise ExtractionTransportError(msg, cause=exc) from exc

        duration = time.monotonic() - started
        log.debug(
            "extraction_response",
            status_code=response.status_code,
            duration_seconds=round(duration, 3),
        )

        if not response.is_success:
            log.warning(
                "extraction_http_error",
                status_code=response.status_code,
                body=response.text[:500],
            )
            msg = "Extraction service returned an error"
            raise ExtractionTransportError(msg, response=response)

        try:
            data = response.json()
        except ValueError as exc:
            msg = "Extraction service returned invalid JSON"
            raise ExtractionTransportError(
                msg,
                cause=exc,
                response=response,
            ) from exc

        text = self._parse_text(data)
        return ExtractedText.from_text(text, duration)

    @staticmethod
    def _parse_text(data: Any) -> str:  # noqa: ANN401
        """Pull the candidate text out of a ``generateContent`` response."""
        if not isinstance(data, dict):
            raise EmptyResponseError

        feedback = data.get("promptFeedback")
        if isinstance(feedback, dict) and feedback.get("blockReason"):
            raise ContentBlockedError(str(feedback["blockReason"]))

        candidates = data.get("candidates")
        if not isinstance(candidates, list) or not candidates:
            raise EmptyResponseError

        candidate = candidates[0]
        if not isinstance(candidate, dict):
            raise EmptyResponseError
        content = candidate.get("content") or {}
        if not isinstance(content, dict):
            raise EmptyResponseError
        parts = content.get("parts") or []
        if not isinstance(parts, list):
            raise EmptyResponseError
        text = "".join(
            part["text"]
            for part in parts
            if isinstance(part, dict) and isinstance(part.get("text"), str)
        )

        if not text.strip():
            finish_reason = candidate.get("finishReason")
            if finish_reason in BLOCK_FINISH_REASONS:
                raise ContentBlockedError(finish_reason)
            raise EmptyResponseError

        return text

"""Unit tests for the Gemini extraction client."""

from __future__ import annotations

import base64
import json
from collections.abc import AsyncGenerator  # noqa: TC003
from typing import Any

import httpx
import pytest
import respx  # noqa: TC002

from ocr_queue_engine.config import ExtractionConfig
from ocr_queue_engine.extraction import (
    ContentBlockedError,
    EmptyResponseError,
    ExtractionClient,
    ExtractionTransportError,
    count_words,
)


BASE_URL = "https://gemini.test/v1beta"
GENERATE_PATH = "/models/gemini-1.5-flash:generateContent"


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
async def client() -> AsyncGenerator[ExtractionClient, None]:
    """Create a test client against the mocked base URL."""
    async with ExtractionClient("test-key", base_url=BASE_URL) as c:
        yield c


def _candidate_response(text: str, finish_reason: str = "STOP") -> dict[str, Any]:
    return {
        "candidates": [
            {
                "content": {"parts": [{"text": text}], "role": "model"},
                "finishReason": finish_reason,
            },
        ],
    }


# ---------------------------------------------------------------------------
# Request construction
# ---------------------------------------------------------------------------


class TestRequest:
    """Tests for the generateContent request."""

    @pytest.mark.respx(base_url=BASE_URL)
    async def test_sends_inline_document(
        self,
        client: ExtractionClient,
        respx_mock: respx.MockRouter,
    ) -> None:
        """The file travels base64-encoded next to the instruction."""
        route = respx_mock.post(GENERATE_PATH).mock(
            return_value=httpx.Response(200, json=_candidate_response("ok")),
        )

        await client.extract(b"%PDF-1.7", "application/pdf")

        request = route.calls.last.request
        assert request.headers["x-goog-api-key"] == "test-key"
        body = json.loads(request.content)
        parts = body["contents"][0]["parts"]
        assert parts[0]["text"] == client.instruction
        assert parts[1]["inline_data"] == {
            "mime_type": "application/pdf",
            "data": base64.b64encode(b"%PDF-1.7").decode("ascii"),
        }
        assert body["generationConfig"]["temperature"] == 0.1
        assert body["generationConfig"]["maxOutputTokens"] == 8192
        assert len(body["safetySettings"]) == 4

    def test_from_config(self) -> None:
        """Settings map onto the client."""
        config = ExtractionConfig(
            api_key="k",
            model="gemini-2.0-flash",
            safety_threshold="BLOCK_ONLY_HIGH",
        )
        client = ExtractionClient.from_config(config)

        assert client.model == "gemini-2.0-flash"
        payload = client.build_payload(b"x", "image/png")
        assert {s["threshold"] for s in payload["safetySettings"]} == {
            "BLOCK_ONLY_HIGH",
        }


# ---------------------------------------------------------------------------
# Response handling
# ---------------------------------------------------------------------------


class TestResponse:
    """Tests for response parsing and error mapping."""

    @pytest.mark.respx(base_url=BASE_URL)
    async def test_returns_text_and_word_count(
        self,
        client: ExtractionClient,
        respx_mock: respx.MockRouter,
    ) -> None:
        """Text parts are joined and counted."""
        respx_mock.post(GENERATE_PATH).mock(
            return_value=httpx.Response(
                200,
                json={
                    "candidates": [
                        {
                            "content": {
                                "parts": [{"text": "Invoice 42\n"}, {"text": "Total: 9"}],
                            },
                        },
                    ],
                },
            ),
        )

        result = await client.extract(b"img", "image/png")

        assert result.text == "Invoice 42\nTotal: 9"
        assert result.word_count == 4
        assert result.duration_seconds >= 0

    @pytest.mark.respx(base_url=BASE_URL)
    async def test_prompt_block(
        self,
        client: ExtractionClient,
        respx_mock: respx.MockRouter,
    ) -> None:
        """A prompt-level block raises ContentBlockedError."""
        respx_mock.post(GENERATE_PATH).mock(
            return_value=httpx.Response(
                200,
                json={"promptFeedback": {"blockReason": "SAFETY"}},
            ),
        )

        with pytest.raises(ContentBlockedError) as exc_info:
            await client.extract(b"img", "image/png")
        assert exc_info.value.reason == "SAFETY"

    @pytest.mark.respx(base_url=BASE_URL)
    async def test_candidate_withheld_by_safety(
        self,
        client: ExtractionClient,
        respx_mock: respx.MockRouter,
    ) -> None:
        """An empty candidate stopped for SAFETY is a block."""
        respx_mock.post(GENERATE_PATH).mock(
            return_value=httpx.Response(200, json=_candidate_response("", "SAFETY")),
        )

        with pytest.raises(ContentBlockedError):
            await client.extract(b"img", "image/png")

    @pytest.mark.respx(base_url=BASE_URL)
    async def test_no_candidates(
        self,
        client: ExtractionClient,
        respx_mock: respx.MockRouter,
    ) -> None:
        """No candidates raises EmptyResponseError."""
        respx_mock.post(GENERATE_PATH).mock(
            return_value=httpx.Response(200, json={"candidates": []}),
        )

        with pytest.raises(EmptyResponseError):
            await client.extract(b"img", "image/png")

    @pytest.mark.parametrize(
        "body",
        [
            {"candidates": ["not a candidate"]},
            {"candidates": [{"content": "plain string"}]},
            {"candidates": [{"content": {"parts": "abc"}}]},
            {"candidates": {"0": {}}},
            {"promptFeedback": "odd", "candidates": []},
        ],
    )
    @pytest.mark.respx(base_url=BASE_URL)
    async def test_malformed_candidates(
        self,
        client: ExtractionClient,
        respx_mock: respx.MockRouter,
        body: dict[str, Any],
    ) -> None:
        """Unexpected response shapes raise EmptyResponseError."""
        respx_mock.post(GENERATE_PATH).mock(
            return_value=httpx.Response(200, json=body),
        )

        with pytest.raises(EmptyResponseError):
            await client.extract(b"img", "image/png")

    @pytest.mark.respx(base_url=BASE_URL)
    async def test_server_error(
        self,
        client: ExtractionClient,
        respx_mock: respx.MockRouter,
    ) -> None:
        """Non-2xx answers raise ExtractionTransportError."""
        respx_mock.post(GENERATE_PATH).mock(
            return_value=httpx.Response(503, text="overloaded"),
        )

        with pytest.raises(ExtractionTransportError) as exc_info:
            await client.extract(b"img", "image/png")
        assert "status=503" in str(exc_info.value)

    @pytest.mark.respx(base_url=BASE_URL)
    async def test_timeout(
        self,
        client: ExtractionClient,
        respx_mock: respx.MockRouter,
    ) -> None:
        """Transport timeouts raise ExtractionTransportError."""
        respx_mock.post(GENERATE_PATH).mock(
            side_effect=httpx.ReadTimeout("timed out"),
        )

        with pytest.raises(ExtractionTransportError, match="timed out"):
            await client.extract(b"img", "image/png")

    @pytest.mark.respx(base_url=BASE_URL)
    async def test_invalid_json(
        self,
        client: ExtractionClient,
        respx_mock: respx.MockRouter,
    ) -> None:
        """A non-JSON body raises ExtractionTransportError."""
        respx_mock.post(GENERATE_PATH).mock(
            return_value=httpx.Response(200, text="<html>"),
        )

        with pytest.raises(ExtractionTransportError, match="invalid JSON"):
            await client.extract(b"img", "image/png")


class TestCountWords:
    """Tests for count_words()."""

    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("", 0),
            ("   ", 0),
            ("one", 1),
            ("two  words\nthree\ttabs", 4),
            ("Hello   world\n\nfoo", 3),
        ],
    )
    def test_whitespace_split(self, text: str, expected: int) -> None:
        """Words are maximal runs of non-whitespace."""
        assert count_words(text) == expected

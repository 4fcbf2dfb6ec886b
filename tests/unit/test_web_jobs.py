"""Unit tests for the job endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from fastapi.testclient import TestClient

from ocr_queue_engine.stores import JobStatus
from ocr_queue_engine.web import create_app


if TYPE_CHECKING:
    from collections.abc import Callable, Generator

    from ocr_queue_engine.engine import Engine
    from ocr_queue_engine.stores import Document, OcrJob


@pytest.fixture
def client(engine: Engine) -> Generator[TestClient, None, None]:
    """Create a test client with lifespan management."""
    with TestClient(create_app(engine=engine)) as c:
        yield c


class TestListJobs:
    """Tests for GET /api/jobs."""

    def test_empty(self, client: TestClient) -> None:
        """No jobs gives an empty list."""
        response = client.get("/api/jobs")
        assert response.status_code == 200
        assert response.json() == []

    def test_filters_by_status(
        self,
        client: TestClient,
        seed_job: Callable[..., OcrJob],
        document: Document,
    ) -> None:
        """Only jobs in the requested status are listed."""
        failed = seed_job(document.id, status=JobStatus.FAILED, attempts=3)
        seed_job(document.id)

        response = client.get("/api/jobs", params={"status": "failed"})

        assert response.status_code == 200
        data = response.json()
        assert [job["id"] for job in data] == [failed.id]
        assert data[0]["attempts"] == 3

    def test_limit(
        self,
        client: TestClient,
        seed_job: Callable[..., OcrJob],
        document: Document,
    ) -> None:
        """The limit caps the result size."""
        for _ in range(3):
            seed_job(document.id)

        response = client.get("/api/jobs", params={"limit": 2})
        assert len(response.json()) == 2

    def test_invalid_status(self, client: TestClient) -> None:
        """An unknown status is a validation error."""
        response = client.get("/api/jobs", params={"status": "bogus"})
        assert response.status_code == 422

    def test_limit_out_of_range(self, client: TestClient) -> None:
        """A zero limit is rejected."""
        response = client.get("/api/jobs", params={"limit": 0})
        assert response.status_code == 422


class TestGetJob:
    """Tests for GET /api/jobs/{id}."""

    def test_returns_job(
        self,
        client: TestClient,
        seed_job: Callable[..., OcrJob],
        document: Document,
    ) -> None:
        """A known job is returned."""
        job = seed_job(document.id, error_message="Failed to download file: boom")

        response = client.get(f"/api/jobs/{job.id}")

        assert response.status_code == 200
        data = response.json()
        assert data["id"] == job.id
        assert data["status"] == "pending"
        assert data["error_message"] == "Failed to download file: boom"

    def test_unknown_job(self, client: TestClient) -> None:
        """An unknown job answers 404."""
        response = client.get("/api/jobs/missing")

        assert response.status_code == 404
        assert response.json()["error_type"] == "JobNotFoundError"

"""API routes."""

from __future__ import annotations

from ocr_queue_engine.web.routes.documents import (
    router as documents_router,
)
from ocr_queue_engine.web.routes.health import (
    router as health_router,
)
from ocr_queue_engine.web.routes.jobs import (
    router as jobs_router,
)
from ocr_queue_engine.web.routes.queue import (
    router as queue_router,
)


__all__ = ["documents_router", "health_router", "jobs_router", "queue_router"]

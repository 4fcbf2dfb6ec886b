"""FastAPI application factory for ocr-queue-engine."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import (
    BaseHTTPMiddleware,
    RequestResponseEndpoint,
)
from starlette.responses import Response  # noqa: TC002

from ocr_queue_engine.observability import (
    clear_invocation_context,
    get_logger,
    set_invocation_id,
)
from ocr_queue_engine.stores.exceptions import (
    DocumentNotFoundError,
    DocumentNotSubmittableError,
    InsufficientCreditsError,
    JobNotFoundError,
    UserNotFoundError,
)


if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from ocr_queue_engine.config import Settings
    from ocr_queue_engine.engine import Engine


__all__ = [
    "RequestIDMiddleware",
    "create_app",
    "get_app_settings",
    "get_engine",
]


# -------------------------------------------------------------------
# Lifespan
# -------------------------------------------------------------------


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build (unless injected), start and finally close the engine.

    Args:
        app: The FastAPI application instance.

    Yields:
        None after startup completes.
    """
    from ocr_queue_engine import engine as engine_module

    logger = get_logger(__name__)
    settings: Settings = app.state.settings

    logger.info(
        "app_starting",
        host=settings.web.host,
        port=settings.web.port,
        backend=settings.database.backend.value,
    )

    engine: Engine | None = app.state.engine
    if engine is None:
        engine = engine_module.build_engine(settings)
        app.state.engine = engine
    await engine.start()

    logger.info("app_started", workers=settings.queue.workers)

    yield

    logger.info("app_shutting_down")
    await engine.aclose()
    logger.info("app_shutdown_complete")


# -------------------------------------------------------------------
# Middleware
# -------------------------------------------------------------------


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Bind an invocation ID to every request.

    An incoming ``X-Request-ID`` header is reused; otherwise a new ID is
    generated. The ID is echoed back in the response headers.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        """Process the request with invocation ID tracking."""
        clear_invocation_context()

        incoming_id = request.headers.get("x-request-id")
        invocation_id = set_invocation_id(incoming_id)

        response = await call_next(request)
        response.headers["X-Request-ID"] = invocation_id
        return response


# -------------------------------------------------------------------
# Exception handlers
# -------------------------------------------------------------------


def _register_exception_handlers(app: FastAPI) -> None:
    """Register global exception handlers.

    Args:
        app: The FastAPI application.
    """
    logger = get_logger(__name__)

    @app.exception_handler(JobNotFoundError)
    @app.exception_handler(DocumentNotFoundError)
    @app.exception_handler(UserNotFoundError)
    async def not_found_handler(
        _request: Request,
        exc: Exception,
    ) -> JSONResponse:
        return JSONResponse(
            status_code=404,
            content={
                "detail": str(exc),
                "error_type": type(exc).__name__,
            },
        )

    @app.exception_handler(DocumentNotSubmittableError)
    async def not_submittable_handler(
        _request: Request,
        exc: DocumentNotSubmittableError,
    ) -> JSONResponse:
        return JSONResponse(
            status_code=409,
            content={
                "detail": str(exc),
                "error_type": type(exc).__name__,
            },
        )

    @app.exception_handler(InsufficientCreditsError)
    async def insufficient_credits_handler(
        _request: Request,
        exc: InsufficientCreditsError,
    ) -> JSONResponse:
        logger.info(
            "insufficient_credits",
            user_id=exc.user_id,
            balance=exc.balance,
            required=exc.required,
        )
        return JSONResponse(
            status_code=402,
            content={
                "detail": "Insufficient credits",
                "error_type": "InsufficientCreditsError",
            },
        )

    @app.exception_handler(Exception)
    async def generic_error_handler(
        _request: Request,
        exc: Exception,
    ) -> JSONResponse:
        logger.exception(
            "unhandled_error",
            error=str(exc),
            error_type=type(exc).__name__,
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )


# -------------------------------------------------------------------
# Router registration
# -------------------------------------------------------------------


def _include_routers(app: FastAPI) -> None:
    """Include API route routers.

    Args:
        app: The FastAPI application.
    """
    from ocr_queue_engine.web.routes import (
        documents_router,
        health_router,
        jobs_router,
        queue_router,
    )

    app.include_router(health_router)
    app.include_router(queue_router)
    app.include_router(documents_router)
    app.include_router(jobs_router)


# -------------------------------------------------------------------
# Dependency helpers
# -------------------------------------------------------------------


def get_app_settings(request: Request) -> Settings:
    """FastAPI dependency: get application settings."""
    return request.app.state.settings  # type: ignore[no-any-return]


def get_engine(request: Request) -> Engine:
    """FastAPI dependency: get the running engine."""
    return request.app.state.engine  # type: ignore[no-any-return]


# -------------------------------------------------------------------
# Application factory
# -------------------------------------------------------------------


def create_app(
    settings: Settings | None = None,
    *,
    engine: Engine | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Application settings. If None, loads from default
            configuration sources via ``get_settings()``.
        engine: Pre-built engine. If None, one is built from ``settings``
            on startup. Either way the app starts and closes it.

    Returns:
        Configured FastAPI application instance.
    """
    from ocr_queue_engine import __version__
    from ocr_queue_engine.config import get_settings

    if settings is None:
        settings = engine.settings if engine is not None else get_settings()

    app = FastAPI(
        title="ocr-queue-engine",
        version=__version__,
        description="Asynchronous OCR job queue with retry and credit billing",
        lifespan=_lifespan,
    )

    app.state.settings = settings
    app.state.engine = engine

    app.add_middleware(RequestIDMiddleware)
    _register_exception_handlers(app)
    _include_routers(app)

    return app

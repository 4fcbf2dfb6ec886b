"""CLI module for ocr-queue-engine."""

from __future__ import annotations

import asyncio
import json
import signal
from typing import TYPE_CHECKING

import typer

from ocr_queue_engine import __version__
from ocr_queue_engine.config import (
    ConfigurationError,
    StoreBackend,
    load_settings,
)
from ocr_queue_engine.observability import (
    LogLevel,
    configure_logging,
    get_logger,
    set_invocation_id,
)


if TYPE_CHECKING:
    from ocr_queue_engine.config import Settings
    from ocr_queue_engine.queue import InvocationResult


app = typer.Typer(
    name="ocr-queue",
    help="Asynchronous OCR job queue with retry and credit billing.",
    no_args_is_help=True,
)

_CONFIG_OPTION_HELP = "Path to configuration file."


def version_callback(value: bool) -> None:  # noqa: FBT001
    """Print version and exit."""
    if value:
        typer.echo(f"ocr-queue version {__version__}")
        raise typer.Exit


@app.callback()
def main(
    ctx: typer.Context,
    version: bool = typer.Option(  # noqa: FBT001
        False,  # noqa: FBT003
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(  # noqa: FBT001
        False,  # noqa: FBT003
        "--verbose",
        "-V",
        help="Enable verbose (debug) logging.",
    ),
    quiet: bool = typer.Option(  # noqa: FBT001
        False,  # noqa: FBT003
        "--quiet",
        "-q",
        help="Only show warnings and errors.",
    ),
) -> None:
    """ocr-queue-engine CLI."""
    del version  # Handled by callback

    if verbose and quiet:
        typer.echo("Error: --verbose and --quiet are mutually exclusive.", err=True)
        raise typer.Exit(1)

    level: LogLevel | None = None
    if verbose:
        level = LogLevel.DEBUG
    elif quiet:
        level = LogLevel.WARNING

    ctx.obj = {"log_level": level}


def _load(ctx: typer.Context, config_file: str | None) -> Settings:
    """Load settings and configure logging; exit 2 on bad configuration."""
    try:
        settings = load_settings(config_file)
    except ConfigurationError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(2) from exc

    logging_config = settings.observability.logging
    level = (ctx.obj or {}).get("log_level") or logging_config.level.value
    configure_logging(level=level, log_format=logging_config.format.value)
    return settings


@app.command()
def serve(
    ctx: typer.Context,
    host: str | None = typer.Option(None, "--host", "-h", help="Host to bind to."),
    port: int | None = typer.Option(None, "--port", "-p", help="Port to bind to."),
    config_file: str | None = typer.Option(
        None,
        "--config",
        "-c",
        help=_CONFIG_OPTION_HELP,
    ),
) -> None:
    """Start the web server with the background runner."""
    import uvicorn

    from ocr_queue_engine.web import create_app

    settings = _load(ctx, config_file)
    application = create_app(settings=settings)

    uvicorn.run(
        application,
        host=host or settings.web.host,
        port=port or settings.web.port,
        log_config=None,
    )


async def _process_next(settings: Settings) -> InvocationResult:
    from ocr_queue_engine.engine import build_engine

    engine = build_engine(settings)
    await engine.start(runner=False)
    try:
        return await engine.processor.process_next()
    finally:
        await engine.aclose()


@app.command(name="process-next")
def process_next(
    ctx: typer.Context,
    config_file: str | None = typer.Option(
        None,
        "--config",
        "-c",
        help=_CONFIG_OPTION_HELP,
    ),
) -> None:
    """Run one queue invocation and print its result as JSON."""
    settings = _load(ctx, config_file)
    logger = get_logger(__name__)
    set_invocation_id()

    try:
        result = asyncio.run(_process_next(settings))
    except Exception as exc:
        logger.exception(
            "invocation_failed",
            error=str(exc),
            error_type=type(exc).__name__,
        )
        typer.echo(json.dumps({"detail": "Internal server error"}), err=True)
        raise typer.Exit(1) from exc

    typer.echo(json.dumps(result.to_dict(), indent=2))


async def _run_worker(
    settings: Settings,
    *,
    workers: int | None,
    poll_interval: float | None,
) -> None:
    from ocr_queue_engine.engine import build_engine

    engine = build_engine(settings)
    if workers is not None:
        engine.runner.workers = workers
    if poll_interval is not None:
        engine.runner.poll_interval = poll_interval

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    async with engine:
        await engine.runner.run_forever(stop)


@app.command()
def worker(
    ctx: typer.Context,
    workers: int | None = typer.Option(
        None,
        "--workers",
        "-w",
        min=1,
        help="Concurrent poll loops (defaults to queue.workers).",
    ),
    poll_interval: float | None = typer.Option(
        None,
        "--poll-interval",
        min=0.1,
        help="Idle sleep in seconds (defaults to queue.poll_interval).",
    ),
    config_file: str | None = typer.Option(
        None,
        "--config",
        "-c",
        help=_CONFIG_OPTION_HELP,
    ),
) -> None:
    """Poll the queue until interrupted."""
    settings = _load(ctx, config_file)
    asyncio.run(
        _run_worker(settings, workers=workers, poll_interval=poll_interval),
    )


@app.command()
def config(
    ctx: typer.Context,
    config_file: str | None = typer.Option(
        None,
        "--config",
        "-c",
        help=_CONFIG_OPTION_HELP,
    ),
) -> None:
    """Validate configuration and print it with secrets masked."""
    settings = _load(ctx, config_file)
    typer.echo(json.dumps(settings.masked_dump(), indent=2))


async def _init_db(settings: Settings) -> None:
    from ocr_queue_engine.stores import Database

    async with Database.from_config(settings.database) as database:
        await database.create_schema()


@app.command(name="init-db")
def init_db(
    ctx: typer.Context,
    config_file: str | None = typer.Option(
        None,
        "--config",
        "-c",
        help=_CONFIG_OPTION_HELP,
    ),
) -> None:
    """Create the PostgreSQL tables if they do not exist."""
    settings = _load(ctx, config_file)
    if settings.database.backend != StoreBackend.POSTGRES:
        typer.echo("Error: init-db requires the postgres backend.", err=True)
        raise typer.Exit(2)

    asyncio.run(_init_db(settings))
    typer.echo("Database schema is up to date.")


__all__ = ["app"]

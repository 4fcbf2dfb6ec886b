"""Configuration schema models for ocr-queue-engine.

Each section of the YAML file maps onto one of the models below. The
Settings class in ``settings.py`` composes them and takes care of file
discovery, environment overrides and secret fallbacks.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, field_validator


__all__ = [
    "ClaimOrder",
    "ConfigBaseModel",
    "DatabaseConfig",
    "ExtractionConfig",
    "LogFormat",
    "LogLevel",
    "LoggingConfig",
    "ObservabilityConfig",
    "QueueConfig",
    "RetryConfig",
    "SafetyThreshold",
    "StorageConfig",
    "StoreBackend",
    "TriggerConfig",
    "WebConfig",
]


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class StoreBackend(StrEnum):
    """Persistence backend for jobs, documents and credits.

    Attributes:
        POSTGRES: PostgreSQL via an asyncpg connection pool.
        MEMORY: Process-local dictionaries (development and tests).
    """

    POSTGRES = "postgres"
    MEMORY = "memory"


class ClaimOrder(StrEnum):
    """Ordering used when picking the next pending job.

    Attributes:
        LAST_ATTEMPTED: ``last_attempted_at`` ascending, never-tried first.
        CREATED: ``created_at`` ascending (oldest submission first).
    """

    LAST_ATTEMPTED = "last_attempted_at"
    CREATED = "created_at"


class SafetyThreshold(StrEnum):
    """Gemini safety filter threshold applied to every harm category."""

    BLOCK_NONE = "BLOCK_NONE"
    BLOCK_ONLY_HIGH = "BLOCK_ONLY_HIGH"
    BLOCK_MEDIUM_AND_ABOVE = "BLOCK_MEDIUM_AND_ABOVE"
    BLOCK_LOW_AND_ABOVE = "BLOCK_LOW_AND_ABOVE"


class LogFormat(StrEnum):
    """Log output format.

    Attributes:
        LOGFMT: key=value lines (colorized console output on a TTY).
        JSON: One JSON object per line.
        CONSOLE: Always use the human-friendly console renderer.
    """

    LOGFMT = "logfmt"
    JSON = "json"
    CONSOLE = "console"


class LogLevel(StrEnum):
    """Log verbosity level."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


# ---------------------------------------------------------------------------
# Base Configuration Model
# ---------------------------------------------------------------------------


class ConfigBaseModel(BaseModel):
    """Base model for all configuration sections.

    Unknown keys are rejected so typos in the YAML file surface early.
    """

    model_config = ConfigDict(
        extra="forbid",
        str_strip_whitespace=True,
        validate_default=True,
    )


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


class DatabaseConfig(ConfigBaseModel):
    """Job/document database configuration.

    Attributes:
        backend: Persistence backend.
        url: PostgreSQL DSN (falls back to ``DATABASE_URL``).
        min_pool_size: Minimum asyncpg pool connections.
        max_pool_size: Maximum asyncpg pool connections.
        command_timeout: Per-statement timeout in seconds.
        claim_order: Ordering used by the claim query.
    """

    backend: StoreBackend = Field(default=StoreBackend.POSTGRES)
    url: str | None = Field(
        default=None,
        description="PostgreSQL DSN (supports ${VAR} interpolation)",
    )
    min_pool_size: Annotated[int, Field(ge=1, le=50)] = 1
    max_pool_size: Annotated[int, Field(ge=1, le=100)] = 5
    command_timeout: Annotated[float, Field(gt=0, le=300)] = 30.0
    claim_order: ClaimOrder = Field(default=ClaimOrder.LAST_ATTEMPTED)


class StorageConfig(ConfigBaseModel):
    """Object storage (Supabase Storage) configuration.

    Attributes:
        url: Project base URL (falls back to ``SUPABASE_URL``).
        service_key: Service role key (falls back to
            ``SUPABASE_SERVICE_ROLE_KEY``).
        bucket: Bucket holding uploaded documents.
        timeout: HTTP timeout for downloads in seconds.
    """

    url: str | None = Field(default=None)
    service_key: str | None = Field(default=None)
    bucket: str = Field(default="documents")
    timeout: Annotated[float, Field(gt=0, le=600)] = 60.0

    @field_validator("url")
    @classmethod
    def strip_trailing_slash(cls, v: str | None) -> str | None:
        """Remove trailing slash from URL to avoid double slashes."""
        return v.rstrip("/") if v else v


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------


DEFAULT_INSTRUCTION = (
    "Extract all text from this document using OCR. Return only the "
    "extracted text without any additional commentary or analysis."
)


class ExtractionConfig(ConfigBaseModel):
    """Vision model configuration for text extraction.

    Attributes:
        api_key: Gemini API key (falls back to ``GEMINI_API_KEY``).
        base_url: Generative Language API base URL.
        model: Model name used for ``generateContent``.
        instruction: Prompt sent alongside the document.
        temperature: Sampling temperature.
        top_p: Nucleus sampling cutoff.
        top_k: Top-k sampling cutoff.
        max_output_tokens: Output token ceiling.
        safety_threshold: Threshold applied to every harm category.
        timeout: HTTP timeout in seconds.
    """

    api_key: str | None = Field(default=None)
    base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
    )
    model: str = Field(default="gemini-1.5-flash")
    instruction: str = Field(default=DEFAULT_INSTRUCTION)
    temperature: Annotated[float, Field(ge=0.0, le=2.0)] = 0.1
    top_p: Annotated[float, Field(ge=0.0, le=1.0)] = 0.8
    top_k: Annotated[int, Field(ge=1, le=100)] = 40
    max_output_tokens: Annotated[int, Field(ge=1, le=65536)] = 8192
    safety_threshold: SafetyThreshold = Field(
        default=SafetyThreshold.BLOCK_MEDIUM_AND_ABOVE,
    )
    timeout: Annotated[float, Field(gt=0, le=900)] = 120.0

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Remove trailing slash from URL to avoid double slashes."""
        return v.rstrip("/")


# ---------------------------------------------------------------------------
# Queue
# ---------------------------------------------------------------------------


class RetryConfig(ConfigBaseModel):
    """Retry policy configuration.

    Attributes:
        max_retries: Attempts allowed before a job is permanently failed.
        base_delay_seconds: Multiplier for the ``2 ** attempt`` backoff.
        retry_content_blocked: Treat safety-filter blocks as retryable.
    """

    max_retries: Annotated[int, Field(ge=1, le=20)] = 3
    base_delay_seconds: Annotated[float, Field(gt=0, le=3600)] = 1.0
    retry_content_blocked: bool = Field(default=False)


class QueueConfig(ConfigBaseModel):
    """Queue processing configuration.

    Attributes:
        workers: Concurrent invocations in worker mode / background kicks.
        poll_interval: Seconds to sleep when a poll finds no work.
        download_timeout: Upper bound for a single file download.
        extraction_timeout: Upper bound for a single extraction call.
        credit_cost: Credits debited per completed document.
    """

    workers: Annotated[int, Field(ge=1, le=32)] = 2
    poll_interval: Annotated[float, Field(gt=0, le=3600)] = 10.0
    download_timeout: Annotated[float, Field(gt=0, le=900)] = 90.0
    extraction_timeout: Annotated[float, Field(gt=0, le=1800)] = 180.0
    credit_cost: Annotated[int, Field(ge=1, le=100)] = 1


class TriggerConfig(ConfigBaseModel):
    """Invocation trigger configuration.

    Attributes:
        secret: Shared bearer secret for the trigger endpoint. When unset
            the endpoint is open (deploy behind a private network).
    """

    secret: str | None = Field(default=None)


# ---------------------------------------------------------------------------
# Web & Observability
# ---------------------------------------------------------------------------


class WebConfig(ConfigBaseModel):
    """HTTP server configuration."""

    host: str = Field(default="0.0.0.0")  # noqa: S104
    port: Annotated[int, Field(ge=1, le=65535)] = 8080


class LoggingConfig(ConfigBaseModel):
    """Logging configuration."""

    level: LogLevel = Field(default=LogLevel.INFO)
    format: LogFormat = Field(default=LogFormat.LOGFMT)


class ObservabilityConfig(ConfigBaseModel):
    """Observability configuration."""

    logging: LoggingConfig = Field(default_factory=LoggingConfig)

"""Configuration module for ocr-queue-engine.

Configuration is managed with Pydantic settings: a YAML file (with
${VAR} and ${VAR:-default} interpolation) overridden by ``OCRQUEUE_*``
environment variables.

Example:
    >>> from ocr_queue_engine.config import get_settings
    >>> settings = get_settings()
    >>> settings.database.backend
    <StoreBackend.POSTGRES: 'postgres'>
"""

from __future__ import annotations

from ocr_queue_engine.config.exceptions import (
    ConfigurationError,
    ConfigurationFileNotFoundError,
    ConfigurationValidationError,
)
from ocr_queue_engine.config.schema import (
    ClaimOrder,
    ConfigBaseModel,
    DatabaseConfig,
    ExtractionConfig,
    LogFormat,
    LoggingConfig,
    LogLevel,
    ObservabilityConfig,
    QueueConfig,
    RetryConfig,
    SafetyThreshold,
    StorageConfig,
    StoreBackend,
    TriggerConfig,
    WebConfig,
)
from ocr_queue_engine.config.settings import (
    Settings,
    clear_settings_cache,
    find_config_file,
    get_settings,
    load_settings,
)


__all__ = [
    "ClaimOrder",
    "ConfigBaseModel",
    "ConfigurationError",
    "ConfigurationFileNotFoundError",
    "ConfigurationValidationError",
    "DatabaseConfig",
    "ExtractionConfig",
    "LogFormat",
    "LogLevel",
    "LoggingConfig",
    "ObservabilityConfig",
    "QueueConfig",
    "RetryConfig",
    "SafetyThreshold",
    "Settings",
    "StorageConfig",
    "StoreBackend",
    "TriggerConfig",
    "WebConfig",
    "clear_settings_cache",
    "find_config_file",
    "get_settings",
    "load_settings",
]

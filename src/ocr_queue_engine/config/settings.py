"""Settings management for ocr-queue-engine.

Example:
    >>> from ocr_queue_engine.config import load_settings
    >>> settings = load_settings()
    >>> settings.retry.max_retries
    3
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import TYPE_CHECKING, Any, ClassVar

from pydantic import model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

from ocr_queue_engine.config.exceptions import (
    ConfigurationError,
    ConfigurationFileNotFoundError,
    ConfigurationValidationError,
)
from ocr_queue_engine.config.schema import (
    DatabaseConfig,
    ExtractionConfig,
    ObservabilityConfig,
    QueueConfig,
    RetryConfig,
    StorageConfig,
    TriggerConfig,
    WebConfig,
)


if TYPE_CHECKING:
    from collections.abc import Sequence


__all__ = [
    "Settings",
    "clear_settings_cache",
    "find_config_file",
    "get_settings",
    "load_settings",
]


# ---------------------------------------------------------------------------
# Environment Variable Interpolation
# ---------------------------------------------------------------------------

# ${VAR} and ${VAR:-default}
_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}")

# (section, field, fallback environment variable)
_SECRET_FALLBACKS: tuple[tuple[str, str, str], ...] = (
    ("database", "url", "DATABASE_URL"),
    ("storage", "url", "SUPABASE_URL"),
    ("storage", "service_key", "SUPABASE_SERVICE_ROLE_KEY"),
    ("extraction", "api_key", "GEMINI_API_KEY"),
)


def _interpolate_env_vars(value: object) -> object:
    """Recursively interpolate ${VAR} and ${VAR:-default} in strings.

    Example:
        >>> os.environ["MY_KEY"] = "secret123"
        >>> _interpolate_env_vars({"key": "${MY_KEY}"})
        {'key': 'secret123'}
        >>> _interpolate_env_vars("${MISSING:-fallback}")
        'fallback'
    """
    if isinstance(value, str):

        def replace(match: re.Match[str]) -> str:
            env_value = os.environ.get(match.group(1))
            if env_value is not None:
                return env_value
            return match.group(2) or ""

        return _ENV_VAR_PATTERN.sub(replace, value)

    if isinstance(value, dict):
        return {k: _interpolate_env_vars(v) for k, v in value.items()}

    if isinstance(value, list):
        return [_interpolate_env_vars(item) for item in value]

    return value


class _InterpolatingYamlConfigSettingsSource(YamlConfigSettingsSource):
    """YAML settings source that expands ${VAR} references after loading."""

    def __init__(
        self,
        settings_cls: type[BaseSettings],
        yaml_file: Path | str | None = None,
    ) -> None:
        if yaml_file is not None:
            super().__init__(settings_cls, yaml_file=yaml_file)
        else:
            super().__init__(settings_cls)

    def _read_files(
        self,
        files: Path | str | Sequence[Path | str] | None,
    ) -> dict[str, Any]:
        interpolated = _interpolate_env_vars(super()._read_files(files))
        if not isinstance(interpolated, dict):  # pragma: no cover
            return {}
        return interpolated


# ---------------------------------------------------------------------------
# Settings Class
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    """Application settings loaded from YAML file and environment variables.

    Settings are loaded in priority order (highest to lowest):
    1. Constructor arguments
    2. Environment variables (``OCRQUEUE_*``, ``__`` as nested delimiter)
    3. YAML configuration file
    4. Conventional secret variables (``DATABASE_URL``, ``SUPABASE_URL``,
       ``SUPABASE_SERVICE_ROLE_KEY``, ``GEMINI_API_KEY``) for fields left
       empty by the sources above
    5. Default values

    Attributes:
        database: Job/document database settings.
        storage: Object storage settings.
        extraction: Vision model settings.
        retry: Retry policy settings.
        queue: Queue processing settings.
        trigger: Invocation trigger settings.
        web: HTTP server settings.
        observability: Logging settings.
    """

    model_config = SettingsConfigDict(
        yaml_file=None,
        yaml_file_encoding="utf-8",
        env_prefix="OCRQUEUE_",
        env_nested_delimiter="__",
        extra="ignore",
        validate_default=True,
    )

    CONFIG_SEARCH_PATHS: ClassVar[list[Path]] = [
        Path("config.yaml"),
        Path("config.yml"),
        Path.home() / ".config" / "ocr-queue" / "config.yaml",
        Path("/etc/ocr-queue/config.yaml"),
    ]

    # Set by load_settings() for the duration of a single instantiation
    _yaml_file_override: ClassVar[Path | str | None] = None

    database: DatabaseConfig = DatabaseConfig()
    storage: StorageConfig = StorageConfig()
    extraction: ExtractionConfig = ExtractionConfig()
    retry: RetryConfig = RetryConfig()
    queue: QueueConfig = QueueConfig()
    trigger: TriggerConfig = TriggerConfig()
    web: WebConfig = WebConfig()
    observability: ObservabilityConfig = ObservabilityConfig()

    @model_validator(mode="after")
    def resolve_secret_fallbacks(self) -> Settings:
        """Fill unset connection secrets from conventional env variables."""
        for section_name, field_name, env_name in _SECRET_FALLBACKS:
            section = getattr(self, section_name)
            if getattr(section, field_name):
                continue
            env_value = os.environ.get(env_name)
            if env_value:
                if field_name == "url":
                    env_value = env_value.rstrip("/")
                object.__setattr__(section, field_name, env_value)
        return self

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Put init and env sources ahead of the YAML file; skip dotenv."""
        return (
            init_settings,
            env_settings,
            _InterpolatingYamlConfigSettingsSource(
                settings_cls,
                yaml_file=cls._yaml_file_override,
            ),
            file_secret_settings,
        )

    def masked_dump(self) -> dict[str, Any]:
        """Return settings as a dict with secret values replaced by ``***``."""
        data = self.model_dump(mode="json")
        for section_name, field_name, _ in _SECRET_FALLBACKS:
            if field_name == "url" and section_name != "database":
                continue
            if data[section_name].get(field_name):
                data[section_name][field_name] = "***"
        if data["trigger"].get("secret"):
            data["trigger"]["secret"] = "***"
        return data


# ---------------------------------------------------------------------------
# Settings Loading Functions
# ---------------------------------------------------------------------------

_cached_settings: Settings | None = None


def find_config_file(config_path: Path | str | None = None) -> Path | None:
    """Find the configuration file.

    Args:
        config_path: Explicit path to config file, or None to search
            the default locations.

    Returns:
        Path to the config file if found, None otherwise.
    """
    if config_path is not None:
        path = Path(config_path)
        return path if path.is_file() else None

    for search_path in Settings.CONFIG_SEARCH_PATHS:
        if search_path.is_file():
            return search_path

    return None


def load_settings(
    config_path: Path | str | None = None,
    *,
    require_config_file: bool = False,
) -> Settings:
    """Load and validate application settings.

    The loaded settings are cached for subsequent calls to get_settings().

    Args:
        config_path: Path to a YAML config file. If None, the default
            locations are searched.
        require_config_file: Raise when no config file is found instead of
            continuing with environment variables and defaults.

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationFileNotFoundError: When a config file is required (or
            explicitly requested) but missing.
        ConfigurationValidationError: When configuration validation fails.
    """
    global _cached_settings  # noqa: PLW0603

    config_file = find_config_file(config_path)

    if config_file is None and (require_config_file or config_path is not None):
        raise ConfigurationFileNotFoundError(
            path=str(config_path) if config_path else None,
            searched_paths=[str(p) for p in Settings.CONFIG_SEARCH_PATHS],
        )

    try:
        Settings._yaml_file_override = config_file  # noqa: SLF001
        try:
            settings = Settings()
        finally:
            Settings._yaml_file_override = None  # noqa: SLF001
    except ConfigurationError:
        raise
    except Exception as exc:
        errors = exc.errors() if hasattr(exc, "errors") else None
        msg = f"Failed to load configuration: {exc}"
        raise ConfigurationValidationError(msg, errors=errors) from exc

    _cached_settings = settings
    return settings


def get_settings() -> Settings:
    """Return the cached settings instance, loading it on first use."""
    global _cached_settings  # noqa: PLW0603

    if _cached_settings is None:
        _cached_settings = load_settings()

    return _cached_settings


def clear_settings_cache() -> None:
    """Clear the cached settings instance (mainly for tests)."""
    global _cached_settings  # noqa: PLW0603
    _cached_settings = None

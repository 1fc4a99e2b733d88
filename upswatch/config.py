"""
Configuration management for upswatch.

This module uses Pydantic's BaseSettings to manage configuration
through environment variables. The backend REST and WebSocket URLs are
required; everything else has a default matching the backend's refresh
cadence.

There is no module-level settings instance. Call ``load_settings()`` once
at process start and hand the result to the components that need it.
"""
from typing import Optional

from pydantic import ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PREFIX = "UPSWATCH_"
REQUIRED_URLS = ("API_BASE_URL", "WS_URL")


class ConfigurationError(Exception):
    """Raised when a required runtime setting is missing or invalid."""
    pass


class Settings(BaseSettings):
    """
    Application settings.

    These settings are loaded from environment variables prefixed with
    ``UPSWATCH_``.
    """

    # Backend endpoints
    API_BASE_URL: str
    WS_URL: str

    # HTTP
    HTTP_TIMEOUT: Optional[float] = None  # seconds, None = no enforced timeout

    # Polling configuration
    SNAPSHOT_INTERVAL: float = 300.0  # seconds, matches backend monitoring cycle
    PREDICTIONS_INTERVAL: float = 60.0
    ALERTS_PAGE_PREDICTIONS_INTERVAL: float = 900.0  # prediction generation cycle
    PREDICTIONS_LIMIT: int = 50

    # Live alert stream
    RECONNECT_DELAY: float = 5.0
    ALERT_BUFFER_SIZE: int = 10
    ALERT_DISPLAY_SIZE: int = 5

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        env_prefix=ENV_PREFIX,
    )


def load_settings(**overrides) -> Settings:
    """
    Build the settings object for this process.

    Args:
        **overrides: Explicit values that take precedence over the environment.

    Returns:
        Settings: The validated settings.

    Raises:
        ConfigurationError: If a required URL is missing or a value is invalid.
    """
    try:
        settings = Settings(**overrides)
    except ValidationError as e:
        missing = [
            f"{ENV_PREFIX}{err['loc'][0]}"
            for err in e.errors()
            if err.get("type") == "missing" and err.get("loc")
        ]
        if missing:
            raise ConfigurationError(
                f"Missing required environment variable(s): {', '.join(missing)}"
            ) from e
        raise ConfigurationError(f"Invalid configuration: {e}") from e

    for name in REQUIRED_URLS:
        if not getattr(settings, name).strip():
            raise ConfigurationError(f"{ENV_PREFIX}{name} is set but empty")
    return settings

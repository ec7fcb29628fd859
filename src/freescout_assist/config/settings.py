"""
Settings for the FreeScout assist tools.

Loads settings from a .env file or environment variables. Nothing here writes
to stdout; stdout is reserved for the agent protocol.
"""

import logging
import sys
from typing import Any, Optional

from pydantic import Field, SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..exceptions import ConfigurationError
from ..retry import RetryPolicy

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DEFAULT_ENV_FILE = ".env"


class Settings(BaseSettings):
    """
    Application settings derived from environment variables or .env file.
    """
    # FreeScout connection
    freescout_url: str = Field(..., description="Base URL of the FreeScout installation.")
    freescout_api_key: SecretStr = Field(..., description="Value sent in the X-FreeScout-API-Key header.")
    freescout_default_user_id: int = Field(default=1, ge=1, description="User id used for notes, drafts and updates.")

    # Retry and timeout tuning (milliseconds)
    freescout_max_retries: int = Field(default=3, ge=0)
    freescout_initial_delay_ms: int = Field(default=1000, ge=0)
    freescout_max_delay_ms: int = Field(default=10000, ge=0)
    freescout_timeout_ms: int = Field(default=30000, gt=0)

    # Logging settings
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=DEFAULT_ENV_FILE,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("freescout_url")
    @classmethod
    def _require_http_url(cls, value: str) -> str:
        value = value.strip()
        if not value.startswith(("http://", "https://")):
            raise ValueError("must start with http:// or https://")
        return value.rstrip("/")

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.freescout_max_retries,
            initial_delay=self.freescout_initial_delay_ms,
            max_delay=self.freescout_max_delay_ms,
            timeout_ms=self.freescout_timeout_ms,
        )


def load_settings(env_file: Optional[str] = DEFAULT_ENV_FILE, **overrides: Any) -> Settings:
    """
    Build validated settings.

    Raises:
        ConfigurationError: If required values are missing or invalid.
    """
    try:
        settings = Settings(_env_file=env_file, **overrides)
    except ValidationError as e:
        problems = ", ".join(
            f"{'.'.join(str(part) for part in error['loc']).upper()}: {error['msg']}" for error in e.errors()
        )
        raise ConfigurationError(f"Invalid FreeScout configuration: {problems}") from e

    logger.info(f"FreeScout settings loaded for {settings.freescout_url}")
    return settings


def configure_logging(level: str = "INFO") -> None:
    """Route package logging to stderr with the standard format."""
    log_level_int = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=log_level_int, format=LOG_FORMAT, stream=sys.stderr, force=True)

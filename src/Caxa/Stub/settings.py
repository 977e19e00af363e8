"""Environment-driven settings for the bundle runtime.

Everything the runtime reads from the process environment is collected here
once at startup and then passed explicitly to the staging and logging layers.
"""

from __future__ import annotations

import tempfile
from pathlib import Path
from typing import Any, Optional

from pydantic import Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError

__all__ = [
    "CACHE_NAMESPACE",
    "StubSettings",
    "load_settings",
    "resolve_base_dir",
]

CACHE_NAMESPACE = "caxa"

_VALID_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR"}


class StubSettings(BaseSettings):
    """Pydantic settings model exposing the runtime's environment overrides."""

    temp_dir: Optional[Path] = Field(default=None, alias="CAXA_TEMP_DIR")
    log_level: str = Field(default="WARNING", alias="CAXA_LOG_LEVEL")
    log_dir: Optional[Path] = Field(default=None, alias="CAXA_LOG_DIR")

    model_config = SettingsConfigDict(
        case_sensitive=False, extra="ignore", frozen=True
    )

    @field_validator("temp_dir", "log_dir", mode="before")
    @classmethod
    def blank_path_is_unset(cls, value: Any) -> Any:
        """Treat empty or whitespace-only paths as if the variable were not set."""

        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_level(cls, value: Any) -> str:
        """Normalize and validate logging level."""

        upper = str(value).strip().upper()
        if upper not in _VALID_LEVELS:
            raise ValueError(f"level must be one of {sorted(_VALID_LEVELS)}, got '{value}'")
        return upper


def load_settings() -> StubSettings:
    """Read :class:`StubSettings` from the environment, raising ``ConfigurationError``."""

    try:
        return StubSettings()
    except PydanticValidationError as exc:
        raise ConfigurationError(f"invalid environment configuration: {exc}") from exc


def resolve_base_dir(settings: StubSettings) -> Path:
    """Return the absolute base cache directory.

    ``CAXA_TEMP_DIR`` wins when set; otherwise the platform temporary directory
    joined with :data:`CACHE_NAMESPACE`.
    """

    if settings.temp_dir is not None:
        base = settings.temp_dir.expanduser()
    else:
        base = Path(tempfile.gettempdir()) / CACHE_NAMESPACE
    return base.absolute()

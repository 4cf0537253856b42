"""Configuration via pydantic-settings.

Every option can be set through an environment variable with the
``XLMODEL_`` prefix:

    XLMODEL_OUTPUT_TYPE: Default output type of ``Workbook.output`` (default: bytes)
    XLMODEL_LOG_LEVEL: Logging level for the CLI (default: WARNING)
    XLMODEL_LOCK_TIMEOUT: Seconds the CLI waits for a workbook lock (default: 0)
    XLMODEL_BACKUP: Back up files before the CLI rewrites them (default: false)
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from xlmodel.io.package import OutputType


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="XLMODEL_", extra="ignore")

    output_type: OutputType = OutputType.BYTES
    """Output type used when ``Workbook.output`` is called without one."""

    log_level: str = "WARNING"

    lock_timeout: float = 0.0
    """Seconds to wait for the sidecar lock; 0 fails immediately."""

    backup: bool = False

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_v = v.upper()
        if upper_v not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of: {', '.join(sorted(valid_levels))}")
        return upper_v

    @field_validator("lock_timeout")
    @classmethod
    def validate_lock_timeout(cls, v: float) -> float:
        if v < 0:
            raise ValueError(f"Lock timeout must not be negative, got {v}")
        return v


@lru_cache
def get_settings() -> Settings:
    return Settings()

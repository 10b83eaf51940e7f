"""
Application configuration with Pydantic validation.

All settings are loaded from environment variables (prefixed with
``AAPS_WATCH_``) with sensible defaults.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import (
    DEFAULT_BRIDGE_HOST,
    DEFAULT_BRIDGE_PORT,
    DEFAULT_CONFIRM_TIMEOUT,
    DEFAULT_HTTP_TIMEOUT,
    DEFAULT_LOG_LEVEL,
    DEFAULT_POLL_INTERVAL,
    HOUSEKEEPING_INTERVAL,
    RETENTION_WINDOW_MS,
    GlucoseThreshold,
)


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Thresholds are validated to ensure logical ordering.
    """

    model_config = SettingsConfigDict(
        env_prefix="AAPS_WATCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # =========================================================================
    # Mailbox Storage
    # =========================================================================
    storage_dir: Path = Path("./storage")

    # =========================================================================
    # Phone Bridge
    # =========================================================================
    bridge_host: str = DEFAULT_BRIDGE_HOST
    bridge_port: int = DEFAULT_BRIDGE_PORT
    http_timeout: int = DEFAULT_HTTP_TIMEOUT

    # =========================================================================
    # Polling
    # =========================================================================
    poll_interval: int = DEFAULT_POLL_INTERVAL
    housekeeping_interval: int = HOUSEKEEPING_INTERVAL
    retention_window_ms: int = RETENTION_WINDOW_MS
    confirm_timeout_seconds: int = DEFAULT_CONFIRM_TIMEOUT
    request_initial_data: bool = True
    run_poller: bool = True  # start the poll loop with the HTTP service

    # =========================================================================
    # Uploads
    # =========================================================================
    upload_hr: bool = False
    upload_steps: bool = False

    # =========================================================================
    # Display Thresholds (mmol/L)
    # =========================================================================
    glucose_low_mmol: float = GlucoseThreshold.LOW
    glucose_high_mmol: float = GlucoseThreshold.HIGH

    # =========================================================================
    # Diagnostics
    # =========================================================================
    debug: bool = False
    debug_logs: int = 0  # number of rotating aaps.debug.<n> files, 0 disables
    log_level: str = DEFAULT_LOG_LEVEL

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator('bridge_port')
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate bridge port is a usable TCP port."""
        if not 1 <= v <= 65535:
            raise ValueError(f"bridge_port must be 1-65535, got {v}")
        return v

    @field_validator('poll_interval', 'housekeeping_interval', 'http_timeout')
    @classmethod
    def validate_positive_seconds(cls, v: int) -> int:
        """Validate intervals are at least one second."""
        if v < 1:
            raise ValueError(f"interval must be at least 1 second, got {v}")
        return v

    @field_validator('retention_window_ms')
    @classmethod
    def validate_retention(cls, v: int) -> int:
        """Validate the retention window is positive."""
        if v <= 0:
            raise ValueError(f"retention_window_ms must be positive, got {v}")
        return v

    @field_validator('debug_logs', 'confirm_timeout_seconds')
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        """Validate counters are not negative."""
        if v < 0:
            raise ValueError(f"value must not be negative, got {v}")
        return v

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a valid Python logging level."""
        valid_levels = {'DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level '{v}'. Must be one of: {', '.join(valid_levels)}")
        return v_upper

    @model_validator(mode='after')
    def validate_thresholds(self) -> 'Settings':
        """Validate that threshold values are in logical order."""
        if not (0 < self.glucose_low_mmol < self.glucose_high_mmol):
            raise ValueError(
                f"glucose_low_mmol ({self.glucose_low_mmol}) must be positive and "
                f"less than glucose_high_mmol ({self.glucose_high_mmol})"
            )
        return self

    # =========================================================================
    # Helper Methods
    # =========================================================================

    @property
    def bridge_url(self) -> str:
        """Base URL of the phone application's local HTTP bridge."""
        return f"http://{self.bridge_host}:{self.bridge_port}"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

"""Process configuration using pydantic-settings.

This module defines the BikeShareSettings class that reads process-level
configuration from environment variables with the BIKESHARE_ prefix.

Process configuration is distinct from the operational settings that live
in the config store (system-active flag, checkout regulations, table
names). Those are loaded through ``bikeshare.settings.SettingsCache``;
this module only covers how the service itself is started and wired.
"""

from typing import List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class BikeShareSettings(BaseSettings):
    """Bike share service configuration from environment variables.

    All environment variables are prefixed with BIKESHARE_
    (e.g., BIKESHARE_LOCK_TIMEOUT_SECONDS).

    Every field has a default so the service can start locally against the
    in-memory store without any environment set up.
    """

    model_config = SettingsConfigDict(
        env_prefix="BIKESHARE_",
        case_sensitive=False,
    )

    # -------------------------------------------------------------------------
    # Pipeline Configuration
    # -------------------------------------------------------------------------
    # Bounded wait for the global lock before a run ends in LockTimeout
    lock_timeout_seconds: float = 30.0

    # Number of committed submission keys remembered for duplicate detection
    ledger_size: int = 1000

    # Event sinks for pipeline observability (logging, metrics)
    event_sinks: List[str] = ["logging", "metrics"]

    # -------------------------------------------------------------------------
    # Store Configuration
    # -------------------------------------------------------------------------
    # Optional JSON workbook used to seed the in-memory row store
    seed_path: Optional[str] = None

    # -------------------------------------------------------------------------
    # Server Configuration
    # -------------------------------------------------------------------------
    # Host address to bind the server to
    host: str = "0.0.0.0"

    # Port number for the server
    port: int = 8080

    # -------------------------------------------------------------------------
    # Validators
    # -------------------------------------------------------------------------
    @field_validator("lock_timeout_seconds")
    @classmethod
    def validate_lock_timeout(cls, v: float) -> float:
        """Validate that the lock timeout is positive."""
        if v <= 0:
            raise ValueError("lock_timeout_seconds must be positive")
        return v

    @field_validator("ledger_size")
    @classmethod
    def validate_ledger_size(cls, v: int) -> int:
        """Validate that the ledger keeps at least one key."""
        if v < 1:
            raise ValueError("ledger_size must be at least 1")
        return v

    @field_validator("event_sinks")
    @classmethod
    def validate_event_sinks(cls, v: List[str]) -> List[str]:
        """Normalize sink names and reject unknown ones."""
        allowed = {"logging", "metrics"}
        normalized = [sink.strip().lower() for sink in v if sink.strip()]
        unknown = [sink for sink in normalized if sink not in allowed]
        if unknown:
            raise ValueError(f"unknown event sinks: {', '.join(unknown)}")
        return normalized

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate that port is in valid range."""
        if not 1 <= v <= 65535:
            raise ValueError("port must be between 1 and 65535")
        return v


def get_settings() -> BikeShareSettings:
    """Create and return a BikeShareSettings instance.

    Returns:
        BikeShareSettings: Configured settings instance.

    Raises:
        pydantic.ValidationError: If a variable is set to an invalid value.
    """
    return BikeShareSettings()

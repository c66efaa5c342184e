# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Core configuration - centralized config for the dpptrust package.

All environment-based configuration should flow through this module.
This provides a single source of truth and consistent defaults.

Usage:
    from dpptrust.core.config import get_config
    config = get_config()

    ledger_url = config.ledger_base_url
    ttl = config.identities_cache_ttl
"""

from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CoreSettings(BaseSettings):
    """Core configuration settings for dpptrust.

    Settings can be configured via environment variables with the DPP_
    prefix, or through a local .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # ==========================================================================
    # LEDGER SERVICE SETTINGS
    # ==========================================================================

    ledger_base_url: str = Field(
        default="http://localhost:3000",
        description="Base URL of the identity ledger service (serves /health)",
        validation_alias="DPP_LEDGER_URL",
    )
    ledger_api_prefix: str = Field(
        default="/api",
        description="Path prefix of the ledger REST API",
        validation_alias="DPP_LEDGER_API_PREFIX",
    )
    protocol_base_url: str | None = Field(
        default=None,
        description="Base URL serving /.well-known/did protocol files (defaults to the ledger URL)",
        validation_alias="DPP_PROTOCOL_URL",
    )
    request_timeout: float = Field(
        default=10.0,
        description="Total timeout in seconds for ledger API requests",
        validation_alias="DPP_REQUEST_TIMEOUT",
    )
    use_backend_api: bool = Field(
        default=True,
        description="Query the remote ledger; when false only the local mirror is used",
        validation_alias="DPP_USE_BACKEND",
    )

    # ==========================================================================
    # HEALTH CHECK SETTINGS
    # ==========================================================================

    health_check_interval: float = Field(
        default=30.0,
        description="Seconds between reachability checks of the ledger",
        validation_alias="DPP_HEALTH_CHECK_INTERVAL",
    )
    health_check_timeout: float = Field(
        default=1.5,
        description="Timeout in seconds for a single reachability check",
        validation_alias="DPP_HEALTH_CHECK_TIMEOUT",
    )

    # ==========================================================================
    # CACHE SETTINGS
    # ==========================================================================

    identities_cache_ttl: float = Field(
        default=30.0,
        description="Freshness window in seconds for the bulk identity list",
        validation_alias="DPP_IDENTITIES_CACHE_TTL",
    )
    events_cache_ttl: float = Field(
        default=30.0,
        description="Freshness window in seconds for the bulk event list",
        validation_alias="DPP_EVENTS_CACHE_TTL",
    )

    # ==========================================================================
    # LOCAL STORE SETTINGS
    # ==========================================================================

    snapshot_path: str | None = Field(
        default=None,
        description="Path of the local mirror snapshot file (None = memory only)",
        validation_alias="DPP_SNAPSHOT_PATH",
    )
    snapshot_debounce: float = Field(
        default=1.0,
        description="Seconds after the last local mutation before the snapshot is written",
        validation_alias="DPP_SNAPSHOT_DEBOUNCE",
    )

    # ==========================================================================
    # LOGGING SETTINGS
    # ==========================================================================

    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR)",
        validation_alias="DPP_LOG_LEVEL",
    )
    log_format: str = Field(
        default="",
        description="Log format: 'json', 'text', or '' (auto-detect)",
        validation_alias="DPP_LOG_FORMAT",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (optional)",
        validation_alias="DPP_LOG_FILE",
    )

    @field_validator("ledger_base_url", "protocol_base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.rstrip("/")

    @field_validator(
        "request_timeout",
        "health_check_interval",
        "health_check_timeout",
        "identities_cache_ttl",
        "events_cache_ttl",
        "snapshot_debounce",
    )
    @classmethod
    def _non_negative(cls, value: float) -> float:
        if value < 0:
            raise ValueError("must be >= 0")
        return value

    # ==========================================================================
    # COMPUTED PROPERTIES
    # ==========================================================================

    @property
    def api_base_url(self) -> str:
        """Full base URL of the ledger REST API."""
        prefix = self.ledger_api_prefix.strip("/")
        return f"{self.ledger_base_url}/{prefix}" if prefix else self.ledger_base_url

    @property
    def protocol_files_url(self) -> str:
        """Base URL serving the raw protocol files."""
        return self.protocol_base_url or self.ledger_base_url


# ==========================================================================
# GLOBAL CONFIG INSTANCE (lazy loaded)
# ==========================================================================

_config: CoreSettings | None = None


def get_config() -> CoreSettings:
    """Get the global configuration instance.

    Returns:
        The singleton CoreSettings instance.
    """
    global _config
    if _config is None:
        _config = CoreSettings()
    return _config


def clear_config_cache() -> None:
    """Clear the config cache. Useful for testing."""
    global _config
    _config = None

"""Centralized configuration management for the channel storage gateway.

This module provides a single source of truth for process-level settings:
where the channel map lives, where fetched credentials are cached, timeouts,
gateway address and logging/metrics switches.
"""

from __future__ import annotations

import os
import tempfile

from dotenv import load_dotenv
from pydantic import Field
from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Centralized settings for the channel storage gateway."""

    # === Channel Configuration ===
    gcp_conf_map_path: str | None = Field(
        default=None, description="Path to the YAML channel map (channel -> credentials + bucket)"
    )
    credentials_cache_dir: str = Field(
        default_factory=tempfile.gettempdir,
        description="Directory holding credentials fetched from credentialsUrl sources",
    )
    credentials_fetch_timeout: float = Field(
        default=30.0, description="Timeout in seconds for fetching remote credential files"
    )

    # === Backend Configuration ===
    backend_timeout: float = Field(
        default=60.0, description="Deadline in seconds applied to every storage backend call"
    )

    # === Gateway Configuration ===
    channel_header: str = Field(default="X-Channel", description="Request header carrying the channel")
    gateway_host: str = Field(default="0.0.0.0", description="Gateway bind host")
    gateway_port: int = Field(default=1080, description="Gateway bind port")

    # === Remote Client Configuration ===
    gateway_url: str = Field(default="http://127.0.0.1:1080", description="Gateway base URL for remote clients")
    client_timeout: float = Field(default=60.0, description="Timeout in seconds for remote client calls")

    # === Logging Configuration ===
    log_level: str = Field(default="INFO", description="Logging level")
    structured_logging: bool = Field(default=True, description="Enable structured JSON error logging")
    log_file: str | None = Field(default=None, description="Optional path for the gateway call log")

    # === Metrics Configuration ===
    enable_metrics: bool = Field(default=True, description="Enable metrics collection")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, value: str) -> str:
        return value.upper()

    @field_validator("backend_timeout", "client_timeout", "credentials_fetch_timeout")
    @classmethod
    def positive_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("timeouts must be positive")
        return value

    @property
    def is_test_environment(self) -> bool:
        """Check if running in test environment."""
        return "PYTEST_CURRENT_TEST" in os.environ

    @property
    def metrics_active(self) -> bool:
        return self.enable_metrics and not self.is_test_environment


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get the global settings instance (singleton pattern)."""
    global _settings
    if _settings is None:
        load_dotenv()
        _settings = Settings()
    return _settings


def reset_settings():
    """Reset the global settings instance (primarily for testing)."""
    global _settings
    _settings = None

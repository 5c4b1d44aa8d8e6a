"""
Function runtime configuration definition.

Loads configuration from environment variables and provides a Pydantic model.
Uses pydantic-settings for type safety and defaults.
"""

import sys
from typing import Any

from pydantic import Field, field_validator
from services.common.core.config import BaseAppConfig

DEFAULT_PORT = 8081


class FdkConfig(BaseAppConfig):
    """
    Configuration management for a function process.
    """

    # Server settings
    PORT: int = Field(default=DEFAULT_PORT, description="Listen port of the HTTP runner")
    SHUTDOWN_TIMEOUT: float = Field(
        default=15.0, description="Graceful drain budget after cancellation (seconds)"
    )
    MAX_HEADER_BYTES: int = Field(default=1 << 20, description="Max request head size")

    # Config source
    CS_FN_CONFIG_PATH: str = Field(default="", description="Function config file path")
    FN_CONFIG: str = Field(default="", description="Base64 encoded function config")

    # Strategy selection
    CS_RUNNER_TYPE: str = Field(default="http", description="Registered runner name")
    CS_CONFIG_LOADER_TYPE: str = Field(default="fs", description="Registered config loader name")

    # Function identity (multi-tenant deployments only)
    CS_FN_ID: str = Field(default="", description="Function ID")
    CS_FN_VERSION: int = Field(default=0, description="Function version")

    # API access
    CS_CLOUD: str = Field(default="", description="Cloud region for the API client")

    @field_validator("PORT", mode="before")
    @classmethod
    def _fallback_port(cls, value: Any) -> int:
        try:
            port = int(str(value).strip())
        except (TypeError, ValueError):
            return DEFAULT_PORT
        return port if port > 0 else DEFAULT_PORT

    @field_validator("CS_FN_VERSION", mode="before")
    @classmethod
    def _fallback_version(cls, value: Any) -> int:
        try:
            return int(str(value).strip())
        except (TypeError, ValueError):
            return 0

    @field_validator("CS_RUNNER_TYPE", "CS_CONFIG_LOADER_TYPE", mode="after")
    @classmethod
    def _strip(cls, value: str) -> str:
        return value.strip()


# Load config as a singleton.
# pydantic-settings reads environment variables during instantiation.
try:
    config = FdkConfig()
except Exception as e:
    sys.stderr.write(f"Failed to load configuration: {e}\n")
    raise

"""
Common Configuration

Settings shared by every process: logging and outbound TLS behavior.
"""

import logging

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseAppConfig(BaseSettings):
    """
    Common application settings.
    """

    LOG_LEVEL: str = Field(default="INFO", description="Log level name (DEBUG, INFO, ...)")
    LOG_CONFIG_PATH: str = Field(
        default="logging.yml", description="YAML logging definition file path"
    )
    VERIFY_SSL: bool = Field(default=True, description="Verify TLS certificates of API calls")

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=True, extra="ignore"
    )

    @field_validator("LOG_LEVEL", mode="after")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.strip().upper() or "INFO"
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"unknown log level: {value!r}")
        return level

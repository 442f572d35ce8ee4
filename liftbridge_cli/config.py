"""Configuration for the Liftbridge CLI.

Process-wide defaults built once at startup with Pydantic Settings; values can
be overridden through environment variables prefixed with LIFTBRIDGE_.

Examples:
    LIFTBRIDGE_ADDRESS=broker-1:9292
    LIFTBRIDGE_TIMEOUT=10
    LIFTBRIDGE_LOG_LEVEL=DEBUG

Usage:
    from liftbridge_cli.config import settings

    print(settings.address)
"""

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CliSettings(BaseSettings):
    """Defaults for command options and runtime behaviour.

    Instances are frozen: nothing mutates configuration after startup.
    """

    model_config = SettingsConfigDict(
        env_prefix="LIFTBRIDGE_", case_sensitive=False, extra="ignore", frozen=True,
    )

    address: str = Field(default="127.0.0.1:9292", description="Broker endpoint")
    timeout: float = Field(default=3.0, description="Deadline in seconds for setup and admin RPCs")
    stream: str = Field(default="some-stream", description="Default stream name")
    message: str = Field(default="some-value", description="Default message value")
    cursor_id: str = Field(default="some-cursor", description="Default cursor id")
    ack_policy: str = Field(default="leader", description="Default ack policy token")
    activity_stream: str = Field(default="__activity", description="Name of the activity stream")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(default="WARNING")
    json_logs: bool = Field(default=False, description="Emit logs as JSON lines")

    @field_validator("address")
    @classmethod
    def validate_address(cls, v: str) -> str:
        """Ensure the address is not empty."""
        if not v or not v.strip():
            raise ValueError("address cannot be empty")
        return v.strip()

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        """Ensure the timeout is positive."""
        if v <= 0:
            raise ValueError("timeout must be positive")
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return v.upper() if isinstance(v, str) else v


settings = CliSettings()

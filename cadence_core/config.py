"""
Configuration for the Flow Scheduling Engine.
"""

from enum import Enum
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class LogFormat(str, Enum):
    """Log output formats."""

    JSON = "json"
    CONSOLE = "console"


class FanInPolicy(str, Enum):
    """How an Action node reachable via several paths is scheduled."""

    EVERY_PATH = "every_path"  # One job per incoming path
    FIRST_DELAY = "first_delay"
    MIN_DELAY = "min_delay"


class DispatcherConfig(BaseSettings):
    """Dispatch loop configuration."""

    model_config = SettingsConfigDict(env_prefix="DISPATCHER_")

    poll_interval_s: float = Field(default=5.0, gt=0, description="Seconds between dispatch ticks")
    executor_timeout_s: float = Field(default=30.0, gt=0, description="Executor call timeout")
    batch_size: int = Field(default=100, ge=1, description="Max jobs claimed per tick")
    max_concurrent: int = Field(default=10, ge=1, description="Parallel executor calls per tick")
    claim_timeout_s: float = Field(
        default=600.0,
        gt=0,
        description="Claimed jobs older than this are closed out as fired",
    )


class StorageConfig(BaseSettings):
    """Storage configuration."""

    model_config = SettingsConfigDict(env_prefix="STORAGE_")

    database_url: str = Field(
        default="sqlite+aiosqlite:///./cadence.db",
        description="Database connection URL",
    )
    echo: bool = Field(default=False, description="Echo SQL statements")


class SmtpConfig(BaseSettings):
    """SMTP delivery configuration."""

    model_config = SettingsConfigDict(env_prefix="SMTP_")

    host: str = Field(default="localhost", description="SMTP host")
    port: int = Field(default=587, description="SMTP port")
    username: Optional[str] = Field(default=None, description="SMTP username")
    password: Optional[str] = Field(default=None, description="SMTP password")
    from_address: str = Field(default="no-reply@localhost", description="Sender address")
    use_tls: bool = Field(default=False, description="Use implicit TLS")
    start_tls: bool = Field(default=True, description="Upgrade with STARTTLS")
    default_recipient: Optional[str] = Field(
        default=None,
        description="Recipient used when an action node leaves it empty",
    )


class TraversalConfig(BaseSettings):
    """Traversal configuration."""

    model_config = SettingsConfigDict(env_prefix="TRAVERSAL_")

    fan_in_policy: FanInPolicy = Field(
        default=FanInPolicy.EVERY_PATH,
        description="Scheduling policy for nodes reachable via several paths",
    )
    max_jobs: int = Field(default=10000, ge=1, description="Max jobs per activation")
    max_visits: Optional[int] = Field(
        default=None,
        ge=1,
        description="Max node visits per activation (defaults to ten per allowed job)",
    )


class Settings(BaseSettings):
    """Main settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    service_name: str = Field(default="cadence", description="Service name")
    log_level: str = Field(default="info", description="Log level")
    log_format: LogFormat = Field(default=LogFormat.CONSOLE, description="Log format")

    # Sub-configurations
    dispatcher: DispatcherConfig = Field(default_factory=DispatcherConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    smtp: SmtpConfig = Field(default_factory=SmtpConfig)
    traversal: TraversalConfig = Field(default_factory=TraversalConfig)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings."""
    return Settings()

"""Event subsystem configuration using Pydantic Settings.

This module centralizes the runtime configuration for publishers, dispatchers
and listeners. Values can be provided via environment variables (preferred)
or fall back to the defaults below. Components receive a ``Settings`` instance
through their constructors; ``get_settings`` caches one for the process.

Environment variable prefix: ``COMMERCE_EVENTS_`` (e.g. ``COMMERCE_EVENTS_BROKER_EXCHANGE``).
"""

from datetime import timedelta
from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime settings for the event subsystem.

    Attributes map directly to environment variables using the ``COMMERCE_EVENTS_``
    prefix (case-insensitive). For example, ``cache_enabled`` <- ``COMMERCE_EVENTS_CACHE_ENABLED``.
    """

    log_level: Literal["TRACE", "DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Log level",
    )

    # Broker channel and dead-letter topology
    broker_exchange: str = Field(
        default="ecommerce.events",
        description="Topic exchange events are published to",
    )  # fmt: skip
    dead_letter_exchange: str = Field(
        default="ecommerce.events.dlx",
        description="Exchange receiving unroutable and rejected messages",
    )  # fmt: skip
    dead_letter_queue: str = Field(
        default="ecommerce.events.dlq",
        description="Queue bound to the dead-letter exchange",
    )  # fmt: skip

    # Secondary channels
    stream_bridge_binding: str = Field(
        default="eventPublisher-out-0",
        description="Logical binding name used by the stream bridge channel",
    )  # fmt: skip
    cache_enabled: bool = Field(
        default=True,
        description="Store published events in the cache for short-term replay",
    )  # fmt: skip
    cache_event_ttl_seconds: int = Field(
        default=86400,
        gt=0,
        description="TTL of the per-event cache entry",
    )  # fmt: skip
    recent_events_ttl_seconds: int = Field(
        default=86400,
        gt=0,
        description="TTL of the per-type recent events list",
    )  # fmt: skip
    recent_events_max_length: int = Field(
        default=100,
        gt=0,
        description="Maximum length of the per-type recent events list",
    )  # fmt: skip
    log_channel_enabled: bool = Field(
        default=False,
        description="Also publish to the long-haul log channel",
    )  # fmt: skip
    log_channel_topic: str = Field(
        default="ecommerce-events",
        description="Topic used by the log channel",
    )  # fmt: skip

    # Publisher behaviour
    processed_event_ttl_seconds: int = Field(
        default=7 * 24 * 3600,
        gt=0,
        description="TTL of idempotency marks",
    )  # fmt: skip
    retry_base_delay_seconds: float = Field(
        default=1.0,
        ge=0,
        description="Base delay of the exponential publish retry backoff",
    )  # fmt: skip

    # Dispatcher behaviour
    dispatcher_max_workers: int = Field(
        default=8,
        gt=0,
        description="Worker threads used for asynchronous dispatch",
    )  # fmt: skip
    dispatcher_max_pending: int = Field(
        default=64,
        ge=0,
        description="Dispatches allowed to wait for a worker before new ones are rejected",
    )  # fmt: skip
    shutdown_grace_period_seconds: float = Field(
        default=30.0,
        ge=0,
        description="Time given to in-flight dispatches on shutdown before forcing termination",
    )  # fmt: skip
    slow_handler_threshold_ms: float = Field(
        default=1000.0,
        ge=0,
        description="Handlers running longer than this are logged as slow",
    )  # fmt: skip

    # Listener retry policy
    listener_max_attempts: int = Field(
        default=3,
        gt=0,
        description="Delivery attempts before a message is dead-lettered",
    )  # fmt: skip
    listener_initial_interval_seconds: float = Field(
        default=1.0,
        ge=0,
        description="First listener retry interval",
    )  # fmt: skip
    listener_multiplier: float = Field(
        default=2.0,
        ge=1,
        description="Listener retry interval multiplier",
    )  # fmt: skip
    listener_max_interval_seconds: float = Field(
        default=5.0,
        ge=0,
        description="Upper bound of the listener retry interval",
    )  # fmt: skip
    listener_fail_on_handler_error: bool = Field(
        default=False,
        description="Treat handler failures as delivery failures (retry, then dead-letter)",
    )  # fmt: skip

    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection string for the cache and stream bridge",
    )  # fmt: skip

    @field_validator("log_level", mode="before")
    @classmethod
    def validate_log_level(cls, v: str | None) -> str:
        """Normalize and validate log level."""
        if v is None:
            return "INFO"

        v_upper = str(v).upper()

        allowed = {"TRACE", "DEBUG", "INFO", "WARNING", "ERROR"}
        if v_upper not in allowed:
            raise ValueError(f"Invalid log level: {v}. Must be one of: {', '.join(sorted(allowed))}")

        return v_upper

    @property
    def cache_event_ttl(self) -> timedelta:
        return timedelta(seconds=self.cache_event_ttl_seconds)

    @property
    def recent_events_ttl(self) -> timedelta:
        return timedelta(seconds=self.recent_events_ttl_seconds)

    @property
    def processed_event_ttl(self) -> timedelta:
        return timedelta(seconds=self.processed_event_ttl_seconds)

    model_config = SettingsConfigDict(
        env_prefix="COMMERCE_EVENTS_",
        case_sensitive=False,
        extra="ignore",  # Ignore unexpected env vars
        env_file=".env",
        env_file_encoding="utf-8",
    )


@lru_cache
def get_settings() -> Settings:
    """Return the cached ``Settings`` instance.

    The first invocation reads environment variables / .env file; subsequent
    calls reuse the same object to ensure consistent config.
    """

    return Settings()


__all__ = ["Settings", "get_settings"]

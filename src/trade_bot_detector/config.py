"""Configuration management service with Pydantic Settings.

This module provides centralized configuration management for the
trade bot detector, loading and validating environment variables at
startup.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_ENV_FILE = ".env"
_ENV_FILE_ENCODING = "utf-8"

DEFAULT_PRICE_FEEDS = (
    "ETH=0xff61491a931112ddf1bd8147cd1b641375f79f5825126d665480874634fd0ace,"
    "BTC=0xe62df6c8b4a85fe1a67db44dc12de5db330f7ac66b72dc658afedf0f4a415b43"
)


def parse_price_feeds(raw: str) -> dict[str, str]:
    """Parse ``ASSET=feed_id`` pairs into a feed id -> asset mapping.

    Feed ids are normalized to lowercase hex without the ``0x`` prefix,
    which is how Hermes reports them in ``price_update`` messages.

    Raises:
        ValueError: If a pair is malformed or a feed id is repeated.
    """
    feeds: dict[str, str] = {}
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        asset, sep, feed_id = part.partition("=")
        asset = asset.strip()
        feed_id = feed_id.strip().lower().removeprefix("0x")
        if not sep or not asset or not feed_id:
            raise ValueError(f"Invalid price feed entry {part!r}, expected ASSET=feed_id")
        if feed_id in feeds:
            raise ValueError(f"Duplicate price feed id for {asset}")
        feeds[feed_id] = asset
    return feeds


class FeedSettings(BaseSettings):
    """Pyth Hermes price feed settings."""

    model_config = SettingsConfigDict(env_prefix="FEED_", extra="ignore")

    ws_url: str = Field(
        default="wss://hermes.pyth.network/ws",
        alias="HERMES_WS_URL",
        description="Hermes WebSocket endpoint for streaming price updates",
    )
    api_key: SecretStr | None = Field(
        default=None,
        alias="HERMES_API_KEY",
        description="Optional API key for a private Hermes endpoint",
    )
    price_feeds: str = Field(
        default=DEFAULT_PRICE_FEEDS,
        alias="HERMES_PRICE_FEEDS",
        description="Comma-separated ASSET=feed_id pairs to subscribe to",
    )
    start_timeout_seconds: float = Field(
        default=10.0,
        alias="FEED_START_TIMEOUT_SECONDS",
        gt=0.0,
        le=600.0,
        description="How long start() waits for the first price update",
    )
    ping_interval_seconds: int = Field(
        default=30,
        alias="FEED_PING_INTERVAL_SECONDS",
        ge=1,
        le=600,
        description="WebSocket keepalive ping interval",
    )
    initial_reconnect_delay_seconds: float = Field(
        default=1.0,
        alias="FEED_INITIAL_RECONNECT_DELAY_SECONDS",
        gt=0.0,
        le=60.0,
        description="First reconnect delay after a dropped connection",
    )
    max_reconnect_delay_seconds: float = Field(
        default=30.0,
        alias="FEED_MAX_RECONNECT_DELAY_SECONDS",
        gt=0.0,
        le=3600.0,
        description="Upper bound for the exponential reconnect delay",
    )

    @field_validator("ws_url")
    @classmethod
    def validate_ws_url(cls, v: str) -> str:
        """Validate WebSocket URL format."""
        if not v.startswith(("ws://", "wss://")):
            raise ValueError("HERMES_WS_URL must start with ws:// or wss://")
        return v

    @field_validator("price_feeds")
    @classmethod
    def validate_price_feeds(cls, v: str) -> str:
        if not parse_price_feeds(v):
            raise ValueError("HERMES_PRICE_FEEDS must name at least one feed")
        return v

    @property
    def feed_assets(self) -> dict[str, str]:
        """Feed id -> asset symbol mapping."""
        return parse_price_feeds(self.price_feeds)


class RecorderSettings(BaseSettings):
    """Trade history retention settings."""

    model_config = SettingsConfigDict(env_prefix="RECORDER_", extra="ignore")

    history_capacity: int = Field(
        default=20,
        alias="RECORDER_HISTORY_CAPACITY",
        ge=2,
        le=10_000,
        description="Trades retained per trader (oldest evicted first)",
    )


class ClassifierSettings(BaseSettings):
    """Behavior classifier settings."""

    model_config = SettingsConfigDict(env_prefix="CLASSIFIER_", extra="ignore")

    timing_window: int = Field(
        default=10,
        alias="CLASSIFIER_TIMING_WINDOW",
        ge=2,
        le=1_000,
        description="Max inter-trade intervals used by the timing regularity signal",
    )
    alert_threshold: float = Field(
        default=0.7,
        alias="CLASSIFIER_ALERT_THRESHOLD",
        ge=0.0,
        le=1.0,
        description="Bot score at or above which a classification is logged as an alert",
    )
    history_capacity: int = Field(
        default=20,
        alias="CLASSIFIER_HISTORY_CAPACITY",
        ge=1,
        le=10_000,
        description="Recent classification results kept for the monitor",
    )


class MonitorSettings(BaseSettings):
    """Status reporter settings."""

    model_config = SettingsConfigDict(env_prefix="MONITOR_", extra="ignore")

    report_interval_seconds: float = Field(
        default=30.0,
        alias="MONITOR_REPORT_INTERVAL_SECONDS",
        gt=0.0,
        le=86_400.0,
        description="How often the monitor prints feed and classification status",
    )
    recent_limit: int = Field(
        default=5,
        alias="MONITOR_RECENT_LIMIT",
        ge=0,
        le=1_000,
        description="Recent classifications included in each report",
    )


class Settings(BaseSettings):
    """Main application settings.

    Loads configuration from environment variables with support for
    .env files via python-dotenv.

    Example:
        ```python
        from trade_bot_detector.config import get_settings

        settings = get_settings()
        print(settings.feed.ws_url)
        print(settings.log_level)
        ```
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding=_ENV_FILE_ENCODING,
        extra="ignore",
    )

    # NOTE: Each nested BaseSettings must be given the same env_file, otherwise it
    # will only read from the process environment (and ignore `.env`).
    feed: FeedSettings = Field(
        default_factory=lambda: FeedSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    recorder: RecorderSettings = Field(
        default_factory=lambda: RecorderSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    classifier: ClassifierSettings = Field(
        default_factory=lambda: ClassifierSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    monitor: MonitorSettings = Field(
        default_factory=lambda: MonitorSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level",
    )

    def get_logging_level(self) -> int:
        """Get the numeric logging level."""
        level: int = getattr(logging, self.log_level)
        return level

    def redacted_summary(self) -> dict[str, str | dict[str, str]]:
        """Get a summary of settings with secrets redacted.

        Returns:
            Dictionary of settings with sensitive values masked.
        """
        return {
            "feed": {
                "ws_url": self.feed.ws_url,
                "api_key": "(set)" if self.feed.api_key else "(not set)",
                "assets": ",".join(sorted(self.feed.feed_assets.values())),
                "start_timeout_seconds": str(self.feed.start_timeout_seconds),
            },
            "recorder": {
                "history_capacity": str(self.recorder.history_capacity),
            },
            "classifier": {
                "timing_window": str(self.classifier.timing_window),
                "alert_threshold": str(self.classifier.alert_threshold),
                "history_capacity": str(self.classifier.history_capacity),
            },
            "monitor": {
                "report_interval_seconds": str(self.monitor.report_interval_seconds),
                "recent_limit": str(self.monitor.recent_limit),
            },
            "log_level": self.log_level,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the application settings singleton.

    Uses LRU cache to ensure settings are loaded only once and
    reused across the application.

    Returns:
        The Settings instance.

    Raises:
        ValidationError: If environment variables have invalid values.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Useful for testing when you need to reload settings with
    different environment variables.
    """
    get_settings.cache_clear()

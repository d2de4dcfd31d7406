"""Pytest configuration and fixtures."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from pathlib import Path

import pytest

from trade_bot_detector.config import Settings, clear_settings_cache
from trade_bot_detector.ingestor.models import TradeObservation

TRADER = "0x1234567890abcdef1234567890abcdef12345678"


@pytest.fixture
def trader() -> str:
    """Sample trader address for testing."""
    return TRADER


@pytest.fixture
def base_time() -> datetime:
    return datetime(2026, 1, 15, 12, 0, 0, tzinfo=UTC)


@pytest.fixture
def make_trade(base_time: datetime) -> Callable[..., TradeObservation]:
    """Factory for trade observations spaced by ``offset`` seconds from base_time."""
    counter = {"n": 0}

    def _make(
        amount: str = "1.0",
        offset: float = 0.0,
        *,
        trader: str = TRADER,
        tx_ref: str | None = None,
        asset: str | None = None,
        price: str | None = None,
    ) -> TradeObservation:
        counter["n"] += 1
        return TradeObservation(
            trader=trader,
            amount=Decimal(amount),
            timestamp=base_time + timedelta(seconds=offset),
            tx_ref=tx_ref or f"0xtx{counter['n']:04d}",
            asset=asset,
            price=Decimal(price) if price is not None else None,
        )

    return _make


@pytest.fixture
def settings(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Iterator[Settings]:
    """Settings isolated from the developer's environment and .env file."""
    monkeypatch.chdir(tmp_path)
    for var in (
        "HERMES_WS_URL",
        "HERMES_API_KEY",
        "HERMES_PRICE_FEEDS",
        "RECORDER_HISTORY_CAPACITY",
        "CLASSIFIER_TIMING_WINDOW",
        "CLASSIFIER_ALERT_THRESHOLD",
        "CLASSIFIER_HISTORY_CAPACITY",
        "LOG_LEVEL",
    ):
        monkeypatch.delenv(var, raising=False)
    clear_settings_cache()
    yield Settings(_env_file=None)
    clear_settings_cache()

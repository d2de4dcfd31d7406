"""Tests for the main pipeline orchestrator."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from unittest.mock import AsyncMock, MagicMock

import pytest

from trade_bot_detector.config import Settings
from trade_bot_detector.detector.classifier import PRICE_DEVIATION_SIGNAL, TIMING_SIGNAL
from trade_bot_detector.detector.history import ClassificationHistory
from trade_bot_detector.ingestor.models import TradeObservation
from trade_bot_detector.ingestor.price_feed import FeedConnectionError, PriceFeedIngestor
from trade_bot_detector.ingestor.recorder import InvalidObservation
from trade_bot_detector.pipeline import DetectionPipeline, PipelineState

MakeTrade = Callable[..., TradeObservation]


@pytest.fixture
def offline_feed() -> PriceFeedIngestor:
    """Ingestor with no transport; quotes are pushed directly."""
    return PriceFeedIngestor()


@pytest.fixture
def pipeline(settings: Settings, offline_feed: PriceFeedIngestor) -> DetectionPipeline:
    return DetectionPipeline(settings, price_feed=offline_feed)


@pytest.fixture
def mock_feed() -> MagicMock:
    feed = MagicMock(spec=PriceFeedIngestor)
    feed.start = AsyncMock()
    feed.stop = AsyncMock()
    feed.snapshot.return_value = {}
    return feed


class TestPipelineInit:
    def test_initial_state(self, pipeline: DetectionPipeline) -> None:
        assert pipeline.state == PipelineState.STOPPED
        assert not pipeline.is_running
        assert pipeline.stats.trades_processed == 0

    def test_components_sized_from_settings(self, settings: Settings, offline_feed: PriceFeedIngestor) -> None:
        pipeline = DetectionPipeline(settings, price_feed=offline_feed)
        assert pipeline.recorder.capacity == settings.recorder.history_capacity
        assert pipeline.price_feed is offline_feed

    def test_injected_empty_history_is_used(
        self, settings: Settings, offline_feed: PriceFeedIngestor, make_trade: MakeTrade
    ) -> None:
        history = ClassificationHistory(capacity=3)
        pipeline = DetectionPipeline(settings, price_feed=offline_feed, history=history)

        pipeline.on_trade(make_trade("1.5"))

        assert len(history) == 1


class TestOnTrade:
    """Tests for trade processing."""

    def test_records_and_classifies(self, pipeline: DetectionPipeline, make_trade: MakeTrade, trader: str) -> None:
        trade = make_trade("1.547329")

        result = pipeline.on_trade(trade)

        assert result.tx_ref == trade.tx_ref
        assert pipeline.recorder.history(trader) == (trade,)
        assert pipeline.recent_classifications() == (result,)
        assert pipeline.stats.trades_processed == 1
        assert pipeline.stats.last_trade_time == trade.timestamp

    def test_uses_live_quotes(
        self,
        pipeline: DetectionPipeline,
        offline_feed: PriceFeedIngestor,
        make_trade: MakeTrade,
    ) -> None:
        offline_feed.on_update("ETH", 2000.0, 0.5)

        result = pipeline.on_trade(make_trade("1", asset="ETH", price="2010"))

        assert result.signals[PRICE_DEVIATION_SIGNAL].score == 1.0
        assert pipeline.price_snapshot()["ETH"].confidence.is_finite()

    def test_invalid_trade_is_rejected(self, pipeline: DetectionPipeline, make_trade: MakeTrade, trader: str) -> None:
        with pytest.raises(InvalidObservation):
            pipeline.on_trade(make_trade("-1"))

        assert pipeline.stats.errors == 1
        assert pipeline.stats.trades_processed == 0
        assert pipeline.recorder.history(trader) == ()
        assert pipeline.recent_classifications() == ()

    def test_counts_timing_anomalies(self, pipeline: DetectionPipeline, make_trade: MakeTrade) -> None:
        pipeline.on_trade(make_trade("1", 10))
        pipeline.on_trade(make_trade("1", 0))
        assert pipeline.stats.timing_anomalies == 1

    def test_alert_is_logged(
        self,
        pipeline: DetectionPipeline,
        make_trade: MakeTrade,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        trades = [make_trade(f"{i}.{547329 + i}", 10 * i) for i in range(1, 6)]
        with caplog.at_level(logging.WARNING, logger="trade_bot_detector.pipeline"):
            results = [pipeline.on_trade(t) for t in trades]

        assert results[-1].bot_score >= 0.7
        assert pipeline.stats.alerts_raised == 3
        assert "Bot-like behavior detected" in caplog.text

    def test_regular_rounded_trades(self, pipeline: DetectionPipeline, make_trade: MakeTrade) -> None:
        results = [pipeline.on_trade(make_trade(a, s)) for a, s in (("1.0", 0), ("2.0", 10), ("3.0", 20))]

        assert results[-1].bot_score == pytest.approx(0.5)
        assert results[-1].primary_signal == TIMING_SIGNAL
        assert pipeline.stats.alerts_raised == 0


class TestOnTradeEvent:
    def test_parses_raw_event(self, pipeline: DetectionPipeline) -> None:
        result = pipeline.on_trade_event(
            {
                "trader": "0xabc",
                "amount": "1.547329",
                "timestamp": "2026-01-15T12:00:00Z",
                "txRef": "0x01",
            }
        )
        assert result.trader == "0xabc"
        assert result.tx_ref == "0x01"

    def test_unparseable_event(self, pipeline: DetectionPipeline) -> None:
        with pytest.raises(InvalidObservation):
            pipeline.on_trade_event({"trader": "0xabc", "amount": "x", "timestamp": 0, "tx_ref": "0x01"})
        assert pipeline.stats.errors == 1

    def test_missing_tx_ref(self, pipeline: DetectionPipeline) -> None:
        with pytest.raises(InvalidObservation):
            pipeline.on_trade_event({"trader": "0xabc", "amount": "1", "timestamp": 0})

    @pytest.mark.parametrize("timestamp", [float("inf"), float("nan"), 10**20])
    def test_out_of_range_timestamp(self, pipeline: DetectionPipeline, timestamp: float) -> None:
        with pytest.raises(InvalidObservation):
            pipeline.on_trade_event({"trader": "0xabc", "amount": "1", "timestamp": timestamp, "tx_ref": "0x01"})
        assert pipeline.stats.errors == 1
        assert pipeline.stats.trades_processed == 0


class TestLifecycle:
    """Tests for pipeline start/stop."""

    @pytest.mark.asyncio
    async def test_start_and_stop(self, settings: Settings, mock_feed: MagicMock) -> None:
        pipeline = DetectionPipeline(settings, price_feed=mock_feed)

        await pipeline.start()
        assert pipeline.state == PipelineState.RUNNING
        assert pipeline.stats.started_at is not None
        mock_feed.start.assert_awaited_once()

        await pipeline.stop()
        assert pipeline.state == PipelineState.STOPPED
        mock_feed.stop.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_start_twice_raises(self, settings: Settings, mock_feed: MagicMock) -> None:
        pipeline = DetectionPipeline(settings, price_feed=mock_feed)
        await pipeline.start()
        try:
            with pytest.raises(RuntimeError):
                await pipeline.start()
        finally:
            await pipeline.stop()

    @pytest.mark.asyncio
    async def test_feed_failure_propagates(self, settings: Settings, mock_feed: MagicMock) -> None:
        mock_feed.start.side_effect = FeedConnectionError("no data")
        pipeline = DetectionPipeline(settings, price_feed=mock_feed)

        with pytest.raises(FeedConnectionError):
            await pipeline.start()

        assert pipeline.state == PipelineState.STOPPED
        assert pipeline.stats.last_error == "no data"
        mock_feed.stop.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_stop_when_stopped_is_noop(self, settings: Settings, mock_feed: MagicMock) -> None:
        pipeline = DetectionPipeline(settings, price_feed=mock_feed)
        await pipeline.stop()
        mock_feed.stop.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_run_until_stop_requested(self, settings: Settings, mock_feed: MagicMock) -> None:
        pipeline = DetectionPipeline(settings, price_feed=mock_feed)

        task = asyncio.create_task(pipeline.run())
        await asyncio.sleep(0.01)
        assert pipeline.is_running

        pipeline.request_stop()
        await asyncio.wait_for(task, timeout=1.0)
        assert pipeline.state == PipelineState.STOPPED

    @pytest.mark.asyncio
    async def test_context_manager(self, settings: Settings, mock_feed: MagicMock) -> None:
        async with DetectionPipeline(settings, price_feed=mock_feed) as pipeline:
            assert pipeline.is_running
        assert pipeline.state == PipelineState.STOPPED

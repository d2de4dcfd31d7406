"""Main pipeline orchestrator for the trade bot detector.

This module provides the DetectionPipeline class that wires the price feed,
trade recorder and classifier together and exposes the read-only query
surfaces used by the monitor.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from trade_bot_detector.config import Settings, get_settings
from trade_bot_detector.detector.classifier import BehaviorClassifier
from trade_bot_detector.detector.history import ClassificationHistory
from trade_bot_detector.detector.models import ClassificationResult
from trade_bot_detector.ingestor.models import PriceQuote, TradeObservation
from trade_bot_detector.ingestor.price_feed import PriceFeedIngestor
from trade_bot_detector.ingestor.recorder import InvalidObservation, TradeEventRecorder

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    """Pipeline lifecycle states."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    ERROR = "error"


@dataclass
class PipelineStats:
    """Statistics for the pipeline."""

    started_at: datetime | None = None
    trades_processed: int = 0
    alerts_raised: int = 0
    timing_anomalies: int = 0
    errors: int = 0
    last_trade_time: datetime | None = None
    last_error: str | None = None


class DetectionPipeline:
    """Wires trade observations through recording and classification.

    Pipeline flow:
        Settlement layer -> TradeEventRecorder -> BehaviorClassifier -> history / alert log
        Hermes stream    -> PriceFeedIngestor  -> (read by the classifier)

    Components can be injected for tests; anything not given is built from
    settings.

    Example:
        ```python
        from trade_bot_detector.config import get_settings
        from trade_bot_detector.pipeline import DetectionPipeline

        pipeline = DetectionPipeline(get_settings())
        await pipeline.start()
        result = pipeline.on_trade(observation)
        await pipeline.stop()
        ```
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        price_feed: PriceFeedIngestor | None = None,
        recorder: TradeEventRecorder | None = None,
        classifier: BehaviorClassifier | None = None,
        history: ClassificationHistory | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            settings: Application settings. If not provided, uses get_settings().
            price_feed: Price feed ingestor. Defaults to a Hermes-backed one.
            recorder: Trade recorder. Defaults to one sized from settings.
            classifier: Classifier. Defaults to one over the recorder and feed.
            history: Recent classification log. Defaults to one sized from settings.
        """
        self._settings = settings or get_settings()

        if price_feed is None:
            price_feed = PriceFeedIngestor.from_settings(self._settings.feed)
        if recorder is None:
            recorder = TradeEventRecorder(capacity=self._settings.recorder.history_capacity)
        if classifier is None:
            classifier = BehaviorClassifier(
                recorder,
                price_feed,
                timing_window=self._settings.classifier.timing_window,
            )
        if history is None:
            history = ClassificationHistory(capacity=self._settings.classifier.history_capacity)

        self._price_feed = price_feed
        self._recorder = recorder
        self._classifier = classifier
        self._history = history
        self._alert_threshold = self._settings.classifier.alert_threshold

        self._state = PipelineState.STOPPED
        self._stats = PipelineStats()
        self._stop_event: asyncio.Event | None = None

    @property
    def state(self) -> PipelineState:
        """Current pipeline state."""
        return self._state

    @property
    def stats(self) -> PipelineStats:
        """Current pipeline statistics."""
        return self._stats

    @property
    def is_running(self) -> bool:
        """Check if pipeline is running."""
        return self._state == PipelineState.RUNNING

    @property
    def price_feed(self) -> PriceFeedIngestor:
        return self._price_feed

    @property
    def recorder(self) -> TradeEventRecorder:
        return self._recorder

    async def start(self) -> None:
        """Start the pipeline.

        Opens the price feed subscription.

        Raises:
            RuntimeError: If pipeline is already running.
            FeedConnectionError: If the price feed delivers no data in time.
        """
        if self._state != PipelineState.STOPPED:
            raise RuntimeError(f"Cannot start pipeline in state {self._state}")

        self._state = PipelineState.STARTING
        self._stop_event = asyncio.Event()
        logger.info("Starting pipeline...")

        try:
            await self._price_feed.start()
            self._stats.started_at = datetime.now(UTC)
            self._state = PipelineState.RUNNING
            logger.info("Pipeline started successfully")
        except Exception as e:
            self._state = PipelineState.ERROR
            self._stats.last_error = str(e)
            logger.error("Failed to start pipeline: %s", e)
            await self._price_feed.stop()
            self._state = PipelineState.STOPPED
            raise

    async def stop(self) -> None:
        """Stop the pipeline gracefully."""
        if self._state == PipelineState.STOPPED:
            return

        self._state = PipelineState.STOPPING
        logger.info("Stopping pipeline...")

        if self._stop_event:
            self._stop_event.set()

        await self._price_feed.stop()

        self._state = PipelineState.STOPPED
        logger.info("Pipeline stopped")

    def request_stop(self) -> None:
        """Ask run() to return; safe to call from a signal handler."""
        if self._stop_event:
            self._stop_event.set()

    def on_trade(self, observation: TradeObservation) -> ClassificationResult:
        """Record a confirmed trade and classify it.

        Args:
            observation: The trade reported by the settlement layer.

        Returns:
            The classification for this trade.

        Raises:
            InvalidObservation: If the observation is malformed.
        """
        try:
            anomaly = self._recorder.record(observation)
        except InvalidObservation as e:
            self._stats.errors += 1
            self._stats.last_error = str(e)
            logger.warning("Rejected trade observation tx=%s: %s", observation.tx_ref, e)
            raise

        if anomaly is not None:
            self._stats.timing_anomalies += 1

        result = self._classifier.classify(observation.trader, observation)
        self._history.append(result)

        self._stats.trades_processed += 1
        self._stats.last_trade_time = observation.timestamp

        if result.bot_score >= self._alert_threshold:
            self._stats.alerts_raised += 1
            logger.warning(
                "Bot-like behavior detected: trader=%s, tx=%s, score=%.2f, primary=%s",
                result.trader,
                result.tx_ref,
                result.bot_score,
                result.primary_signal,
            )
        else:
            logger.debug(
                "Trade classified: trader=%s, tx=%s, score=%.2f",
                result.trader,
                result.tx_ref,
                result.bot_score,
            )
        return result

    def on_trade_event(self, data: dict[str, Any]) -> ClassificationResult:
        """Parse a raw settlement-layer event and process it.

        Raises:
            InvalidObservation: If the event cannot be parsed or is malformed.
        """
        try:
            observation = TradeObservation.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            self._stats.errors += 1
            self._stats.last_error = str(e)
            raise InvalidObservation(f"Unparseable trade event: {e}") from e
        return self.on_trade(observation)

    def price_snapshot(self) -> Mapping[str, PriceQuote]:
        """Latest quote per asset (read-only)."""
        return self._price_feed.snapshot()

    def recent_classifications(self, limit: int | None = None) -> tuple[ClassificationResult, ...]:
        """Most recent classification results, oldest first."""
        return self._history.recent(limit)

    async def run(self) -> None:
        """Start the pipeline and run until stop is requested.

        Example:
            ```python
            pipeline = DetectionPipeline()
            try:
                await pipeline.run()
            except KeyboardInterrupt:
                pass
            ```
        """
        await self.start()

        try:
            if self._stop_event:
                await self._stop_event.wait()
        except asyncio.CancelledError:
            pass
        finally:
            await self.stop()

    async def __aenter__(self) -> DetectionPipeline:
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, *args: Any) -> None:
        """Async context manager exit."""
        await self.stop()

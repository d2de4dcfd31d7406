"""Tests for the synthetic trade scenarios."""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from trade_bot_detector.config import Settings
from trade_bot_detector.detector.classifier import PRECISION_SIGNAL, TIMING_SIGNAL
from trade_bot_detector.ingestor.price_feed import PriceFeedIngestor
from trade_bot_detector.pipeline import DetectionPipeline
from trade_bot_detector.simulation import SCENARIOS, build_observations, replay


@pytest.fixture
def pipeline(settings: Settings) -> DetectionPipeline:
    return DetectionPipeline(settings, price_feed=PriceFeedIngestor())


class TestBuildObservations:
    def test_consistent_bot_spacing(self, base_time: datetime) -> None:
        observations = build_observations("consistent-bot", start=base_time)

        assert len(observations) == 5
        assert [o.amount for o in observations][:2] == [Decimal("1.547330"), Decimal("2.547331")]
        assert observations[-1].timestamp - observations[0].timestamp == timedelta(seconds=40)
        assert len({o.tx_ref for o in observations}) == 5

    def test_tx_refs_are_stable(self, base_time: datetime) -> None:
        first = build_observations("bot", start=base_time)
        second = build_observations("bot", start=base_time)
        assert first[0].tx_ref == second[0].tx_ref
        assert first[0].tx_ref.startswith("0x")

    def test_unknown_scenario(self) -> None:
        with pytest.raises(KeyError):
            build_observations("nope")

    def test_scenario_names(self) -> None:
        assert set(SCENARIOS) == {"bot", "human", "consistent-bot"}


class TestReplay:
    """Replaying scenarios through an offline pipeline."""

    def test_bot_trade(self, pipeline: DetectionPipeline) -> None:
        (result,) = replay("bot", pipeline)
        assert result.bot_score == pytest.approx(0.5)
        assert result.primary_signal == PRECISION_SIGNAL

    def test_human_trade(self, pipeline: DetectionPipeline) -> None:
        (result,) = replay("human", pipeline)
        assert result.bot_score == 0.0
        assert result.primary_signal is None

    def test_consistent_bot_escalates(self, pipeline: DetectionPipeline, base_time: datetime) -> None:
        results = replay("consistent-bot", pipeline, start=base_time)

        assert results[0].signals[TIMING_SIGNAL].insufficient_data
        assert results[-1].bot_score == pytest.approx(1.0)
        assert results[-1].risk_level == "HIGH"
        assert pipeline.stats.alerts_raised == 3

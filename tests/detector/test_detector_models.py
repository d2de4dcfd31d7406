"""Tests for detector data models."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from trade_bot_detector.detector.models import (
    ClassificationResult,
    SignalReading,
    get_risk_level,
)


@pytest.mark.parametrize(
    ("score", "level"),
    [(0.0, "LOW"), (0.39, "LOW"), (0.4, "MEDIUM"), (0.69, "MEDIUM"), (0.7, "HIGH"), (1.0, "HIGH")],
)
def test_get_risk_level(score: float, level: str) -> None:
    assert get_risk_level(score) == level


class TestClassificationResult:
    """Tests for ClassificationResult."""

    def test_primary_signal_is_largest_contribution(self) -> None:
        result = ClassificationResult(
            trader="0xabc",
            tx_ref="0x01",
            bot_score=0.6,
            signals={
                "precision": SignalReading("precision", 1.0, 0.4),
                "timing_regularity": SignalReading("timing_regularity", 0.5, 0.4),
                "timing_anomaly": SignalReading("timing_anomaly", 1.0, 0.0),
            },
        )
        assert result.primary_signal == "precision"
        assert result.risk_level == "MEDIUM"

    def test_no_primary_when_nothing_contributes(self) -> None:
        result = ClassificationResult(
            trader="0xabc",
            tx_ref="0x01",
            bot_score=0.0,
            signals={
                "precision": SignalReading("precision", 0.0, 0.5),
                "timing_regularity": SignalReading("timing_regularity", 0.0, 0.5, insufficient_data=True),
            },
        )
        assert result.primary_signal is None
        assert result.has_insufficient_data

    def test_to_dict(self) -> None:
        decided = datetime(2026, 1, 15, 12, 0, 0, tzinfo=UTC)
        result = ClassificationResult(
            trader="0xabc",
            tx_ref="0x01",
            bot_score=0.5,
            signals={"precision": SignalReading("precision", 1.0, 0.5, details={"fractional_digits": 6.0})},
            decided_at=decided,
        )
        data = result.to_dict()

        assert data["risk_level"] == "MEDIUM"
        assert data["primary_signal"] == "precision"
        assert data["decided_at"] == "2026-01-15T12:00:00+00:00"
        assert data["signals"]["precision"]["contribution"] == 0.5  # type: ignore[index]
        assert data["signals"]["precision"]["details"] == {"fractional_digits": 6.0}  # type: ignore[index]

"""Synthetic trade scenarios with bot-like or human-like patterns.

Scenarios produce TradeObservations in-process so the classifier can be
exercised without a chain or a settlement layer.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from decimal import Decimal

from trade_bot_detector.detector.models import ClassificationResult
from trade_bot_detector.ingestor.models import TradeObservation
from trade_bot_detector.pipeline import DetectionPipeline

logger = logging.getLogger(__name__)

DEFAULT_SIM_TRADER = "0x000000000000000000000000000000000000b07e"


@dataclass(frozen=True)
class Scenario:
    """A fixed sequence of trade amounts submitted at a fixed spacing."""

    name: str
    description: str
    amounts: tuple[str, ...]
    interval_seconds: float = 0.0


SCENARIOS: dict[str, Scenario] = {
    "bot": Scenario(
        name="bot",
        description="Single bot-like trade (precise amount)",
        amounts=("1.547329",),
    ),
    "human": Scenario(
        name="human",
        description="Single human-like trade (rounded amount)",
        amounts=("1.0",),
    ),
    "consistent-bot": Scenario(
        name="consistent-bot",
        description="Consistent bot trading pattern (5 trades, 10s intervals)",
        amounts=tuple(f"{i}.{547329 + i}" for i in range(1, 6)),
        interval_seconds=10.0,
    ),
}


def _tx_ref(scenario: str, trader: str, index: int, start: datetime) -> str:
    digest = hashlib.sha256(f"{scenario}:{trader}:{index}:{start.isoformat()}".encode()).hexdigest()
    return f"0x{digest}"


def build_observations(
    scenario: str,
    *,
    trader: str = DEFAULT_SIM_TRADER,
    start: datetime | None = None,
) -> list[TradeObservation]:
    """Build the observations for a named scenario.

    Raises:
        KeyError: If the scenario is unknown.
    """
    chosen = SCENARIOS[scenario]
    start = start or datetime.now(UTC)
    return [
        TradeObservation(
            trader=trader,
            amount=Decimal(amount),
            timestamp=start + timedelta(seconds=chosen.interval_seconds * i),
            tx_ref=_tx_ref(chosen.name, trader, i, start),
        )
        for i, amount in enumerate(chosen.amounts)
    ]


def replay(
    scenario: str,
    pipeline: DetectionPipeline,
    *,
    trader: str = DEFAULT_SIM_TRADER,
    start: datetime | None = None,
) -> list[ClassificationResult]:
    """Feed a scenario through the pipeline and return each classification."""
    observations = build_observations(scenario, trader=trader, start=start)
    logger.info("Replaying scenario %r (%d trades) for %s", scenario, len(observations), trader)
    return [pipeline.on_trade(observation) for observation in observations]

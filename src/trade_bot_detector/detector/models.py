"""Data models for the detector module."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime

# Risk level thresholds
HIGH_RISK_THRESHOLD = 0.7
MEDIUM_RISK_THRESHOLD = 0.4


def get_risk_level(score: float) -> str:
    """Get human-readable bot likelihood level from score."""
    if score >= HIGH_RISK_THRESHOLD:
        return "HIGH"
    if score >= MEDIUM_RISK_THRESHOLD:
        return "MEDIUM"
    return "LOW"


@dataclass(frozen=True)
class SignalReading:
    """One signal's contribution to a classification.

    Attributes:
        name: Signal name (e.g. "precision").
        score: Sub-score in [0, 1]; higher is more bot-like.
        weight: Effective weight after renormalization over present signals.
            Informational readings carry weight 0.
        insufficient_data: True when the signal could not be computed from
            the available history and contributes 0.
        details: Raw measurements behind the score.
    """

    name: str
    score: float
    weight: float
    insufficient_data: bool = False
    details: dict[str, float] = field(default_factory=dict)

    @property
    def contribution(self) -> float:
        return self.score * self.weight

    def to_dict(self) -> dict[str, object]:
        return {
            "score": self.score,
            "weight": self.weight,
            "contribution": self.contribution,
            "insufficient_data": self.insufficient_data,
            "details": dict(self.details),
        }


@dataclass(frozen=True)
class ClassificationResult:
    """Bot-likelihood assessment for one trade of one trader.

    Attributes:
        trader: The classified trader.
        tx_ref: Correlation id of the trade that triggered classification.
        bot_score: Combined score in [0, 1].
        signals: Per-signal readings keyed by signal name.
        decided_at: When the classification was computed.
    """

    trader: str
    tx_ref: str
    bot_score: float
    signals: Mapping[str, SignalReading]
    decided_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def risk_level(self) -> str:
        return get_risk_level(self.bot_score)

    @property
    def primary_signal(self) -> str | None:
        """Name of the signal with the largest contribution, if any contributed."""
        best: SignalReading | None = None
        for reading in self.signals.values():
            if reading.contribution <= 0:
                continue
            if best is None or reading.contribution > best.contribution:
                best = reading
        return best.name if best is not None else None

    @property
    def has_insufficient_data(self) -> bool:
        return any(r.insufficient_data for r in self.signals.values())

    def to_dict(self) -> dict[str, object]:
        """Serialize to dictionary for logging and export."""
        return {
            "trader": self.trader,
            "tx_ref": self.tx_ref,
            "bot_score": self.bot_score,
            "risk_level": self.risk_level,
            "primary_signal": self.primary_signal,
            "signals": {name: r.to_dict() for name, r in self.signals.items()},
            "decided_at": self.decided_at.isoformat(),
        }

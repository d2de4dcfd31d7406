"""Bot-likelihood classifier combining amount, timing and price signals.

Scoring Formula:
    precision          = min(fractional_digits(amount), 6) / 6
    timing_regularity  = max(0, 1 - CV(last K inter-trade intervals))
    price_deviation    = clamp((|price - quote| / confidence - 1) / 4)

    bot_score = sum(score * weight) / sum(weight of present signals)

The weights are fixed constants. Price deviation is only present when the
trade names an asset and price and the feed has a quote for that asset;
when it is absent the remaining weights are renormalized. Timing regularity
is always present but contributes 0 (flagged as insufficient data) until the
trader has two prior trades.

A zero-confidence quote makes any deviation score 1.0: a zero-width band
means every off-quote execution is outside it.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime
from decimal import Decimal

import numpy as np

from trade_bot_detector.detector.models import ClassificationResult, SignalReading
from trade_bot_detector.ingestor.models import PriceQuote, TradeObservation, to_decimal
from trade_bot_detector.ingestor.price_feed import PriceFeedIngestor
from trade_bot_detector.ingestor.recorder import TradeEventRecorder

logger = logging.getLogger(__name__)

PRECISION_SIGNAL = "precision"
TIMING_SIGNAL = "timing_regularity"
PRICE_DEVIATION_SIGNAL = "price_deviation"
TIMING_ANOMALY_SIGNAL = "timing_anomaly"

SIGNAL_WEIGHTS: Mapping[str, float] = {
    PRECISION_SIGNAL: 0.40,
    TIMING_SIGNAL: 0.40,
    PRICE_DEVIATION_SIGNAL: 0.20,
}

PRECISION_SATURATION_DIGITS = 6
TIMING_CV_CEILING = 1.0
MIN_PRIOR_TRADES_FOR_TIMING = 2
DEVIATION_SATURATION_BANDS = 5.0
DEFAULT_TIMING_WINDOW = 10


def fractional_digits(amount: Decimal) -> int:
    """Count digits after the decimal point, ignoring trailing zeros.

    Works on the exact digit tuple; normalize() would round amounts longer
    than the context precision.
    """
    if not amount.is_finite():
        return 0
    _, digits, exponent = amount.as_tuple()
    if not isinstance(exponent, int) or exponent >= 0 or not any(digits):
        return 0
    places = -exponent
    trailing = 0
    for digit in reversed(digits):
        if digit != 0 or trailing == places:
            break
        trailing += 1
    return places - trailing


def precision_score(amount: Decimal) -> float:
    digits = fractional_digits(amount)
    return min(digits, PRECISION_SATURATION_DIGITS) / PRECISION_SATURATION_DIGITS


def interval_variation(timestamps: Sequence[datetime], *, window: int) -> tuple[float, float, int]:
    """Coefficient of variation of the last ``window`` inter-trade intervals.

    Timestamps are ordered chronologically first so that reordered delivery
    does not produce negative intervals.

    Returns:
        Tuple of (cv, mean_interval_seconds, interval_count). When every
        interval is zero the cv is reported as 0.0.
    """
    ordered = sorted(timestamps)
    k = min(len(ordered) - 1, window)
    if k < 1:
        raise ValueError("at least two timestamps are required")
    recent = ordered[-(k + 1) :]
    seconds = np.array([(t - recent[0]).total_seconds() for t in recent], dtype=float)
    intervals = np.diff(seconds)
    mean = float(np.mean(intervals))
    if mean <= 0.0:
        return 0.0, 0.0, k
    cv = float(np.std(intervals)) / mean
    return cv, mean, k


def timing_regularity_score(cv: float) -> float:
    return max(0.0, 1.0 - cv / TIMING_CV_CEILING)


def price_deviation_score(price: Decimal, quote: PriceQuote) -> tuple[float, dict[str, float]]:
    """Score how far an execution price sits outside the quote's confidence band."""
    deviation = abs(price - quote.price)
    details = {
        "quote_price": float(quote.price),
        "quote_confidence": float(quote.confidence),
        "deviation": float(deviation),
    }
    if quote.confidence == 0:
        details["zero_confidence"] = 1.0
        return (1.0 if deviation > 0 else 0.0), details

    bands = float(deviation / quote.confidence)
    details["bands"] = bands
    score = (bands - 1.0) / (DEVIATION_SATURATION_BANDS - 1.0)
    return max(0.0, min(1.0, score)), details


class BehaviorClassifier:
    """Classifies a trader's latest trade as bot-like or human-like.

    The classifier holds no state of its own: each call reads a history
    snapshot from the recorder and a quote snapshot from the ingestor, so the
    same state always yields the same scores.

    Example:
        ```python
        classifier = BehaviorClassifier(recorder, ingestor)
        recorder.record(trade)
        result = classifier.classify(trade.trader, trade)
        if result.bot_score >= 0.7:
            ...
        ```
    """

    def __init__(
        self,
        recorder: TradeEventRecorder,
        price_feed: PriceFeedIngestor | None = None,
        *,
        timing_window: int = DEFAULT_TIMING_WINDOW,
    ) -> None:
        """Initialize the classifier.

        Args:
            recorder: Source of trader histories.
            price_feed: Source of live quotes. Without one, the price
                deviation signal is always omitted.
            timing_window: Max inter-trade intervals used for timing regularity.
        """
        if timing_window < 2:
            raise ValueError("timing_window must be >= 2")
        self._recorder = recorder
        self._price_feed = price_feed
        self._timing_window = timing_window

    def classify(self, trader: str, observation: TradeObservation) -> ClassificationResult:
        """Compute the bot-likelihood of ``observation`` given the trader's history.

        The observation itself (matched by ``tx_ref``) and any trade stamped
        after it are excluded from the prior trades, so recording order and
        concurrent writers do not change the result.

        Args:
            trader: Trader whose history is used.
            observation: The trade being classified.

        Returns:
            ClassificationResult with the combined score and per-signal readings.
        """
        history = self._recorder.history(trader)
        prior = tuple(
            t for t in history if t.tx_ref != observation.tx_ref and t.timestamp <= observation.timestamp
        )

        readings: dict[str, SignalReading] = {}
        raw: dict[str, tuple[float, bool, dict[str, float]]] = {}

        amount = to_decimal(observation.amount)
        digits = fractional_digits(amount)
        raw[PRECISION_SIGNAL] = (precision_score(amount), False, {"fractional_digits": float(digits)})
        raw[TIMING_SIGNAL] = self._timing_signal(prior, observation)

        deviation = self._price_deviation_signal(observation)
        if deviation is not None:
            raw[PRICE_DEVIATION_SIGNAL] = deviation

        total_weight = sum(SIGNAL_WEIGHTS[name] for name in raw)
        score = 0.0
        for name, (value, insufficient, details) in raw.items():
            weight = SIGNAL_WEIGHTS[name] / total_weight
            readings[name] = SignalReading(
                name=name,
                score=value,
                weight=weight,
                insufficient_data=insufficient,
                details=details,
            )
            score += value * weight

        anomalies = self._recorder.anomalies(trader)
        if anomalies:
            retained = max(len(history), 1)
            readings[TIMING_ANOMALY_SIGNAL] = SignalReading(
                name=TIMING_ANOMALY_SIGNAL,
                score=min(1.0, len(anomalies) / retained),
                weight=0.0,
                details={
                    "count": float(len(anomalies)),
                    "max_lag_seconds": max(a.lag_seconds for a in anomalies),
                },
            )

        bot_score = round(max(0.0, min(1.0, score)), 6)
        result = ClassificationResult(
            trader=trader,
            tx_ref=observation.tx_ref,
            bot_score=bot_score,
            signals=readings,
            decided_at=datetime.now(UTC),
        )
        logger.debug(
            "Classified trader=%s tx=%s score=%.3f signals=%s",
            trader,
            observation.tx_ref,
            bot_score,
            {name: round(r.score, 3) for name, r in readings.items()},
        )
        return result

    def _timing_signal(
        self,
        prior: Sequence[TradeObservation],
        observation: TradeObservation,
    ) -> tuple[float, bool, dict[str, float]]:
        if len(prior) < MIN_PRIOR_TRADES_FOR_TIMING:
            return 0.0, True, {"prior_trades": float(len(prior))}

        timestamps = [t.timestamp for t in prior]
        timestamps.append(observation.timestamp)
        cv, mean, k = interval_variation(timestamps, window=self._timing_window)
        return (
            timing_regularity_score(cv),
            False,
            {"coefficient_of_variation": cv, "mean_interval_seconds": mean, "intervals": float(k)},
        )

    def _price_deviation_signal(
        self,
        observation: TradeObservation,
    ) -> tuple[float, bool, dict[str, float]] | None:
        if self._price_feed is None or observation.asset is None or observation.price is None:
            return None
        quote = self._price_feed.snapshot().get(observation.asset)
        if quote is None:
            return None
        score, details = price_deviation_score(to_decimal(observation.price), quote)
        return score, False, details

"""Bounded per-trader trade history.

The recorder is the only owner of trader histories. Readers get tuple
copies, so a classification never observes a half-applied append/evict.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
from collections import deque
from decimal import Decimal

from trade_bot_detector.ingestor.models import TimingAnomaly, TradeObservation, to_decimal

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_CAPACITY = 20


class InvalidObservation(ValueError):
    """Raised when a trade observation is malformed and cannot be recorded."""


@dataclasses.dataclass
class _TraderState:
    trades: deque[TradeObservation]
    anomalies: deque[TimingAnomaly]
    lock: threading.Lock = dataclasses.field(default_factory=threading.Lock)


class TradeEventRecorder:
    """Keeps the last N observations per trader, evicting strictly FIFO.

    There is no time-based expiry: an idle trader keeps their history until
    new trades push old ones out.

    Example:
        ```python
        recorder = TradeEventRecorder(capacity=20)
        anomaly = recorder.record(observation)
        trades = recorder.history(observation.trader)
        ```
    """

    def __init__(self, *, capacity: int = DEFAULT_HISTORY_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self._capacity = capacity
        self._traders: dict[str, _TraderState] = {}
        self._registry_lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    def _state_for(self, trader: str) -> _TraderState:
        with self._registry_lock:
            state = self._traders.get(trader)
            if state is None:
                state = _TraderState(
                    trades=deque(maxlen=self._capacity),
                    anomalies=deque(maxlen=self._capacity),
                )
                self._traders[trader] = state
            return state

    def _validate(self, observation: TradeObservation) -> TradeObservation:
        if not observation.trader:
            raise InvalidObservation("trader must be non-empty")
        try:
            amount = to_decimal(observation.amount)
        except ValueError as e:
            raise InvalidObservation(f"amount is not a number: {observation.amount!r}") from e
        if not amount.is_finite():
            raise InvalidObservation(f"amount must be finite, got {amount}")
        if amount <= 0:
            raise InvalidObservation(f"amount must be positive, got {amount}")
        if observation.timestamp.tzinfo is None:
            raise InvalidObservation("timestamp must be timezone-aware")
        if amount is not observation.amount:
            observation = dataclasses.replace(observation, amount=amount)
        if observation.price is not None and not isinstance(observation.price, Decimal):
            try:
                observation = dataclasses.replace(observation, price=to_decimal(observation.price))
            except ValueError as e:
                raise InvalidObservation(f"price is not a number: {observation.price!r}") from e
        return observation

    def record(self, observation: TradeObservation) -> TimingAnomaly | None:
        """Append an observation to its trader's history.

        Out-of-order timestamps are accepted; the returned TimingAnomaly (also
        kept for ``anomalies()``) flags them.

        Args:
            observation: The trade to record.

        Returns:
            A TimingAnomaly if the timestamp precedes the trader's last
            recorded observation, otherwise None.

        Raises:
            InvalidObservation: If the amount is non-finite or non-positive,
                the timestamp is naive, or the trader is empty.
        """
        observation = self._validate(observation)
        state = self._state_for(observation.trader)

        anomaly: TimingAnomaly | None = None
        with state.lock:
            if state.trades and observation.timestamp < state.trades[-1].timestamp:
                anomaly = TimingAnomaly(
                    tx_ref=observation.tx_ref,
                    timestamp=observation.timestamp,
                    previous_timestamp=state.trades[-1].timestamp,
                )
                state.anomalies.append(anomaly)
            state.trades.append(observation)

        if anomaly is not None:
            logger.info(
                "Out-of-order trade recorded: trader=%s, tx=%s, lag=%.3fs",
                observation.trader,
                observation.tx_ref,
                anomaly.lag_seconds,
            )
        return anomaly

    def history(self, trader: str) -> tuple[TradeObservation, ...]:
        """Return the trader's retained trades, oldest first (empty if unknown)."""
        with self._registry_lock:
            state = self._traders.get(trader)
        if state is None:
            return ()
        with state.lock:
            return tuple(state.trades)

    def anomalies(self, trader: str) -> tuple[TimingAnomaly, ...]:
        """Return the timing anomalies flagged for the trader, oldest first."""
        with self._registry_lock:
            state = self._traders.get(trader)
        if state is None:
            return ()
        with state.lock:
            return tuple(state.anomalies)

    def has_seen(self, trader: str, tx_ref: str) -> bool:
        """Check whether tx_ref is in the trader's retained history.

        The recorder does not deduplicate; at-least-once callers can use this
        before recording.
        """
        return any(obs.tx_ref == tx_ref for obs in self.history(trader))

    def traders(self) -> tuple[str, ...]:
        with self._registry_lock:
            return tuple(self._traders)

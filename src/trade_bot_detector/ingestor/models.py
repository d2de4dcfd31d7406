"""Data models for the ingestor module."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from typing import Any


def to_decimal(value: Any) -> Decimal:
    """Convert a wire value to Decimal without going through binary floats.

    Raises:
        ValueError: If the value cannot be parsed as a number.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Not a number: {value!r}")
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, TypeError) as e:
        raise ValueError(f"Not a number: {value!r}") from e


def parse_timestamp(value: Any) -> datetime:
    """Parse epoch seconds/milliseconds or an ISO-8601 string to an aware datetime."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        ts = float(value)
        if ts > 1e12:
            ts /= 1000.0
        try:
            return datetime.fromtimestamp(ts, tz=UTC)
        except (OverflowError, OSError, ValueError) as e:
            raise ValueError(f"Timestamp out of range: {value!r}") from e
    if isinstance(value, str):
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    raise ValueError(f"Unsupported timestamp: {value!r}")


@dataclass(frozen=True)
class PriceQuote:
    """Latest quote for one asset, as pushed by the price feed.

    Attributes:
        asset: Asset symbol (e.g. "ETH").
        price: Quoted price.
        confidence: Half-width of the feed's confidence interval (>= 0).
        observed_at: Publish time reported by the feed, or receipt time.
    """

    asset: str
    price: Decimal
    confidence: Decimal
    observed_at: datetime

    @property
    def band_low(self) -> Decimal:
        return self.price - self.confidence

    @property
    def band_high(self) -> Decimal:
        return self.price + self.confidence

    def to_dict(self) -> dict[str, object]:
        return {
            "asset": self.asset,
            "price": str(self.price),
            "confidence": str(self.confidence),
            "observed_at": self.observed_at.isoformat(),
        }


@dataclass(frozen=True)
class HermesPriceUpdate:
    """A single ``price_update`` message from the Pyth Hermes stream.

    Hermes reports integer mantissas with a shared exponent; ``price`` and
    ``confidence`` here are already scaled.
    """

    feed_id: str
    price: Decimal
    confidence: Decimal
    publish_time: datetime

    @classmethod
    def from_websocket_message(cls, data: dict[str, Any]) -> HermesPriceUpdate:
        """Create a HermesPriceUpdate from a WebSocket message.

        Args:
            data: Decoded JSON payload with ``type == "price_update"``.

        Raises:
            KeyError: If required fields are missing.
            ValueError: If numeric fields cannot be parsed.
        """
        feed = data["price_feed"]
        price_data = feed["price"]
        expo = int(price_data["expo"])
        return cls(
            feed_id=str(feed["id"]).lower().removeprefix("0x"),
            price=to_decimal(price_data["price"]).scaleb(expo),
            confidence=to_decimal(price_data["conf"]).scaleb(expo),
            publish_time=parse_timestamp(int(price_data["publish_time"])),
        )


@dataclass(frozen=True)
class TradeObservation:
    """A confirmed trade observed by the settlement layer.

    The amount is kept as an exact Decimal; its fractional digits are
    themselves a classification input.

    Attributes:
        trader: Trader identity (wallet address).
        amount: Traded amount.
        timestamp: When the trade happened (timezone-aware).
        tx_ref: Opaque correlation id (usually the transaction hash).
        asset: Asset traded, if known; enables the price deviation signal.
        price: Unit execution price, if known.
    """

    trader: str
    amount: Decimal
    timestamp: datetime
    tx_ref: str
    asset: str | None = None
    price: Decimal | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TradeObservation:
        """Create a TradeObservation from a settlement-layer event.

        Accepts ``tx_ref`` or ``txRef`` / ``tx_hash`` for the correlation id and
        epoch or ISO timestamps.

        Raises:
            KeyError: If a required field is missing.
            ValueError: If a field cannot be parsed.
        """
        tx_ref = data.get("tx_ref") or data.get("txRef") or data.get("tx_hash")
        if tx_ref is None:
            raise KeyError("tx_ref")
        price = data.get("price")
        asset = data.get("asset")
        return cls(
            trader=str(data["trader"]).strip(),
            amount=to_decimal(data["amount"]),
            timestamp=parse_timestamp(data["timestamp"]),
            tx_ref=str(tx_ref),
            asset=str(asset) if asset else None,
            price=to_decimal(price) if price is not None else None,
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "trader": self.trader,
            "amount": str(self.amount),
            "timestamp": self.timestamp.isoformat(),
            "tx_ref": self.tx_ref,
            "asset": self.asset,
            "price": str(self.price) if self.price is not None else None,
        }


@dataclass(frozen=True)
class TimingAnomaly:
    """An observation recorded with a timestamp earlier than its predecessor.

    Reordering is expected from the feed and the network, so these are
    recorded rather than rejected.
    """

    tx_ref: str
    timestamp: datetime
    previous_timestamp: datetime

    @property
    def lag_seconds(self) -> float:
        """How far the observation arrived behind the previous one."""
        return (self.previous_timestamp - self.timestamp).total_seconds()

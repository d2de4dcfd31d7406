"""Data ingestion layer - price feed quotes and trade histories."""

from trade_bot_detector.ingestor.hermes_websocket import (
    ConnectionState,
    HermesConnectionError,
    HermesPriceStreamHandler,
    HermesStreamError,
)
from trade_bot_detector.ingestor.models import (
    HermesPriceUpdate,
    PriceQuote,
    TimingAnomaly,
    TradeObservation,
)
from trade_bot_detector.ingestor.price_feed import FeedConnectionError, PriceFeedIngestor
from trade_bot_detector.ingestor.recorder import InvalidObservation, TradeEventRecorder

__all__ = [
    "ConnectionState",
    "FeedConnectionError",
    "HermesConnectionError",
    "HermesPriceStreamHandler",
    "HermesPriceUpdate",
    "HermesStreamError",
    "InvalidObservation",
    "PriceFeedIngestor",
    "PriceQuote",
    "TimingAnomaly",
    "TradeEventRecorder",
    "TradeObservation",
]

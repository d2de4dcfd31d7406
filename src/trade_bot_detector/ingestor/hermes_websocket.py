"""Pyth Hermes WebSocket client for streaming price updates.

The handler owns connection management (keepalive, exponential reconnect
backoff) and hands every parsed update to a synchronous price callback.
It never holds price state itself.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

import websockets
from websockets.asyncio.client import ClientConnection

from trade_bot_detector.ingestor.models import HermesPriceUpdate

logger = logging.getLogger(__name__)

DEFAULT_HOST = "wss://hermes.pyth.network/ws"
DEFAULT_PING_INTERVAL = 30  # seconds
DEFAULT_MAX_RECONNECT_DELAY = 30.0  # seconds
DEFAULT_INITIAL_RECONNECT_DELAY = 1.0  # seconds


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


@dataclass
class StreamStats:
    updates_received: int = 0
    updates_dropped: int = 0
    reconnect_count: int = 0
    last_message_time: float | None = None
    connected_since: float | None = None
    last_error: str | None = None


class HermesStreamError(Exception):
    """Base exception for Hermes stream errors."""


class HermesConnectionError(HermesStreamError):
    """Raised when connection to the Hermes WebSocket fails."""


PriceCallback = Callable[..., None]
StateCallback = Callable[[ConnectionState], Awaitable[None]]


class HermesPriceStreamHandler:
    """WebSocket client for the Hermes price stream.

    Example:
        ```python
        stream = HermesPriceStreamHandler(
            feed_assets={"ff61491a...": "ETH"},
            on_price=ingestor.on_update,
        )
        task = asyncio.create_task(stream.start())
        ...
        await stream.stop()
        ```
    """

    def __init__(
        self,
        *,
        feed_assets: dict[str, str],
        on_price: PriceCallback,
        host: str = DEFAULT_HOST,
        api_key: str | None = None,
        on_state_change: StateCallback | None = None,
        ping_interval: int = DEFAULT_PING_INTERVAL,
        max_reconnect_delay: float = DEFAULT_MAX_RECONNECT_DELAY,
        initial_reconnect_delay: float = DEFAULT_INITIAL_RECONNECT_DELAY,
    ) -> None:
        if not feed_assets:
            raise ValueError("feed_assets must name at least one feed")
        self._host = host
        self._api_key = api_key
        self._feed_assets = {k.lower().removeprefix("0x"): v for k, v in feed_assets.items()}
        self._on_price = on_price
        self._on_state_change = on_state_change
        self._ping_interval = ping_interval
        self._max_reconnect_delay = max_reconnect_delay
        self._initial_reconnect_delay = initial_reconnect_delay

        self._state = ConnectionState.DISCONNECTED
        self._stats = StreamStats()

        self._ws: ClientConnection | None = None
        self._running = False
        self._stop_event: asyncio.Event | None = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def stats(self) -> StreamStats:
        return self._stats

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    async def _set_state(self, new_state: ConnectionState) -> None:
        if self._state != new_state:
            old = self._state
            self._state = new_state
            logger.info("Hermes stream state: %s -> %s", old.value, new_state.value)
            if self._on_state_change:
                try:
                    await self._on_state_change(new_state)
                except Exception as e:  # pragma: no cover
                    logger.error("Error in state change callback: %s", e)

    def subscription_message(self) -> dict[str, Any]:
        return {"type": "subscribe", "ids": sorted(self._feed_assets)}

    async def _connect(self) -> ClientConnection:
        await self._set_state(ConnectionState.CONNECTING)
        headers = {"x-api-key": self._api_key} if self._api_key else None
        try:
            ws = await websockets.connect(
                self._host,
                additional_headers=headers,
                ping_interval=self._ping_interval,
                ping_timeout=self._ping_interval * 2,
            )
        except Exception as e:
            self._stats.last_error = str(e)
            raise HermesConnectionError(f"Failed to connect to {self._host}: {e}") from e

        await ws.send(json.dumps(self.subscription_message()))

        await self._set_state(ConnectionState.CONNECTED)
        self._stats.connected_since = time.time()
        logger.info("Connected to Hermes: %s (%d feeds)", self._host, len(self._feed_assets))
        return ws

    def _handle_message(self, message: str) -> None:
        try:
            data = json.loads(message)
        except json.JSONDecodeError:
            logger.warning("Invalid JSON message on Hermes stream")
            return

        msg_type = data.get("type")
        if msg_type == "price_update":
            try:
                update = HermesPriceUpdate.from_websocket_message(data)
            except (KeyError, TypeError, ValueError) as e:
                self._stats.updates_dropped += 1
                logger.warning("Failed to parse Hermes price_update: %s", e)
                return

            asset = self._feed_assets.get(update.feed_id)
            if asset is None:
                self._stats.updates_dropped += 1
                logger.debug("Ignoring update for unsubscribed feed %s", update.feed_id)
                return

            self._stats.updates_received += 1
            self._stats.last_message_time = time.time()
            self._deliver(asset, update.price, update.confidence, update.publish_time)
            return

        if msg_type == "response":
            if data.get("status") == "error":
                logger.error("Hermes rejected subscription: %s", data.get("error"))
            return

        logger.debug("Ignoring Hermes message type=%r", msg_type)

    def _deliver(self, asset: str, price: Decimal, confidence: Decimal, observed_at: datetime) -> None:
        try:
            self._on_price(asset, price, confidence, observed_at=observed_at)
        except Exception:
            logger.exception("Price callback failed for %s", asset)

    async def _listen(self, ws: ClientConnection) -> None:
        try:
            while self._running:
                try:
                    message = await asyncio.wait_for(ws.recv(), timeout=1.0)
                except TimeoutError:
                    continue

                if isinstance(message, str):
                    self._handle_message(message)
                else:
                    logger.debug("Ignoring non-text Hermes message")
        except websockets.ConnectionClosed as e:
            logger.warning("Hermes stream connection closed: %s", e)
            raise

    async def start(self) -> None:
        """Connect and stream until stop() is called, reconnecting with backoff."""
        if self._running:
            raise RuntimeError("Hermes stream already running")
        self._running = True
        self._stop_event = asyncio.Event()

        delay = self._initial_reconnect_delay
        while self._running and self._stop_event and not self._stop_event.is_set():
            try:
                self._ws = await self._connect()
                delay = self._initial_reconnect_delay
                await self._listen(self._ws)
            except Exception as e:
                if not self._running:
                    break
                self._stats.reconnect_count += 1
                self._stats.last_error = str(e)
                await self._set_state(ConnectionState.RECONNECTING)
                logger.warning("Hermes stream error, reconnecting in %.1fs: %s", delay, e)
                with contextlib.suppress(TimeoutError):
                    await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
                delay = min(self._max_reconnect_delay, delay * 2)
            finally:
                with contextlib.suppress(Exception):
                    if self._ws:
                        await self._ws.close()
                self._ws = None

        self._running = False
        await self._set_state(ConnectionState.DISCONNECTED)

    async def stop(self) -> None:
        self._running = False
        if self._stop_event:
            self._stop_event.set()
        if self._ws:
            with contextlib.suppress(Exception):
                await self._ws.close()

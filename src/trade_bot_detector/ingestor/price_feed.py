"""Latest-quote table fed by a push-style price transport.

PriceFeedIngestor is an owned instance passed to its consumers, so the
classifier can be tested against a hand-built snapshot without a live feed.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from types import MappingProxyType
from typing import Any, Protocol

from trade_bot_detector.config import FeedSettings
from trade_bot_detector.ingestor.hermes_websocket import HermesPriceStreamHandler
from trade_bot_detector.ingestor.models import PriceQuote, to_decimal

logger = logging.getLogger(__name__)

DEFAULT_START_TIMEOUT_SECONDS = 10.0


class FeedConnectionError(Exception):
    """Raised by start() when no price data arrives within the start timeout."""


class PriceFeedTransport(Protocol):
    """A push transport that calls back with (asset, price, confidence)."""

    @property
    def is_connected(self) -> bool: ...

    async def start(self) -> None: ...

    async def stop(self) -> None: ...


TransportFactory = Callable[[Callable[..., None]], PriceFeedTransport]


class PriceFeedIngestor:
    """Keeps the most recent PriceQuote per asset.

    The transport is built on start() by ``transport_factory``, which receives
    ``on_update`` as the callback. Reconnects are the transport's concern; the
    ingestor only fails start() when no data has ever arrived.

    After stop() returns, the quote table is frozen: late callbacks from a
    transport that is still shutting down are ignored.

    Example:
        ```python
        ingestor = PriceFeedIngestor.from_settings(settings.feed)
        await ingestor.start()
        quotes = ingestor.snapshot()
        await ingestor.stop()
        ```
    """

    def __init__(
        self,
        transport_factory: TransportFactory | None = None,
        *,
        start_timeout_seconds: float = DEFAULT_START_TIMEOUT_SECONDS,
    ) -> None:
        self._transport_factory = transport_factory
        self._start_timeout = start_timeout_seconds

        self._lock = threading.Lock()
        self._quotes: dict[str, PriceQuote] = {}
        self._stopped = False
        self._updates_received = 0

        self._lifecycle_lock = asyncio.Lock()
        self._transport: PriceFeedTransport | None = None
        self._task: asyncio.Task[None] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._first_update: asyncio.Event | None = None

    @classmethod
    def from_settings(cls, settings: FeedSettings) -> PriceFeedIngestor:
        """Build an ingestor streaming from Hermes as configured."""
        api_key = settings.api_key.get_secret_value() if settings.api_key else None

        def factory(on_price: Callable[..., None]) -> PriceFeedTransport:
            return HermesPriceStreamHandler(
                feed_assets=settings.feed_assets,
                on_price=on_price,
                host=settings.ws_url,
                api_key=api_key,
                ping_interval=settings.ping_interval_seconds,
                max_reconnect_delay=settings.max_reconnect_delay_seconds,
                initial_reconnect_delay=settings.initial_reconnect_delay_seconds,
            )

        return cls(factory, start_timeout_seconds=settings.start_timeout_seconds)

    @property
    def is_started(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def updates_received(self) -> int:
        with self._lock:
            return self._updates_received

    def is_connected(self) -> bool:
        """Whether the transport currently holds a live connection."""
        return self._transport is not None and self.is_started and self._transport.is_connected

    async def start(self) -> None:
        """Open the feed subscription and wait for the first update.

        Calling start() while already started is a no-op.

        Raises:
            RuntimeError: If no transport factory was configured.
            FeedConnectionError: If no update arrives within the start timeout
                and no quote has ever been received. The subscription is torn
                down and start() may be retried.
        """
        async with self._lifecycle_lock:
            if self.is_started:
                return
            if self._transport_factory is None:
                raise RuntimeError("PriceFeedIngestor has no transport configured")

            with self._lock:
                self._stopped = False
            self._loop = asyncio.get_running_loop()
            self._first_update = asyncio.Event()
            transport = self._transport_factory(self.on_update)
            self._transport = transport
            self._task = asyncio.create_task(transport.start())
            logger.info("Price feed subscription opened, waiting for data...")

            waiter = asyncio.create_task(self._first_update.wait())
            done, _ = await asyncio.wait(
                {waiter, self._task},
                timeout=self._start_timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
            if waiter in done:
                logger.info("Price feed connected")
                return
            waiter.cancel()

            cause: BaseException | None = None
            if self._task in done and not self._task.cancelled():
                cause = self._task.exception()

            with self._lock:
                has_data = bool(self._quotes)
            if has_data and cause is None:
                logger.warning(
                    "No fresh price update within %.1fs, serving previously received quotes",
                    self._start_timeout,
                )
                return

            await self._shutdown_transport()
            message = f"No price data received within {self._start_timeout:.1f}s"
            if cause is not None:
                raise FeedConnectionError(f"{message}: {cause}") from cause
            raise FeedConnectionError(message)

    async def _shutdown_transport(self) -> None:
        transport, task = self._transport, self._task
        if transport is not None:
            try:
                await transport.stop()
            except Exception:
                logger.exception("Error stopping price transport")
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception:
                logger.exception("Price transport exited with an error")
        self._transport = None
        self._task = None

    def on_update(
        self,
        asset: str,
        price: Any,
        confidence: Any,
        *,
        observed_at: datetime | None = None,
    ) -> None:
        """Transport callback: overwrite the quote for ``asset``.

        Safe to call from any thread. Ignored after stop(). Updates with a
        non-finite price or a negative confidence are dropped.
        """
        try:
            price_d = to_decimal(price)
            confidence_d = to_decimal(confidence)
        except ValueError:
            logger.warning("Dropping unparseable price update for %s: %r/%r", asset, price, confidence)
            return
        if not price_d.is_finite() or not confidence_d.is_finite() or confidence_d < 0:
            logger.warning("Dropping invalid price update for %s: price=%s conf=%s", asset, price_d, confidence_d)
            return

        quote = PriceQuote(
            asset=asset,
            price=price_d,
            confidence=confidence_d,
            observed_at=observed_at or datetime.now(UTC),
        )
        with self._lock:
            if self._stopped:
                return
            self._quotes[asset] = quote
            self._updates_received += 1

        loop, first_update = self._loop, self._first_update
        if loop is not None and first_update is not None and not first_update.is_set():
            with contextlib.suppress(RuntimeError):
                loop.call_soon_threadsafe(first_update.set)

    def snapshot(self) -> Mapping[str, PriceQuote]:
        """Return an immutable copy of the latest quote per asset."""
        with self._lock:
            return MappingProxyType(dict(self._quotes))

    async def stop(self) -> None:
        """Close the subscription.

        Once this returns no further quote mutation happens, even if the
        transport delivers a late update.
        """
        with self._lock:
            self._stopped = True
        await self._shutdown_transport()
        logger.info("Price feed stopped")

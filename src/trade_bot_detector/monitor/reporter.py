"""Periodic human-readable status reports.

The reporter only pulls from the pipeline's query surfaces (price snapshot
and recent classifications); the reporting cadence lives here, not in the
core.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable, Mapping, Sequence
from decimal import Decimal
from typing import Protocol

from trade_bot_detector.detector.models import ClassificationResult
from trade_bot_detector.ingestor.models import PriceQuote

logger = logging.getLogger(__name__)

DEFAULT_REPORT_INTERVAL_SECONDS = 30.0
DEFAULT_RECENT_LIMIT = 5

WAITING_FOR_PRICES = "Waiting for price data..."


class MonitorSource(Protocol):
    def price_snapshot(self) -> Mapping[str, PriceQuote]: ...

    def recent_classifications(self, limit: int | None = None) -> tuple[ClassificationResult, ...]: ...


def truncate_address(address: str, chars: int = 4) -> str:
    """Truncate an Ethereum address to 0x1234...5678 format."""
    if len(address) < chars * 2 + 4:
        return address
    return f"{address[: chars + 2]}...{address[-chars:]}"


def format_usd(amount: Decimal) -> str:
    """Format a USD amount with commas and 2 decimal places."""
    return f"${amount:,.2f}"


def format_quote(quote: PriceQuote) -> str:
    return f"{quote.asset}: {format_usd(quote.price)} (±{format_usd(quote.confidence)})"


def format_classification(result: ClassificationResult) -> str:
    primary = result.primary_signal or "none"
    line = (
        f"{truncate_address(result.trader)} tx={truncate_address(result.tx_ref, chars=6)} "
        f"score={result.bot_score:.2f} ({result.risk_level}) primary={primary}"
    )
    if result.has_insufficient_data:
        line += " [insufficient data]"
    return line


def render_report(
    quotes: Mapping[str, PriceQuote],
    recent: Sequence[ClassificationResult],
) -> str:
    """Render one status report."""
    lines: list[str] = []
    if quotes:
        lines.append("Live Price Updates:")
        lines.extend(f"   {format_quote(quotes[asset])}" for asset in sorted(quotes))
    else:
        lines.append(WAITING_FOR_PRICES)

    if recent:
        lines.append("Recent Classifications:")
        lines.extend(f"   {format_classification(r)}" for r in reversed(recent))
    return "\n".join(lines)


class MonitorReporter:
    """Emits a status report every ``interval_seconds`` until stopped.

    Example:
        ```python
        reporter = MonitorReporter(pipeline, interval_seconds=30, emit=print)
        reporter.start()
        ...
        await reporter.stop()
        ```
    """

    def __init__(
        self,
        source: MonitorSource,
        *,
        interval_seconds: float = DEFAULT_REPORT_INTERVAL_SECONDS,
        recent_limit: int = DEFAULT_RECENT_LIMIT,
        emit: Callable[[str], None] | None = None,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        self._source = source
        self._interval = interval_seconds
        self._recent_limit = recent_limit
        self._emit = emit or logger.info
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self.reports_emitted = 0

    def report_once(self) -> str:
        recent = self._source.recent_classifications(self._recent_limit) if self._recent_limit else ()
        report = render_report(self._source.price_snapshot(), recent)
        self._emit(report)
        self.reports_emitted += 1
        return report

    async def run(self) -> None:
        """Emit reports until stop() is called."""
        while not self._stop_event.is_set():
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval)
                break
            try:
                self.report_once()
            except Exception:
                logger.exception("Status report failed")

    def start(self) -> asyncio.Task[None]:
        if self._task is None or self._task.done():
            self._stop_event.clear()
            self._task = asyncio.create_task(self.run())
        return self._task

    async def stop(self) -> None:
        self._stop_event.set()
        if self._task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None

"""Command line entry point.

Usage:
    python -m trade_bot_detector monitor
    python -m trade_bot_detector simulate {bot,human,consistent-bot}
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
import sys

from trade_bot_detector.config import Settings, get_settings
from trade_bot_detector.ingestor.price_feed import FeedConnectionError, PriceFeedIngestor
from trade_bot_detector.monitor.reporter import MonitorReporter, format_classification
from trade_bot_detector.pipeline import DetectionPipeline
from trade_bot_detector.simulation import DEFAULT_SIM_TRADER, SCENARIOS, replay

logger = logging.getLogger("trade_bot_detector")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="trade_bot_detector",
        description="Classify trades as bot-like or human-like against a live price feed.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("monitor", help="Stream prices and print periodic status until interrupted")

    simulate = sub.add_parser("simulate", help="Replay a synthetic trade scenario offline")
    simulate.add_argument("scenario", choices=sorted(SCENARIOS))
    simulate.add_argument("--trader", default=DEFAULT_SIM_TRADER, help="Trader identity to simulate")
    return parser


async def run_monitor(settings: Settings) -> int:
    pipeline = DetectionPipeline(settings)
    reporter = MonitorReporter(
        pipeline,
        interval_seconds=settings.monitor.report_interval_seconds,
        recent_limit=settings.monitor.recent_limit,
        emit=print,
    )

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, pipeline.request_stop)

    logger.info("Configuration: %s", settings.redacted_summary())
    run_task = asyncio.create_task(pipeline.run())
    reporter.start()
    try:
        await run_task
    except FeedConnectionError as e:
        logger.error("Price feed unavailable: %s", e)
        return 1
    finally:
        await reporter.stop()

    logger.info("System stopped gracefully")
    return 0


def run_simulation(settings: Settings, scenario: str, *, trader: str) -> int:
    # Offline: a feed that is never started, so price deviation stays absent.
    pipeline = DetectionPipeline(settings, price_feed=PriceFeedIngestor())
    print(SCENARIOS[scenario].description)
    for i, result in enumerate(replay(scenario, pipeline, trader=trader), start=1):
        print(f"Trade {i}: {format_classification(result)}")
        for name, reading in result.signals.items():
            flag = " (insufficient data)" if reading.insufficient_data else ""
            print(f"    {name}: score={reading.score:.3f} weight={reading.weight:.2f}{flag}")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    logging.basicConfig(
        level=settings.get_logging_level(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "monitor":
        return asyncio.run(run_monitor(settings))
    return run_simulation(settings, args.scenario, trader=args.trader)


if __name__ == "__main__":
    sys.exit(main())

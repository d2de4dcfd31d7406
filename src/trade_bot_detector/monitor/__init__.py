"""Monitoring layer - periodic status reports over the pipeline's query surfaces."""

from trade_bot_detector.monitor.reporter import MonitorReporter, render_report

__all__ = [
    "MonitorReporter",
    "render_report",
]

"""Monitoring utilities."""

from swingbot.monitoring.logging import bind_run_context, configure_logging
from swingbot.monitoring.metrics import Metrics, start_metrics

__all__ = [
    "bind_run_context",
    "configure_logging",
    "Metrics",
    "start_metrics",
]

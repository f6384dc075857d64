"""Prometheus metrics definitions."""

from __future__ import annotations

import structlog
from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, start_http_server

from swingbot.config.settings import MonitoringConfig


log = structlog.get_logger(__name__)


class Metrics:
    """Expose decision pipeline metrics for monitoring.

    Pass a dedicated `CollectorRegistry` when more than one instance lives in a
    process (tests); the default registry rejects duplicate metric names.
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry or REGISTRY
        reg = self.registry

        self.signals_generated_total = Counter(
            "signals_generated_total", "Signals produced by the builder", ["direction"], registry=reg
        )
        self.signals_discarded_total = Counter(
            "signals_discarded_total", "Signal attempts that produced no signal", ["reason"], registry=reg
        )
        self.risk_rejections_total = Counter(
            "risk_rejections_total", "Admission checks that rejected a signal", ["check"], registry=reg
        )
        self.orders_total = Counter(
            "orders_total", "Execution outcomes by status", ["status"], registry=reg
        )
        self.pending_approvals = Gauge(
            "pending_approvals", "Orders awaiting manual approval", registry=reg
        )
        self.notification_failures_total = Counter(
            "notification_failures_total", "Notification deliveries that failed", registry=reg
        )

        self.paper_equity = Gauge("paper_equity", "Paper portfolio equity", ["portfolio"], registry=reg)
        self.paper_drawdown_percent = Gauge(
            "paper_drawdown_percent", "Paper portfolio drawdown percent", ["portfolio"], registry=reg
        )
        self.paper_open_positions = Gauge(
            "paper_open_positions", "Open paper positions", ["portfolio"], registry=reg
        )
        self.paper_positions_closed_total = Counter(
            "paper_positions_closed_total", "Paper positions closed by exit reason", ["reason"], registry=reg
        )

    def start(self, port: int) -> None:
        start_http_server(port, registry=self.registry)

    def update_portfolio(self, name: str, equity: float, drawdown_pct: float, open_positions: int) -> None:
        self.paper_equity.labels(portfolio=name).set(equity)
        self.paper_drawdown_percent.labels(portfolio=name).set(drawdown_pct)
        self.paper_open_positions.labels(portfolio=name).set(open_positions)


def start_metrics(monitoring: MonitoringConfig, registry: CollectorRegistry | None = None) -> Metrics | None:
    """Serve metrics on `monitoring.metrics_port`; None when metrics are disabled."""
    if not monitoring.metrics_enabled:
        return None
    metrics = Metrics(registry)
    try:
        metrics.start(monitoring.metrics_port)
    except OSError as exc:
        log.warning("metrics_start_failed", port=monitoring.metrics_port, error=str(exc))
    else:
        log.info("metrics_started", port=monitoring.metrics_port)
    return metrics

from __future__ import annotations

import logging
import math
import re
import shutil
from datetime import datetime, timedelta, timezone
from pathlib import Path
from uuid import uuid4

import pytest
import structlog
from prometheus_client import CollectorRegistry

from swingbot.market.candles import Candle, CandleSeries
from swingbot.monitoring.metrics import Metrics


def _safe_node_name(name: str) -> str:
    name = re.sub(r"[^A-Za-z0-9._-]+", "_", name).strip("._")
    return name or "test"


@pytest.fixture
def workspace_tmp_path(request: pytest.FixtureRequest) -> Path:
    """Temp dir rooted in the workspace rather than the system temp directory."""
    root = Path.cwd() / ".pytest_tmp_workspace" / _safe_node_name(request.node.name) / uuid4().hex
    root.mkdir(parents=True, exist_ok=True)
    try:
        yield root
    finally:
        shutil.rmtree(root, ignore_errors=True)


@pytest.fixture
def metrics() -> Metrics:
    return Metrics(CollectorRegistry())


def make_series(
    closes: list[float],
    symbol: str = "RELIANCE",
    interval: str = "1D",
    spread: float = 1.0,
    start: datetime | None = None,
    step: timedelta = timedelta(days=1),
) -> CandleSeries:
    start = start or datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)
    candles = []
    prev = closes[0]
    for i, close in enumerate(closes):
        candles.append(
            Candle(
                timestamp=start + step * i,
                open=prev,
                high=max(prev, close) + spread,
                low=min(prev, close) - spread,
                close=close,
                volume=1_000.0 + i,
            )
        )
        prev = close
    return CandleSeries(symbol, interval, candles)


def uptrend_closes(count: int = 250, start: float = 100.0, slope: float = 0.5) -> list[float]:
    return [start + i * slope + math.sin(i) * 0.8 for i in range(count)]


def downtrend_closes(count: int = 250, start: float = 300.0, slope: float = 0.5) -> list[float]:
    return [start - i * slope + math.sin(i) * 0.8 for i in range(count)]


@pytest.fixture
def restore_logging():
    """Undo the root handlers and structlog setup a CLI run installs."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)
    structlog.contextvars.clear_contextvars()
    structlog.reset_defaults()

"""CLI to mark a paper portfolio to market and print its summary.

With `--interval` the tool keeps running: each cycle reloads the ledger from
disk (the trading process appends to it), re-reads `--prices-file` and
reconciles again, serving paper gauges when metrics are enabled.
"""

from __future__ import annotations

import argparse
import time
from pathlib import Path

import orjson
import structlog

from swingbot.config.settings import Settings, load_settings
from swingbot.connectors.notifier import NotificationSink, build_notifier
from swingbot.monitoring.logging import bind_run_context, configure_logging
from swingbot.monitoring.metrics import Metrics, start_metrics
from swingbot.paper.ledger import PaperLedger
from swingbot.paper.portfolio import PaperPortfolio
from swingbot.paper.reconciler import PaperReconciler


log = structlog.get_logger(__name__)


def _parse_prices(values: list[str]) -> dict[str, float]:
    prices = {}
    for value in values:
        symbol, _, price = value.partition("=")
        if not price:
            raise SystemExit(f"invalid --price {value!r}, expected SYMBOL=PRICE")
        prices[symbol.strip().upper()] = float(price)
    return prices


def _read_prices_file(path: Path) -> dict[str, float]:
    """Latest closes from a JSON object of SYMBOL -> price; unreadable files give nothing."""
    try:
        data = orjson.loads(path.read_bytes())
    except (OSError, orjson.JSONDecodeError) as exc:
        log.warning("prices_file_unreadable", path=str(path), error=str(exc))
        return {}
    if not isinstance(data, dict):
        log.warning("prices_file_unreadable", path=str(path), error="expected a JSON object")
        return {}
    prices = {}
    for symbol, price in data.items():
        try:
            prices[str(symbol).upper()] = float(price)
        except (TypeError, ValueError):
            log.warning("prices_file_bad_price", symbol=symbol, price=price)
    return prices


def _reconcile_once(
    settings: Settings,
    name: str,
    prices: dict[str, float],
    notifier: NotificationSink,
    metrics: Metrics | None,
) -> dict:
    ledger = PaperLedger.load(name, settings.storage.paper_ledger_path)
    portfolio = PaperPortfolio(name, settings.paper.initial_capital, ledger)
    return PaperReconciler(portfolio, notifier=notifier, metrics=metrics).reconcile(prices)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Reconcile a paper portfolio.")
    parser.add_argument("--config", default=None, help="Path to config.yaml")
    parser.add_argument("--portfolio", default=None, help="Portfolio name (default from config)")
    parser.add_argument(
        "--price",
        action="append",
        default=[],
        help="Latest close as SYMBOL=PRICE; repeat for each open symbol",
    )
    parser.add_argument(
        "--prices-file",
        type=Path,
        default=None,
        help="JSON object of SYMBOL -> latest close, re-read every cycle; --price wins",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=0.0,
        help="Seconds between cycles; 0 reconciles once and exits",
    )
    parser.add_argument("--cycles", type=int, default=None, help="Stop after this many cycles")
    args = parser.parse_args(argv)

    settings = load_settings(args.config)
    configure_logging(settings.monitoring.log_level, settings.storage.logs_path, settings.monitoring)
    name = args.portfolio or settings.paper.portfolio_name
    bind_run_context(tool="reconcile", portfolio=name)

    fixed_prices = _parse_prices(args.price)
    notifier = build_notifier(settings.notifications)
    metrics = start_metrics(settings.monitoring) if args.interval > 0 else None

    cycles = 1 if args.interval <= 0 else args.cycles
    completed = 0
    while cycles is None or completed < cycles:
        if completed:
            time.sleep(args.interval)
        prices = _read_prices_file(args.prices_file) if args.prices_file else {}
        prices.update(fixed_prices)
        summary = _reconcile_once(settings, name, prices, notifier, metrics)
        print(orjson.dumps(summary, option=orjson.OPT_INDENT_2).decode(), flush=True)
        completed += 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

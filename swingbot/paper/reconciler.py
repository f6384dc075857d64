"""Periodic mark-to-market of a paper portfolio."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Mapping

import structlog

from swingbot.connectors.notifier import NotificationSink, safe_notify
from swingbot.market.source import CandleSource
from swingbot.paper.portfolio import PaperPortfolio

if TYPE_CHECKING:
    from swingbot.monitoring.metrics import Metrics


logger = structlog.get_logger(__name__)


def latest_closes(source: CandleSource, symbols: list[str], timeframe: str = "1D") -> dict[str, float]:
    prices = {}
    for symbol in symbols:
        series = source.load_series(symbol, timeframe, limit=1)
        if series is None or len(series) == 0:
            continue
        close = series.candles[-1].close
        if close is not None:
            prices[symbol] = float(close)
    return prices


class PaperReconciler:
    """Refresh unrealized P&L, equity, peak and drawdown.

    Positions are marked but never closed here; exit handling belongs to
    `PaperSimulator.check_exits`.
    """

    def __init__(
        self,
        portfolio: PaperPortfolio,
        notifier: NotificationSink | None = None,
        metrics: Metrics | None = None,
    ) -> None:
        self.portfolio = portfolio
        self.notifier = notifier
        self.metrics = metrics

    def reconcile(self, prices: Mapping[str, float] | CandleSource) -> dict[str, Any]:
        portfolio = self.portfolio
        with portfolio.lock:
            open_positions = portfolio.open_positions()
            if not isinstance(prices, Mapping):
                prices = latest_closes(prices, sorted({p.symbol for p in open_positions}))
            marked = 0
            for position in open_positions:
                price = prices.get(position.symbol)
                if price is None:
                    logger.warning(
                        "paper_price_missing",
                        portfolio=portfolio.name,
                        symbol=position.symbol,
                    )
                    continue
                position.current_price = float(price)
                marked += 1
            portfolio.refresh_equity()
            summary = portfolio.summary()
        summary["positions_marked"] = marked

        logger.info("paper_reconciled", **summary)
        if self.metrics:
            self.metrics.update_portfolio(
                portfolio.name,
                summary["equity"],
                summary["drawdown_pct"],
                summary["open_positions"],
            )
        safe_notify(
            self.notifier,
            f"PAPER SUMMARY {portfolio.name}: equity ₹{summary['equity']:.2f}, "
            f"drawdown {summary['drawdown_pct']:.2f}%",
            summary,
            self.metrics,
        )
        return summary

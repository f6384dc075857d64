"""Candle source interface consumed by the analyzers."""

from __future__ import annotations

from typing import Protocol

from swingbot.market.candles import CandleSeries


class CandleSource(Protocol):
    """Read-only, chronological candle provider."""

    def load_series(
        self, symbol: str, timeframe: str, limit: int | None = None
    ) -> CandleSeries | None: ...


class InMemoryCandleSource:
    """Candle source backed by preloaded series, keyed by (symbol, timeframe)."""

    def __init__(self, series: dict[tuple[str, str], CandleSeries] | None = None) -> None:
        self._series: dict[tuple[str, str], CandleSeries] = dict(series or {})

    def add(self, series: CandleSeries, timeframe: str | None = None) -> None:
        self._series[(series.symbol, timeframe or series.interval)] = series

    def load_series(
        self, symbol: str, timeframe: str, limit: int | None = None
    ) -> CandleSeries | None:
        series = self._series.get((symbol, timeframe))
        if series is None:
            return None
        if limit is not None and len(series) > limit:
            return CandleSeries(series.symbol, series.interval, series.candles[-limit:])
        return series

"""Candle containers and derived indicator series."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from functools import cached_property
from typing import Any, Iterable, Mapping

import numpy as np
import pandas as pd

from swingbot.features.indicators import (
    calculate_adx,
    calculate_atr,
    calculate_ema,
    calculate_hma,
    calculate_macd,
    calculate_rsi,
    calculate_sma,
    calculate_wma,
)


@dataclass(frozen=True)
class Candle:
    """One OHLCV bar. Price fields may be None for gap bars from incomplete feeds."""

    timestamp: datetime
    open: float | None
    high: float | None
    low: float | None
    close: float | None
    volume: float = 0.0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Candle":
        ts = data["timestamp"]
        if isinstance(ts, str):
            ts = datetime.fromisoformat(ts.replace("Z", "+00:00"))
        elif isinstance(ts, pd.Timestamp):
            ts = ts.to_pydatetime()
        return cls(
            timestamp=ts,
            open=_optional_float(data.get("open")),
            high=_optional_float(data.get("high")),
            low=_optional_float(data.get("low")),
            close=_optional_float(data.get("close")),
            volume=float(data.get("volume") or 0.0),
        )


def _optional_float(value: Any) -> float | None:
    if value is None:
        return None
    result = float(value)
    return None if math.isnan(result) else result


def _value_at(series: pd.Series, index: int | None) -> float | None:
    if series.empty:
        return None
    pos = len(series) - 1 if index is None else index
    if pos < 0 or pos >= len(series):
        return None
    value = series.iloc[pos]
    if value is None or pd.isna(value):
        return None
    return float(value)


@dataclass(frozen=True)
class CandleSeries:
    """Ordered OHLCV bars for one instrument and interval.

    Timestamps are strictly increasing. Derived values are computed with causal
    rolling/EWM windows, so the value at index i only ever reads candles[0..i].
    Scalar accessors take an optional `index` (default: latest bar).
    """

    symbol: str
    interval: str
    candles: tuple[Candle, ...] = ()
    _cache: dict[tuple, Any] = field(default_factory=dict, init=False, compare=False, repr=False)

    def __post_init__(self) -> None:
        if not isinstance(self.candles, tuple):
            object.__setattr__(self, "candles", tuple(self.candles))
        for prev, current in zip(self.candles, self.candles[1:]):
            if current.timestamp <= prev.timestamp:
                raise ValueError(
                    f"candles must be strictly increasing: {prev.timestamp} >= {current.timestamp}"
                )

    @classmethod
    def from_records(
        cls,
        symbol: str,
        interval: str,
        records: Iterable[Mapping[str, Any] | Candle],
    ) -> "CandleSeries":
        """Build a series from raw rows, collapsing duplicate timestamps (last write wins)."""
        by_timestamp: dict[datetime, Candle] = {}
        for record in records:
            candle = record if isinstance(record, Candle) else Candle.from_dict(record)
            by_timestamp[candle.timestamp] = candle
        ordered = tuple(by_timestamp[ts] for ts in sorted(by_timestamp))
        return cls(symbol=symbol, interval=interval, candles=ordered)

    @classmethod
    def from_frame(cls, symbol: str, interval: str, df: pd.DataFrame) -> "CandleSeries":
        """Build a series from a DataFrame indexed by timestamp."""
        records = []
        for ts, row in df.iterrows():
            data = row.to_dict()
            data["timestamp"] = ts
            records.append(data)
        return cls.from_records(symbol, interval, records)

    def __len__(self) -> int:
        return len(self.candles)

    @property
    def size(self) -> int:
        return len(self.candles)

    @property
    def latest_candle(self) -> Candle | None:
        return self.candles[-1] if self.candles else None

    @property
    def latest_close(self) -> float | None:
        return self.candles[-1].close if self.candles else None

    def prefix(self, index: int) -> "CandleSeries":
        """Series truncated to candles[0..index] inclusive."""
        return CandleSeries(self.symbol, self.interval, self.candles[: index + 1])

    @cached_property
    def frame(self) -> pd.DataFrame:
        data = {
            "open": [c.open for c in self.candles],
            "high": [c.high for c in self.candles],
            "low": [c.low for c in self.candles],
            "close": [c.close for c in self.candles],
            "volume": [c.volume for c in self.candles],
        }
        index = pd.DatetimeIndex([c.timestamp for c in self.candles], name="timestamp")
        return pd.DataFrame(data, index=index, dtype=float)

    @property
    def closes(self) -> np.ndarray:
        return self.frame["close"].to_numpy(dtype=float)

    @property
    def highs(self) -> np.ndarray:
        return self.frame["high"].to_numpy(dtype=float)

    @property
    def lows(self) -> np.ndarray:
        return self.frame["low"].to_numpy(dtype=float)

    @property
    def volumes(self) -> np.ndarray:
        return self.frame["volume"].to_numpy(dtype=float)

    def _cached(self, key: tuple, compute) -> Any:
        if key not in self._cache:
            self._cache[key] = compute()
        return self._cache[key]

    # Full derived series

    def sma_series(self, period: int) -> pd.Series:
        return self._cached(("sma", period), lambda: calculate_sma(self.frame["close"], period))

    def ema_series(self, period: int) -> pd.Series:
        return self._cached(("ema", period), lambda: calculate_ema(self.frame["close"], period))

    def wma_series(self, period: int) -> pd.Series:
        return self._cached(("wma", period), lambda: calculate_wma(self.frame["close"], period))

    def hma_series(self, length: int) -> pd.Series:
        return self._cached(("hma", length), lambda: calculate_hma(self.frame["close"], length))

    def rsi_series(self, period: int = 14) -> pd.Series:
        return self._cached(("rsi", period), lambda: calculate_rsi(self.frame["close"], period))

    def atr_series(self, period: int = 14) -> pd.Series:
        return self._cached(("atr", period), lambda: calculate_atr(self.frame, period))

    def adx_frame(self, period: int = 14) -> pd.DataFrame:
        return self._cached(("adx", period), lambda: calculate_adx(self.frame, period))

    def macd_frame(self, fast: int = 12, slow: int = 26, signal: int = 9) -> pd.DataFrame:
        return self._cached(
            ("macd", fast, slow, signal),
            lambda: calculate_macd(self.frame["close"], fast, slow, signal),
        )

    # Scalar accessors

    def sma(self, period: int = 20, index: int | None = None) -> float | None:
        return _value_at(self.sma_series(period), index)

    def ema(self, period: int = 20, index: int | None = None) -> float | None:
        return _value_at(self.ema_series(period), index)

    def rsi(self, period: int = 14, index: int | None = None) -> float | None:
        return _value_at(self.rsi_series(period), index)

    def atr(self, period: int = 14, index: int | None = None) -> float | None:
        return _value_at(self.atr_series(period), index)

    def adx(self, period: int = 14, index: int | None = None) -> float | None:
        return _value_at(self.adx_frame(period)["adx"], index)

    def macd(
        self,
        fast: int = 12,
        slow: int = 26,
        signal: int = 9,
        index: int | None = None,
    ) -> tuple[float, float, float] | None:
        """(macd, signal, histogram) at index, or None while undefined."""
        frame = self.macd_frame(fast, slow, signal)
        values = (
            _value_at(frame["macd"], index),
            _value_at(frame["signal"], index),
            _value_at(frame["histogram"], index),
        )
        if any(v is None for v in values):
            return None
        return values  # type: ignore[return-value]

    def highest_high(self, lookback: int, index: int | None = None) -> float | None:
        end = len(self.candles) if index is None else index + 1
        window = self.highs[max(0, end - lookback) : end]
        window = window[~np.isnan(window)]
        return float(window.max()) if window.size else None

    def lowest_low(self, lookback: int, index: int | None = None) -> float | None:
        end = len(self.candles) if index is None else index + 1
        window = self.lows[max(0, end - lookback) : end]
        window = window[~np.isnan(window)]
        return float(window.min()) if window.size else None

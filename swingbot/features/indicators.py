"""Technical indicator calculations.

Every function here is causal: the value at row i depends only on rows 0..i,
so computing over a whole series and slicing equals computing over a prefix.
"""

from __future__ import annotations

import math

import numpy as np
import pandas as pd


def calculate_sma(series: pd.Series, period: int) -> pd.Series:
    """Simple moving average."""
    return series.rolling(window=period, min_periods=period).mean()


def calculate_ema(series: pd.Series, period: int) -> pd.Series:
    """Exponential moving average, undefined until `period` observations."""
    return series.ewm(span=period, adjust=False, min_periods=period).mean()


def calculate_wma(series: pd.Series, period: int) -> pd.Series:
    """Linearly weighted moving average (weights 1..period, newest heaviest)."""
    weights = np.arange(1, period + 1, dtype=float)
    total = weights.sum()
    return series.rolling(window=period, min_periods=period).apply(
        lambda window: float(np.dot(window, weights) / total), raw=True
    )


def calculate_hma(series: pd.Series, length: int) -> pd.Series:
    """Hull moving average: WMA_sqrt(2 * WMA_half - WMA_full)."""
    half = max(1, length // 2)
    sqrt_length = max(1, int(math.floor(math.sqrt(length))))
    raw = 2 * calculate_wma(series, half) - calculate_wma(series, length)
    return calculate_wma(raw, sqrt_length)


def _smooth(series: pd.Series, period: int, alpha: float | None = None) -> pd.Series:
    """Smooth series using Wilder's smoothing (EMA with alpha=1/period)."""
    if alpha is None:
        alpha = 1.0 / period
    return series.ewm(alpha=alpha, adjust=False, min_periods=period).mean()


def calculate_true_range(df: pd.DataFrame) -> pd.Series:
    """True range; the first row falls back to high - low."""
    high = df["high"]
    low = df["low"]
    prev_close = df["close"].shift(1)
    true_range = pd.concat(
        [
            (high - low).abs(),
            (high - prev_close).abs(),
            (low - prev_close).abs(),
        ],
        axis=1,
    ).max(axis=1, skipna=True)
    # Rows with a missing high or low have no range at all.
    return true_range.where(high.notna() & low.notna())


def calculate_atr(df: pd.DataFrame, period: int) -> pd.Series:
    """Average True Range (Wilder)."""
    true_range = calculate_true_range(df)
    atr = _smooth(true_range, period)
    # Need period + 1 candles so that at least `period` ranges see a previous close.
    atr.iloc[: period] = np.nan
    return atr


def calculate_rsi(series: pd.Series, period: int) -> pd.Series:
    """Relative Strength Index (Wilder)."""
    delta = series.diff()
    gains = delta.where(delta > 0, 0.0).where(delta.notna())
    losses = (-delta.where(delta < 0, 0.0)).where(delta.notna())
    avg_gain = _smooth(gains, period)
    avg_loss = _smooth(losses, period)
    rs = avg_gain / avg_loss.replace(0, np.nan)
    rsi = 100 - (100 / (1 + rs))
    # No losses in the window: fully bullish, unless there were no moves at all.
    rsi = rsi.mask(avg_loss.eq(0) & avg_gain.gt(0), 100.0)
    rsi = rsi.mask(avg_loss.eq(0) & avg_gain.eq(0), 50.0)
    return rsi


def calculate_adx(df: pd.DataFrame, period: int = 14) -> pd.DataFrame:
    """Average Directional Index with its directional indicators.

    ADX > 25 = trending, ADX < 20 = ranging/choppy.
    Returns a DataFrame with `adx`, `plus_di` and `minus_di` columns.
    """
    high = df["high"]
    low = df["low"]

    tr = calculate_true_range(df)

    plus_dm = high.diff()
    minus_dm = -low.diff()

    plus_dm = plus_dm.where((plus_dm > minus_dm) & (plus_dm > 0), 0.0)
    minus_dm = minus_dm.where((minus_dm > plus_dm) & (minus_dm > 0), 0.0)

    tr_smooth = _smooth(tr, period)
    plus_di = _smooth(plus_dm, period) / tr_smooth * 100
    minus_di = _smooth(minus_dm, period) / tr_smooth * 100

    dx = (plus_di - minus_di).abs() / (plus_di + minus_di) * 100
    dx = dx.replace([np.inf, -np.inf], np.nan)

    adx = _smooth(dx, period)
    adx.iloc[: period] = np.nan

    return pd.DataFrame({"adx": adx, "plus_di": plus_di, "minus_di": minus_di}, index=df.index)


def calculate_macd(
    series: pd.Series,
    fast_period: int = 12,
    slow_period: int = 26,
    signal_period: int = 9,
) -> pd.DataFrame:
    """MACD line, signal line and histogram.

    Undefined until `slow_period + signal_period` observations.
    """
    macd_line = calculate_ema(series, fast_period) - calculate_ema(series, slow_period)
    signal_line = macd_line.ewm(span=signal_period, adjust=False, min_periods=signal_period).mean()
    histogram = macd_line - signal_line
    result = pd.DataFrame(
        {"macd": macd_line, "signal": signal_line, "histogram": histogram},
        index=series.index,
    )
    result.iloc[: slow_period + signal_period - 1] = np.nan
    return result


def calculate_linear_slope_pct(values: np.ndarray) -> float:
    """Least-squares slope of `values` as a percent of their mean."""
    n = len(values)
    if n < 2:
        return 0.0
    x = np.arange(n, dtype=float)
    x_mean = x.mean()
    y_mean = float(np.mean(values))
    denominator = float(((x - x_mean) ** 2).sum())
    if denominator == 0 or y_mean == 0:
        return 0.0
    slope = float(((x - x_mean) * (values - y_mean)).sum()) / denominator
    return round(slope / y_mean * 100, 2)

"""Adaptive Supertrend.

The ATR multiplier is re-tuned bar by bar: recent bars are clustered into
volatility regimes with a small k-means pass, the regime picks a subset of
candidate multipliers, and the candidate with the best running accuracy wins.
The whole-series pass runs once per series and is returned as a
`SupertrendHandle` that per-index lookups slice into.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any

import numpy as np
import structlog

from swingbot.config.settings import SupertrendConfig
from swingbot.indicators.base import Indicator, IndicatorResult, TrendDirection
from swingbot.market.candles import CandleSeries


logger = structlog.get_logger(__name__)

DEFAULT_BASE_MULTIPLIER = 2.0
MAX_KMEANS_ITERATIONS = 20
KMEANS_TOLERANCE = 0.001
PERFORMANCE_LOOKBACK = 5

_BULLISH = 1
_BEARISH = -1


@dataclass(frozen=True, eq=False)
class SupertrendHandle:
    """Precomputed Supertrend arrays for one series.

    `series_id` ties the handle to the series it was computed from. Arrays are
    NaN (or 0 for `trend`) where the bar had no usable value.
    """

    series_id: tuple[str, str, int]
    period: int
    base_multiplier: float
    training_period: int
    num_clusters: int
    line: np.ndarray
    trend: np.ndarray
    atr: np.ndarray
    multipliers: np.ndarray
    performance_scores: dict[float, float] = field(default_factory=dict)

    @property
    def empty(self) -> bool:
        return self.line.size == 0

    def _valid(self, index: int | None) -> bool:
        return index is not None and 0 <= index < self.line.size

    def line_at(self, index: int) -> float | None:
        if not self._valid(index) or np.isnan(self.line[index]):
            return None
        return float(self.line[index])

    def trend_at(self, index: int) -> TrendDirection | None:
        if not self._valid(index):
            return None
        value = int(self.trend[index])
        if value == _BULLISH:
            return TrendDirection.BULLISH
        if value == _BEARISH:
            return TrendDirection.BEARISH
        return None

    def last_index(self) -> int | None:
        valid = np.flatnonzero(~np.isnan(self.line))
        return int(valid[-1]) if valid.size else None

    @property
    def latest_trend(self) -> TrendDirection | None:
        index = self.last_index()
        return None if index is None else self.trend_at(index)

    @property
    def last_value(self) -> float | None:
        index = self.last_index()
        return None if index is None else self.line_at(index)

    def get_adaptive_multiplier(self, index: int) -> float:
        if not self._valid(index) or index < self.training_period:
            return self.base_multiplier
        return float(self.multipliers[index])

    def get_current_volatility_regime(self, index: int | None) -> str:
        if index is None or index < self.training_period:
            return "unknown"
        multiplier = self.get_adaptive_multiplier(index)
        if multiplier < self.base_multiplier:
            return "low"
        if multiplier < self.base_multiplier + 0.75:
            return "medium"
        return "high"

    def get_performance_metrics(self) -> dict[str, Any]:
        return {
            "multiplier_scores": dict(self.performance_scores),
            "total_clusters": self.num_clusters,
            "training_period": self.training_period,
        }


def _rms_of_returns(window: np.ndarray) -> float:
    if window.size < 2:
        return 0.0
    prev = window[:-1]
    nxt = window[1:]
    mask = ~np.isnan(prev) & ~np.isnan(nxt) & (prev != 0)
    if not mask.any():
        return 0.0
    returns = (nxt[mask] - prev[mask]) / prev[mask]
    return float(math.sqrt(float(np.mean(returns * returns))))


def _volatility_factor(closes: np.ndarray, index: int) -> float:
    if index < 20:
        return 1.0
    recent = _rms_of_returns(closes[index - 19 : index + 1])
    historical = _rms_of_returns(closes[max(index - 100, 0) : index + 1])
    if historical == 0:
        return 1.0
    return recent / historical


def _true_ranges(highs: np.ndarray, lows: np.ndarray, closes: np.ndarray) -> np.ndarray:
    size = closes.size
    ranges = np.full(size, np.nan)
    for i in range(size):
        high, low = highs[i], lows[i]
        if np.isnan(high) or np.isnan(low):
            continue
        if i == 0:
            ranges[i] = high - low
            continue
        prev_close = closes[i - 1]
        if np.isnan(prev_close):
            continue
        ranges[i] = max(high - low, abs(high - prev_close), abs(low - prev_close))
    return ranges


def _adaptive_atr(ranges: np.ndarray, closes: np.ndarray, period: int) -> np.ndarray:
    """Adaptive ATR; a gap bar stays NaN and the next bar carries on from the last value."""
    size = closes.size
    atr = np.full(size, np.nan)
    last: float | None = None
    for i in range(period, size):
        if np.isnan(ranges[i]):
            continue
        if last is None:
            window = ranges[max(1, i - period + 1) : i + 1]
            last = float(window[~np.isnan(window)].mean())
        else:
            alpha = max(0.05, 0.2 / (1.0 + _volatility_factor(closes, i)))
            last = alpha * ranges[i] + (1.0 - alpha) * last
        atr[i] = last
    return atr


def _volatility_features(
    closes: np.ndarray,
    atr: np.ndarray,
    index: int,
    period: int,
    training_period: int,
) -> np.ndarray:
    """Rows of [normalised ATR, 10-bar volatility %, distance from SMA10 %]."""
    if index < period + 10:
        return np.empty((0, 3))
    start = max(index - training_period, period)
    window_atr = atr[start:index]
    window_atr = window_atr[~np.isnan(window_atr)]
    avg_atr = float(window_atr.mean()) if window_atr.size else None

    rows = []
    for j in range(start, index):
        if np.isnan(atr[j]):
            continue
        mean_atr = avg_atr if avg_atr is not None else atr[j]
        normalized = 1.0 if mean_atr == 0 else atr[j] / mean_atr
        volatility = _rms_of_returns(closes[j - 9 : j + 1]) if j >= 10 else 0.0
        ma_prices = closes[max(j - 9, 0) : j + 1]
        ma_prices = ma_prices[~np.isnan(ma_prices)]
        moving_avg = float(ma_prices.mean()) if ma_prices.size else closes[j]
        if moving_avg == 0 or np.isnan(moving_avg) or np.isnan(closes[j]):
            trend_strength = 0.0
        else:
            trend_strength = (closes[j] - moving_avg) / moving_avg
        rows.append([float(normalized), volatility * 100.0, trend_strength * 100.0])
    if not rows:
        return np.empty((0, 3))
    return np.asarray(rows, dtype=float)


def _kmeans_last_label(features: np.ndarray, num_clusters: int) -> int:
    """Cluster `features` and return the regime label of the most recent row.

    Centroids start at evenly spaced points of the features ordered by
    normalised ATR; labels are renumbered so 0 is the lowest-ATR cluster.
    """
    k = min(num_clusters, len(features))
    if k <= 1:
        return 0

    order = np.argsort(features[:, 0], kind="stable")
    seeds = [order[round(n * (len(order) - 1) / (k - 1))] for n in range(k)]
    centroids = features[seeds].copy()
    labels = np.zeros(len(features), dtype=int)

    for _ in range(MAX_KMEANS_ITERATIONS):
        distances = np.linalg.norm(features[:, None, :] - centroids[None, :, :], axis=2)
        labels = distances.argmin(axis=1)
        updated = centroids.copy()
        for cluster in range(k):
            members = features[labels == cluster]
            if len(members):
                updated[cluster] = members.mean(axis=0)
        shift = np.linalg.norm(updated - centroids, axis=1)
        if bool((shift < KMEANS_TOLERANCE).all()):
            break
        centroids = updated

    ranking = np.argsort(centroids[:, 0], kind="stable")
    relabel = {int(cluster): rank for rank, cluster in enumerate(ranking)}
    return relabel[int(labels[-1])]


def _select_multiplier(
    label: int,
    candidates: list[float],
    base: float,
    scores: dict[float, float],
) -> float:
    if label == 0:
        subset = [m for m in candidates if m <= base + 0.5]
    elif label == 1:
        subset = [m for m in candidates if base <= m <= base + 1.0]
    elif label == 2:
        subset = [m for m in candidates if m >= base + 0.5]
    else:
        subset = []
    if not subset:
        subset = list(candidates)

    best = subset[0]
    for candidate in subset[1:]:
        if scores[candidate] > scores[best]:
            best = candidate
    return best


def _update_score(
    scores: dict[float, float],
    multiplier: float,
    index: int,
    highs: np.ndarray,
    lows: np.ndarray,
    closes: np.ndarray,
    atr: np.ndarray,
    period: int,
    alpha: float,
) -> None:
    if index < period + PERFORMANCE_LOOKBACK:
        return
    correct = 0
    total = 0
    for j in range(max(index - PERFORMANCE_LOOKBACK, period), index):
        if np.isnan(atr[j]) or np.isnan(highs[j]) or np.isnan(lows[j]):
            continue
        close, next_close = closes[j], closes[j + 1]
        if np.isnan(close) or np.isnan(next_close):
            continue
        mid = (highs[j] + lows[j]) / 2.0
        upper = mid + multiplier * atr[j]
        lower = mid - multiplier * atr[j]
        if (close > upper and next_close > close) or (close < lower and next_close < close):
            correct += 1
        total += 1
    if total == 0:
        return
    scores[multiplier] = (1 - alpha) * scores[multiplier] + alpha * (correct / total)


def _band_line(
    highs: np.ndarray,
    lows: np.ndarray,
    closes: np.ndarray,
    atr: np.ndarray,
    multipliers: np.ndarray,
    period: int,
) -> np.ndarray:
    size = closes.size
    line = np.full(size, np.nan)
    # +1 while riding the upper band, -1 on the lower band, 0 when undefined
    side = np.zeros(size, dtype=int)

    for i in range(size):
        if np.isnan(atr[i]) or np.isnan(highs[i]) or np.isnan(lows[i]):
            continue
        mid = (highs[i] + lows[i]) / 2.0
        upper = mid + multipliers[i] * atr[i]
        lower = mid - multipliers[i] * atr[i]
        close = closes[i]
        has_close = not np.isnan(close)

        if i <= period or side[i - 1] == 0:
            on_upper = has_close and close <= upper
            line[i] = upper if on_upper else lower
            side[i] = 1 if on_upper else -1
            continue

        prev = line[i - 1]
        if side[i - 1] == 1:
            if has_close and close <= upper:
                line[i], side[i] = min(upper, prev), 1
            else:
                line[i], side[i] = lower, -1
        elif has_close and close >= lower:
            line[i], side[i] = max(lower, prev), -1
        else:
            line[i], side[i] = upper, 1
    return line


def _empty_handle(series_id: tuple[str, str, int], config: SupertrendConfig) -> SupertrendHandle:
    nothing = np.empty(0)
    return SupertrendHandle(
        series_id=series_id,
        period=config.period,
        base_multiplier=float(config.multiplier),
        training_period=config.training_period,
        num_clusters=config.num_clusters,
        line=nothing,
        trend=np.empty(0, dtype=int),
        atr=nothing,
        multipliers=nothing,
        performance_scores={float(m): 0.0 for m in config.multiplier_candidates},
    )


def compute_adaptive_supertrend(
    series: CandleSeries,
    config: SupertrendConfig | None = None,
) -> SupertrendHandle:
    """Run the adaptive Supertrend over `series` once and return its handle.

    Every value at index i reads only candles[0..i]. Series shorter than the
    training period ride the base multiplier throughout.
    """
    if config is None:
        config = SupertrendConfig(multiplier=DEFAULT_BASE_MULTIPLIER)

    series_id = (series.symbol, series.interval, len(series))
    period = config.period
    training_period = config.training_period
    base = float(config.multiplier)
    candidates = [float(m) for m in config.multiplier_candidates]

    if len(series) < period + 1:
        return _empty_handle(series_id, config)

    highs, lows, closes = series.highs, series.lows, series.closes
    size = closes.size

    atr = _adaptive_atr(_true_ranges(highs, lows, closes), closes, period)

    scores = {m: 0.0 for m in candidates}
    chosen: list[float | None] = [None] * size
    for i in range(training_period, size):
        features = _volatility_features(closes, atr, i, period, training_period)
        if len(features) == 0:
            continue
        label = _kmeans_last_label(features, max(1, config.num_clusters))
        multiplier = _select_multiplier(label, candidates, base, scores)
        chosen[i] = multiplier
        _update_score(
            scores, multiplier, i, highs, lows, closes, atr, period, config.performance_alpha
        )

    multipliers = np.empty(size)
    last = base
    for i, value in enumerate(chosen):
        if value is not None:
            last = value
        multipliers[i] = last

    line = _band_line(highs, lows, closes, atr, multipliers, period)
    trend = np.zeros(size, dtype=int)
    valid = ~np.isnan(line) & ~np.isnan(closes)
    trend[valid] = np.where(closes[valid] >= line[valid], _BULLISH, _BEARISH)

    logger.debug(
        "supertrend_computed",
        symbol=series.symbol,
        interval=series.interval,
        candles=size,
        scores=scores,
    )
    return SupertrendHandle(
        series_id=series_id,
        period=period,
        base_multiplier=base,
        training_period=training_period,
        num_clusters=config.num_clusters,
        line=line,
        trend=trend,
        atr=atr,
        multipliers=multipliers,
        performance_scores=scores,
    )


class SupertrendIndicator(Indicator):
    """Indicator view over a `SupertrendHandle`.

    Confidence is 60, plus 20 when the trend has held since the previous bar.
    """

    name = "supertrend"

    def __init__(
        self,
        series: CandleSeries,
        config: SupertrendConfig | None = None,
        trading_hours_filter: bool = False,
        handle: SupertrendHandle | None = None,
    ) -> None:
        super().__init__(series, trading_hours_filter)
        self.config = config or SupertrendConfig()
        self._handle = handle

    @property
    def handle(self) -> SupertrendHandle:
        if self._handle is None:
            self._handle = compute_adaptive_supertrend(self.series, self.config)
        return self._handle

    def min_required_candles(self) -> int:
        return self.config.period

    def _calculate(self, index: int) -> IndicatorResult | None:
        handle = self.handle
        trend = handle.trend_at(index)
        if trend is None:
            return None
        confidence = 60.0
        if handle.trend_at(index - 1) == trend:
            confidence += 20.0
        return IndicatorResult(
            value=handle.line_at(index),
            direction=trend,
            confidence=confidence,
            extras={
                "multiplier": handle.get_adaptive_multiplier(index),
                "regime": handle.get_current_volatility_regime(index),
            },
        )

"""Trend duration forecast.

Detects trends as strictly monotonic runs of the Hull moving average and keeps
a bounded history of how long finished runs lasted, per direction, so the
current run can be compared with a probable length.
"""

from __future__ import annotations

import math
from collections import deque
from dataclasses import dataclass

import numpy as np

from swingbot.config.thresholds import merge_with_thresholds
from swingbot.indicators.base import Indicator, IndicatorResult, TrendDirection, clamp_confidence
from swingbot.market.candles import CandleSeries


@dataclass(frozen=True)
class DurationSnapshot:
    direction: TrendDirection
    hma: float
    count: int
    probable: float
    history_size: int


def _detect(values: np.ndarray, index: int, trend_length: int) -> TrendDirection:
    if trend_length < 2 or index + 1 < trend_length:
        return TrendDirection.NEUTRAL
    window = values[index + 1 - trend_length : index + 1]
    if np.isnan(window).any():
        return TrendDirection.NEUTRAL
    steps = np.diff(window)
    if (steps > 0).all():
        return TrendDirection.BULLISH
    if (steps < 0).all():
        return TrendDirection.BEARISH
    return TrendDirection.NEUTRAL


class TrendDurationIndicator(Indicator):
    name = "trend_duration"

    def __init__(
        self,
        series: CandleSeries,
        hma_length: int = 20,
        trend_length: int | None = None,
        samples: int = 10,
        preset: str | None = None,
        trading_hours_filter: bool = False,
    ) -> None:
        super().__init__(series, trading_hours_filter)
        self.hma_length = hma_length
        thresholds = merge_with_thresholds("trend_duration", {"trend_length": trend_length}, preset)
        self.trend_length = int(thresholds.get("trend_length", 5))
        self.samples = samples
        self._snapshots: list[DurationSnapshot | None] | None = None

    def min_required_candles(self) -> int:
        return self.hma_length + math.ceil(math.sqrt(self.hma_length))

    def _scan(self) -> list[DurationSnapshot | None]:
        """One causal pass over the series; the state at i reads bars 0..i only."""
        hma = self.series.hma_series(self.hma_length).to_numpy(dtype=float)
        history = {
            TrendDirection.BULLISH: deque(maxlen=self.samples),
            TrendDirection.BEARISH: deque(maxlen=self.samples),
        }
        current: TrendDirection | None = None
        count = 0
        snapshots: list[DurationSnapshot | None] = []

        for i in range(len(hma)):
            direction = _detect(hma, i, self.trend_length)
            if direction is TrendDirection.NEUTRAL:
                snapshots.append(None)
                continue
            if current is not None and current is not direction:
                history[current].append(count)
                count = 0
            current = direction
            count += 1

            runs = history[direction]
            probable = sum(runs) / len(runs) if runs else float(count)
            snapshots.append(
                DurationSnapshot(
                    direction=direction,
                    hma=float(hma[i]),
                    count=count,
                    probable=probable,
                    history_size=len(runs),
                )
            )
        return snapshots

    def snapshot_at(self, index: int) -> DurationSnapshot | None:
        if self._snapshots is None:
            self._snapshots = self._scan()
        if index < 0 or index >= len(self._snapshots):
            return None
        return self._snapshots[index]

    def _calculate(self, index: int) -> IndicatorResult | None:
        snap = self.snapshot_at(index)
        if snap is None:
            return None

        confidence = 50.0
        if snap.count >= self.trend_length:
            confidence += 20
        if snap.probable > 0:
            ratio = snap.count / snap.probable
            if 0.8 <= ratio <= 1.2:
                confidence += 15
            elif ratio < 0.5:
                confidence += 10
        if snap.history_size >= 5:
            confidence += 10

        return IndicatorResult(
            value={
                "hma": snap.hma,
                "trend_direction": snap.direction.value,
                "real_length": snap.count,
                "probable_length": snap.probable,
                "slope": "up" if snap.direction is TrendDirection.BULLISH else "down",
            },
            direction=snap.direction,
            confidence=clamp_confidence(confidence),
        )

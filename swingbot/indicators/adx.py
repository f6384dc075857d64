from __future__ import annotations

from swingbot.config.thresholds import merge_with_thresholds
from swingbot.indicators.base import Indicator, IndicatorResult, TrendDirection, clamp_confidence
from swingbot.market.candles import CandleSeries


class AdxIndicator(Indicator):
    """Trend strength from ADX; direction comes from the last three closes."""

    name = "adx"

    def __init__(
        self,
        series: CandleSeries,
        period: int = 14,
        preset: str | None = None,
        min_strength: float | None = None,
        confidence_base: float | None = None,
        trading_hours_filter: bool = False,
    ) -> None:
        super().__init__(series, trading_hours_filter)
        self.period = period
        thresholds = merge_with_thresholds(
            "adx",
            {"min_strength": min_strength, "confidence_base": confidence_base},
            preset,
        )
        self.min_strength = float(thresholds.get("min_strength", 20))
        self.confidence_base = float(thresholds.get("confidence_base", 50))

    def min_required_candles(self) -> int:
        return self.period + 1

    def _direction(self, index: int) -> TrendDirection:
        if index < 2:
            return TrendDirection.NEUTRAL
        recent = [c.close for c in self.series.candles[index - 2 : index + 1] if c.close is not None]
        if len(recent) < 2:
            return TrendDirection.NEUTRAL
        if recent[-1] > recent[0]:
            return TrendDirection.BULLISH
        if recent[-1] < recent[0]:
            return TrendDirection.BEARISH
        return TrendDirection.NEUTRAL

    def _calculate(self, index: int) -> IndicatorResult | None:
        value = self.series.adx(self.period, index=index)
        if value is None or value < self.min_strength:
            return None

        confidence = self.confidence_base + 20
        if value >= 30:
            confidence += 15
        if value >= 40:
            confidence += 10

        return IndicatorResult(
            value=value,
            direction=self._direction(index),
            confidence=clamp_confidence(confidence),
        )

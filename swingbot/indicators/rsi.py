from __future__ import annotations

from swingbot.config.thresholds import merge_with_thresholds
from swingbot.indicators.base import Indicator, IndicatorResult, TrendDirection, clamp_confidence
from swingbot.market.candles import CandleSeries


class RsiIndicator(Indicator):
    """Mean-reversion read of RSI: oversold is bullish, overbought bearish."""

    name = "rsi"

    def __init__(
        self,
        series: CandleSeries,
        period: int = 14,
        preset: str | None = None,
        oversold: float | None = None,
        overbought: float | None = None,
        confidence_base: float | None = None,
        trading_hours_filter: bool = False,
    ) -> None:
        super().__init__(series, trading_hours_filter)
        self.period = period
        thresholds = merge_with_thresholds(
            "rsi",
            {"oversold": oversold, "overbought": overbought, "confidence_base": confidence_base},
            preset,
        )
        self.oversold = float(thresholds.get("oversold", 30))
        self.overbought = float(thresholds.get("overbought", 70))
        self.confidence_base = float(thresholds.get("confidence_base", 40))

    def min_required_candles(self) -> int:
        return self.period + 1

    def _calculate(self, index: int) -> IndicatorResult | None:
        value = self.series.rsi(self.period, index=index)
        if value is None:
            return None

        confidence = self.confidence_base
        if value < self.oversold:
            direction = TrendDirection.BULLISH
            if value < 25:
                confidence += 30
            confidence += 20
        elif value > self.overbought:
            direction = TrendDirection.BEARISH
            if value > 75:
                confidence += 30
            confidence += 20
        else:
            return None

        return IndicatorResult(value=value, direction=direction, confidence=clamp_confidence(confidence))

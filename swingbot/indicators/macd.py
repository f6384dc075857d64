from __future__ import annotations

from swingbot.config.thresholds import merge_with_thresholds
from swingbot.indicators.base import Indicator, IndicatorResult, TrendDirection, clamp_confidence
from swingbot.market.candles import CandleSeries


class MacdIndicator(Indicator):
    name = "macd"

    def __init__(
        self,
        series: CandleSeries,
        fast_period: int = 12,
        slow_period: int = 26,
        signal_period: int = 9,
        preset: str | None = None,
        min_histogram: float | None = None,
        trading_hours_filter: bool = False,
    ) -> None:
        super().__init__(series, trading_hours_filter)
        self.fast_period = fast_period
        self.slow_period = slow_period
        self.signal_period = signal_period
        thresholds = merge_with_thresholds("macd", {"min_histogram": min_histogram}, preset)
        self.min_histogram = float(thresholds.get("min_histogram", 0.5))

    def min_required_candles(self) -> int:
        return self.slow_period + self.signal_period

    def _calculate(self, index: int) -> IndicatorResult | None:
        values = self.series.macd(self.fast_period, self.slow_period, self.signal_period, index=index)
        if values is None:
            return None
        macd_line, signal_line, histogram = values

        confidence = 40.0
        if macd_line > signal_line and histogram > 0:
            direction = TrendDirection.BULLISH
            confidence += 40
        elif macd_line < signal_line and histogram < 0:
            direction = TrendDirection.BEARISH
            confidence += 40
        else:
            direction = TrendDirection.NEUTRAL
        if direction is not TrendDirection.NEUTRAL and abs(histogram) > self.min_histogram:
            confidence += 10

        return IndicatorResult(
            value={"macd": macd_line, "signal": signal_line, "histogram": histogram},
            direction=direction,
            confidence=clamp_confidence(confidence),
        )

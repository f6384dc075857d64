"""Indicator contract shared by every indicator type."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import time
from enum import StrEnum
from typing import Any
from zoneinfo import ZoneInfo

from swingbot.market.candles import Candle, CandleSeries


IST = ZoneInfo("Asia/Kolkata")
SESSION_START = time(10, 0)
SESSION_END = time(14, 30)


class TrendDirection(StrEnum):
    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"


@dataclass(frozen=True)
class IndicatorResult:
    value: Any
    direction: TrendDirection
    confidence: float
    extras: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "confidence", float(min(100.0, max(0.0, self.confidence))))


def clamp_confidence(value: float) -> float:
    return float(min(100.0, max(0.0, value)))


def within_trading_hours(candle: Candle) -> bool:
    """True for bars stamped inside the 10:00-14:30 IST window."""
    ts = candle.timestamp
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=IST)
    local = ts.astimezone(IST).time()
    return SESSION_START <= local <= SESSION_END


class Indicator(ABC):
    """Base indicator bound to one series.

    `calculate_at(index)` reads only candles[0..index]; `None` means the bar
    has no actionable reading, which is a normal outcome rather than an error.
    """

    name: str = "indicator"

    def __init__(self, series: CandleSeries, trading_hours_filter: bool = False) -> None:
        self.series = series
        self.trading_hours_filter = trading_hours_filter

    @abstractmethod
    def min_required_candles(self) -> int: ...

    def ready(self, index: int) -> bool:
        return index >= self.min_required_candles()

    def calculate_at(self, index: int) -> IndicatorResult | None:
        if index < 0 or index >= len(self.series):
            return None
        if not self.ready(index):
            return None
        if self.trading_hours_filter and not within_trading_hours(self.series.candles[index]):
            return None
        return self._calculate(index)

    @abstractmethod
    def _calculate(self, index: int) -> IndicatorResult | None: ...

    def latest(self) -> IndicatorResult | None:
        return self.calculate_at(len(self.series) - 1)

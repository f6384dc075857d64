"""Indicator engine."""

from swingbot.indicators.adx import AdxIndicator
from swingbot.indicators.base import Indicator, IndicatorResult, TrendDirection, within_trading_hours
from swingbot.indicators.factory import IndicatorType, build_indicator, build_indicators
from swingbot.indicators.macd import MacdIndicator
from swingbot.indicators.rsi import RsiIndicator
from swingbot.indicators.supertrend import (
    SupertrendHandle,
    SupertrendIndicator,
    compute_adaptive_supertrend,
)
from swingbot.indicators.trend_duration import TrendDurationIndicator

__all__ = [
    "AdxIndicator",
    "Indicator",
    "IndicatorResult",
    "IndicatorType",
    "MacdIndicator",
    "RsiIndicator",
    "SupertrendHandle",
    "SupertrendIndicator",
    "TrendDirection",
    "TrendDurationIndicator",
    "build_indicator",
    "build_indicators",
    "compute_adaptive_supertrend",
    "within_trading_hours",
]

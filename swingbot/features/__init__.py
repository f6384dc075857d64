"""Feature engineering module."""

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

__all__ = [
    "calculate_adx",
    "calculate_atr",
    "calculate_ema",
    "calculate_hma",
    "calculate_macd",
    "calculate_rsi",
    "calculate_sma",
    "calculate_wma",
]

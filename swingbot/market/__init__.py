"""Market data containers."""

from swingbot.market.candles import Candle, CandleSeries
from swingbot.market.source import CandleSource, InMemoryCandleSource

__all__ = ["Candle", "CandleSeries", "CandleSource", "InMemoryCandleSource"]

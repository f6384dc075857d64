"""Signal construction and multi-timeframe analysis."""

from swingbot.strategy.multi_timeframe import MultiTimeframeAnalysis, MultiTimeframeAnalyzer
from swingbot.strategy.signal_builder import SignalBuilder

__all__ = ["MultiTimeframeAnalysis", "MultiTimeframeAnalyzer", "SignalBuilder"]

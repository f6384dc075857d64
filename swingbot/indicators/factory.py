"""Build indicators from configuration."""

from __future__ import annotations

from enum import StrEnum
from typing import Any, Iterable, Mapping

import structlog

from swingbot.config.settings import IndicatorConfig
from swingbot.errors import UnknownIndicatorError
from swingbot.indicators.adx import AdxIndicator
from swingbot.indicators.base import Indicator
from swingbot.indicators.macd import MacdIndicator
from swingbot.indicators.rsi import RsiIndicator
from swingbot.indicators.supertrend import SupertrendHandle, SupertrendIndicator
from swingbot.indicators.trend_duration import TrendDurationIndicator
from swingbot.market.candles import CandleSeries


logger = structlog.get_logger(__name__)


class IndicatorType(StrEnum):
    SUPERTREND = "supertrend"
    ADX = "adx"
    RSI = "rsi"
    MACD = "macd"
    TREND_DURATION = "trend_duration"


ALIASES: dict[str, IndicatorType] = {
    "supertrend": IndicatorType.SUPERTREND,
    "st": IndicatorType.SUPERTREND,
    "adx": IndicatorType.ADX,
    "rsi": IndicatorType.RSI,
    "macd": IndicatorType.MACD,
    "trend_duration": IndicatorType.TREND_DURATION,
    "trend_duration_forecast": IndicatorType.TREND_DURATION,
    "tdf": IndicatorType.TREND_DURATION,
}


def resolve_indicator_type(name: str | IndicatorType) -> IndicatorType:
    key = str(name).strip().lower()
    try:
        return ALIASES[key]
    except KeyError:
        raise UnknownIndicatorError(f"Unknown indicator type: {name}") from None


def build_indicator(
    series: CandleSeries,
    indicator_type: str | IndicatorType,
    config: IndicatorConfig | None = None,
    supertrend_handle: SupertrendHandle | None = None,
) -> Indicator:
    """Construct one indicator; unknown types raise `UnknownIndicatorError`."""
    kind = resolve_indicator_type(indicator_type)
    config = config or IndicatorConfig()
    hours = config.trading_hours_filter

    if kind is IndicatorType.SUPERTREND:
        return SupertrendIndicator(
            series,
            config=config.supertrend,
            trading_hours_filter=hours,
            handle=supertrend_handle,
        )
    if kind is IndicatorType.ADX:
        return AdxIndicator(
            series, period=config.adx_period, preset=config.preset, trading_hours_filter=hours
        )
    if kind is IndicatorType.RSI:
        return RsiIndicator(
            series, period=config.rsi_period, preset=config.preset, trading_hours_filter=hours
        )
    if kind is IndicatorType.MACD:
        return MacdIndicator(
            series,
            fast_period=config.macd_fast,
            slow_period=config.macd_slow,
            signal_period=config.macd_signal,
            preset=config.preset,
            trading_hours_filter=hours,
        )
    return TrendDurationIndicator(
        series,
        hma_length=config.hma_length,
        trend_length=config.trend_length,
        samples=config.duration_samples,
        preset=config.preset,
        trading_hours_filter=hours,
    )


def build_indicators(
    series: CandleSeries,
    indicator_types: Iterable[str | IndicatorType | Mapping[str, Any]],
    config: IndicatorConfig | None = None,
) -> list[Indicator]:
    """Build a list of indicators; entries may be names or `{"type": name}` mappings."""
    indicators = []
    for entry in indicator_types:
        if isinstance(entry, Mapping):
            name = entry.get("type") or entry.get("name") or ""
        else:
            name = entry
        indicators.append(build_indicator(series, name, config))
    logger.debug("indicators_built", symbol=series.symbol, names=[i.name for i in indicators])
    return indicators

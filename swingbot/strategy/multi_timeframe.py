"""Multi-timeframe trend and momentum analysis.

Scores 15m, 1h, daily and weekly series independently, then combines them into
alignment counts, support/resistance levels and long entry recommendations.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Mapping

import numpy as np
import structlog

from swingbot.config.settings import MultiTimeframeConfig, SupertrendConfig
from swingbot.features.indicators import calculate_linear_slope_pct
from swingbot.indicators.base import TrendDirection
from swingbot.indicators.supertrend import compute_adaptive_supertrend
from swingbot.market.candles import CandleSeries
from swingbot.market.source import CandleSource
from swingbot.models import Instrument


logger = structlog.get_logger(__name__)

TIMEFRAMES: dict[str, str] = {
    "m15": "15",
    "h1": "60",
    "d1": "1D",
    "w1": "1W",
}
INTRADAY_KEYS = ("m15", "h1")
MIN_CANDLES: dict[str, int] = {"m15": 50, "h1": 30, "d1": 50, "w1": 20}
LOAD_LIMITS: dict[str, int | None] = {"m15": None, "h1": None, "d1": 200, "w1": 52}

STYLE_WEIGHTS: dict[str, dict[str, float]] = {
    "swing": {"w1": 0.2, "d1": 0.4, "h1": 0.25, "m15": 0.15},
    "long_term": {"w1": 0.4, "d1": 0.35, "h1": 0.25, "m15": 0.0},
}


@dataclass(frozen=True)
class SwingPoint:
    index: int
    price: float
    timestamp: datetime


@dataclass(frozen=True)
class MarketStructure:
    swing_highs: tuple[SwingPoint, ...] = ()
    swing_lows: tuple[SwingPoint, ...] = ()
    higher_highs: bool = False
    higher_lows: bool = False
    trend_strength: float = 0.0


@dataclass(frozen=True)
class TimeframeAnalysis:
    key: str
    timeframe: str
    candles_count: int
    latest_close: float | None
    latest_timestamp: datetime | None
    indicators: dict[str, Any]
    trend_score: float
    momentum_score: float
    structure: MarketStructure
    trend_direction: TrendDirection
    momentum_direction: TrendDirection

    @property
    def bullish(self) -> bool:
        return (
            self.trend_direction is TrendDirection.BULLISH
            and self.momentum_direction is TrendDirection.BULLISH
        )

    @property
    def pullback(self) -> bool:
        return (
            self.trend_direction is TrendDirection.BULLISH
            and self.momentum_direction is TrendDirection.NEUTRAL
        )


@dataclass(frozen=True)
class Alignment:
    bullish_count: int = 0
    bearish_count: int = 0
    neutral_count: int = 0
    aligned: bool = False


@dataclass(frozen=True)
class SupportResistance:
    support_levels: tuple[float, ...] = ()
    resistance_levels: tuple[float, ...] = ()
    intraday_support: tuple[float, ...] = ()
    intraday_resistance: tuple[float, ...] = ()


@dataclass(frozen=True)
class EntryRecommendation:
    type: str
    entry_zone: tuple[float, float]
    stop_loss: float
    confidence: float
    intraday_confirmation: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class MultiTimeframeAnalysis:
    symbol: str
    timeframes: dict[str, TimeframeAnalysis]
    multi_timeframe_score: float
    trend_alignment: Alignment
    momentum_alignment: Alignment
    support_resistance: SupportResistance
    entry_recommendations: tuple[EntryRecommendation, ...] = ()

    def summary(self) -> dict[str, Any]:
        return {
            "score": self.multi_timeframe_score,
            "trend_alignment": vars(self.trend_alignment).copy(),
            "momentum_alignment": vars(self.momentum_alignment).copy(),
            "timeframes_analyzed": list(self.timeframes),
            "support_levels": list(self.support_resistance.support_levels),
            "resistance_levels": list(self.support_resistance.resistance_levels),
        }


def _swing_points(series: CandleSeries, use_highs: bool) -> tuple[SwingPoint, ...]:
    """Bars whose high (or low) beats the two bars on each side; last five kept."""
    candles = series.candles
    points = []
    for i in range(2, len(candles) - 2):
        neighbours = [candles[j] for j in (i - 2, i - 1, i + 1, i + 2)]
        if use_highs:
            value = candles[i].high
            others = [c.high for c in neighbours]
        else:
            value = candles[i].low
            others = [c.low for c in neighbours]
        if value is None or any(o is None for o in others):
            continue
        if use_highs and all(value > o for o in others):
            points.append(SwingPoint(i, value, candles[i].timestamp))
        elif not use_highs and all(value < o for o in others):
            points.append(SwingPoint(i, value, candles[i].timestamp))
    return tuple(points[-5:])


def _closes(series: CandleSeries) -> list[float]:
    return [c.close for c in series.candles if c.close is not None]


def _five_bar_change(series: CandleSeries) -> float | None:
    closes = _closes(series)
    if len(closes) < 5 or closes[-5] == 0:
        return None
    return round((closes[-1] - closes[-5]) / closes[-5] * 100, 2)


def _alignment(directions: list[TrendDirection], require_majority: bool) -> Alignment:
    if not directions:
        return Alignment()
    bullish = directions.count(TrendDirection.BULLISH)
    bearish = directions.count(TrendDirection.BEARISH)
    neutral = directions.count(TrendDirection.NEUTRAL)
    aligned = bullish > bearish
    if require_majority:
        aligned = aligned and bullish >= math.ceil(len(directions) / 2)
    return Alignment(bullish, bearish, neutral, aligned)


class MultiTimeframeAnalyzer:
    """Analyse an instrument across 15m, 1h, daily and weekly candles."""

    def __init__(
        self,
        source: CandleSource,
        config: MultiTimeframeConfig | None = None,
        supertrend_config: SupertrendConfig | None = None,
    ) -> None:
        self.source = source
        self.config = config or MultiTimeframeConfig()
        self.supertrend_config = supertrend_config or SupertrendConfig()

    def analyze(self, instrument: Instrument) -> MultiTimeframeAnalysis | None:
        """Load every timeframe from the candle source and analyse them.

        Returns None when analysis fails; callers fall back to single-timeframe logic.
        """
        series_by_key: dict[str, CandleSeries] = {}
        try:
            for key, timeframe in TIMEFRAMES.items():
                if key in INTRADAY_KEYS and not self.config.include_intraday:
                    continue
                series = self.source.load_series(instrument.symbol, timeframe, LOAD_LIMITS[key])
                if series is not None:
                    series_by_key[key] = series
            return self.analyze_series(instrument.symbol, series_by_key)
        except Exception as exc:
            logger.warning("mtf_analysis_failed", symbol=instrument.symbol, error=str(exc))
            return None

    def analyze_series(
        self,
        symbol: str,
        series_by_key: Mapping[str, CandleSeries],
    ) -> MultiTimeframeAnalysis:
        timeframes: dict[str, TimeframeAnalysis] = {}
        for key in TIMEFRAMES:
            series = series_by_key.get(key)
            if series is None:
                continue
            analysis = self.analyze_timeframe(key, series)
            if analysis is not None:
                timeframes[key] = analysis

        score = self._mtf_score(timeframes)
        trend_alignment = _alignment([tf.trend_direction for tf in timeframes.values()], True)
        momentum_alignment = _alignment([tf.momentum_direction for tf in timeframes.values()], False)
        levels = self._support_resistance(timeframes)

        analysis = MultiTimeframeAnalysis(
            symbol=symbol,
            timeframes=timeframes,
            multi_timeframe_score=score,
            trend_alignment=trend_alignment,
            momentum_alignment=momentum_alignment,
            support_resistance=levels,
        )
        recommendations = self._recommendations(analysis)
        logger.debug(
            "mtf_analysis_complete",
            symbol=symbol,
            timeframes=list(timeframes),
            score=score,
            aligned=trend_alignment.aligned,
            recommendations=len(recommendations),
        )
        return replace(analysis, entry_recommendations=tuple(recommendations))

    def analyze_timeframe(self, key: str, series: CandleSeries) -> TimeframeAnalysis | None:
        if len(series) < MIN_CANDLES.get(key, 30):
            return None

        supertrend = compute_adaptive_supertrend(series, self.supertrend_config).latest_trend
        indicators: dict[str, Any] = {
            "ema20": series.ema(20),
            "ema50": series.ema(50),
            "ema200": series.ema(200),
            "rsi": series.rsi(14),
            "adx": series.adx(14),
            "atr": series.atr(14),
            "macd": series.macd(12, 26, 9),
            "supertrend": supertrend,
        }

        if supertrend is None:
            trend_direction = TrendDirection.NEUTRAL
        else:
            trend_direction = supertrend

        change = _five_bar_change(series)
        if change is not None and change > 2:
            momentum_direction = TrendDirection.BULLISH
        elif change is not None and change < -2:
            momentum_direction = TrendDirection.BEARISH
        else:
            momentum_direction = TrendDirection.NEUTRAL

        latest = series.latest_candle
        return TimeframeAnalysis(
            key=key,
            timeframe=TIMEFRAMES.get(key, series.interval),
            candles_count=len(series),
            latest_close=series.latest_close,
            latest_timestamp=latest.timestamp if latest else None,
            indicators=indicators,
            trend_score=self._trend_score(indicators),
            momentum_score=self._momentum_score(indicators, change),
            structure=self._structure(series),
            trend_direction=trend_direction,
            momentum_direction=momentum_direction,
        )

    @staticmethod
    def _trend_score(indicators: dict[str, Any]) -> float:
        score = 0.0
        available = 0.0
        ema20, ema50, ema200 = indicators["ema20"], indicators["ema50"], indicators["ema200"]
        if ema20 is not None and ema50 is not None:
            score += 20 if ema20 > ema50 else 0
            available += 20
        if ema20 is not None and ema200 is not None:
            score += 20 if ema20 > ema200 else 0
            available += 20
        if indicators["supertrend"] is TrendDirection.BULLISH:
            score += 30
        available += 30
        adx = indicators["adx"]
        if adx is not None:
            if adx > 25:
                score += 30
            elif adx > 20:
                score += 15
            available += 30
        return round(score / available * 100, 2) if available else 0.0

    @staticmethod
    def _momentum_score(indicators: dict[str, Any], change: float | None) -> float:
        score = 0.0
        available = 0.0
        rsi = indicators["rsi"]
        if rsi is not None:
            if 50 < rsi < 70:
                score += 30
            elif 40 < rsi < 60:
                score += 15
            available += 30
        macd = indicators["macd"]
        if macd is not None:
            macd_line, signal_line, _ = macd
            score += 30 if macd_line > signal_line else 0
            available += 30
        if change is not None and change > 0:
            score += min(40.0, change * 2)
        available += 40
        return round(score / available * 100, 2)

    @staticmethod
    def _structure(series: CandleSeries) -> MarketStructure:
        if len(series) < 20:
            return MarketStructure()
        highs = _swing_points(series, use_highs=True)
        lows = _swing_points(series, use_highs=False)
        closes = _closes(series)[-20:]
        return MarketStructure(
            swing_highs=highs,
            swing_lows=lows,
            higher_highs=len(highs) >= 2 and highs[-1].price > highs[-2].price,
            higher_lows=len(lows) >= 2 and lows[-1].price > lows[-2].price,
            trend_strength=calculate_linear_slope_pct(np.asarray(closes, dtype=float)),
        )

    def _mtf_score(self, timeframes: dict[str, TimeframeAnalysis]) -> float:
        weights = STYLE_WEIGHTS.get(self.config.trading_style, STYLE_WEIGHTS["swing"])
        total = 0.0
        total_weight = 0.0
        for key, tf in timeframes.items():
            weight = weights.get(key, 0.0)
            if weight == 0:
                continue
            total += (tf.trend_score * 0.6 + tf.momentum_score * 0.4) * weight
            total_weight += weight
        return round(total / total_weight, 2) if total_weight else 0.0

    @staticmethod
    def _support_resistance(timeframes: dict[str, TimeframeAnalysis]) -> SupportResistance:
        supports: list[float] = []
        resistances: list[float] = []
        for key in ("d1", "w1"):
            tf = timeframes.get(key)
            if tf is None:
                continue
            supports += [p.price for p in tf.structure.swing_lows]
            resistances += [p.price for p in tf.structure.swing_highs]

        h1 = timeframes.get("h1")
        intraday_support: tuple[float, ...] = ()
        intraday_resistance: tuple[float, ...] = ()
        if h1 is not None:
            supports += [p.price for p in h1.structure.swing_lows[-3:]]
            resistances += [p.price for p in h1.structure.swing_highs[-3:]]
            intraday_support = tuple(p.price for p in h1.structure.swing_lows[-2:])
            intraday_resistance = tuple(p.price for p in h1.structure.swing_highs[-2:])

        return SupportResistance(
            support_levels=tuple(reversed(sorted(set(supports))[-5:])),
            resistance_levels=tuple(sorted(set(resistances))[:5]),
            intraday_support=intraday_support,
            intraday_resistance=intraday_resistance,
        )

    @staticmethod
    def _entry_confidence(analysis: MultiTimeframeAnalysis) -> float:
        confidence = analysis.multi_timeframe_score
        if analysis.momentum_alignment.aligned:
            confidence += 10
        total = len(analysis.timeframes)
        if total:
            alignment_pct = round(analysis.trend_alignment.bullish_count / total * 100, 2)
            confidence += round(alignment_pct / 10, 2)
        return round(min(100.0, max(0.0, confidence)), 2)

    def _recommendations(self, analysis: MultiTimeframeAnalysis) -> list[EntryRecommendation]:
        daily = analysis.timeframes.get("d1")
        if not analysis.trend_alignment.aligned or daily is None or daily.latest_close is None:
            return []

        price = daily.latest_close
        h1 = analysis.timeframes.get("h1")
        m15 = analysis.timeframes.get("m15")
        h1_bullish = bool(h1 and h1.bullish)
        m15_bullish = bool(m15 and m15.bullish)
        m15_close = m15.latest_close if m15 else None
        confirmation = {"h1_bullish": h1_bullish, "m15_bullish": m15_bullish}
        boost = (5 if h1_bullish else 0) + (5 if m15_bullish else 0)
        base_confidence = self._entry_confidence(analysis)
        levels = analysis.support_resistance
        recommendations: list[EntryRecommendation] = []

        if levels.support_levels and price > levels.support_levels[0]:
            support = levels.support_levels[0]
            distance_pct = round((price - support) / support * 100, 2)
            if distance_pct < 3:
                high = max(price, m15_close) if m15_close is not None else price
                recommendations.append(
                    EntryRecommendation(
                        type="support_bounce",
                        entry_zone=(support, high),
                        stop_loss=support * 0.98,
                        confidence=round(min(100.0, max(0.0, base_confidence + boost)), 2),
                        intraday_confirmation=dict(confirmation),
                    )
                )

        if levels.resistance_levels:
            resistance = levels.resistance_levels[0]
            distance_pct = round((resistance - price) / price * 100, 2)
            if distance_pct < 2:
                low = price
                if m15_close is not None and m15_close > price:
                    low = min(price, m15_close)
                recommendations.append(
                    EntryRecommendation(
                        type="breakout",
                        entry_zone=(low, resistance * 1.01),
                        stop_loss=price * 0.97,
                        confidence=round(min(100.0, max(0.0, base_confidence + boost)), 2),
                        intraday_confirmation=dict(confirmation),
                    )
                )

        if h1 is not None and m15 is not None and daily.trend_direction is TrendDirection.BULLISH:
            if h1.pullback or m15.pullback:
                lows = h1.structure.swing_lows or m15.structure.swing_lows
                support = lows[-1].price if lows else None
                if support is not None and support < price < support * 1.02:
                    recommendations.append(
                        EntryRecommendation(
                            type="intraday_pullback",
                            entry_zone=(support, price),
                            stop_loss=support * 0.99,
                            confidence=base_confidence,
                            intraday_confirmation={
                                "h1_pullback": h1.pullback,
                                "m15_pullback": m15.pullback,
                                "timeframe": "1h" if h1.pullback else "15m",
                            },
                        )
                    )

        recommendations.sort(key=lambda r: -r.confidence)
        return recommendations

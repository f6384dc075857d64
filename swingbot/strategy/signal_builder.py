"""Swing signal construction.

Fuses daily indicator state with an optional multi-timeframe analysis into at
most one `Signal` carrying entry, stop, target, size and confidence.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any

import structlog

from swingbot.config.settings import StrategyConfig, SupertrendConfig
from swingbot.errors import InsufficientDataError, InvalidSignalError
from swingbot.indicators.base import TrendDirection
from swingbot.indicators.supertrend import compute_adaptive_supertrend
from swingbot.market.candles import CandleSeries
from swingbot.models import Instrument, Signal, SignalDirection
from swingbot.monitoring.metrics import Metrics
from swingbot.strategy.multi_timeframe import MultiTimeframeAnalysis, MultiTimeframeAnalyzer


logger = structlog.get_logger(__name__)

LOOKBACK = 20
ATR_PERIOD = 14
ATR_FALLBACK_PCT = 0.02
ENTRY_BUFFER_ATR = 0.1
STOP_ATR = 2.0
TARGET_ATR = 3.0
TARGET_RR = 2.25


class SignalBuilder:
    """Build a swing signal for one instrument."""

    def __init__(
        self,
        config: StrategyConfig | None = None,
        supertrend_config: SupertrendConfig | None = None,
        analyzer: MultiTimeframeAnalyzer | None = None,
        metrics: Metrics | None = None,
    ) -> None:
        self.config = config or StrategyConfig()
        self.supertrend_config = supertrend_config or SupertrendConfig()
        self.analyzer = analyzer
        self.metrics = metrics

    def build(
        self,
        instrument: Instrument,
        daily: CandleSeries,
        weekly: CandleSeries | None = None,
        mtf: MultiTimeframeAnalysis | None = None,
    ) -> Signal | None:
        try:
            return self._build(instrument, daily, weekly, mtf)
        except InsufficientDataError as exc:
            self._discard(instrument, "insufficient_data", detail=str(exc))
            return None
        except InvalidSignalError as exc:
            self._discard(instrument, "invalid_signal", detail=str(exc))
            return None

    def _discard(self, instrument: Instrument, reason: str, **context: Any) -> None:
        logger.info("signal_rejected", symbol=instrument.symbol, reason=reason, **context)
        if self.metrics:
            self.metrics.signals_discarded_total.labels(reason=reason).inc()

    def _build(
        self,
        instrument: Instrument,
        daily: CandleSeries,
        weekly: CandleSeries | None,
        mtf: MultiTimeframeAnalysis | None,
    ) -> Signal | None:
        if len(daily) < self.config.min_candles or daily.latest_close is None:
            raise InsufficientDataError(
                f"{len(daily)} daily candles, need {self.config.min_candles}"
            )

        if mtf is None and self.analyzer is not None and self.config.multi_timeframe.enabled:
            mtf = self.analyzer.analyze(instrument)

        close = daily.latest_close
        atr = daily.atr(ATR_PERIOD)
        ema20, ema50, ema200 = daily.ema(20), daily.ema(50), daily.ema(200)
        supertrend = compute_adaptive_supertrend(daily, self.supertrend_config).latest_trend

        direction = self._direction(mtf, supertrend, ema20, ema50)
        if direction is None:
            self._discard(instrument, "no_direction")
            return None

        if mtf is not None and mtf.entry_recommendations:
            entry = self._entry_from_mtf(mtf)
        else:
            entry = self._entry(daily, direction, close, atr)
        atr_value = atr if atr is not None else entry * ATR_FALLBACK_PCT

        stop = self._stop(daily, direction, entry, atr_value, mtf)
        target = self._target(direction, entry, stop, atr_value, mtf)
        if target is None:
            self._discard(instrument, "risk_reward_below_minimum")
            return None

        entry, stop, target = round(entry, 2), round(stop, 2), round(target, 2)
        risk_reward = _risk_reward(direction, entry, stop, target)
        if risk_reward < self.config.min_risk_reward:
            self._discard(instrument, "risk_reward_below_minimum", risk_reward=risk_reward)
            return None

        quantity = self._quantity(instrument, entry, stop)
        confidence = self._confidence(direction, daily, supertrend, ema20, ema50, ema200, mtf)
        atr_pct = round(atr / close * 100, 2) if atr is not None and close else None

        metadata: dict[str, Any] = {
            "atr": atr,
            "atr_pct": atr_pct,
            "ema20": ema20,
            "ema50": ema50,
            "ema200": ema200,
            "supertrend_direction": supertrend.value if supertrend else None,
            "weekly_trend": self._weekly_trend(weekly),
            "risk_amount": round(quantity * abs(entry - stop), 2),
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        if mtf is not None:
            metadata["multi_timeframe"] = mtf.summary()

        signal = Signal(
            instrument=instrument,
            direction=direction,
            entry_price=entry,
            stop_loss=stop,
            take_profit=target,
            quantity=quantity,
            risk_reward=risk_reward,
            confidence=round(confidence, 2),
            holding_days_estimate=self._holding_days(atr_pct),
            metadata=metadata,
            min_risk_reward=self.config.min_risk_reward,
        )
        logger.info(
            "signal_generated",
            symbol=instrument.symbol,
            direction=direction.value,
            entry=signal.entry_price,
            stop=signal.stop_loss,
            target=signal.take_profit,
            risk_reward=risk_reward,
            quantity=quantity,
            confidence=signal.confidence,
        )
        if self.metrics:
            self.metrics.signals_generated_total.labels(direction=direction.value).inc()
        return signal

    @staticmethod
    def _direction(
        mtf: MultiTimeframeAnalysis | None,
        supertrend: TrendDirection | None,
        ema20: float | None,
        ema50: float | None,
    ) -> SignalDirection | None:
        # trend alignment only ever reads bullish; shorts come from the daily rule
        if mtf is not None and mtf.trend_alignment.aligned:
            return SignalDirection.LONG
        if ema20 is None or ema50 is None:
            return None
        if supertrend is TrendDirection.BULLISH and ema20 > ema50:
            return SignalDirection.LONG
        if supertrend is TrendDirection.BEARISH and ema20 < ema50:
            return SignalDirection.SHORT
        return None

    @staticmethod
    def _entry_from_mtf(mtf: MultiTimeframeAnalysis) -> float:
        recommendations = mtf.entry_recommendations
        best = (
            next((r for r in recommendations if r.intraday_confirmation.get("m15_bullish")), None)
            or next((r for r in recommendations if r.intraday_confirmation.get("h1_bullish")), None)
            or recommendations[0]
        )
        low, high = best.entry_zone
        if best.type == "intraday_pullback":
            return low
        return (low + high) / 2.0

    @staticmethod
    def _entry(
        daily: CandleSeries,
        direction: SignalDirection,
        close: float,
        atr: float | None,
    ) -> float:
        atr_value = atr if atr is not None else close * ATR_FALLBACK_PCT
        if direction is SignalDirection.LONG:
            recent_high = daily.highest_high(LOOKBACK) or close
            return max(recent_high, close) + atr_value * ENTRY_BUFFER_ATR
        recent_low = daily.lowest_low(LOOKBACK) or close
        return min(recent_low, close) - atr_value * ENTRY_BUFFER_ATR

    def _stop(
        self,
        daily: CandleSeries,
        direction: SignalDirection,
        entry: float,
        atr: float,
        mtf: MultiTimeframeAnalysis | None,
    ) -> float:
        stop_pct = self.config.stop_loss_pct / 100.0
        levels = mtf.support_resistance if mtf is not None else None
        if direction is SignalDirection.LONG:
            candidates = [entry - atr * STOP_ATR, entry * (1 - stop_pct)]
            recent_low = daily.lowest_low(LOOKBACK)
            if recent_low is not None:
                candidates.append(recent_low)
            if levels and levels.support_levels:
                candidates.append(levels.support_levels[0] * 0.98)
            return min(candidates)

        candidates = [entry + atr * STOP_ATR, entry * (1 + stop_pct)]
        recent_high = daily.highest_high(LOOKBACK)
        if recent_high is not None:
            candidates.append(recent_high)
        if levels and levels.resistance_levels:
            candidates.append(levels.resistance_levels[0] * 1.02)
        return max(candidates)

    def _target(
        self,
        direction: SignalDirection,
        entry: float,
        stop: float,
        atr: float,
        mtf: MultiTimeframeAnalysis | None,
    ) -> float | None:
        """Nearest target on the profitable side that still clears the minimum risk-reward."""
        target_pct = self.config.profit_target_pct / 100.0
        risk = abs(entry - stop)
        levels = mtf.support_resistance if mtf is not None else None

        if direction is SignalDirection.LONG:
            candidates = [entry + risk * TARGET_RR, entry * (1 + target_pct), entry + atr * TARGET_ATR]
            if levels and levels.resistance_levels:
                candidates.append(levels.resistance_levels[0] * 0.99)
            valid = [c for c in candidates if c > entry]
        else:
            candidates = [entry - risk * TARGET_RR, entry * (1 - target_pct), entry - atr * TARGET_ATR]
            if levels and levels.support_levels:
                candidates.append(levels.support_levels[0] * 1.01)
            valid = [c for c in candidates if 0 < c < entry]

        valid = [
            c for c in valid if _risk_reward(direction, entry, stop, c) >= self.config.min_risk_reward
        ]
        if not valid:
            return None
        return min(valid, key=lambda c: abs(c - entry))

    def _quantity(self, instrument: Instrument, entry: float, stop: float) -> int:
        risk_amount = self.config.account_size * self.config.risk_per_trade_pct / 100.0
        risk_per_share = abs(entry - stop)
        lot = max(1, instrument.lot_size)
        quantity = math.floor(risk_amount / risk_per_share) if risk_per_share > 0 else 0
        if lot > 1:
            quantity = (quantity // lot) * lot
        return max(quantity, lot)

    @staticmethod
    def _confidence(
        direction: SignalDirection,
        daily: CandleSeries,
        supertrend: TrendDirection | None,
        ema20: float | None,
        ema50: float | None,
        ema200: float | None,
        mtf: MultiTimeframeAnalysis | None,
    ) -> float:
        long = direction is SignalDirection.LONG
        confidence = 0.0
        if ema20 is not None and ema50 is not None and (ema20 > ema50) == long and ema20 != ema50:
            confidence += 15
        if ema20 is not None and ema200 is not None and (ema20 > ema200) == long and ema20 != ema200:
            confidence += 15
        wanted = TrendDirection.BULLISH if long else TrendDirection.BEARISH
        if supertrend is wanted:
            confidence += 20

        adx = daily.adx(ATR_PERIOD)
        if adx is not None:
            if adx > 25:
                confidence += 20
            elif adx > 20:
                confidence += 10

        if mtf is not None:
            total = len(mtf.timeframes)
            if mtf.trend_alignment.aligned and total:
                agreeing = mtf.trend_alignment.bullish_count if long else mtf.trend_alignment.bearish_count
                confidence += round(agreeing / total * 100 * 0.2, 2)
            if mtf.momentum_alignment.aligned:
                confidence += 10
            confidence += round(mtf.multi_timeframe_score * 0.1, 2)

        return min(100.0, max(0.0, confidence))

    def _holding_days(self, atr_pct: float | None) -> int:
        if not atr_pct:
            atr_pct = 2.0
        days = math.ceil(self.config.profit_target_pct / (atr_pct * 1.5))
        return min(20, max(5, days))

    def _weekly_trend(self, weekly: CandleSeries | None) -> str | None:
        if weekly is None or len(weekly) == 0:
            return None
        trend = compute_adaptive_supertrend(weekly, self.supertrend_config).latest_trend
        if trend is not None:
            return trend.value
        ema20, ema50 = weekly.ema(20), weekly.ema(50)
        if ema20 is None or ema50 is None:
            return None
        return TrendDirection.BULLISH.value if ema20 > ema50 else TrendDirection.BEARISH.value


def _risk_reward(direction: SignalDirection, entry: float, stop: float, target: float) -> float:
    if direction is SignalDirection.LONG:
        risk, reward = entry - stop, target - entry
    else:
        risk, reward = stop - entry, entry - target
    if risk <= 0:
        return 0.0
    return round(reward / risk, 2)

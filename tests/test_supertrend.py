import numpy as np
import pytest

from conftest import make_series, uptrend_closes
from swingbot.config.settings import IndicatorConfig, SupertrendConfig
from swingbot.indicators import SupertrendIndicator, TrendDirection, compute_adaptive_supertrend
from swingbot.indicators.supertrend import _volatility_factor
from swingbot.market.candles import Candle, CandleSeries


def _with_gap(series: CandleSeries, index: int) -> CandleSeries:
    candles = list(series.candles)
    candles[index] = Candle(candles[index].timestamp, None, None, None, None)
    return CandleSeries(series.symbol, series.interval, candles)


class TestAdaptiveSupertrend:
    def test_too_few_candles_gives_empty_handle(self) -> None:
        series = make_series(uptrend_closes(10))
        handle = compute_adaptive_supertrend(series)
        assert handle.empty
        assert handle.latest_trend is None
        assert SupertrendIndicator(series, handle=handle).latest() is None

    def test_series_shorter_than_training_uses_base_multiplier(self) -> None:
        config = SupertrendConfig(multiplier=2.0)
        handle = compute_adaptive_supertrend(make_series(uptrend_closes(30)), config)
        assert not handle.empty
        assert handle.last_value is not None
        assert set(handle.multipliers.tolist()) == {2.0}

    def test_short_prefix_reads_like_long_series(self) -> None:
        closes = uptrend_closes(120)
        short = SupertrendIndicator(make_series(closes[:40])).calculate_at(30)
        full = SupertrendIndicator(make_series(closes)).calculate_at(30)
        assert short is not None
        assert short == full

    def test_uptrend_is_bullish(self) -> None:
        handle = compute_adaptive_supertrend(make_series(uptrend_closes(250)))
        assert handle.line.size == 250
        assert handle.latest_trend is TrendDirection.BULLISH

    def test_prefix_computation_matches_full_series(self) -> None:
        series = make_series(uptrend_closes(220))
        full = compute_adaptive_supertrend(series)
        index = 150
        partial = compute_adaptive_supertrend(series.prefix(index))
        assert full.line[: index + 1] == pytest.approx(partial.line, nan_ok=True)
        assert list(full.trend[: index + 1]) == list(partial.trend)
        assert list(full.multipliers[: index + 1]) == list(partial.multipliers)

    def test_multiplier_and_regime(self) -> None:
        config = IndicatorConfig().supertrend
        handle = compute_adaptive_supertrend(make_series(uptrend_closes(250)), config)
        assert handle.get_adaptive_multiplier(10) == config.multiplier
        assert handle.get_adaptive_multiplier(-3) == config.multiplier
        assert handle.get_adaptive_multiplier(10_000) == config.multiplier
        assert handle.get_current_volatility_regime(10) == "unknown"
        assert handle.get_current_volatility_regime(None) == "unknown"
        late = 240
        assert handle.get_adaptive_multiplier(late) in config.multiplier_candidates
        assert handle.get_current_volatility_regime(late) in ("low", "medium", "high")
        metrics = handle.get_performance_metrics()
        assert set(metrics["multiplier_scores"]) == set(config.multiplier_candidates)

    def test_indicator_confidence_rewards_persistent_trend(self) -> None:
        series = make_series(uptrend_closes(250))
        result = SupertrendIndicator(series).latest()
        assert result is not None
        assert result.direction is TrendDirection.BULLISH
        assert result.confidence == 80.0
        assert "multiplier" in result.extras
        assert "regime" in result.extras


class TestGapBars:
    def test_single_gap_bar_is_skipped_and_later_bars_recover(self) -> None:
        gapped = _with_gap(make_series(uptrend_closes(200)), 100)
        indicator = SupertrendIndicator(gapped)

        assert indicator.calculate_at(100) is None
        # bar 101 has no previous close, so its true range is missing too
        assert indicator.calculate_at(101) is None
        readings = [indicator.calculate_at(i) for i in range(102, 200)]
        assert all(reading is not None for reading in readings)
        assert readings[-1].direction is TrendDirection.BULLISH

    def test_atr_carries_over_the_gap(self) -> None:
        gapped = _with_gap(make_series(uptrend_closes(200)), 100)
        handle = compute_adaptive_supertrend(gapped)
        assert np.isnan(handle.atr[100])
        assert np.isfinite(handle.atr[102:]).all()
        assert np.isfinite(handle.line[102:]).all()

    def test_gap_does_not_touch_earlier_values(self) -> None:
        clean = make_series(uptrend_closes(200))
        gapped = compute_adaptive_supertrend(_with_gap(clean, 100))
        baseline = compute_adaptive_supertrend(clean)
        assert gapped.line[:100] == pytest.approx(baseline.line[:100], nan_ok=True)


class TestVolatilityFactor:
    def test_neutral_before_twenty_bars(self) -> None:
        closes = np.asarray(uptrend_closes(60))
        assert _volatility_factor(closes, 19) == 1.0

    def test_zero_historical_volatility_is_neutral(self) -> None:
        flat = np.full(80, 100.0)
        assert _volatility_factor(flat, 40) == 1.0
        assert _volatility_factor(flat, 79) == 1.0

    def test_flat_series_keeps_atr_at_true_range(self) -> None:
        handle = compute_adaptive_supertrend(make_series([100.0] * 80))
        # spread of 1.0 either side of a flat close
        assert handle.atr[10:] == pytest.approx(np.full(70, 2.0))
        assert handle.latest_trend is not None

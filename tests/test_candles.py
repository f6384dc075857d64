from datetime import datetime, timedelta, timezone

import pytest

from conftest import make_series, uptrend_closes
from swingbot.market.candles import Candle, CandleSeries
from swingbot.market.source import InMemoryCandleSource


class TestCandleSeries:
    """Construction and causal accessors."""

    def test_rejects_unordered_timestamps(self) -> None:
        ts = datetime(2024, 1, 1, tzinfo=timezone.utc)
        candles = [
            Candle(ts + timedelta(days=1), 1, 2, 0.5, 1.5),
            Candle(ts, 1, 2, 0.5, 1.5),
        ]
        with pytest.raises(ValueError):
            CandleSeries("X", "1D", candles)

    def test_from_records_collapses_duplicates_last_write_wins(self) -> None:
        records = [
            {"timestamp": "2024-01-02T00:00:00Z", "open": 1, "high": 2, "low": 0.5, "close": 1.5},
            {"timestamp": "2024-01-01T00:00:00Z", "open": 1, "high": 2, "low": 0.5, "close": 1.0},
            {"timestamp": "2024-01-02T00:00:00Z", "open": 1, "high": 2, "low": 0.5, "close": 1.8},
        ]
        series = CandleSeries.from_records("X", "1D", records)
        assert len(series) == 2
        assert series.latest_close == 1.8

    def test_uptrend_rsi_above_fifty_and_ema_rising(self) -> None:
        series = make_series(uptrend_closes(120))
        assert series.rsi(14) > 50
        assert series.ema(20) > series.ema(20, index=len(series) - 2)

    def test_values_at_index_ignore_later_candles(self) -> None:
        series = make_series(uptrend_closes(150))
        index = 80
        prefix = series.prefix(index)
        assert series.ema(20, index=index) == pytest.approx(prefix.ema(20))
        assert series.rsi(14, index=index) == pytest.approx(prefix.rsi(14))
        assert series.atr(14, index=index) == pytest.approx(prefix.atr(14))
        assert series.highest_high(20, index=index) == prefix.highest_high(20)

    def test_short_series_yields_none(self) -> None:
        series = make_series([100.0, 101.0, 102.0])
        assert series.ema(20) is None
        assert series.macd() is None

    def test_gap_bars_do_not_raise(self) -> None:
        series = make_series(uptrend_closes(60))
        candles = list(series.candles)
        gap = candles[30]
        candles[30] = Candle(gap.timestamp, None, None, None, None)
        gapped = CandleSeries("X", "1D", candles)
        assert gapped.highest_high(40) is not None
        assert gapped.lowest_low(40) is not None


def test_in_memory_source_applies_limit() -> None:
    series = make_series(uptrend_closes(100))
    source = InMemoryCandleSource()
    source.add(series)
    loaded = source.load_series("RELIANCE", "1D", limit=30)
    assert len(loaded) == 30
    assert loaded.latest_close == series.latest_close
    assert source.load_series("RELIANCE", "1W") is None

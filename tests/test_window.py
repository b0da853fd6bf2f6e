"""
Tests for the bounded candle window and the candle model
"""
import math

import pytest

from candlescope.errors import InvalidCandleError, OutOfOrderCandleError
from candlescope.models import Candle
from candlescope.window import CandleWindow, candles_to_dataframe, without_in_progress

from tests.factories import candle, rising_candles, ts


class TestCandle:

    def test_valid_candle(self):
        c = Candle(time=ts(0), open=100, high=105, low=99, close=104, volume=10)
        assert c.body == 4
        assert c.range == 6
        assert c.upper_shadow == 1
        assert c.lower_shadow == 1
        assert c.is_bullish and not c.is_bearish
        assert c.is_closed

    def test_high_below_low_rejected(self):
        with pytest.raises(InvalidCandleError):
            Candle(time=ts(0), open=100, high=99, low=101, close=100)

    def test_high_below_close_rejected(self):
        with pytest.raises(InvalidCandleError):
            Candle(time=ts(0), open=100, high=101, low=99, close=102)

    def test_low_above_open_rejected(self):
        with pytest.raises(InvalidCandleError):
            Candle(time=ts(0), open=98, high=101, low=99, close=100)

    def test_non_positive_time_rejected(self):
        with pytest.raises(InvalidCandleError):
            Candle(time=0, open=100, high=101, low=99, close=100)

    def test_nan_price_rejected(self):
        with pytest.raises(InvalidCandleError):
            Candle(time=ts(0), open=100, high=101, low=99, close=float("nan"))

    def test_invalid_candle_is_value_error(self):
        with pytest.raises(ValueError):
            Candle(time=ts(0), open=100, high=99, low=101, close=100)

    def test_volume_may_be_missing(self):
        c = Candle(time=ts(0), open=100, high=101, low=99, close=100, volume=None)
        assert c.volume is None


class TestCandleWindow:

    def test_append_in_order(self):
        window = CandleWindow(max_size=10)
        for c in rising_candles(5):
            assert window.append(c) is True
        assert len(window) == 5
        assert [c.time for c in window] == [ts(i) for i in range(5)]

    def test_equal_time_replaces_last(self):
        window = CandleWindow(max_size=10, candles=rising_candles(3))
        update = candle(2, 102.0, 110.0, 101.0, 109.0, is_closed=False)
        assert window.append(update) is False
        assert len(window) == 3
        assert window.last == update

    def test_earlier_time_rejected(self):
        window = CandleWindow(max_size=10, candles=rising_candles(3))
        with pytest.raises(OutOfOrderCandleError) as exc_info:
            window.append(candle(1, 100.0, 101.0, 99.0, 100.0))
        assert exc_info.value.time == ts(1)
        assert exc_info.value.last_time == ts(2)
        assert len(window) == 3

    def test_evicts_oldest_past_capacity(self):
        window = CandleWindow(max_size=3)
        window.extend(rising_candles(5))
        assert len(window) == 3
        assert [c.time for c in window] == [ts(2), ts(3), ts(4)]

    def test_extend_counts_appended(self):
        window = CandleWindow(max_size=10)
        candles = rising_candles(3) + [candle(2, 102.0, 103.0, 101.0, 102.5)]
        assert window.extend(candles) == 3
        assert window.last.close == 102.5

    def test_snapshot_is_immutable_copy(self):
        window = CandleWindow(max_size=10, candles=rising_candles(4))
        snap = window.snapshot()
        window.append(candle(4, 104.0, 105.0, 103.0, 104.5))
        assert isinstance(snap, tuple)
        assert len(snap) == 4
        assert len(window.snapshot()) == 5

    def test_snapshot_last_n(self):
        window = CandleWindow(max_size=10, candles=rising_candles(5))
        assert [c.time for c in window.snapshot(2)] == [ts(3), ts(4)]
        assert window.snapshot(0) == ()
        assert len(window.snapshot(50)) == 5

    def test_closed_candles_drop_in_progress_tail(self):
        window = CandleWindow(max_size=10, candles=rising_candles(4))
        window.append(candle(4, 104.0, 105.0, 103.0, 104.5, is_closed=False))
        closed = window.closed_candles()
        assert len(closed) == 4
        assert all(c.is_closed for c in closed)

    def test_without_in_progress_only_drops_tail(self):
        forming = candle(4, 104.0, 105.0, 103.0, 104.5, is_closed=False)
        candles = rising_candles(4) + [forming]
        assert without_in_progress(candles) == tuple(candles[:4])
        assert without_in_progress(rising_candles(4)) == tuple(rising_candles(4))
        assert without_in_progress([]) == ()

    def test_clear(self):
        window = CandleWindow(max_size=10, candles=rising_candles(4))
        window.clear()
        assert len(window) == 0
        assert window.last is None

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            CandleWindow(max_size=0)


class TestCandlesToDataFrame:

    def test_columns_and_missing_volume(self):
        candles = [candle(0, 100.0, 101.0, 99.0, 100.5, volume=None),
                   candle(1, 100.5, 102.0, 100.0, 101.5, volume=12.0)]
        df = candles_to_dataframe(candles)
        assert list(df.columns) == ["time", "open", "high", "low", "close", "volume"]
        assert len(df) == 2
        assert math.isnan(df["volume"].iloc[0])
        assert df["volume"].iloc[1] == 12.0

    def test_window_to_dataframe(self):
        window = CandleWindow(max_size=10, candles=rising_candles(5))
        df = window.to_dataframe()
        assert df["close"].tolist() == [100.0, 101.0, 102.0, 103.0, 104.0]

"""
Tests for swing point detection and swing-derived levels
"""
from candlescope.models import SwingKind
from candlescope.swings import detect_swings, find_swing_highs, find_swing_lows, swing_levels

from tests.factories import candles_from_highs, rising_candles, ts


class TestSwingDetection:

    def test_swing_highs(self):
        highs = [10, 12, 15, 11, 9, 14, 18, 13, 10, 8]
        assert find_swing_highs(highs) == [2, 6]

    def test_swing_lows(self):
        lows = [10, 8, 5, 9, 11, 6, 2, 7, 9, 12]
        assert find_swing_lows(lows) == [2, 6]

    def test_plateau_is_not_a_swing(self):
        assert find_swing_highs([1, 2, 5, 5, 2, 1]) == []
        assert find_swing_lows([5, 4, 1, 1, 4, 5]) == []

    def test_edges_never_qualify(self):
        assert find_swing_highs([9, 1, 1, 1, 9]) == []
        assert find_swing_highs([1, 2]) == []

    def test_monotonic_has_no_swings(self):
        highs, lows = detect_swings(rising_candles(25))
        assert highs == []
        assert lows == []

    def test_detect_swings_points(self):
        candles = candles_from_highs([100, 101, 102, 101, 100, 101, 102.5, 101, 100])
        highs, lows = detect_swings(candles)
        assert [p.index for p in highs] == [2, 6]
        assert highs[1].time == ts(6)
        assert highs[1].price == 102.5
        assert highs[0].kind == SwingKind.HIGH
        assert [p.index for p in lows] == [4]
        assert lows[0].price == 98
        assert lows[0].kind == SwingKind.LOW


class TestSwingLevels:

    def test_levels_from_swings(self):
        candles = candles_from_highs([100, 101, 102, 101, 100, 101, 102.5, 101, 100])
        highs, lows = detect_swings(candles)
        support, resistance = swing_levels(candles, highs, lows)
        assert resistance == 102.5
        assert support == 98

    def test_levels_without_swings_use_extremes(self):
        candles = rising_candles(25)
        support, resistance = swing_levels(candles, [], [])
        assert support == 99.0
        assert resistance == 124.5

"""
Tests for the moving-average trend classifier and market structure
"""
from candlescope.indicators import calculate_sma
from candlescope.models import Structure, SwingKind, SwingPoint, TrendSignal, TrendVerdict
from candlescope.trend import (
    analyze_trend, classify_structure, detect_price_structure, resolve_structure_flags,
    structure_flags,
)

from tests.factories import falling_candles, flat_candles, rising_candles, ts


def _points(prices, kind):
    return [SwingPoint(index=i, time=ts(i), price=p, kind=kind) for i, p in enumerate(prices)]


class TestStructure:

    def test_flags_from_swings(self):
        flags = structure_flags(_points([10, 12], SwingKind.HIGH), _points([5, 6], SwingKind.LOW))
        assert flags == {"higher_highs": True, "lower_highs": False,
                         "higher_lows": True, "lower_lows": False}
        assert classify_structure(flags) == Structure.UPTREND

    def test_lower_highs_lower_lows(self):
        flags = structure_flags(_points([12, 10], SwingKind.HIGH), _points([6, 5], SwingKind.LOW))
        assert classify_structure(flags) == Structure.DOWNTREND

    def test_mixed_is_range(self):
        flags = structure_flags(_points([10, 12], SwingKind.HIGH), _points([6, 5], SwingKind.LOW))
        assert classify_structure(flags) == Structure.RANGE

    def test_single_swing_leaves_flags_false(self):
        flags = structure_flags(_points([10], SwingKind.HIGH), [])
        assert not any(flags.values())

    def test_bar_structure_on_rising_candles(self):
        flags, signals = detect_price_structure(rising_candles(25))
        assert flags["higher_highs"] and flags["higher_lows"]
        assert TrendSignal.UPTREND_HH_HL in signals
        assert TrendSignal.NEAR_RESISTANCE in signals

    def test_bar_structure_needs_lookback(self):
        flags, signals = detect_price_structure(rising_candles(10))
        assert not any(flags.values())
        assert signals == []

    def test_fallback_when_no_swings(self):
        flags = resolve_structure_flags(falling_candles(25), [], [])
        assert classify_structure(flags) == Structure.DOWNTREND

    def test_swings_take_precedence(self):
        highs = _points([10, 12], SwingKind.HIGH)
        lows = _points([6, 5], SwingKind.LOW)
        flags = resolve_structure_flags(rising_candles(25), highs, lows)
        assert classify_structure(flags) == Structure.RANGE


class TestAnalyzeTrend:

    def test_bullish_trend(self):
        candles = rising_candles(120)
        closes = [c.close for c in candles]
        result = analyze_trend(candles, calculate_sma(closes, 25), calculate_sma(closes, 99))
        assert result.trend == TrendVerdict.BULLISH
        assert result.strength == 100
        assert result.structure == Structure.UPTREND
        assert result.higher_highs and result.higher_lows
        assert TrendSignal.SHORT_MA_ABOVE_LONG in result.signals
        assert TrendSignal.MA_TREND_UP in result.signals

    def test_bearish_trend(self):
        candles = falling_candles(120, start=300.0)
        closes = [c.close for c in candles]
        result = analyze_trend(candles, calculate_sma(closes, 25), calculate_sma(closes, 99))
        assert result.trend == TrendVerdict.BEARISH
        assert result.strength == 100
        assert result.structure == Structure.DOWNTREND
        assert TrendSignal.MA_TREND_DOWN in result.signals

    def test_insufficient_moving_averages_is_sideways(self):
        candles = rising_candles(25)
        closes = [c.close for c in candles]
        result = analyze_trend(candles, calculate_sma(closes, 25), calculate_sma(closes, 99))
        assert result.trend == TrendVerdict.SIDEWAYS
        assert result.strength == 0
        # Structure still comes from the candles
        assert result.structure == Structure.UPTREND

    def test_mixed_signals_are_sideways(self):
        candles = flat_candles(25, price=105.0)
        result = analyze_trend(candles, [None, 106.0, 106.0], [None, 100.0, 100.0])
        assert result.trend == TrendVerdict.SIDEWAYS
        # bullish 2 (short above long, price above long) vs bearish 1
        assert result.strength == 10
        assert result.structure == Structure.RANGE

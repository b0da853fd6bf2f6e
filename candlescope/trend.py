"""
Trend classification from moving averages and market structure
"""
import logging
from typing import Dict, List, Sequence, Tuple

from .indicators import defined_values
from .models import (
    Candle, IndicatorSeries, Structure, SwingPoint, TrendAnalysis,
    TrendSignal, TrendVerdict,
)

logger = logging.getLogger(__name__)

LEVEL_PROXIMITY = 0.02


def structure_flags(swing_highs: Sequence[SwingPoint],
                    swing_lows: Sequence[SwingPoint]) -> Dict[str, bool]:
    """
    Compare the two most recent swing highs and the two most recent swing lows.

    A list with fewer than two points leaves its flags False.
    """
    flags = {
        "higher_highs": False,
        "lower_highs": False,
        "higher_lows": False,
        "lower_lows": False,
    }
    if len(swing_highs) >= 2:
        prev, last = swing_highs[-2].price, swing_highs[-1].price
        flags["higher_highs"] = last > prev
        flags["lower_highs"] = last < prev
    if len(swing_lows) >= 2:
        prev, last = swing_lows[-2].price, swing_lows[-1].price
        flags["higher_lows"] = last > prev
        flags["lower_lows"] = last < prev
    return flags


def detect_price_structure(candles: Sequence[Candle], lookback: int = 20) -> Tuple[Dict[str, bool], List[TrendSignal]]:
    """
    Bar-by-bar structure over the recent candles.

    Every bar (from the third) must make a higher high and higher low than the
    bar before it for an uptrend, or the mirror for a downtrend. Also reports
    whether the close sits within 2% of the 10-bar high or low.

    Returns:
        Tuple of (flags, signals); flags use the same keys as structure_flags
    """
    flags = {
        "higher_highs": False,
        "lower_highs": False,
        "higher_lows": False,
        "lower_lows": False,
    }
    signals = []
    if len(candles) < lookback:
        return flags, signals

    recent = candles[-lookback:]
    highs = [c.high for c in recent]
    lows = [c.low for c in recent]

    flags = {
        "higher_highs": all(highs[i] > highs[i - 1] for i in range(2, len(highs))),
        "higher_lows": all(lows[i] > lows[i - 1] for i in range(2, len(lows))),
        "lower_highs": all(highs[i] < highs[i - 1] for i in range(2, len(highs))),
        "lower_lows": all(lows[i] < lows[i - 1] for i in range(2, len(lows))),
    }
    if flags["higher_highs"] and flags["higher_lows"]:
        signals.append(TrendSignal.UPTREND_HH_HL)
    if flags["lower_highs"] and flags["lower_lows"]:
        signals.append(TrendSignal.DOWNTREND_LH_LL)

    current_close = recent[-1].close
    resistance = max(highs[-10:])
    support = min(lows[-10:])
    if resistance > 0 and abs(current_close - resistance) / resistance < LEVEL_PROXIMITY:
        signals.append(TrendSignal.NEAR_RESISTANCE)
    if support > 0 and abs(current_close - support) / support < LEVEL_PROXIMITY:
        signals.append(TrendSignal.NEAR_SUPPORT)

    return flags, signals


def resolve_structure_flags(candles: Sequence[Candle], swing_highs: Sequence[SwingPoint],
                            swing_lows: Sequence[SwingPoint], lookback: int = 20) -> Dict[str, bool]:
    """
    Structure flags from swings, falling back to bar-by-bar structure.

    When a swing list has fewer than two points its flags come from
    detect_price_structure instead, so a steady one-way move without local
    extremes is still recognised.
    """
    flags = structure_flags(swing_highs, swing_lows)
    if len(swing_highs) >= 2 and len(swing_lows) >= 2:
        return flags

    bar_flags, _ = detect_price_structure(candles, lookback)
    if len(swing_highs) < 2:
        flags["higher_highs"] = bar_flags["higher_highs"]
        flags["lower_highs"] = bar_flags["lower_highs"]
    if len(swing_lows) < 2:
        flags["higher_lows"] = bar_flags["higher_lows"]
        flags["lower_lows"] = bar_flags["lower_lows"]
    return flags


def classify_structure(flags: Dict[str, bool]) -> Structure:
    if flags["higher_highs"] and flags["higher_lows"]:
        return Structure.UPTREND
    if flags["lower_highs"] and flags["lower_lows"]:
        return Structure.DOWNTREND
    return Structure.RANGE


def analyze_trend(candles: Sequence[Candle], short_ma: IndicatorSeries, long_ma: IndicatorSeries,
                  swing_highs: Sequence[SwingPoint] = (), swing_lows: Sequence[SwingPoint] = ()) -> TrendAnalysis:
    """
    Combine moving averages and swing structure into a trend verdict.

    Args:
        candles: Candle snapshot the moving averages were computed on
        short_ma: Shorter moving average series (e.g. MA25)
        long_ma: Longer moving average series (e.g. MA99)
        swing_highs: Swing highs of the same snapshot
        swing_lows: Swing lows of the same snapshot

    Returns:
        TrendAnalysis with a BULLISH/BEARISH/SIDEWAYS verdict, a strength
        percentage and the UPTREND/DOWNTREND/RANGE structure
    """
    flags = resolve_structure_flags(candles, swing_highs, swing_lows)
    structure = classify_structure(flags)
    _, price_signals = detect_price_structure(candles)

    short_values = defined_values(short_ma)
    long_values = defined_values(long_ma)
    if not candles or len(short_values) < 2 or len(long_values) < 2:
        logger.debug("Not enough moving average values for trend verdict")
        return TrendAnalysis(trend=TrendVerdict.SIDEWAYS, strength=0, signals=tuple(price_signals),
                             structure=structure, **flags)

    signals = []
    bullish = 0
    bearish = 0

    current_price = candles[-1].close
    current_short, prev_short = short_values[-1], short_values[-2]
    current_long, prev_long = long_values[-1], long_values[-2]

    if current_short > current_long:
        signals.append(TrendSignal.SHORT_MA_ABOVE_LONG)
        bullish += 1
    else:
        signals.append(TrendSignal.SHORT_MA_BELOW_LONG)
        bearish += 1

    if current_price > current_short:
        signals.append(TrendSignal.PRICE_ABOVE_SHORT_MA)
        bullish += 1
    else:
        signals.append(TrendSignal.PRICE_BELOW_SHORT_MA)
        bearish += 1

    if current_price > current_long:
        signals.append(TrendSignal.PRICE_ABOVE_LONG_MA)
        bullish += 1
    else:
        signals.append(TrendSignal.PRICE_BELOW_LONG_MA)
        bearish += 1

    # Slope of both averages counts double
    if current_short > prev_short and current_long > prev_long:
        signals.append(TrendSignal.MA_TREND_UP)
        bullish += 2
    elif current_short < prev_short and current_long < prev_long:
        signals.append(TrendSignal.MA_TREND_DOWN)
        bearish += 2

    signals.extend(price_signals)

    total = bullish + bearish
    if bullish > bearish + 2:
        trend = TrendVerdict.BULLISH
        strength = min(100, bullish / total * 100)
    elif bearish > bullish + 2:
        trend = TrendVerdict.BEARISH
        strength = min(100, bearish / total * 100)
    else:
        trend = TrendVerdict.SIDEWAYS
        strength = abs(bullish - bearish) * 10

    return TrendAnalysis(trend=trend, strength=int(round(strength)), signals=tuple(signals),
                         structure=structure, **flags)

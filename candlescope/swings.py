"""
Swing point detection.

A swing high is a bar whose high strictly exceeds the highs of the two bars on
each side; a swing low is the mirror on lows. Plateaus (equal neighbours)
never qualify, so a flat top is not counted twice.
"""
from typing import List, Sequence, Tuple

from .models import Candle, SwingKind, SwingPoint

SWING_SPAN = 2


def find_swing_highs(highs: Sequence[float], span: int = SWING_SPAN) -> List[int]:
    """Indices of local maxima confirmed by ``span`` bars on each side"""
    indices = []
    for i in range(span, len(highs) - span):
        neighbours = list(highs[i - span:i]) + list(highs[i + 1:i + span + 1])
        if all(highs[i] > h for h in neighbours):
            indices.append(i)
    return indices


def find_swing_lows(lows: Sequence[float], span: int = SWING_SPAN) -> List[int]:
    """Indices of local minima confirmed by ``span`` bars on each side"""
    indices = []
    for i in range(span, len(lows) - span):
        neighbours = list(lows[i - span:i]) + list(lows[i + 1:i + span + 1])
        if all(lows[i] < low for low in neighbours):
            indices.append(i)
    return indices


def detect_swings(candles: Sequence[Candle]) -> Tuple[List[SwingPoint], List[SwingPoint]]:
    """
    Scan candles for swing highs and swing lows.

    Recomputed from scratch on every call; indices refer to ``candles``.

    Returns:
        Tuple of (swing_highs, swing_lows), each ordered by index
    """
    highs = [c.high for c in candles]
    lows = [c.low for c in candles]

    swing_highs = [
        SwingPoint(index=i, time=candles[i].time, price=highs[i], kind=SwingKind.HIGH)
        for i in find_swing_highs(highs)
    ]
    swing_lows = [
        SwingPoint(index=i, time=candles[i].time, price=lows[i], kind=SwingKind.LOW)
        for i in find_swing_lows(lows)
    ]
    return swing_highs, swing_lows


def swing_levels(candles: Sequence[Candle], swing_highs: Sequence[SwingPoint],
                 swing_lows: Sequence[SwingPoint]) -> Tuple[float, float]:
    """
    Support and resistance from swing points.

    Resistance is the highest swing high, support the lowest swing low; without
    swings the raw extremes of the candles are used.

    Returns:
        Tuple of (support, resistance)
    """
    if swing_highs:
        resistance = max(p.price for p in swing_highs)
    else:
        resistance = max(c.high for c in candles)

    if swing_lows:
        support = min(p.price for p in swing_lows)
    else:
        support = min(c.low for c in candles)

    return support, resistance

"""
Candlestick and Chart Pattern Recognition Module

This module identifies candlestick patterns (engulfing, doji, hammer, shooting
star), chart structures built from swing points (double top/bottom, head and
shoulders) and volume-driven structural bars, and turns them into markers.
Only closed candles should be passed in; an unfinished bar would trigger
patterns that disappear when it closes.
"""
import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .config import DEFAULT_CONFIG, resolve_filters
from .indicators import calculate_rsi
from .models import (
    Candle, MarkerKind, MarkerPosition, MarkerShape, PatternMarker,
    ReversalAnalysis, SwingPoint,
)
from .swings import detect_swings, find_swing_highs, find_swing_lows
from .volume import volume_rules_enabled
from .window import candles_to_dataframe

logger = logging.getLogger(__name__)

# Trailing (support, resistance) per candle
Levels = Tuple[pd.Series, pd.Series]
# A candle-level rule inspects row i of the frame and may return a marker
CandleRule = Callable[[pd.DataFrame, int, Levels], Optional[PatternMarker]]


class CandlestickPatterns:
    """
    Rule-based pattern classifier.

    Rules run in a fixed priority order (engulfing, doji, hammer/shooting star,
    chart structures, volume) and the first rule to claim a candle's time wins;
    later rules skip that time. Each rule can be switched off through its
    pattern filter key.
    """

    def __init__(self, config: Optional[Mapping[str, Any]] = None):
        """
        Initialize the pattern classifier.

        Args:
            config: Configuration mapping (see config.DEFAULT_CONFIG); missing
                    keys fall back to the defaults
        """
        config = {**DEFAULT_CONFIG, **dict(config or {})}
        self.filters = resolve_filters(config.get("pattern_filters"))
        self.doji_threshold = config["doji_threshold"]
        self.double_tolerance = config["double_pattern_tolerance"]
        self.spike_multiplier = config["volume_spike_multiplier"]
        self.smc_body_ratio = config["smc_body_ratio"]
        self.level_lookback = config["level_lookback"]
        self.volume_policy = config["volume_policy"]

        # Candle-level rules, highest priority first
        self.candle_rules: List[Tuple[str, CandleRule]] = [
            ("Bullish Engulfing", self._bullish_engulfing_marker),
            ("Bearish Engulfing", self._bearish_engulfing_marker),
            ("Doji", self._doji_marker),
            ("Hammer", self._hammer_marker),
            ("Shooting Star", self._shooting_star_marker),
        ]

        # Structure rules work on the swing points of the whole scan
        self.chart_rules = [
            ("Double Top", self._double_top_marker),
            ("Double Bottom", self._double_bottom_marker),
            ("Head & Shoulders", self._head_and_shoulders_marker),
        ]

    # ------------------------------------------------------------------
    # Candle predicates
    # ------------------------------------------------------------------

    @staticmethod
    def _is_bullish_engulfing(current: pd.Series, previous: pd.Series) -> bool:
        """
        Bearish candle followed by a bullish one whose body covers it.

        Args:
            current: Current candle's OHLC data
            previous: Previous candle's OHLC data
        """
        return (current['close'] > current['open'] and
                previous['close'] < previous['open'] and
                current['close'] > previous['open'] and
                current['open'] < previous['close'])

    @staticmethod
    def _is_bearish_engulfing(current: pd.Series, previous: pd.Series) -> bool:
        """
        Bullish candle followed by a bearish one whose body covers it.

        Args:
            current: Current candle's OHLC data
            previous: Previous candle's OHLC data
        """
        return (current['close'] < current['open'] and
                previous['close'] > previous['open'] and
                current['open'] > previous['close'] and
                current['close'] < previous['open'])

    def _is_doji(self, candle: pd.Series) -> bool:
        """Body smaller than a tenth of the candle's range"""
        body_size = abs(candle['close'] - candle['open'])
        candle_range = candle['high'] - candle['low']

        if candle_range > 0:
            return body_size / candle_range < self.doji_threshold

        return False

    @staticmethod
    def _shadows(candle: pd.Series) -> Tuple[float, float, float, float]:
        body_size = abs(candle['close'] - candle['open'])
        candle_range = candle['high'] - candle['low']
        upper_shadow = candle['high'] - max(candle['open'], candle['close'])
        lower_shadow = min(candle['open'], candle['close']) - candle['low']
        return body_size, candle_range, upper_shadow, lower_shadow

    def _is_hammer(self, candle: pd.Series, support: float) -> bool:
        """
        Check if the candle is a hammer at support.

        Long lower shadow (at least 2x the body), small upper shadow (at most
        half the body), bullish close and a low within 1% of support.
        """
        body_size, candle_range, upper_shadow, lower_shadow = self._shadows(candle)
        if candle_range <= 0:
            return False

        return (lower_shadow >= 2 * body_size and
                upper_shadow <= 0.5 * body_size and
                candle['close'] > candle['open'] and
                candle['low'] <= support * 1.01)

    def _is_shooting_star(self, candle: pd.Series, resistance: float) -> bool:
        """
        Check if the candle is a shooting star at resistance.

        Mirror of the hammer: long upper shadow, small lower shadow, bearish
        close and a high within 1% of resistance.
        """
        body_size, candle_range, upper_shadow, lower_shadow = self._shadows(candle)
        if candle_range <= 0:
            return False

        return (upper_shadow >= 2 * body_size and
                lower_shadow <= 0.5 * body_size and
                candle['close'] < candle['open'] and
                candle['high'] >= resistance * 0.99)

    def _is_smc(self, current: pd.Series, previous: pd.Series) -> bool:
        """
        Volume spike on a small-bodied candle that widens the range.
        """
        if np.isnan(current['volume']) or np.isnan(previous['volume']):
            return False

        candle_range = current['high'] - current['low']
        if candle_range <= 0:
            return False

        body_ratio = abs(current['close'] - current['open']) / candle_range
        return (current['volume'] > previous['volume'] * self.spike_multiplier and
                body_ratio < self.smc_body_ratio and
                candle_range > previous['high'] - previous['low'])

    # ------------------------------------------------------------------
    # Candle rules
    # ------------------------------------------------------------------

    def _bullish_engulfing_marker(self, df: pd.DataFrame, i: int, levels: Levels) -> Optional[PatternMarker]:
        if not self._is_bullish_engulfing(df.iloc[i], df.iloc[i - 1]):
            return None
        return PatternMarker(time=int(df.iloc[i]['time']), kind=MarkerKind.BULLISH_ENGULFING,
                             position=MarkerPosition.BELOW, color="#00a67d",
                             shape=MarkerShape.ARROW_UP, label="Bull Engulf")

    def _bearish_engulfing_marker(self, df: pd.DataFrame, i: int, levels: Levels) -> Optional[PatternMarker]:
        if not self._is_bearish_engulfing(df.iloc[i], df.iloc[i - 1]):
            return None
        return PatternMarker(time=int(df.iloc[i]['time']), kind=MarkerKind.BEARISH_ENGULFING,
                             position=MarkerPosition.ABOVE, color="#eb4d5c",
                             shape=MarkerShape.ARROW_DOWN, label="Bear Engulf")

    def _doji_marker(self, df: pd.DataFrame, i: int, levels: Levels) -> Optional[PatternMarker]:
        current = df.iloc[i]
        if not self._is_doji(current):
            return None

        # Tagged against the close move from the previous candle into the doji
        move = current['close'] - df.iloc[i - 1]['close']
        if move < 0:
            position, shape = MarkerPosition.BELOW, MarkerShape.ARROW_UP
        elif move > 0:
            position, shape = MarkerPosition.ABOVE, MarkerShape.ARROW_DOWN
        else:
            position, shape = MarkerPosition.IN, MarkerShape.CIRCLE

        return PatternMarker(time=int(current['time']), kind=MarkerKind.DOJI,
                             position=position, color="#2196f3", shape=shape, label="Doji")

    def _hammer_marker(self, df: pd.DataFrame, i: int, levels: Levels) -> Optional[PatternMarker]:
        support, _ = levels
        if not self._is_hammer(df.iloc[i], support.iloc[i]):
            return None
        return PatternMarker(time=int(df.iloc[i]['time']), kind=MarkerKind.HAMMER,
                             position=MarkerPosition.BELOW, color="#26a69a",
                             shape=MarkerShape.ARROW_UP, label="Hammer")

    def _shooting_star_marker(self, df: pd.DataFrame, i: int, levels: Levels) -> Optional[PatternMarker]:
        _, resistance = levels
        if not self._is_shooting_star(df.iloc[i], resistance.iloc[i]):
            return None
        return PatternMarker(time=int(df.iloc[i]['time']), kind=MarkerKind.SHOOTING_STAR,
                             position=MarkerPosition.ABOVE, color="#ef5350",
                             shape=MarkerShape.ARROW_DOWN, label="Shooting Star")

    # ------------------------------------------------------------------
    # Chart structure rules
    # ------------------------------------------------------------------

    def _double_top_marker(self, swing_highs: Sequence[SwingPoint],
                           swing_lows: Sequence[SwingPoint]) -> Optional[PatternMarker]:
        if len(swing_highs) < 2:
            return None
        first, second = swing_highs[-2], swing_highs[-1]
        if first.price <= 0 or abs(first.price - second.price) / first.price >= self.double_tolerance:
            return None
        return PatternMarker(time=second.time, kind=MarkerKind.DOUBLE_TOP,
                             position=MarkerPosition.ABOVE, color="#ff6b6b",
                             shape=MarkerShape.ARROW_DOWN, label="Double Top")

    def _double_bottom_marker(self, swing_highs: Sequence[SwingPoint],
                              swing_lows: Sequence[SwingPoint]) -> Optional[PatternMarker]:
        if len(swing_lows) < 2:
            return None
        first, second = swing_lows[-2], swing_lows[-1]
        if first.price <= 0 or abs(first.price - second.price) / first.price >= self.double_tolerance:
            return None
        return PatternMarker(time=second.time, kind=MarkerKind.DOUBLE_BOTTOM,
                             position=MarkerPosition.BELOW, color="#51cf66",
                             shape=MarkerShape.ARROW_UP, label="Double Bottom")

    def _head_and_shoulders_marker(self, swing_highs: Sequence[SwingPoint],
                                   swing_lows: Sequence[SwingPoint]) -> Optional[PatternMarker]:
        if len(swing_highs) < 3:
            return None
        left, head, right = swing_highs[-3:]
        if not (head.price > left.price and head.price > right.price):
            return None
        return PatternMarker(time=right.time, kind=MarkerKind.HEAD_AND_SHOULDERS,
                             position=MarkerPosition.ABOVE, color="#ffa8a8",
                             shape=MarkerShape.ARROW_DOWN, label="H&S")

    # ------------------------------------------------------------------
    # Scans
    # ------------------------------------------------------------------

    def _levels(self, df: pd.DataFrame) -> Levels:
        """Trailing support (lowest low) and resistance (highest high) per candle"""
        support = df['low'].rolling(window=self.level_lookback, min_periods=1).min()
        resistance = df['high'].rolling(window=self.level_lookback, min_periods=1).max()
        return support, resistance

    def identify_patterns(self, candles: Sequence[Candle]) -> List[PatternMarker]:
        """
        Identify patterns in the given closed candles.

        Args:
            candles: Closed candles, oldest first

        Returns:
            Markers ordered by time, at most one per candle time
        """
        if len(candles) < 3:
            return []

        df = candles_to_dataframe(candles)
        levels = self._levels(df)
        claimed: Dict[int, PatternMarker] = {}

        active_rules = [(key, rule) for key, rule in self.candle_rules if self.filters[key]]
        if active_rules:
            for i in range(2, len(df)):
                for key, rule in active_rules:
                    marker = rule(df, i, levels)
                    if marker is not None:
                        claimed[marker.time] = marker
                        break

        swing_highs, swing_lows = detect_swings(candles)
        for key, rule in self.chart_rules:
            if not self.filters[key]:
                continue
            marker = rule(swing_highs, swing_lows)
            if marker is not None and marker.time not in claimed:
                claimed[marker.time] = marker

        if self.filters["SMC"] and volume_rules_enabled(candles, self.volume_policy):
            for i in range(2, len(df)):
                current = df.iloc[i]
                time = int(current['time'])
                if time in claimed:
                    continue
                if self._is_smc(current, df.iloc[i - 1]):
                    claimed[time] = PatternMarker(time=time, kind=MarkerKind.SMC,
                                                  position=MarkerPosition.ABOVE, color="#a46bff",
                                                  shape=MarkerShape.CIRCLE, label="SMC")

        markers = [claimed[t] for t in sorted(claimed)]
        logger.debug(f"Identified {len(markers)} pattern markers in {len(candles)} candles")
        return markers


def detect_patterns(candles: Sequence[Candle], config: Optional[Mapping[str, Any]] = None) -> List[PatternMarker]:
    """
    Wrapper function to detect patterns in closed candles.

    Args:
        candles: Closed candles, oldest first
        config: Configuration mapping including pattern_filters

    Returns:
        List of pattern markers
    """
    detector = CandlestickPatterns(config)
    return detector.identify_patterns(candles)


# ----------------------------------------------------------------------
# Reversal analysis on the most recent candles
# ----------------------------------------------------------------------

def detect_rsi_divergence(candles: Sequence[Candle]) -> str:
    """
    Rough momentum divergence on the last 10 closes.

    Returns:
        "BEARISH", "BULLISH" or "NO_DIVERGENCE"
    """
    if len(candles) < 10:
        return "NO_DIVERGENCE"

    prices = [c.close for c in candles[-10:]]
    rsi = calculate_rsi(prices, period=len(prices) - 1)

    if prices[-1] > prices[-3] and rsi < 70:
        return "BEARISH"
    if prices[-1] < prices[-3] and rsi > 30:
        return "BULLISH"
    return "NO_DIVERGENCE"


def detect_double_top_bottom(candles: Sequence[Candle], tolerance: float = 0.02) -> str:
    """
    Double top or bottom among the swing points of the last 20 candles.

    Returns:
        "DOUBLE_TOP", "DOUBLE_BOTTOM" or "NO_PATTERN"
    """
    if len(candles) < 20:
        return "NO_PATTERN"

    recent = candles[-20:]
    highs = [c.high for c in recent]
    lows = [c.low for c in recent]

    swing_highs = [highs[i] for i in find_swing_highs(highs)]
    if len(swing_highs) >= 2:
        first, second = swing_highs[-2:]
        if first > 0 and abs(first - second) / first < tolerance:
            return "DOUBLE_TOP"

    swing_lows = [lows[i] for i in find_swing_lows(lows)]
    if len(swing_lows) >= 2:
        first, second = swing_lows[-2:]
        if first > 0 and abs(first - second) / first < tolerance:
            return "DOUBLE_BOTTOM"

    return "NO_PATTERN"


def detect_reversal_patterns(candles: Sequence[Candle], support: float, resistance: float) -> ReversalAnalysis:
    """
    Look for reversal evidence on the last candle.

    Each piece of evidence adds to the confidence; the last one found names the
    pattern. Confidence is capped at 95.

    Args:
        candles: Recent candles, oldest first
        support: Current support level
        resistance: Current resistance level

    Returns:
        ReversalAnalysis; pattern is "NO_REVERSAL" when nothing was found
    """
    signals = []
    confidence = 0
    pattern = "NO_REVERSAL"

    if len(candles) < 5:
        return ReversalAnalysis(pattern=pattern, confidence=0, signals=())

    current = candles[-1]
    prev = candles[-2]
    volume_confirmed = bool(current.volume and prev.volume and current.volume > prev.volume * 1.2)

    if current.low <= support * 1.01 and current.is_bullish:
        signals.append("SUPPORT_BOUNCE")
        confidence += 25
        if volume_confirmed:
            signals.append("VOLUME_CONFIRMATION")
            confidence += 15

    if current.high >= resistance * 0.99 and current.is_bearish:
        signals.append("RESISTANCE_REJECTION")
        confidence += 25
        if volume_confirmed:
            signals.append("VOLUME_CONFIRMATION")
            confidence += 15

    body = current.body
    if current.range > 0 and current.lower_shadow >= 2 * body and current.upper_shadow <= body * 0.5 \
            and current.is_bullish:
        signals.append("HAMMER_PATTERN")
        confidence += 30
        pattern = "BULLISH_HAMMER_REVERSAL"

    if current.range > 0 and current.upper_shadow >= 2 * body and current.lower_shadow <= body * 0.5 \
            and current.is_bearish:
        signals.append("SHOOTING_STAR")
        confidence += 30
        pattern = "BEARISH_SHOOTING_STAR_REVERSAL"

    if (current.is_bullish and prev.is_bearish and current.close > prev.open
            and current.open < prev.close and current.low <= support * 1.01):
        signals.append("BULLISH_ENGULFING_AT_SUPPORT")
        confidence += 35
        pattern = "BULLISH_ENGULFING_REVERSAL"

    if (current.is_bearish and prev.is_bullish and current.open > prev.close
            and current.close < prev.open and current.high >= resistance * 0.99):
        signals.append("BEARISH_ENGULFING_AT_RESISTANCE")
        confidence += 35
        pattern = "BEARISH_ENGULFING_REVERSAL"

    divergence = detect_rsi_divergence(candles)
    if divergence != "NO_DIVERGENCE":
        signals.append(f"RSI_{divergence}_DIVERGENCE")
        confidence += 40
        pattern = f"{divergence}_DIVERGENCE_REVERSAL"

    double_pattern = detect_double_top_bottom(candles)
    if double_pattern != "NO_PATTERN":
        signals.append(double_pattern)
        confidence += 35
        pattern = f"{double_pattern}_REVERSAL"

    return ReversalAnalysis(
        pattern=pattern if confidence > 0 else "NO_REVERSAL",
        confidence=min(confidence, 95),
        signals=tuple(signals),
    )

"""
Data models shared by every analysis stage.

Candles are immutable once created; every derived artifact (swings, markers,
predictions) is rebuilt from scratch on each analysis pass.
"""
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .errors import InvalidCandleError

IndicatorSeries = List[Optional[float]]


class Direction(str, Enum):
    BULLISH = "BULLISH"
    BEARISH = "BEARISH"
    NEUTRAL = "NEUTRAL"


class TrendVerdict(str, Enum):
    BULLISH = "BULLISH"
    BEARISH = "BEARISH"
    SIDEWAYS = "SIDEWAYS"


class Structure(str, Enum):
    UPTREND = "UPTREND"
    DOWNTREND = "DOWNTREND"
    RANGE = "RANGE"


class SwingKind(str, Enum):
    HIGH = "HIGH"
    LOW = "LOW"


class MarkerPosition(str, Enum):
    ABOVE = "above"
    BELOW = "below"
    IN = "in"


class MarkerShape(str, Enum):
    ARROW_UP = "arrow_up"
    ARROW_DOWN = "arrow_down"
    CIRCLE = "circle"
    SQUARE = "square"


class MarkerKind(str, Enum):
    """Dedup key for markers: at most one marker per (time, kind)"""
    BULLISH_ENGULFING = "bullish_engulfing"
    BEARISH_ENGULFING = "bearish_engulfing"
    DOJI = "doji"
    HAMMER = "hammer"
    SHOOTING_STAR = "shooting_star"
    DOUBLE_TOP = "double_top"
    DOUBLE_BOTTOM = "double_bottom"
    HEAD_AND_SHOULDERS = "head_and_shoulders"
    SMC = "smc"
    SUPPORT = "support"
    RESISTANCE = "resistance"
    BULL_PREDICTION = "bull_prediction"
    BEAR_PREDICTION = "bear_prediction"
    RANGE_PREDICTION = "range_prediction"
    BREAKOUT_PREDICTION = "breakout_prediction"
    REVERSAL_PREDICTION = "reversal_prediction"
    TREND_UP = "trend_up"
    TREND_DOWN = "trend_down"


class Signal(str, Enum):
    """Signals counted by the prediction scorer"""
    SMA_BULLISH_CROSS = "SMA_BULLISH_CROSS"
    UPTREND_HH_HL = "UPTREND_HH_HL"
    ABOVE_SMA20 = "ABOVE_SMA20"
    RSI_BULLISH = "RSI_BULLISH"
    BREAKING_RESISTANCE = "BREAKING_RESISTANCE"
    VOLUME_CONFIRMATION = "VOLUME_CONFIRMATION"
    SUPPORT_BOUNCE = "SUPPORT_BOUNCE"
    SMA_BEARISH_CROSS = "SMA_BEARISH_CROSS"
    DOWNTREND_LH_LL = "DOWNTREND_LH_LL"
    BELOW_SMA20 = "BELOW_SMA20"
    RSI_BEARISH = "RSI_BEARISH"
    BREAKING_SUPPORT = "BREAKING_SUPPORT"
    RESISTANCE_REJECTION = "RESISTANCE_REJECTION"


class TrendSignal(str, Enum):
    """Signals counted by the moving-average trend classifier"""
    SHORT_MA_ABOVE_LONG = "SHORT_MA_ABOVE_LONG"
    SHORT_MA_BELOW_LONG = "SHORT_MA_BELOW_LONG"
    PRICE_ABOVE_SHORT_MA = "PRICE_ABOVE_SHORT_MA"
    PRICE_BELOW_SHORT_MA = "PRICE_BELOW_SHORT_MA"
    PRICE_ABOVE_LONG_MA = "PRICE_ABOVE_LONG_MA"
    PRICE_BELOW_LONG_MA = "PRICE_BELOW_LONG_MA"
    MA_TREND_UP = "MA_TREND_UP"
    MA_TREND_DOWN = "MA_TREND_DOWN"
    UPTREND_HH_HL = "UPTREND_HH_HL"
    DOWNTREND_LH_LL = "DOWNTREND_LH_LL"
    NEAR_RESISTANCE = "NEAR_RESISTANCE"
    NEAR_SUPPORT = "NEAR_SUPPORT"


class PredictionPattern(str, Enum):
    STRONG_UPTREND = "STRONG_UPTREND"
    STRONG_DOWNTREND = "STRONG_DOWNTREND"
    RESISTANCE_BREAKOUT = "RESISTANCE_BREAKOUT"
    SUPPORT_BREAKDOWN = "SUPPORT_BREAKDOWN"
    SUPPORT_REVERSAL = "SUPPORT_REVERSAL"
    RESISTANCE_REVERSAL = "RESISTANCE_REVERSAL"
    BULLISH_BIAS = "BULLISH_BIAS"
    BEARISH_BIAS = "BEARISH_BIAS"
    RANGE_BOUND = "RANGE_BOUND"


class VolumeTrend(str, Enum):
    INCREASING = "INCREASING"
    DECREASING = "DECREASING"
    STABLE = "STABLE"


@dataclass(slots=True, frozen=True)
class Candle:
    """A single OHLCV bar.

    Attributes:
        time:      Unix timestamp (seconds, UTC) of the bar open.
        open:      Opening price.
        high:      Highest price during the bar.
        low:       Lowest price during the bar.
        close:     Closing (or latest, while in progress) price.
        volume:    Traded volume, None when the feed has no volume data.
        is_closed: False for the in-progress bar that may still be replaced.
    """

    time: int
    open: float
    high: float
    low: float
    close: float
    volume: Optional[float] = 0.0
    is_closed: bool = True

    def __post_init__(self) -> None:
        if any(math.isnan(v) for v in (self.open, self.high, self.low, self.close)):
            raise InvalidCandleError(f"prices must be numbers, got {self.open}/{self.high}/{self.low}/{self.close}")
        if self.time <= 0:
            raise InvalidCandleError(f"time must be a positive unix timestamp, got {self.time}")
        if self.high < self.low:
            raise InvalidCandleError(f"high ({self.high}) must be >= low ({self.low})")
        if self.high < max(self.open, self.close):
            raise InvalidCandleError(f"high ({self.high}) must be >= open and close")
        if self.low > min(self.open, self.close):
            raise InvalidCandleError(f"low ({self.low}) must be <= open and close")

    @property
    def body(self) -> float:
        return abs(self.close - self.open)

    @property
    def range(self) -> float:
        return self.high - self.low

    @property
    def upper_shadow(self) -> float:
        return self.high - max(self.open, self.close)

    @property
    def lower_shadow(self) -> float:
        return min(self.open, self.close) - self.low

    @property
    def is_bullish(self) -> bool:
        return self.close > self.open

    @property
    def is_bearish(self) -> bool:
        return self.close < self.open


@dataclass(slots=True, frozen=True)
class SwingPoint:
    index: int
    time: int
    price: float
    kind: SwingKind


@dataclass(slots=True, frozen=True)
class PatternMarker:
    """A timestamped annotation for the presentation layer"""

    time: int
    kind: MarkerKind
    position: MarkerPosition
    color: str
    shape: MarkerShape
    label: str
    size: int = 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "time": self.time,
            "kind": self.kind.value,
            "position": self.position.value,
            "color": self.color,
            "shape": self.shape.value,
            "label": self.label,
            "size": self.size,
        }


@dataclass(slots=True, frozen=True)
class TrendAnalysis:
    trend: TrendVerdict
    strength: int
    signals: Tuple[TrendSignal, ...]
    structure: Structure
    higher_highs: bool = False
    higher_lows: bool = False
    lower_highs: bool = False
    lower_lows: bool = False


@dataclass(slots=True, frozen=True)
class VolumeAnalysis:
    total_volume: float
    average_volume: float
    current_volume: float
    relative_volume: float
    volume_spike: bool
    spike_intensity: float
    volume_trend: VolumeTrend


@dataclass(slots=True, frozen=True)
class ReversalAnalysis:
    pattern: str
    confidence: float
    signals: Tuple[str, ...]


@dataclass(slots=True, frozen=True)
class Prediction:
    """The single current directional call, rebuilt on every pass"""

    direction: Direction
    confidence: float
    pattern_label: PredictionPattern
    signals: Tuple[Signal, ...]
    support_level: float
    resistance_level: float
    sma_short: float
    sma_long: float
    current_price: float
    trend: Structure
    rsi: float
    time: int
    target_price: Optional[float] = None
    stop_loss: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "direction": self.direction.value,
            "confidence": self.confidence,
            "pattern": self.pattern_label.value,
            "target_price": self.target_price,
            "stop_loss": self.stop_loss,
            "signals": [s.value for s in self.signals],
            "support": self.support_level,
            "resistance": self.resistance_level,
            "sma_short": self.sma_short,
            "sma_long": self.sma_long,
            "current_price": self.current_price,
            "trend": self.trend.value,
            "rsi": self.rsi,
            "time": self.time,
        }


@dataclass(frozen=True)
class AnalysisResult:
    """Everything one analysis pass publishes"""

    candle_count: int
    markers: Tuple[PatternMarker, ...] = ()
    prediction: Optional[Prediction] = None
    trend: Optional[TrendAnalysis] = None
    moving_averages: Dict[str, IndicatorSeries] = field(default_factory=dict)
    rsi: IndicatorSeries = field(default_factory=list)
    swing_highs: Tuple[SwingPoint, ...] = ()
    swing_lows: Tuple[SwingPoint, ...] = ()
    volume: Optional[VolumeAnalysis] = None
    reversal: Optional[ReversalAnalysis] = None
    sequence: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sequence": self.sequence,
            "candle_count": self.candle_count,
            "markers": [m.to_dict() for m in self.markers],
            "prediction": self.prediction.to_dict() if self.prediction else None,
            "trend": {
                "trend": self.trend.trend.value,
                "strength": self.trend.strength,
                "structure": self.trend.structure.value,
                "signals": [s.value for s in self.trend.signals],
            } if self.trend else None,
            "reversal": {
                "pattern": self.reversal.pattern,
                "confidence": self.reversal.confidence,
                "signals": list(self.reversal.signals),
            } if self.reversal else None,
        }

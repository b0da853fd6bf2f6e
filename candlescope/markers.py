"""
Marker emission: prediction markers plus the merge/dedup/cap of every marker list
"""
import logging
from typing import Iterable, List, Mapping, Optional, Set, Tuple

from .config import resolve_filters
from .models import (
    Direction, MarkerKind, MarkerPosition, MarkerShape, PatternMarker,
    Prediction, PredictionPattern, Structure,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_MARKERS = 50
LEVEL_PROXIMITY = 0.02

# Presentation of the prediction markers: kind -> (color, shape)
PREDICTION_STYLES = {
    MarkerKind.BULL_PREDICTION: ("#00c853", MarkerShape.ARROW_UP),
    MarkerKind.BEAR_PREDICTION: ("#ff1744", MarkerShape.ARROW_DOWN),
    MarkerKind.RANGE_PREDICTION: ("#2979ff", MarkerShape.CIRCLE),
    MarkerKind.BREAKOUT_PREDICTION: ("#ff9100", MarkerShape.SQUARE),
    MarkerKind.REVERSAL_PREDICTION: ("#d500f9", MarkerShape.CIRCLE),
}

BREAK_PATTERNS = (PredictionPattern.RESISTANCE_BREAKOUT, PredictionPattern.SUPPORT_BREAKDOWN)
REVERSAL_PATTERNS = (PredictionPattern.SUPPORT_REVERSAL, PredictionPattern.RESISTANCE_REVERSAL)


def _styled(time: int, kind: MarkerKind, position: MarkerPosition, label: str) -> PatternMarker:
    color, shape = PREDICTION_STYLES[kind]
    return PatternMarker(time=time, kind=kind, position=position, color=color, shape=shape, label=label)


def prediction_markers(prediction: Optional[Prediction],
                       filters: Optional[Mapping[str, bool]] = None) -> List[PatternMarker]:
    """
    Build the markers that annotate the current prediction.

    All of them sit on the time of the last scored candle.

    Args:
        prediction: Current prediction, or None
        filters: Pattern filter map (see config.resolve_filters)

    Returns:
        List of markers in emission order
    """
    if prediction is None:
        return []

    filters = resolve_filters(filters)
    time = prediction.time
    price = prediction.current_price
    support = prediction.support_level
    resistance = prediction.resistance_level
    markers = []

    if filters["Bull Prediction"] or filters["Bear Prediction"]:
        if support > 0 and abs(price - support) / support < LEVEL_PROXIMITY:
            markers.append(PatternMarker(time=time, kind=MarkerKind.SUPPORT, position=MarkerPosition.BELOW,
                                         color="#4caf50", shape=MarkerShape.CIRCLE,
                                         label=f"SUP {support:.2f}"))
        if resistance > 0 and abs(price - resistance) / resistance < LEVEL_PROXIMITY:
            markers.append(PatternMarker(time=time, kind=MarkerKind.RESISTANCE, position=MarkerPosition.ABOVE,
                                         color="#f44336", shape=MarkerShape.CIRCLE,
                                         label=f"RES {resistance:.2f}"))

    confidence = f"{prediction.confidence:.0f}%"
    if filters["Bull Prediction"] and prediction.direction == Direction.BULLISH:
        markers.append(_styled(time, MarkerKind.BULL_PREDICTION, MarkerPosition.BELOW, f"BULL {confidence}"))

    if filters["Bear Prediction"] and prediction.direction == Direction.BEARISH:
        markers.append(_styled(time, MarkerKind.BEAR_PREDICTION, MarkerPosition.ABOVE, f"BEAR {confidence}"))

    if filters["Range Prediction"] and prediction.direction == Direction.NEUTRAL:
        markers.append(_styled(time, MarkerKind.RANGE_PREDICTION, MarkerPosition.ABOVE, "RANGE"))

    if filters["Breakout Prediction"] and prediction.pattern_label in BREAK_PATTERNS:
        label = "BREAKOUT" if prediction.pattern_label == PredictionPattern.RESISTANCE_BREAKOUT else "BREAKDOWN"
        markers.append(_styled(time, MarkerKind.BREAKOUT_PREDICTION, MarkerPosition.ABOVE, label))

    if filters["Reversal Prediction"] and prediction.pattern_label in REVERSAL_PATTERNS:
        markers.append(_styled(time, MarkerKind.REVERSAL_PREDICTION, MarkerPosition.ABOVE, "REVERSAL"))

    if prediction.trend == Structure.UPTREND and (filters["Bull Prediction"] or filters["Breakout Prediction"]):
        markers.append(PatternMarker(time=time, kind=MarkerKind.TREND_UP, position=MarkerPosition.ABOVE,
                                     color="#00c853", shape=MarkerShape.ARROW_UP, label="UPTREND"))

    if prediction.trend == Structure.DOWNTREND and (filters["Bear Prediction"] or filters["Breakout Prediction"]):
        markers.append(PatternMarker(time=time, kind=MarkerKind.TREND_DOWN, position=MarkerPosition.ABOVE,
                                     color="#ff1744", shape=MarkerShape.ARROW_DOWN, label="DOWNTREND"))

    return markers


def emit_markers(*marker_lists: Iterable[PatternMarker],
                 max_markers: int = DEFAULT_MAX_MARKERS) -> List[PatternMarker]:
    """
    Merge marker lists into the published marker set.

    The first marker for a (time, kind) pair wins. The result is ordered by
    time (stable for equal times) and keeps only the newest max_markers.
    """
    seen: Set[Tuple[int, MarkerKind]] = set()
    merged = []
    dropped = 0
    for markers in marker_lists:
        for marker in markers:
            key = (marker.time, marker.kind)
            if key in seen:
                dropped += 1
                continue
            seen.add(key)
            merged.append(marker)

    if dropped:
        logger.debug(f"Dropped {dropped} duplicate markers")

    merged.sort(key=lambda m: m.time)
    if max_markers <= 0:
        return []
    return merged[-max_markers:]


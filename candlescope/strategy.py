"""
Prediction scoring.

Scores the most recent candles with a fixed set of bullish and bearish rules,
then picks the first matching pattern from an ordered cascade. The thresholds
are heuristic and reproduced as-is.
"""
import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from .config import DEFAULT_CONFIG
from .indicators import calculate_rsi, calculate_sma, latest_value
from .models import Candle, Direction, Prediction, PredictionPattern, Signal
from .swings import detect_swings, swing_levels
from .trend import classify_structure, resolve_structure_flags
from .volume import analyze_volume, volume_rules_enabled

logger = logging.getLogger(__name__)

MIN_CONFIDENCE = 40
MAX_CONFIDENCE = 95
BASE_CONFIDENCE = 50

# Cascade outcome: (pattern, direction, confidence, target_price, stop_loss)
Outcome = Tuple[PredictionPattern, Direction, float, Optional[float], Optional[float]]


def score_signals(ctx: Dict[str, Any]) -> Tuple[List[Signal], List[Signal], float]:
    """
    Run the bullish and bearish rules over a scoring context.

    Both tallies add to one confidence value; the signals are kept apart.

    Args:
        ctx: Scoring context built by predict()

    Returns:
        Tuple of (bullish_signals, bearish_signals, confidence)
    """
    price = ctx['price']
    prev_close = ctx['prev_close']
    sma_short = ctx['sma_short']
    sma_long = ctx['sma_long']
    rsi = ctx['rsi']
    support = ctx['support']
    resistance = ctx['resistance']
    flags = ctx['flags']
    volume_spike = ctx['volume_spike']

    confidence = BASE_CONFIDENCE
    bullish = []
    bearish = []

    # Bullish rules
    if price > sma_short > sma_long:
        bullish.append(Signal.SMA_BULLISH_CROSS)
        confidence += 15
    if flags['higher_highs'] and flags['higher_lows']:
        bullish.append(Signal.UPTREND_HH_HL)
        confidence += 20
    if price > sma_long:
        bullish.append(Signal.ABOVE_SMA20)
    if 50 < rsi < 70:
        bullish.append(Signal.RSI_BULLISH)
        confidence += 10
    if price > resistance * 0.995:
        bullish.append(Signal.BREAKING_RESISTANCE)
        confidence += 15
    if volume_spike and price > prev_close:
        bullish.append(Signal.VOLUME_CONFIRMATION)
        confidence += 5
    if price > support * 1.005 and price > prev_close:
        bullish.append(Signal.SUPPORT_BOUNCE)
        confidence += 10

    # Bearish rules
    if price < sma_short < sma_long:
        bearish.append(Signal.SMA_BEARISH_CROSS)
        confidence += 15
    if flags['lower_highs'] and flags['lower_lows']:
        bearish.append(Signal.DOWNTREND_LH_LL)
        confidence += 20
    if price < sma_long:
        bearish.append(Signal.BELOW_SMA20)
    if 30 < rsi < 50:
        bearish.append(Signal.RSI_BEARISH)
        confidence += 10
    if price < support * 1.005:
        bearish.append(Signal.BREAKING_SUPPORT)
        confidence += 15
    if volume_spike and price < prev_close:
        bearish.append(Signal.VOLUME_CONFIRMATION)
        confidence += 5
    if price < resistance * 0.995 and price < prev_close:
        bearish.append(Signal.RESISTANCE_REJECTION)
        confidence += 10

    return bullish, bearish, confidence


# ----------------------------------------------------------------------
# Pattern cascade
# ----------------------------------------------------------------------

def _strong_uptrend(ctx, bullish, bearish) -> Optional[Outcome]:
    if Signal.UPTREND_HH_HL in bullish and Signal.SMA_BULLISH_CROSS in bullish:
        return (PredictionPattern.STRONG_UPTREND, Direction.BULLISH,
                min(90, 70 + len(bullish) * 3),
                ctx['price'] * 1.03,
                min(ctx['last_low'] * 0.99, ctx['sma_long'] * 0.98))
    return None


def _strong_downtrend(ctx, bullish, bearish) -> Optional[Outcome]:
    if Signal.DOWNTREND_LH_LL in bearish and Signal.SMA_BEARISH_CROSS in bearish:
        return (PredictionPattern.STRONG_DOWNTREND, Direction.BEARISH,
                min(90, 70 + len(bearish) * 3),
                ctx['price'] * 0.97,
                max(ctx['last_high'] * 1.01, ctx['sma_long'] * 1.02))
    return None


def _resistance_breakout(ctx, bullish, bearish) -> Optional[Outcome]:
    if Signal.BREAKING_RESISTANCE in bullish and ctx['volume_spike']:
        return (PredictionPattern.RESISTANCE_BREAKOUT, Direction.BULLISH, 80,
                ctx['resistance'] * 1.02, ctx['resistance'] * 0.99)
    return None


def _support_breakdown(ctx, bullish, bearish) -> Optional[Outcome]:
    if Signal.BREAKING_SUPPORT in bearish and ctx['volume_spike']:
        return (PredictionPattern.SUPPORT_BREAKDOWN, Direction.BEARISH, 80,
                ctx['support'] * 0.98, ctx['support'] * 1.01)
    return None


def _support_reversal(ctx, bullish, bearish) -> Optional[Outcome]:
    if Signal.SUPPORT_BOUNCE in bullish:
        return (PredictionPattern.SUPPORT_REVERSAL, Direction.BULLISH, 75,
                ctx['price'] * 1.02, ctx['support'] * 0.995)
    return None


def _resistance_reversal(ctx, bullish, bearish) -> Optional[Outcome]:
    if Signal.RESISTANCE_REJECTION in bearish:
        return (PredictionPattern.RESISTANCE_REVERSAL, Direction.BEARISH, 75,
                ctx['price'] * 0.98, ctx['resistance'] * 1.005)
    return None


def _bullish_bias(ctx, bullish, bearish) -> Optional[Outcome]:
    if len(bullish) > len(bearish) + 2:
        return (PredictionPattern.BULLISH_BIAS, Direction.BULLISH,
                65 + len(bullish) * 2,
                ctx['price'] * 1.015,
                min(ctx['sma_long'] * 0.99, ctx['support'] * 0.995))
    return None


def _bearish_bias(ctx, bullish, bearish) -> Optional[Outcome]:
    if len(bearish) > len(bullish) + 2:
        return (PredictionPattern.BEARISH_BIAS, Direction.BEARISH,
                65 + len(bearish) * 2,
                ctx['price'] * 0.985,
                max(ctx['sma_long'] * 1.01, ctx['resistance'] * 1.005))
    return None


PATTERN_RULES: List[Callable[..., Optional[Outcome]]] = [
    _strong_uptrend,
    _strong_downtrend,
    _resistance_breakout,
    _support_breakdown,
    _support_reversal,
    _resistance_reversal,
    _bullish_bias,
    _bearish_bias,
]


def select_pattern(ctx: Dict[str, Any], bullish: List[Signal], bearish: List[Signal],
                   confidence: float) -> Outcome:
    """First matching cascade rule, or a neutral range when none matches"""
    for rule in PATTERN_RULES:
        outcome = rule(ctx, bullish, bearish)
        if outcome is not None:
            return outcome
    return PredictionPattern.RANGE_BOUND, Direction.NEUTRAL, confidence, None, None


def clamp_confidence(confidence: float) -> float:
    return float(min(MAX_CONFIDENCE, max(confidence, MIN_CONFIDENCE)))


def predict(candles: Sequence[Candle], config: Optional[Mapping[str, Any]] = None) -> Optional[Prediction]:
    """
    Score the latest candles and produce a directional prediction.

    Args:
        candles: Candle snapshot, oldest first
        config: Configuration mapping (see config.DEFAULT_CONFIG)

    Returns:
        Prediction, or None when fewer than min_candles candles are given
    """
    config = {**DEFAULT_CONFIG, **dict(config or {})}
    min_candles = config['min_candles']
    if len(candles) < min_candles:
        logger.warning(f"Not enough candles for prediction: {len(candles)} < {min_candles}")
        return None

    short_period, long_period = config['prediction_ma_periods']
    recent = list(candles[-max(min_candles, long_period):])
    closes = [c.close for c in recent]

    sma_short = latest_value(calculate_sma(closes, short_period))
    sma_long = latest_value(calculate_sma(closes, long_period))
    if sma_short is None or sma_long is None:
        logger.warning(f"Not enough candles for SMA{short_period}/SMA{long_period}: {len(recent)}")
        return None

    swing_highs, swing_lows = detect_swings(recent)
    support, resistance = swing_levels(recent, swing_highs, swing_lows)
    flags = resolve_structure_flags(recent, swing_highs, swing_lows)

    volume_spike = False
    if volume_rules_enabled(recent, config['volume_policy']):
        volume = analyze_volume(recent, config['volume_spike_multiplier'])
        volume_spike = volume is not None and volume.volume_spike

    # RSI looks at the whole input, not just the scored window
    rsi = calculate_rsi([c.close for c in candles], config['rsi_period'], config['rsi_epsilon'])

    last = recent[-1]
    ctx = {
        'price': last.close,
        'prev_close': recent[-2].close,
        'last_low': last.low,
        'last_high': last.high,
        'sma_short': sma_short,
        'sma_long': sma_long,
        'rsi': rsi,
        'support': support,
        'resistance': resistance,
        'flags': flags,
        'volume_spike': volume_spike,
    }

    bullish, bearish, confidence = score_signals(ctx)
    pattern, direction, confidence, target, stop = select_pattern(ctx, bullish, bearish, confidence)

    signals = bullish if direction == Direction.BULLISH else bearish

    prediction = Prediction(
        direction=direction,
        confidence=clamp_confidence(confidence),
        pattern_label=pattern,
        signals=tuple(signals),
        support_level=support,
        resistance_level=resistance,
        sma_short=sma_short,
        sma_long=sma_long,
        current_price=last.close,
        trend=classify_structure(flags),
        rsi=rsi,
        time=last.time,
        target_price=target,
        stop_loss=stop,
    )
    logger.debug(f"Prediction {prediction.pattern_label.value} {prediction.direction.value} "
                 f"({prediction.confidence:.0f}%) at {last.time}")
    return prediction

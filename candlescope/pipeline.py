"""
Analysis pipeline and pass scheduling.

analyze() is a pure function of a candle snapshot and a configuration.
AnalysisScheduler owns the timing: it serializes passes over one window,
coalesces triggers that arrive while a pass runs, debounces in-progress
updates and publishes results in sequence order.
"""
import dataclasses
import logging
import threading
from typing import Any, Callable, Mapping, Optional, Sequence

from .candlestick_patterns import detect_patterns, detect_reversal_patterns
from .config import DEFAULT_CONFIG, get_config, resolve_filters
from .indicators import MA_FUNCTIONS, calculate_moving_averages, calculate_rsi_series
from .markers import emit_markers, prediction_markers
from .models import AnalysisResult, Candle
from .strategy import predict
from .swings import detect_swings, swing_levels
from .trend import analyze_trend
from .volume import analyze_volume, volume_rules_enabled
from .window import CandleWindow, without_in_progress

logger = logging.getLogger(__name__)


def _guarded(stage: str, func: Callable, *args, **kwargs):
    """Run one stage; a failure is logged and the stage output is absent"""
    try:
        return func(*args, **kwargs)
    except Exception as e:
        logger.error(f"Analysis stage '{stage}' failed: {str(e)}", exc_info=True)
        return None


def analyze(candles: Sequence[Candle], config: Optional[Mapping[str, Any]] = None,
            sequence: int = 0) -> AnalysisResult:
    """
    Run one full analysis pass over a candle snapshot.

    Args:
        candles: Candle snapshot, oldest first; a trailing in-progress candle is
                 used for indicators and scoring but never for patterns
        config: Configuration mapping (see config.DEFAULT_CONFIG)
        sequence: Pass number stamped on the result

    Returns:
        AnalysisResult. With fewer than min_candles candles it carries no
        markers and no prediction.
    """
    config = {**DEFAULT_CONFIG, **dict(config or {})}
    filters = resolve_filters(config.get("pattern_filters"))
    config["pattern_filters"] = filters
    candles = tuple(candles)
    closes = [c.close for c in candles]

    moving_averages = _guarded("moving_averages", calculate_moving_averages, candles,
                               config["trend_ma_periods"], config["ma_types"]) or {}
    rsi = _guarded("rsi", calculate_rsi_series, closes, config["rsi_period"], config["rsi_epsilon"]) or []
    swings = _guarded("swings", detect_swings, candles) or ([], [])
    swing_highs, swing_lows = swings

    if len(candles) < config["min_candles"]:
        logger.warning(f"Not enough candles for analysis: {len(candles)} < {config['min_candles']}")
        return AnalysisResult(
            candle_count=len(candles),
            moving_averages=moving_averages,
            rsi=rsi,
            swing_highs=tuple(swing_highs),
            swing_lows=tuple(swing_lows),
            sequence=sequence,
        )

    trend_func = MA_FUNCTIONS[config["trend_ma_type"]]
    short_period, long_period = config["trend_ma_periods"]
    short_ma = moving_averages.get(f"{config['trend_ma_type']}{short_period}") or trend_func(closes, short_period)
    long_ma = moving_averages.get(f"{config['trend_ma_type']}{long_period}") or trend_func(closes, long_period)
    trend = _guarded("trend", analyze_trend, candles, short_ma, long_ma, swing_highs, swing_lows)

    volume = None
    recent = candles[-config["level_lookback"]:]
    if volume_rules_enabled(recent, config["volume_policy"]):
        volume = _guarded("volume", analyze_volume, recent, config["volume_spike_multiplier"])

    closed = without_in_progress(candles)
    patterns = _guarded("patterns", detect_patterns, closed, config) or []
    prediction = _guarded("prediction", predict, candles, config)

    reversal = None
    if closed:
        if prediction is not None:
            support, resistance = prediction.support_level, prediction.resistance_level
        else:
            support, resistance = swing_levels(closed, *detect_swings(closed))
        reversal = _guarded("reversal", detect_reversal_patterns, closed, support, resistance)

    markers = _guarded("markers", emit_markers, patterns, prediction_markers(prediction, filters),
                       max_markers=config["max_markers"]) or []

    return AnalysisResult(
        candle_count=len(candles),
        markers=tuple(markers),
        prediction=prediction,
        trend=trend,
        moving_averages=moving_averages,
        rsi=rsi,
        swing_highs=tuple(swing_highs),
        swing_lows=tuple(swing_lows),
        volume=volume,
        reversal=reversal,
        sequence=sequence,
    )


class AnalysisScheduler:
    """
    Drives analysis passes for one instrument's window.

    trigger() runs a pass in the calling thread unless one is already running,
    in which case it leaves at most one pending pass behind. tick() applies an
    in-progress candle and schedules a debounced pass; close() applies a closed
    candle and runs a pass right away.
    """

    def __init__(self, window: CandleWindow, config: Optional[Mapping[str, Any]] = None,
                 on_publish: Optional[Callable[[AnalysisResult], None]] = None):
        """
        Initialize the scheduler.

        Args:
            window: Candle window the passes read from
            config: Configuration overrides merged by get_config()
            on_publish: Called with every published result
        """
        self.window = window
        self.config = get_config(config)
        self.on_publish = on_publish

        self._state_lock = threading.Lock()
        self._running = False
        self._pending = False
        self._sequence = 0
        self._published_sequence = 0
        self._latest: Optional[AnalysisResult] = None
        self._timer: Optional[threading.Timer] = None
        self.passes_run = 0

    @property
    def latest(self) -> Optional[AnalysisResult]:
        """Last published result, None before the first pass"""
        with self._state_lock:
            return self._latest

    def trigger(self) -> bool:
        """
        Request an analysis pass.

        Returns:
            True if this call ran the pass(es), False if it was coalesced into
            the pass already running
        """
        with self._state_lock:
            if self._running:
                self._pending = True
                logger.debug("Pass already running, trigger coalesced")
                return False
            self._running = True

        while True:
            try:
                self._run_once()
            except Exception as e:
                logger.error(f"Analysis pass failed: {str(e)}", exc_info=True)

            with self._state_lock:
                if not self._pending:
                    self._running = False
                    return True
                self._pending = False

    def tick(self, candle: Candle) -> None:
        """Apply an in-progress update and schedule a debounced pass"""
        if candle.is_closed:
            candle = dataclasses.replace(candle, is_closed=False)
        self.window.append(candle)

        delay = self.config["debounce_seconds"]
        if delay <= 0:
            self.trigger()
            return

        with self._state_lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(delay, self._debounced_trigger)
            self._timer.daemon = True
            self._timer.start()

    def close(self, candle: Candle) -> None:
        """Apply a closed candle and run a pass immediately"""
        if not candle.is_closed:
            candle = dataclasses.replace(candle, is_closed=True)
        self.window.append(candle)
        self.cancel_pending()
        self.trigger()

    def cancel_pending(self) -> None:
        """Cancel a scheduled debounced pass, if any"""
        with self._state_lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def _debounced_trigger(self) -> None:
        with self._state_lock:
            self._timer = None
        self.trigger()

    def _run_once(self) -> None:
        with self._state_lock:
            self._sequence += 1
            sequence = self._sequence

        snapshot = self.window.snapshot()
        result = analyze(snapshot, self.config, sequence=sequence)
        self.passes_run += 1
        self._publish(result)

    def _publish(self, result: AnalysisResult) -> bool:
        """Publish a result unless a newer one is already out"""
        with self._state_lock:
            if result.sequence <= self._published_sequence:
                logger.debug(f"Discarding stale pass {result.sequence} "
                             f"(published {self._published_sequence})")
                return False
            self._published_sequence = result.sequence
            self._latest = result

        prediction = result.prediction
        summary = (f"{prediction.direction.value} {prediction.confidence:.0f}%"
                   if prediction is not None else "no prediction")
        logger.info(f"Published pass {result.sequence}: {len(result.markers)} markers, {summary}")

        if self.on_publish is not None:
            try:
                self.on_publish(result)
            except Exception as e:
                logger.error(f"Publish callback failed: {str(e)}", exc_info=True)
        return True

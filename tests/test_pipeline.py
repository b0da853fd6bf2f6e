"""
Tests for the analysis pipeline and the pass scheduler
"""
import logging
import time

import pytest

from candlescope import pipeline
from candlescope.errors import OutOfOrderCandleError
from candlescope.models import Direction, MarkerKind, PredictionPattern, Structure
from candlescope.pipeline import AnalysisScheduler, analyze
from candlescope.window import CandleWindow

from tests.factories import candle, flat_candles, rising_candles, ts


def _wait_for(predicate, timeout=3.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def _engulfing_tail(is_closed):
    candles = rising_candles(25)
    candles[-1] = candle(24, 123.6, 123.8, 121.9, 122.0, is_closed=is_closed)
    return candles


class TestAnalyze:

    def test_too_few_candles(self):
        result = analyze(rising_candles(19))
        assert result.prediction is None
        assert result.markers == ()
        assert result.candle_count == 19

    def test_monotonic_rise(self):
        result = analyze(rising_candles(25))
        assert result.prediction.direction == Direction.BULLISH
        assert result.prediction.trend == Structure.UPTREND
        assert result.prediction.pattern_label == PredictionPattern.STRONG_UPTREND
        assert result.trend.structure == Structure.UPTREND
        kinds = [m.kind for m in result.markers]
        assert MarkerKind.BULL_PREDICTION in kinds
        assert MarkerKind.TREND_UP in kinds

    def test_result_contents(self):
        result = analyze(rising_candles(120))
        assert set(result.moving_averages) == {"sma25", "sma99", "ema25", "ema99"}
        assert len(result.moving_averages["sma25"]) == 120
        assert len(result.rsi) == 120
        assert result.volume is not None
        assert result.reversal is not None
        assert result.swing_highs == ()

    def test_deterministic(self):
        candles = flat_candles(30)
        first = analyze(candles)
        second = analyze(candles)
        assert first.markers == second.markers
        assert first.prediction == second.prediction

    def test_unique_time_kind(self):
        result = analyze(flat_candles(30))
        keys = [(m.time, m.kind) for m in result.markers]
        assert len(keys) == len(set(keys))

    def test_confidence_bounds(self):
        for candles in (rising_candles(25), flat_candles(25), rising_candles(200)):
            result = analyze(candles)
            assert 40 <= result.prediction.confidence <= 95

    def test_marker_cap(self):
        result = analyze(flat_candles(100), {"max_markers": 10})
        assert len(result.markers) == 10
        assert result.markers[-1].time == ts(99)

    def test_in_progress_candle_has_no_pattern(self):
        closed = analyze(_engulfing_tail(is_closed=True))
        assert (ts(24), MarkerKind.BEARISH_ENGULFING) in [(m.time, m.kind) for m in closed.markers]

        forming = analyze(_engulfing_tail(is_closed=False))
        assert MarkerKind.BEARISH_ENGULFING not in [m.kind for m in forming.markers]
        # The forming candle still drives the prediction
        assert forming.prediction.time == ts(24)

    def test_filters_applied(self):
        result = analyze(flat_candles(30), {"pattern_filters": {"Doji": False}})
        assert MarkerKind.DOJI not in [m.kind for m in result.markers]

    def test_failed_stage_is_absent(self, monkeypatch, caplog):
        def boom(*args, **kwargs):
            raise RuntimeError("pattern failure")

        monkeypatch.setattr(pipeline, "detect_patterns", boom)
        with caplog.at_level(logging.ERROR, logger="candlescope.pipeline"):
            result = analyze(flat_candles(30))

        assert result.prediction is not None
        assert MarkerKind.DOJI not in [m.kind for m in result.markers]
        assert MarkerKind.RANGE_PREDICTION in [m.kind for m in result.markers]
        assert "pattern failure" in caplog.text


class TestAnalysisScheduler:

    def test_trigger_publishes(self):
        published = []
        window = CandleWindow(candles=rising_candles(25))
        scheduler = AnalysisScheduler(window, {"debounce_seconds": 0}, published.append)
        assert scheduler.latest is None
        assert scheduler.trigger() is True
        assert len(published) == 1
        assert scheduler.latest is published[0]
        assert scheduler.latest.sequence == 1

    def test_sequence_increases(self):
        window = CandleWindow(candles=rising_candles(25))
        scheduler = AnalysisScheduler(window)
        scheduler.trigger()
        scheduler.trigger()
        assert scheduler.latest.sequence == 2

    def test_triggers_during_pass_coalesce(self):
        window = CandleWindow(candles=rising_candles(25))
        sequences = []
        nested = []

        def on_publish(result):
            sequences.append(result.sequence)
            if len(sequences) == 1:
                nested.extend(scheduler.trigger() for _ in range(3))

        scheduler = AnalysisScheduler(window, {"debounce_seconds": 0}, on_publish)
        assert scheduler.trigger() is True
        assert nested == [False, False, False]
        assert sequences == [1, 2]
        assert scheduler.passes_run == 2

    def test_stale_result_discarded(self):
        window = CandleWindow(candles=rising_candles(25))
        scheduler = AnalysisScheduler(window)
        scheduler.trigger()
        stale = analyze(window.snapshot(), sequence=0)
        assert scheduler._publish(stale) is False
        assert scheduler.latest.sequence == 1

    def test_close_runs_pass_immediately(self):
        window = CandleWindow(candles=rising_candles(25))
        scheduler = AnalysisScheduler(window, {"debounce_seconds": 10})
        scheduler.close(candle(25, 124.5, 125.5, 124.0, 125.0, is_closed=False))
        assert scheduler.latest.candle_count == 26
        assert window.last.is_closed

    def test_tick_is_debounced(self):
        window = CandleWindow(candles=rising_candles(25))
        scheduler = AnalysisScheduler(window, {"debounce_seconds": 0.2})
        for close in (124.6, 124.8, 125.0):
            scheduler.tick(candle(25, 124.5, 125.5, 124.0, close))
        assert window.last.is_closed is False
        assert _wait_for(lambda: scheduler.latest is not None)
        time.sleep(0.3)
        assert scheduler.passes_run == 1
        assert scheduler.latest.prediction.current_price == 125.0

    def test_close_cancels_pending_tick(self):
        window = CandleWindow(candles=rising_candles(25))
        scheduler = AnalysisScheduler(window, {"debounce_seconds": 0.2})
        scheduler.tick(candle(25, 124.5, 125.5, 124.0, 125.0))
        scheduler.close(candle(25, 124.5, 125.5, 124.0, 125.2))
        time.sleep(0.4)
        assert scheduler.passes_run == 1

    def test_tick_without_debounce(self):
        window = CandleWindow(candles=rising_candles(25))
        scheduler = AnalysisScheduler(window, {"debounce_seconds": 0})
        scheduler.tick(candle(25, 124.5, 125.5, 124.0, 125.0))
        assert scheduler.passes_run == 1

    def test_out_of_order_tick_rejected(self):
        window = CandleWindow(candles=rising_candles(25))
        scheduler = AnalysisScheduler(window, {"debounce_seconds": 0})
        with pytest.raises(OutOfOrderCandleError):
            scheduler.tick(candle(3, 100.0, 101.0, 99.0, 100.0))
        assert scheduler.passes_run == 0

    def test_publish_callback_failure_logged(self, caplog):
        def broken(result):
            raise RuntimeError("subscriber down")

        window = CandleWindow(candles=rising_candles(25))
        scheduler = AnalysisScheduler(window, on_publish=broken)
        with caplog.at_level(logging.ERROR, logger="candlescope.pipeline"):
            scheduler.trigger()
        assert scheduler.latest is not None
        assert "subscriber down" in caplog.text

"""
Bounded, time-ordered candle window for a single instrument.
"""
import logging
import threading
from typing import Iterable, Iterator, Optional, Sequence, Tuple

import pandas as pd

from .errors import OutOfOrderCandleError
from .models import Candle

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_SIZE = 500


def without_in_progress(candles: Sequence[Candle]) -> Tuple[Candle, ...]:
    """Drop a trailing in-progress candle; only the last bar can still be forming"""
    if candles and not candles[-1].is_closed:
        return tuple(candles[:-1])
    return tuple(candles)


class CandleWindow:
    """
    Ordered, time-deduplicated sequence of candles capped at ``max_size``.

    The window is the only mutable state in the pipeline. It never triggers
    analysis itself; callers decide when to run a pass.
    """

    def __init__(self, max_size: int = DEFAULT_WINDOW_SIZE, candles: Optional[Iterable[Candle]] = None):
        if max_size < 1:
            raise ValueError(f"max_size must be positive, got {max_size}")
        self.max_size = max_size
        self._candles = []
        self._lock = threading.RLock()
        if candles:
            self.extend(candles)

    def append(self, candle: Candle) -> bool:
        """
        Add a candle to the window.

        A candle with the same time as the last one replaces it (the in-progress
        bar being updated). A newer candle is appended and the oldest candles are
        evicted past ``max_size``. An older candle is rejected.

        Args:
            candle: Candle to add

        Returns:
            True if the candle was appended, False if it replaced the last one

        Raises:
            OutOfOrderCandleError: if the candle is older than the last candle
        """
        with self._lock:
            if self._candles:
                last_time = self._candles[-1].time
                if candle.time == last_time:
                    self._candles[-1] = candle
                    return False
                if candle.time < last_time:
                    logger.warning(f"Rejected out-of-order candle at {candle.time} (last is {last_time})")
                    raise OutOfOrderCandleError(candle.time, last_time)

            self._candles.append(candle)
            overflow = len(self._candles) - self.max_size
            if overflow > 0:
                del self._candles[:overflow]
            return True

    def extend(self, candles: Iterable[Candle]) -> int:
        """Append candles in order, returning how many were newly appended"""
        appended = 0
        with self._lock:
            for candle in candles:
                if self.append(candle):
                    appended += 1
        return appended

    def snapshot(self, n: Optional[int] = None) -> Tuple[Candle, ...]:
        """Immutable view of the last ``n`` candles (all of them when n is None)"""
        with self._lock:
            if n is None or n >= len(self._candles):
                return tuple(self._candles)
            if n <= 0:
                return ()
            return tuple(self._candles[-n:])

    def closed_candles(self, n: Optional[int] = None) -> Tuple[Candle, ...]:
        """Like ``snapshot`` but without a trailing in-progress candle"""
        with self._lock:
            candles = without_in_progress(self._candles)
            if n is None or n >= len(candles):
                return tuple(candles)
            if n <= 0:
                return ()
            return tuple(candles[-n:])

    @property
    def last(self) -> Optional[Candle]:
        with self._lock:
            return self._candles[-1] if self._candles else None

    def clear(self) -> None:
        with self._lock:
            self._candles.clear()

    def to_dataframe(self) -> pd.DataFrame:
        return candles_to_dataframe(self.snapshot())

    def __len__(self) -> int:
        with self._lock:
            return len(self._candles)

    def __iter__(self) -> Iterator[Candle]:
        return iter(self.snapshot())

    def __repr__(self) -> str:
        return f"CandleWindow(size={len(self)}, max_size={self.max_size})"


def candles_to_dataframe(candles: Iterable[Candle]) -> pd.DataFrame:
    """
    Convert candles into an OHLCV DataFrame.

    Missing volume becomes NaN so volume rules can tell it apart from zero.
    """
    rows = [
        {
            "time": c.time,
            "open": c.open,
            "high": c.high,
            "low": c.low,
            "close": c.close,
            "volume": c.volume if c.volume is not None else float("nan"),
        }
        for c in candles
    ]
    return pd.DataFrame(rows, columns=["time", "open", "high", "low", "close", "volume"])

"""
Exceptions raised by the analysis core.

Insufficient data is never an error here: indicators that cannot be computed
are simply absent (None) and the pipeline degrades to an empty result.
"""


class CandlescopeError(Exception):
    """Base class for all candlescope errors"""


class InvalidCandleError(CandlescopeError, ValueError):
    """A candle whose prices violate the OHLC invariants"""


class OutOfOrderCandleError(CandlescopeError):
    """A candle older than the last candle in the window"""

    def __init__(self, time: int, last_time: int):
        self.time = time
        self.last_time = last_time
        super().__init__(f"Candle time {time} is before last window time {last_time}")

"""
Technical indicator calculations: moving averages and the RSI oscillator
"""
import numpy as np
import logging
from typing import Dict, List, Optional, Sequence

from .models import Candle, IndicatorSeries

logger = logging.getLogger(__name__)

DEFAULT_RSI_EPSILON = 1e-3


def _to_series(values: np.ndarray, valid_from: int) -> IndicatorSeries:
    """Convert a numpy array into an IndicatorSeries, absent before valid_from"""
    return [None if i < valid_from else float(v) for i, v in enumerate(values)]


def calculate_sma(prices: Sequence[float], period: int) -> IndicatorSeries:
    """Calculate Simple Moving Average (SMA)"""
    if period < 1:
        raise ValueError(f"SMA period must be positive, got {period}")

    prices = np.asarray(prices, dtype=float)
    if len(prices) < period:
        logger.debug(f"Not enough prices for SMA{period}: {len(prices)} < {period}")
        return [None] * len(prices)

    sma = np.full(len(prices), np.nan)
    windows = np.lib.stride_tricks.sliding_window_view(prices, period)
    sma[period - 1:] = windows.sum(axis=1) / period

    return _to_series(sma, period - 1)


def calculate_ema(prices: Sequence[float], period: int) -> IndicatorSeries:
    """Calculate Exponential Moving Average (EMA), seeded with the SMA of the first period"""
    if period < 1:
        raise ValueError(f"EMA period must be positive, got {period}")

    prices = np.asarray(prices, dtype=float)
    if len(prices) < period:
        logger.debug(f"Not enough prices for EMA{period}: {len(prices)} < {period}")
        return [None] * len(prices)

    ema = np.full(len(prices), np.nan)
    ema[period - 1] = np.mean(prices[:period])

    multiplier = 2 / (period + 1)
    for i in range(period, len(prices)):
        ema[i] = prices[i] * multiplier + ema[i - 1] * (1 - multiplier)

    return _to_series(ema, period - 1)


MA_FUNCTIONS = {
    "sma": calculate_sma,
    "ema": calculate_ema,
}


def calculate_moving_averages(candles: Sequence[Candle], periods: Sequence[int] = (25, 99),
                              ma_types: Sequence[str] = ("sma", "ema")) -> Dict[str, IndicatorSeries]:
    """
    Calculate every requested moving average over the same candle set.

    Args:
        candles: Candle snapshot, oldest first
        periods: Periods to compute
        ma_types: Any of "sma" and "ema"

    Returns:
        Dictionary keyed "sma25", "ema99", ... with same-length series
    """
    closes = [c.close for c in candles]
    result = {}
    for ma_type in ma_types:
        func = MA_FUNCTIONS.get(ma_type)
        if func is None:
            logger.warning(f"Unknown moving average type '{ma_type}', skipping")
            continue
        for period in periods:
            result[f"{ma_type}{period}"] = func(closes, period)
    return result


def latest_value(series: IndicatorSeries) -> Optional[float]:
    """Return the most recent defined value of a series"""
    for value in reversed(series):
        if value is not None:
            return value
    return None


def defined_values(series: IndicatorSeries) -> List[float]:
    return [v for v in series if v is not None]


def calculate_rsi(prices: Sequence[float], period: int = 14, epsilon: float = DEFAULT_RSI_EPSILON) -> float:
    """
    Calculate the Relative Strength Index over the last ``period`` deltas.

    Average gain and loss are the mean positive and absolute negative deltas.
    A zero average is replaced by ``epsilon`` so the ratio is always defined.
    With fewer than period + 1 prices the available shorter window is used.

    Args:
        prices: Closing prices, oldest first
        period: Lookback period
        epsilon: Substitute for a zero average gain or loss

    Returns:
        RSI value between 0 and 100
    """
    prices = np.asarray(prices, dtype=float)
    if len(prices) < 2:
        return 50.0

    if len(prices) < period + 1:
        logger.debug(f"RSI degraded mode: {len(prices)} prices for period {period}")
    window = prices[-(period + 1):]

    deltas = np.diff(window)
    avg_gain = deltas[deltas > 0].sum() / len(deltas) or epsilon
    avg_loss = -deltas[deltas < 0].sum() / len(deltas) or epsilon

    rs = avg_gain / avg_loss
    return float(100. - 100. / (1. + rs))


def calculate_rsi_series(prices: Sequence[float], period: int = 14,
                         epsilon: float = DEFAULT_RSI_EPSILON) -> IndicatorSeries:
    """
    Calculate a Wilder-smoothed RSI series, absent before index ``period``.

    A zero smoothed gain or loss is replaced by ``epsilon`` when forming the
    ratio, as in calculate_rsi, so flat prices read 50.
    """
    prices = np.asarray(prices, dtype=float)
    if len(prices) < period + 1:
        return [None] * len(prices)

    deltas = np.diff(prices)
    seed = deltas[:period]
    up = seed[seed >= 0].sum() / period
    down = -seed[seed < 0].sum() / period

    rsi = np.full(len(prices), np.nan)
    rsi[period] = 100. - 100. / (1. + (up or epsilon) / (down or epsilon))

    for i in range(period + 1, len(prices)):
        delta = deltas[i - 1]  # The diff is 1 shorter
        upval = delta if delta > 0 else 0.
        downval = -delta if delta < 0 else 0.

        up = (up * (period - 1) + upval) / period
        down = (down * (period - 1) + downval) / period
        rsi[i] = 100. - 100. / (1. + (up or epsilon) / (down or epsilon))

    return _to_series(rsi, period)

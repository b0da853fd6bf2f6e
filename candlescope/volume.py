"""
Volume analysis over the recent candles
"""
import logging
from typing import Optional, Sequence

import numpy as np

from .models import Candle, VolumeAnalysis, VolumeTrend

logger = logging.getLogger(__name__)

DEFAULT_SPIKE_MULTIPLIER = 1.5
TREND_THRESHOLD = 0.1


def has_volume(candle: Candle) -> bool:
    return candle.volume is not None and not np.isnan(candle.volume)


def volume_rules_enabled(candles: Sequence[Candle], policy: str = "skip") -> bool:
    """
    Whether volume-based rules may run on this window.

    With the "exclude" policy a single candle without volume data disables
    them for the whole window; with "skip" the rules skip such candles.
    """
    if policy == "exclude" and any(not has_volume(c) for c in candles):
        logger.debug("Volume rules disabled: window contains candles without volume")
        return False
    return True


def analyze_volume(candles: Sequence[Candle],
                   spike_multiplier: float = DEFAULT_SPIKE_MULTIPLIER) -> Optional[VolumeAnalysis]:
    """
    Summarize volume over the given candles.

    Missing volume counts as zero. The spike test compares the last candle with
    the mean of all candles given, and the trend compares the mean of the
    second half with the first half.

    Args:
        candles: Recent candles, oldest first
        spike_multiplier: Current volume must exceed the average by this factor

    Returns:
        VolumeAnalysis, or None when there are no candles
    """
    if not candles:
        return None

    volumes = np.array([c.volume if has_volume(c) else 0.0 for c in candles], dtype=float)
    total = float(volumes.sum())
    average = float(volumes.mean())
    current = float(volumes[-1])

    relative = current / average if average > 0 else 0.0
    spike = current > average * spike_multiplier

    trend = VolumeTrend.STABLE
    half = len(volumes) // 2
    if half > 0:
        first = volumes[:half].mean()
        second = volumes[half:].mean()
        if first > 0:
            change = (second - first) / first
            if change > TREND_THRESHOLD:
                trend = VolumeTrend.INCREASING
            elif change < -TREND_THRESHOLD:
                trend = VolumeTrend.DECREASING
        elif second > 0:
            trend = VolumeTrend.INCREASING

    return VolumeAnalysis(
        total_volume=total,
        average_volume=average,
        current_volume=current,
        relative_volume=relative,
        volume_spike=bool(spike),
        spike_intensity=relative / spike_multiplier,
        volume_trend=trend,
    )

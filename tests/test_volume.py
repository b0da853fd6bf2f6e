"""
Tests for volume analysis
"""
import pytest

from candlescope.models import VolumeTrend
from candlescope.volume import analyze_volume, has_volume, volume_rules_enabled

from tests.factories import candle


def _with_volumes(volumes):
    return [candle(i, 100.0, 101.0, 99.0, 100.0, volume=v) for i, v in enumerate(volumes)]


class TestAnalyzeVolume:

    def test_empty(self):
        assert analyze_volume([]) is None

    def test_spike(self):
        result = analyze_volume(_with_volumes([100.0] * 9 + [1000.0]))
        assert result.volume_spike is True
        assert result.average_volume == pytest.approx(190.0)
        assert result.relative_volume == pytest.approx(1000.0 / 190.0)
        assert result.total_volume == pytest.approx(1900.0)

    def test_no_spike(self):
        result = analyze_volume(_with_volumes([100.0] * 10))
        assert result.volume_spike is False
        assert result.volume_trend == VolumeTrend.STABLE

    def test_increasing_trend(self):
        result = analyze_volume(_with_volumes([100.0] * 5 + [200.0] * 5))
        assert result.volume_trend == VolumeTrend.INCREASING

    def test_decreasing_trend(self):
        result = analyze_volume(_with_volumes([200.0] * 5 + [100.0] * 5))
        assert result.volume_trend == VolumeTrend.DECREASING

    def test_missing_volume_counts_as_zero(self):
        result = analyze_volume(_with_volumes([None, 100.0]))
        assert result.total_volume == 100.0


class TestVolumePolicy:

    def test_has_volume(self):
        assert has_volume(_with_volumes([1.0])[0])
        assert not has_volume(_with_volumes([None])[0])

    def test_skip_keeps_rules(self):
        assert volume_rules_enabled(_with_volumes([None, 1.0]), "skip") is True

    def test_exclude_disables_rules(self):
        assert volume_rules_enabled(_with_volumes([None, 1.0]), "exclude") is False
        assert volume_rules_enabled(_with_volumes([2.0, 1.0]), "exclude") is True

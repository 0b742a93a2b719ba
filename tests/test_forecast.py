"""Tests for forecasting strategies."""

import pytest

from iot_fleet.analytics import (
    HistorySample,
    LinearTrendForecaster,
    MovingAverageForecaster,
    get_forecaster,
)
from iot_fleet.analytics.forecast import horizon_steps
from iot_fleet.exceptions import InvalidParameterError


def _history(failures, volume=None):
    volume = volume or [0.0] * len(failures)
    return [HistorySample(failures=f, data_volume=v) for f, v in zip(failures, volume)]


class TestLinearTrend:
    """Tests for LinearTrendForecaster."""

    def test_empty_history(self):
        """No history should forecast zeros for every horizon."""
        predictions = LinearTrendForecaster().forecast([])

        assert predictions.samples == 0
        assert set(predictions.failures) == {"next_24h", "next_week", "next_month"}
        assert set(predictions.data_volume) == {"next_hour", "next_day", "next_week"}
        assert all(v == 0 for v in predictions.failures.values())

    def test_single_sample_is_held_flat(self):
        predictions = LinearTrendForecaster().forecast(_history([2.0]))
        assert predictions.failures["next_24h"] == 48.0

    def test_constant_history(self):
        predictions = LinearTrendForecaster().forecast(_history([1.0, 1.0, 1.0, 1.0]))

        assert predictions.failures["next_24h"] == 24.0
        assert predictions.failures["next_week"] == 168.0

    def test_rising_trend(self):
        """A series rising by 1 per hour should keep rising."""
        predictions = LinearTrendForecaster().forecast(
            _history([0, 0, 0, 0], volume=[0.0, 1.0, 2.0, 3.0])
        )

        assert predictions.data_volume["next_hour"] == 4.0
        # 4 + 5 + ... + 27
        assert predictions.data_volume["next_day"] == 372.0

    def test_falling_trend_floored_at_zero(self):
        predictions = LinearTrendForecaster().forecast(_history([10.0, 5.0, 0.0]))
        assert predictions.failures["next_24h"] == 0.0

    def test_deterministic(self):
        history = _history([1, 3, 2, 5], volume=[100, 120, 90, 130])
        forecaster = LinearTrendForecaster()

        assert forecaster.forecast(history) == forecaster.forecast(history)

    def test_identifies_itself(self):
        predictions = LinearTrendForecaster().forecast(_history([1.0]))

        assert predictions.forecaster == "linear_trend"
        assert predictions.version
        assert predictions.to_dict()["samples"] == 1


class TestMovingAverage:
    """Tests for MovingAverageForecaster."""

    def test_uses_recent_window(self):
        predictions = MovingAverageForecaster(window=2).forecast(_history([1.0, 3.0, 5.0]))
        assert predictions.failures["next_24h"] == 96.0

    def test_invalid_window(self):
        with pytest.raises(InvalidParameterError):
            MovingAverageForecaster(window=0)


class TestSamplingInterval:
    """Tests for histories sampled more often than hourly."""

    def test_horizon_steps(self):
        assert horizon_steps(24, 3600) == 24
        assert horizon_steps(1, 60) == 60
        assert horizon_steps(720, 60) == 43200
        assert horizon_steps(1, 7200) == 1

    def test_minute_samples_scale_horizons(self):
        """One failure per minute is 1440 per day, not 24."""
        history = _history([1.0, 1.0, 1.0], volume=[10.0, 10.0, 10.0])

        predictions = MovingAverageForecaster().forecast(history, interval_seconds=60)

        assert predictions.failures["next_24h"] == 1440.0
        assert predictions.data_volume["next_hour"] == 600.0
        assert predictions.data_volume["next_day"] == 14400.0

    def test_hourly_is_default(self):
        history = _history([2.0, 2.0])
        forecaster = LinearTrendForecaster()

        assert forecaster.forecast(history) == forecaster.forecast(history, interval_seconds=3600)

    def test_invalid_interval(self):
        with pytest.raises(InvalidParameterError):
            LinearTrendForecaster().forecast(_history([1.0]), interval_seconds=0)


class TestRegistry:
    """Tests for get_forecaster()."""

    def test_known_names(self):
        assert isinstance(get_forecaster("linear_trend"), LinearTrendForecaster)
        assert isinstance(get_forecaster("moving_average"), MovingAverageForecaster)

    def test_unknown_name(self):
        with pytest.raises(InvalidParameterError):
            get_forecaster("crystal_ball")

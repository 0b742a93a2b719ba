"""
Forecasting strategies.

Forecasters turn evenly spaced fleet samples into failure and data-volume
estimates over fixed horizons. Each sample covers one sampling interval
(an hour unless told otherwise); horizons are converted into a number of
intervals before projecting. They are deterministic placeholders, not
learned models: the same history always produces the same forecast.
Select one by name with get_forecaster().
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Sequence

from ..exceptions import InvalidParameterError

# Horizon name -> hours
FAILURE_HORIZONS = {"next_24h": 24, "next_week": 168, "next_month": 720}
VOLUME_HORIZONS = {"next_hour": 1, "next_day": 24, "next_week": 168}


def horizon_steps(hours: int, interval_seconds: float) -> int:
    """Number of whole sampling intervals in a horizon, at least one."""
    return max(1, math.ceil(hours * 3600 / interval_seconds))


@dataclass(frozen=True)
class HistorySample:
    """New failures and data volume observed over one sampling interval."""
    failures: float
    data_volume: float
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class Predictions:
    forecaster: str
    version: str
    samples: int
    failures: dict[str, float] = field(default_factory=dict)
    data_volume: dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "forecaster": self.forecaster,
            "version": self.version,
            "samples": self.samples,
            "failures": dict(self.failures),
            "data_volume": dict(self.data_volume),
        }


class Forecaster(ABC):
    """Base class for forecasting strategies."""

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    @property
    @abstractmethod
    def version(self) -> str:
        pass

    @abstractmethod
    def project(self, values: Sequence[float], steps: int) -> float:
        """Estimated total of a per-interval series over the next `steps` intervals."""
        pass

    def forecast(
        self,
        history: Sequence[HistorySample],
        interval_seconds: float = 3600,
    ) -> Predictions:
        """Project the history over every horizon, one sample per `interval_seconds`."""
        if interval_seconds <= 0:
            raise InvalidParameterError("interval_seconds", interval_seconds, "must be > 0")
        failures = [s.failures for s in history]
        volume = [s.data_volume for s in history]
        return Predictions(
            forecaster=self.name,
            version=self.version,
            samples=len(history),
            failures={
                horizon: round(self.project(failures, horizon_steps(hours, interval_seconds)), 2)
                for horizon, hours in FAILURE_HORIZONS.items()
            },
            data_volume={
                horizon: round(self.project(volume, horizon_steps(hours, interval_seconds)), 2)
                for horizon, hours in VOLUME_HORIZONS.items()
            },
        )


class LinearTrendForecaster(Forecaster):
    """Least-squares line through the history, extended forward, floored at zero."""

    @property
    def name(self) -> str:
        return "linear_trend"

    @property
    def version(self) -> str:
        return "1.0"

    def project(self, values: Sequence[float], steps: int) -> float:
        n = len(values)
        if n == 0:
            return 0.0
        if n == 1:
            return max(0.0, values[0]) * steps

        mean_x = (n - 1) / 2
        mean_y = sum(values) / n
        sxx = sum((x - mean_x) ** 2 for x in range(n))
        sxy = sum((x - mean_x) * (y - mean_y) for x, y in enumerate(values))
        slope = sxy / sxx
        intercept = mean_y - slope * mean_x

        return sum(
            max(0.0, intercept + slope * (n - 1 + k))
            for k in range(1, steps + 1)
        )


class MovingAverageForecaster(Forecaster):
    """Average of the most recent window, held flat across the horizon."""

    def __init__(self, window: int = 24):
        if window < 1:
            raise InvalidParameterError("window", window, "must be >= 1")
        self.window = window

    @property
    def name(self) -> str:
        return "moving_average"

    @property
    def version(self) -> str:
        return "1.0"

    def project(self, values: Sequence[float], steps: int) -> float:
        recent = list(values)[-self.window:]
        if not recent:
            return 0.0
        return max(0.0, sum(recent) / len(recent)) * steps


FORECASTERS: dict[str, type[Forecaster]] = {
    "linear_trend": LinearTrendForecaster,
    "moving_average": MovingAverageForecaster,
}


def get_forecaster(name: str) -> Forecaster:
    """Instantiate a registered forecaster by name."""
    try:
        return FORECASTERS[name]()
    except KeyError:
        raise InvalidParameterError(
            "forecaster", name, f"expected one of {sorted(FORECASTERS)}"
        ) from None

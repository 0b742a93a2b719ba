"""
Fleet analytics: rolling metrics, sigma-rule anomaly detection and
pluggable forecasting.
"""

from .anomaly import (
    Anomaly,
    DataPoint,
    Severity,
    detect_anomalies,
    series_from_values,
    telemetry_series,
)
from .engine import Alert, AnalyticsEngine, AnalyticsReport, FleetMetrics
from .forecast import (
    FORECASTERS,
    Forecaster,
    HistorySample,
    LinearTrendForecaster,
    MovingAverageForecaster,
    Predictions,
    get_forecaster,
)

__all__ = [
    "Anomaly",
    "DataPoint",
    "Severity",
    "detect_anomalies",
    "series_from_values",
    "telemetry_series",
    "Alert",
    "AnalyticsEngine",
    "AnalyticsReport",
    "FleetMetrics",
    "FORECASTERS",
    "Forecaster",
    "HistorySample",
    "LinearTrendForecaster",
    "MovingAverageForecaster",
    "Predictions",
    "get_forecaster",
]

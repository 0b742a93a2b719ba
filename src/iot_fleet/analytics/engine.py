"""
Fleet analytics engine.

Holds the latest fleet metrics, predictions, anomalies and alerts and
derives advisory recommendations from them. Only the latest snapshot is
kept; callers that need history persist reports themselves.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Iterable, Optional, Sequence

from .._types import now_utc
from .anomaly import Anomaly, DataPoint, Severity, detect_anomalies
from .forecast import Forecaster, HistorySample, LinearTrendForecaster, Predictions

logger = logging.getLogger(__name__)

# Recommendation thresholds
ERROR_RATE_THRESHOLD = 0.05
OFFLINE_RATIO_THRESHOLD = 0.2
LATENCY_THRESHOLD_MS = 500.0


@dataclass(frozen=True)
class FleetMetrics:
    """Rolling fleet counters, as supplied by the caller's telemetry source."""
    total_devices: int = 0
    online_devices: int = 0
    offline_devices: int = 0
    data_volume: float = 0.0
    message_count: int = 0
    error_rate: float = 0.0
    average_latency_ms: float = 0.0
    throughput: float = 0.0
    updated_at: datetime = field(default_factory=now_utc)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["updated_at"] = self.updated_at.isoformat()
        return data


@dataclass(frozen=True)
class Alert:
    """A condition raised by a sweep that needs operator attention."""
    source_id: str
    message: str
    severity: str = "critical"
    score: Optional[int] = None
    raised_at: datetime = field(default_factory=now_utc)

    def to_dict(self) -> dict:
        return {
            "source_id": self.source_id,
            "message": self.message,
            "severity": self.severity,
            "score": self.score,
            "raised_at": self.raised_at.isoformat(),
        }


@dataclass(frozen=True)
class AnalyticsReport:
    """Immutable snapshot handed to report generators and dashboards."""
    generated_at: datetime
    metrics: FleetMetrics
    predictions: Optional[Predictions]
    anomalies: tuple[Anomaly, ...] = ()
    alerts: tuple[Alert, ...] = ()
    recommendations: tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            "generated_at": self.generated_at.isoformat(),
            "metrics": self.metrics.to_dict(),
            "predictions": self.predictions.to_dict() if self.predictions else None,
            "anomalies": [a.to_dict() for a in self.anomalies],
            "alerts": [a.to_dict() for a in self.alerts],
            "recommendations": list(self.recommendations),
        }


class AnalyticsEngine:
    """
    Fleet-wide aggregator.

    Each update replaces the corresponding part of the latest snapshot.
    All state is swapped by plain assignment, so concurrent sweeps on the
    event loop never observe a half-updated snapshot.
    """

    def __init__(self, forecaster: Optional[Forecaster] = None):
        self.forecaster = forecaster or LinearTrendForecaster()
        self._metrics = FleetMetrics()
        self._predictions: Optional[Predictions] = None
        self._anomalies: tuple[Anomaly, ...] = ()
        self._alerts: tuple[Alert, ...] = ()

    @property
    def metrics(self) -> FleetMetrics:
        return self._metrics

    @property
    def predictions(self) -> Optional[Predictions]:
        return self._predictions

    @property
    def anomalies(self) -> tuple[Anomaly, ...]:
        return self._anomalies

    @property
    def alerts(self) -> tuple[Alert, ...]:
        return self._alerts

    def update_metrics(self, metrics: FleetMetrics) -> FleetMetrics:
        """Replace the rolling counters."""
        self._metrics = metrics
        logger.debug(
            f"Metrics updated: {metrics.total_devices} devices "
            f"({metrics.online_devices} online, {metrics.offline_devices} offline)"
        )
        return metrics

    def detect_anomalies(self, series: Iterable[DataPoint]) -> list[Anomaly]:
        """Run the sigma rule over a series and keep the result as latest."""
        anomalies = detect_anomalies(series)
        self._anomalies = tuple(anomalies)
        if anomalies:
            high = sum(1 for a in anomalies if a.severity == Severity.HIGH)
            logger.info(f"Detected {len(anomalies)} anomalies ({high} high severity)")
        return anomalies

    def generate_predictions(
        self,
        history: Sequence[HistorySample],
        interval_seconds: float = 3600,
    ) -> Predictions:
        """Forecast from history sampled every `interval_seconds` with the configured forecaster."""
        predictions = self.forecaster.forecast(history, interval_seconds)
        self._predictions = predictions
        return predictions

    def record_alerts(self, alerts: Iterable[Alert]) -> None:
        self._alerts = tuple(alerts)

    def recommendations(self) -> list[str]:
        """Advisory text derived from the latest snapshot."""
        m = self._metrics
        recs: list[str] = []

        if m.error_rate > ERROR_RATE_THRESHOLD:
            recs.append(
                f"Error rate at {m.error_rate:.1%}; inspect failing telemetry sources"
            )
        if m.total_devices and m.offline_devices / m.total_devices > OFFLINE_RATIO_THRESHOLD:
            recs.append(
                f"{m.offline_devices} of {m.total_devices} devices offline; "
                f"check gateway connectivity"
            )
        if m.average_latency_ms > LATENCY_THRESHOLD_MS:
            recs.append(
                f"Average latency {m.average_latency_ms:.0f} ms; "
                f"move processing closer to the edge"
            )

        high = [a for a in self._anomalies if a.severity == Severity.HIGH]
        if high:
            recs.append(f"Investigate {len(high)} high-severity telemetry anomalies")

        if self._alerts:
            recs.append(f"{len(self._alerts)} devices in critical health need attention")

        if self._predictions and self._predictions.failures.get("next_24h", 0) >= 1:
            recs.append(
                f"Schedule maintenance: about "
                f"{self._predictions.failures['next_24h']:.0f} failures expected in the next 24h"
            )

        return recs

    def generate_report(self) -> AnalyticsReport:
        return AnalyticsReport(
            generated_at=now_utc(),
            metrics=self._metrics,
            predictions=self._predictions,
            anomalies=self._anomalies,
            alerts=self._alerts,
            recommendations=tuple(self.recommendations()),
        )

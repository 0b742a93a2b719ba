"""
IoT Fleet - device fleet management with health and security monitoring.

Keeps an inventory of IoT devices and the gateways that route their
telemetry, scores device health and security posture on every sweep, and
aggregates fleet-wide metrics, anomalies and forecasts.

Architecture:
    FleetManager (facade) - devices, gateways, discovery, bulk sweeps
    health / security     - per-device scoring, pure functions of a snapshot
    analytics             - fleet metrics, sigma-rule anomalies, forecasts
    FleetService          - aiohttp API and periodic monitor sweep
"""

__version__ = "0.1.0"

from ._types import (
    AuthScheme,
    Device,
    DeviceComponent,
    DeviceProperties,
    DeviceStatus,
    DeviceType,
    EncryptionScheme,
    Gateway,
    GatewayStatus,
    PowerSource,
    Protocol,
    SecurityPosture,
)
from .config import FleetConfig
from .exceptions import DeviceLimitError, FleetError, InvalidParameterError
from .fleet_manager import FleetManager, parse_device_topic
from .health import HealthReport, HealthStatus, score_device
from .security import RiskLevel, SecurityScanResult, scan_device

__all__ = [
    "__version__",
    "AuthScheme",
    "Device",
    "DeviceComponent",
    "DeviceProperties",
    "DeviceStatus",
    "DeviceType",
    "EncryptionScheme",
    "Gateway",
    "GatewayStatus",
    "PowerSource",
    "Protocol",
    "SecurityPosture",
    "FleetConfig",
    "DeviceLimitError",
    "FleetError",
    "InvalidParameterError",
    "FleetManager",
    "parse_device_topic",
    "HealthReport",
    "HealthStatus",
    "score_device",
    "RiskLevel",
    "SecurityScanResult",
    "scan_device",
]

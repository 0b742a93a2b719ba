"""
Wire models for inbound fleet data.

Telemetry values outside their numeric domain are clamped, not rejected.
Values that are not numbers at all (or NaN/inf) fail validation.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictBool, field_validator

from ._types import (
    PERCENT_FIELDS,
    TEMPERATURE_RANGE,
    AuthScheme,
    DeviceType,
    EncryptionScheme,
    PowerSource,
    Protocol,
    clamp,
    clamp_percent,
    now_utc,
)


class TelemetryPayload(BaseModel):
    """One telemetry message from a device."""
    model_config = ConfigDict(extra="ignore", allow_inf_nan=False)

    battery_level: Optional[float] = None
    signal_strength: Optional[float] = None
    temperature: Optional[float] = None
    humidity: Optional[float] = None
    memory_usage: Optional[float] = None
    cpu_usage: Optional[float] = None

    manufacturer: Optional[str] = None
    model: Optional[str] = None
    firmware: Optional[str] = None
    power_source: Optional[PowerSource] = None

    # Sensor/actuator name -> latest value
    sensors: Dict[str, Any] = Field(default_factory=dict)
    actuators: Dict[str, Any] = Field(default_factory=dict)

    # Transport latency reported by the sender, fed into fleet metrics
    latency_ms: Optional[float] = None
    timestamp: Optional[datetime] = None

    @field_validator(*sorted(PERCENT_FIELDS))
    @classmethod
    def clamp_percentages(cls, v: Optional[float]) -> Optional[float]:
        return None if v is None else clamp_percent(v)

    @field_validator("temperature")
    @classmethod
    def clamp_temperature(cls, v: Optional[float]) -> Optional[float]:
        return None if v is None else clamp(v, *TEMPERATURE_RANGE)

    @field_validator("latency_ms")
    @classmethod
    def clamp_latency(cls, v: Optional[float]) -> Optional[float]:
        return None if v is None else max(0.0, v)

    @field_validator("timestamp")
    @classmethod
    def assume_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        # Naive timestamps are taken as UTC; future ones are clamped to now
        if v is None:
            return None
        if v.tzinfo is None:
            v = v.replace(tzinfo=timezone.utc)
        return min(v, now_utc())

    def property_values(self) -> Dict[str, Any]:
        """Device property fields present in this message."""
        return self.model_dump(
            exclude={"sensors", "actuators", "latency_ms", "timestamp"},
            exclude_none=True,
        )


class DeviceCreate(BaseModel):
    name: str
    device_type: DeviceType = DeviceType.SENSOR
    protocol: Protocol = Protocol.MQTT
    location: str = "unknown"


class GatewayCreate(BaseModel):
    name: str
    location: str = "unknown"


class ComponentCreate(BaseModel):
    name: str
    subtype: str


class DeviceUpdate(BaseModel):
    """Editable descriptive fields of a registered device."""
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1)
    location: Optional[str] = None


class SecurityUpdate(BaseModel):
    """Partial change to a device's security posture. Flags must be real booleans."""
    model_config = ConfigDict(extra="forbid")

    encryption: Optional[EncryptionScheme] = None
    authentication: Optional[AuthScheme] = None
    certificate_valid: Optional[StrictBool] = None
    firewall_enabled: Optional[StrictBool] = None
    intrusion_detection: Optional[StrictBool] = None

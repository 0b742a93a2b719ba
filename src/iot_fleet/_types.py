"""
Type definitions for the fleet core.

These dataclasses define the domain model for managed IoT devices,
the gateways that route their telemetry, and the telemetry history kept
per device.
"""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


def now_utc() -> datetime:
    """Get current UTC timestamp (replaces deprecated datetime.utcnow())."""
    return datetime.now(timezone.utc)


def clamp(value: float, low: float, high: float) -> float:
    """Clamp a numeric value into [low, high]."""
    return max(low, min(high, value))


def clamp_percent(value: float) -> float:
    """Clamp a gauge reading into the 0-100 percentage domain."""
    return clamp(float(value), 0.0, 100.0)


class DeviceType(str, Enum):
    """Device classification types."""
    SENSOR = "sensor"
    ACTUATOR = "actuator"
    GATEWAY = "gateway"
    EDGE = "edge"
    CLOUD = "cloud"
    MOBILE = "mobile"
    WEARABLE = "wearable"
    INDUSTRIAL = "industrial"
    SMART_HOME = "smart_home"
    AUTOMOTIVE = "automotive"


class Protocol(str, Enum):
    """Transport labels. Inventory only, no live transport behind them."""
    MQTT = "mqtt"
    COAP = "coap"
    HTTP = "http"
    WEBSOCKET = "websocket"
    MODBUS = "modbus"
    ZIGBEE = "zigbee"
    LORAWAN = "lorawan"
    BLUETOOTH = "bluetooth"


class DeviceStatus(str, Enum):
    """Device connectivity status."""
    ONLINE = "online"
    OFFLINE = "offline"


class GatewayStatus(str, Enum):
    """Gateway status."""
    ACTIVE = "active"
    INACTIVE = "inactive"


class PowerSource(str, Enum):
    """How a device is powered."""
    BATTERY = "battery"
    MAINS = "mains"
    SOLAR = "solar"
    POE = "poe"


class EncryptionScheme(str, Enum):
    """Transport/storage encryption in use on a device."""
    NONE = "none"
    AES128 = "aes128"
    AES256 = "aes256"


class AuthScheme(str, Enum):
    """Authentication scheme in use on a device."""
    NONE = "none"
    BASIC = "basic"
    TOKEN = "token"
    OAUTH2 = "oauth2"


class ComponentStatus(str, Enum):
    """Status of a sensor or actuator attached to a device."""
    ACTIVE = "active"
    INACTIVE = "inactive"
    FAULT = "fault"


# Strongest schemes known to the security baseline
STRONGEST_ENCRYPTION = EncryptionScheme.AES256
STRONGEST_AUTH = AuthScheme.OAUTH2

# Physical range accepted for temperature readings (Celsius)
TEMPERATURE_RANGE = (-40.0, 125.0)

# Properties that are percentages and get clamped to [0, 100]
PERCENT_FIELDS = frozenset({
    "battery_level",
    "signal_strength",
    "humidity",
    "memory_usage",
    "cpu_usage",
})


@dataclass
class DeviceProperties:
    """Mutable telemetry snapshot of a device."""
    manufacturer: Optional[str] = None
    model: Optional[str] = None
    firmware: Optional[str] = None
    power_source: PowerSource = PowerSource.MAINS

    battery_level: float = 100.0
    signal_strength: float = 100.0
    temperature: float = 20.0
    humidity: float = 50.0
    memory_usage: float = 0.0
    cpu_usage: float = 0.0

    def __post_init__(self) -> None:
        self.power_source = PowerSource(self.power_source)
        for name in PERCENT_FIELDS:
            setattr(self, name, clamp_percent(getattr(self, name)))
        self.temperature = clamp(float(self.temperature), *TEMPERATURE_RANGE)

    def apply(self, values: dict[str, Any]) -> list[str]:
        """
        Apply a partial telemetry update.

        Percentages are clamped to [0, 100] and temperature to the sensor
        range. Returns the names of the fields that were written.
        """
        applied = []
        for name, value in values.items():
            if value is None:
                continue
            if name in PERCENT_FIELDS:
                setattr(self, name, clamp_percent(value))
            elif name == "temperature":
                self.temperature = clamp(float(value), *TEMPERATURE_RANGE)
            elif name == "power_source":
                self.power_source = PowerSource(value)
            elif name in ("manufacturer", "model", "firmware"):
                setattr(self, name, str(value))
            else:
                continue
            applied.append(name)
        return applied


@dataclass
class DeviceComponent:
    """A named sensor or actuator owned by a device."""
    name: str
    subtype: str
    value: Any = None
    updated_at: datetime = field(default_factory=now_utc)
    status: ComponentStatus = ComponentStatus.ACTIVE


@dataclass
class SecurityPosture:
    """Security configuration flags of a device and its last computed score."""
    encryption: EncryptionScheme = STRONGEST_ENCRYPTION
    authentication: AuthScheme = STRONGEST_AUTH
    certificate_valid: bool = True
    firewall_enabled: bool = True
    intrusion_detection: bool = True
    score: int = 100
    updated_at: datetime = field(default_factory=now_utc)

    def __post_init__(self) -> None:
        self.encryption = EncryptionScheme(self.encryption)
        self.authentication = AuthScheme(self.authentication)
        for flag in ("certificate_valid", "firewall_enabled", "intrusion_detection"):
            value = getattr(self, flag)
            if not isinstance(value, bool):
                raise ValueError(f"{flag} must be a boolean, got {value!r}")


@dataclass
class TelemetryRecord:
    """One telemetry message kept in a device's history."""
    device_id: str
    payload: dict[str, Any]
    received_at: datetime = field(default_factory=now_utc)


@dataclass
class Device:
    """
    A managed IoT device.

    Timestamps only move forward: touch() never rewinds last_seen or
    last_modified, even if an older message arrives late.
    """
    name: str = ""
    device_type: DeviceType = DeviceType.SENSOR
    protocol: Protocol = Protocol.MQTT
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    properties: DeviceProperties = field(default_factory=DeviceProperties)
    sensors: dict[str, DeviceComponent] = field(default_factory=dict)
    actuators: dict[str, DeviceComponent] = field(default_factory=dict)
    security: SecurityPosture = field(default_factory=SecurityPosture)

    status: DeviceStatus = DeviceStatus.OFFLINE
    location: str = "unknown"

    # Stable identity reported by discovery (serial number, EUI, ...)
    external_id: Optional[str] = None

    created_at: datetime = field(default_factory=now_utc)
    last_seen: datetime = field(default_factory=now_utc)
    last_modified: datetime = field(default_factory=now_utc)
    message_count: int = 0

    def __post_init__(self) -> None:
        self.device_type = DeviceType(self.device_type)
        self.protocol = Protocol(self.protocol)
        self.status = DeviceStatus(self.status)

    def touch(self, at: Optional[datetime] = None, seen: bool = False) -> None:
        """Advance last_modified (and last_seen if seen) without going back."""
        at = at or now_utc()
        if at > self.last_modified:
            self.last_modified = at
        if seen and at > self.last_seen:
            self.last_seen = at

    def add_sensor(self, name: str, subtype: str) -> DeviceComponent:
        """Attach a sensor, replacing any existing sensor of the same name."""
        sensor = DeviceComponent(name=name, subtype=subtype)
        self.sensors[name] = sensor
        self.touch()
        return sensor

    def add_actuator(self, name: str, subtype: str) -> DeviceComponent:
        """Attach an actuator, replacing any existing actuator of the same name."""
        actuator = DeviceComponent(name=name, subtype=subtype)
        self.actuators[name] = actuator
        self.touch()
        return actuator

    def update_data(
        self,
        properties: Optional[dict[str, Any]] = None,
        sensors: Optional[dict[str, Any]] = None,
        actuators: Optional[dict[str, Any]] = None,
        at: Optional[datetime] = None,
    ) -> None:
        """
        Apply one telemetry message.

        Readings for unknown sensor/actuator names are ignored. Receiving
        data marks the device online.
        """
        at = at or now_utc()
        if properties:
            self.properties.apply(properties)
        for components, readings in ((self.sensors, sensors), (self.actuators, actuators)):
            for name, value in (readings or {}).items():
                component = components.get(name)
                if component is None:
                    continue
                component.value = value
                component.updated_at = at
        self.status = DeviceStatus.ONLINE
        self.message_count += 1
        self.touch(at, seen=True)

    def to_dict(self) -> dict:
        """JSON-serializable representation."""
        return _jsonable(asdict(self))


@dataclass
class ProtocolListener:
    """A protocol endpoint a gateway listens on."""
    port: int
    secure: bool = False
    clients: int = 0


@dataclass
class BufferedMessage:
    """Latest inbound payload a gateway holds for a device."""
    payload: dict[str, Any]
    timestamp: datetime = field(default_factory=now_utc)
    processed: bool = False


@dataclass
class TrafficCounter:
    """Per-device traffic seen by a gateway."""
    messages: int = 0
    bytes: int = 0


def default_listeners() -> dict[str, ProtocolListener]:
    """Protocol listener inventory every new gateway starts with."""
    return {
        Protocol.MQTT.value: ProtocolListener(port=8883, secure=True),
        Protocol.COAP.value: ProtocolListener(port=5683, secure=False),
        Protocol.HTTP.value: ProtocolListener(port=8443, secure=True),
        Protocol.WEBSOCKET.value: ProtocolListener(port=8080, secure=False),
    }


@dataclass
class Gateway:
    """
    A gateway routing telemetry for a set of devices.

    connected_devices holds ids only; a referenced device may already be
    gone from the fleet, readers reconcile against the device table.
    """
    name: str = ""
    location: str = "unknown"
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    connected_devices: set[str] = field(default_factory=set)
    protocols: dict[str, ProtocolListener] = field(default_factory=default_listeners)
    data_buffer: dict[str, BufferedMessage] = field(default_factory=dict)
    traffic: dict[str, TrafficCounter] = field(default_factory=dict)

    status: GatewayStatus = GatewayStatus.ACTIVE
    created_at: datetime = field(default_factory=now_utc)
    last_update: datetime = field(default_factory=now_utc)

    def connect(self, device_id: str) -> bool:
        """Attach a device. Returns False if it was already attached."""
        if device_id in self.connected_devices:
            return False
        self.connected_devices.add(device_id)
        self.last_update = max(self.last_update, now_utc())
        return True

    def disconnect(self, device_id: str) -> bool:
        """Detach a device and drop its buffer. Returns False if it was not attached."""
        if device_id not in self.connected_devices:
            return False
        self.connected_devices.discard(device_id)
        self.data_buffer.pop(device_id, None)
        self.last_update = max(self.last_update, now_utc())
        return True

    def buffer(self, device_id: str, payload: dict[str, Any], size: int) -> BufferedMessage:
        """Hold the latest payload for a device and count the traffic."""
        message = BufferedMessage(payload=payload)
        self.data_buffer[device_id] = message
        counter = self.traffic.setdefault(device_id, TrafficCounter())
        counter.messages += 1
        counter.bytes += size
        self.last_update = max(self.last_update, message.timestamp)
        return message

    def mark_processed(self, device_id: str) -> bool:
        message = self.data_buffer.get(device_id)
        if message is None:
            return False
        message.processed = True
        return True

    @property
    def pending_messages(self) -> int:
        return sum(1 for m in self.data_buffer.values() if not m.processed)

    def to_dict(self) -> dict:
        """JSON-serializable representation."""
        data = _jsonable(asdict(self))
        data["connected_devices"] = sorted(self.connected_devices)
        return data


def _jsonable(value: Any) -> Any:
    """Convert dataclass dumps into plain JSON types."""
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, (set, frozenset)):
        return sorted(_jsonable(v) for v in value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    return value

"""
Base classes for discovery methods.
"""

from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from .._types import (
    Device,
    DeviceProperties,
    DeviceType,
    Protocol,
    SecurityPosture,
    now_utc,
)


@dataclass
class DiscoveredDevice:
    """
    A device found by a discovery method.

    This is a lightweight representation before registration.
    The Fleet Manager turns it into a full Device with discovered_to_device().
    """
    name: str
    device_type: DeviceType = DeviceType.SENSOR
    protocol: Protocol = Protocol.MQTT
    location: str = "unknown"

    # Stable identity (serial, EUI-64, ...). None means the device cannot
    # be recognised again on a later discovery run.
    external_id: Optional[str] = None

    properties: DeviceProperties = field(default_factory=DeviceProperties)
    security: SecurityPosture = field(default_factory=SecurityPosture)

    # Sensor name -> subtype
    sensors: dict[str, str] = field(default_factory=dict)

    discovery_source: str = "simulated"
    discovered_at: datetime = field(default_factory=now_utc)


class DiscoveryMethod(ABC):
    """Base class for discovery methods."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Name of this discovery method."""
        pass

    @abstractmethod
    async def discover(self, limit: int) -> list[DiscoveredDevice]:
        """
        Discover up to `limit` devices.

        Returns list of discovered devices.
        """
        pass

    async def is_available(self) -> bool:
        """Check if this discovery method is available."""
        return True


def discovered_to_device(discovered: DiscoveredDevice) -> Device:
    """Build a Device from a discovery result."""
    device = Device(
        name=discovered.name,
        device_type=discovered.device_type,
        protocol=discovered.protocol,
        location=discovered.location,
        external_id=discovered.external_id,
        properties=copy.deepcopy(discovered.properties),
        security=copy.deepcopy(discovered.security),
    )
    for sensor_name, subtype in discovered.sensors.items():
        device.add_sensor(sensor_name, subtype)
    return device

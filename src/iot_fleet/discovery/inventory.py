"""
Inventory discovery.

Reports devices listed in a static inventory (a YAML file or a list of
dicts). Every entry has an external_id, so repeated runs are recognised
as the same devices instead of being registered again.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml

from .._types import DeviceProperties, DeviceType, Protocol, SecurityPosture
from .base import DiscoveredDevice, DiscoveryMethod

logger = logging.getLogger(__name__)


def _entry_to_discovered(entry: dict[str, Any]) -> DiscoveredDevice:
    external_id = entry.get("external_id")
    if not external_id:
        raise ValueError(f"Inventory entry without external_id: {entry}")
    return DiscoveredDevice(
        name=entry.get("name") or str(external_id),
        device_type=DeviceType(entry.get("type", DeviceType.SENSOR.value)),
        protocol=Protocol(entry.get("protocol", Protocol.MQTT.value)),
        location=entry.get("location", "unknown"),
        external_id=str(external_id),
        properties=DeviceProperties(**entry.get("properties", {})),
        security=SecurityPosture(**entry.get("security", {})),
        sensors=dict(entry.get("sensors", {})),
        discovery_source="inventory",
    )


class InventoryDiscovery(DiscoveryMethod):
    """Discovery backed by a fixed list of known devices."""

    def __init__(self, entries: list[dict[str, Any]]):
        self.entries = [_entry_to_discovered(e) for e in entries]

    @classmethod
    def from_yaml(cls, path: Path) -> "InventoryDiscovery":
        """Load entries from a YAML file with a top-level `devices` list."""
        if not path.exists():
            logger.warning(f"Inventory file not found: {path}")
            return cls([])

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        return cls(data.get("devices", []))

    @property
    def name(self) -> str:
        return "inventory"

    async def discover(self, limit: int) -> list[DiscoveredDevice]:
        return self.entries[:max(0, limit)]


# Example inventory.yaml:
"""
devices:
  - external_id: "EUI-0004A30B001C2F11"
    name: "boiler-room-temp"
    type: sensor
    protocol: lorawan
    location: "building-a/basement"
    properties:
      power_source: battery
      battery_level: 76
    security:
      encryption: aes256
      authentication: token
    sensors:
      temp-0: temperature
"""

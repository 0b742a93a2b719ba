"""
Discovery methods for the fleet.

Each discovery method implements the same interface:
- async discover(limit) -> list[DiscoveredDevice]

Methods:
- Simulated: random, seedable device generation (no stable identity)
- Inventory: devices listed in a YAML inventory (stable external ids)
"""

from .base import DiscoveredDevice, DiscoveryMethod, discovered_to_device
from .inventory import InventoryDiscovery
from .simulated import SimulatedDiscovery, TelemetryGenerator

__all__ = [
    "DiscoveredDevice",
    "DiscoveryMethod",
    "discovered_to_device",
    "InventoryDiscovery",
    "SimulatedDiscovery",
    "TelemetryGenerator",
]

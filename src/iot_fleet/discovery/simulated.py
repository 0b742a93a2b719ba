"""
Simulated discovery.

Stands in for network discovery: every run finds a random number of
devices, bounded by the caller's limit and max_devices. All randomness
comes from one random.Random, so a seeded generator gives reproducible
fleets.

Simulated devices carry no external identity, so discovering twice
registers the same "physical" device twice.
"""

from __future__ import annotations

import logging
import random
from typing import Optional

from .._types import (
    AuthScheme,
    DeviceProperties,
    DeviceType,
    EncryptionScheme,
    PowerSource,
    Protocol,
    SecurityPosture,
)
from .base import DiscoveredDevice, DiscoveryMethod

logger = logging.getLogger(__name__)

MANUFACTURERS = ["Bosch", "Siemens", "Honeywell", "Schneider", "Espressif", "Nordic"]

SENSOR_SUBTYPES = ["temperature", "humidity", "pressure", "motion", "light", "vibration"]


class TelemetryGenerator:
    """
    Random telemetry and security posture for simulated devices.

    Pass a seeded random.Random to make the sequence deterministic.
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    def device_type(self) -> DeviceType:
        return self.rng.choice(list(DeviceType))

    def protocol(self) -> Protocol:
        return self.rng.choice(list(Protocol))

    def properties(self) -> DeviceProperties:
        rng = self.rng
        power = rng.choice(list(PowerSource))
        return DeviceProperties(
            manufacturer=rng.choice(MANUFACTURERS),
            model=f"M{rng.randint(100, 999)}",
            firmware=f"{rng.randint(1, 4)}.{rng.randint(0, 9)}.{rng.randint(0, 20)}",
            power_source=power,
            battery_level=rng.randint(5, 100) if power == PowerSource.BATTERY else 100,
            signal_strength=rng.randint(30, 100),
            temperature=round(rng.uniform(15.0, 45.0), 1),
            humidity=rng.randint(20, 80),
            memory_usage=rng.randint(10, 95),
            cpu_usage=rng.randint(5, 99),
        )

    def security(self) -> SecurityPosture:
        rng = self.rng
        return SecurityPosture(
            encryption=rng.choice(list(EncryptionScheme)),
            authentication=rng.choice(list(AuthScheme)),
            certificate_valid=rng.random() < 0.9,
            firewall_enabled=rng.random() < 0.8,
            intrusion_detection=rng.random() < 0.7,
        )

    def sensors(self) -> dict[str, str]:
        count = self.rng.randint(0, 3)
        subtypes = self.rng.sample(SENSOR_SUBTYPES, count)
        return {f"{subtype}-{i}": subtype for i, subtype in enumerate(subtypes)}


class SimulatedDiscovery(DiscoveryMethod):
    """Discovery that fabricates devices from a TelemetryGenerator."""

    def __init__(
        self,
        max_devices: int = 10,
        generator: Optional[TelemetryGenerator] = None,
        seed: Optional[int] = None,
    ):
        """
        Initialize simulated discovery.

        Args:
            max_devices: Upper bound of devices found per run
            generator: Telemetry source (defaults to one seeded with `seed`)
            seed: Seed for the default generator
        """
        self.max_devices = max_devices
        self.generator = generator or TelemetryGenerator(random.Random(seed))

    @property
    def name(self) -> str:
        return "simulated"

    async def discover(self, limit: int) -> list[DiscoveredDevice]:
        bound = max(0, min(limit, self.max_devices))
        count = self.generator.rng.randint(0, bound)
        devices = []
        for _ in range(count):
            device_type = self.generator.device_type()
            devices.append(DiscoveredDevice(
                name=f"{device_type.value}-{self.generator.rng.randrange(16 ** 6):06x}",
                device_type=device_type,
                protocol=self.generator.protocol(),
                properties=self.generator.properties(),
                security=self.generator.security(),
                sensors=self.generator.sensors(),
                discovery_source=self.name,
            ))
        logger.debug(f"Simulated discovery produced {count} devices (bound {bound})")
        return devices

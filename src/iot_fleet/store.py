"""
Fleet store.

Holds the device and gateway tables plus bounded per-device telemetry
history. FleetStore is the contract the Fleet Manager depends on;
InMemoryFleetStore is the default implementation.

Locking model:
- devices_lock / gateways_lock guard structural changes of each table.
- device_lock(id) guards the state of one device. Sweeps take it only
  long enough to copy the device, so devices are scored in parallel.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections import deque
from datetime import datetime
from typing import Optional

from ._types import Device, DeviceStatus, DeviceType, Gateway, Protocol, TelemetryRecord
from .exceptions import DeviceLimitError

logger = logging.getLogger(__name__)


class FleetStore(ABC):
    """Storage contract for devices, gateways and telemetry history."""

    devices_lock: asyncio.Lock
    gateways_lock: asyncio.Lock

    @abstractmethod
    def device_lock(self, device_id: str) -> asyncio.Lock:
        """Lock guarding the state of one device."""
        pass

    # -- devices --

    @abstractmethod
    async def add_device(self, device: Device, limit: Optional[int] = None) -> Device:
        pass

    @abstractmethod
    async def upsert_device(
        self,
        device: Device,
        limit: Optional[int] = None,
    ) -> tuple[Device, bool]:
        pass

    @abstractmethod
    async def remove_device(self, device_id: str) -> Optional[Device]:
        pass

    @abstractmethod
    def get_device(self, device_id: str) -> Optional[Device]:
        pass

    @abstractmethod
    def list_devices(
        self,
        device_type: Optional[DeviceType] = None,
        status: Optional[DeviceStatus] = None,
        protocol: Optional[Protocol] = None,
    ) -> list[Device]:
        pass

    @abstractmethod
    def find_by_external_id(self, external_id: str) -> Optional[Device]:
        pass

    @abstractmethod
    def device_count(self) -> int:
        pass

    # -- gateways --

    @abstractmethod
    async def add_gateway(self, gateway: Gateway) -> Gateway:
        pass

    @abstractmethod
    async def remove_gateway(self, gateway_id: str) -> Optional[Gateway]:
        pass

    @abstractmethod
    def get_gateway(self, gateway_id: str) -> Optional[Gateway]:
        pass

    @abstractmethod
    def list_gateways(self) -> list[Gateway]:
        pass

    # -- telemetry history --

    @abstractmethod
    def append_history(self, record: TelemetryRecord) -> None:
        pass

    @abstractmethod
    def get_history(
        self,
        device_id: str,
        limit: int = 100,
        offset: int = 0,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[TelemetryRecord]:
        pass


class InMemoryFleetStore(FleetStore):
    """Dictionary-backed store. Contents live as long as the process."""

    def __init__(self, history_limit: int = 1000):
        self.history_limit = history_limit
        self.devices_lock = asyncio.Lock()
        self.gateways_lock = asyncio.Lock()
        self._devices: dict[str, Device] = {}
        self._gateways: dict[str, Gateway] = {}
        self._device_locks: dict[str, asyncio.Lock] = {}
        self._history: dict[str, deque[TelemetryRecord]] = {}

    def device_lock(self, device_id: str) -> asyncio.Lock:
        lock = self._device_locks.get(device_id)
        if lock is None:
            # Unknown device: a throwaway lock, nothing to protect
            lock = asyncio.Lock()
        return lock

    def _insert(self, device: Device, limit: Optional[int]) -> None:
        if limit is not None and len(self._devices) >= limit:
            raise DeviceLimitError(limit)
        if device.id in self._devices:
            raise ValueError(f"Duplicate device id: {device.id}")
        self._devices[device.id] = device
        self._device_locks[device.id] = asyncio.Lock()

    async def add_device(self, device: Device, limit: Optional[int] = None) -> Device:
        """Insert a device. Raises DeviceLimitError when the table is full."""
        async with self.devices_lock:
            self._insert(device, limit)
        return device

    async def upsert_device(
        self,
        device: Device,
        limit: Optional[int] = None,
    ) -> tuple[Device, bool]:
        """
        Insert a device unless one with the same external_id exists.

        Returns (stored_device, is_new). A known device only has its
        last_seen advanced.
        """
        async with self.devices_lock:
            if device.external_id:
                existing = self.find_by_external_id(device.external_id)
                if existing is not None:
                    existing.touch(seen=True)
                    return existing, False
            self._insert(device, limit)
        return device, True

    async def remove_device(self, device_id: str) -> Optional[Device]:
        async with self.devices_lock:
            device = self._devices.pop(device_id, None)
            self._history.pop(device_id, None)
            self._device_locks.pop(device_id, None)
        return device

    def get_device(self, device_id: str) -> Optional[Device]:
        return self._devices.get(device_id)

    def list_devices(
        self,
        device_type: Optional[DeviceType] = None,
        status: Optional[DeviceStatus] = None,
        protocol: Optional[Protocol] = None,
    ) -> list[Device]:
        devices = list(self._devices.values())
        if device_type is not None:
            devices = [d for d in devices if d.device_type == device_type]
        if status is not None:
            devices = [d for d in devices if d.status == status]
        if protocol is not None:
            devices = [d for d in devices if d.protocol == protocol]
        return devices

    def find_by_external_id(self, external_id: str) -> Optional[Device]:
        for device in self._devices.values():
            if device.external_id == external_id:
                return device
        return None

    def device_count(self) -> int:
        return len(self._devices)

    async def add_gateway(self, gateway: Gateway) -> Gateway:
        async with self.gateways_lock:
            if gateway.id in self._gateways:
                raise ValueError(f"Duplicate gateway id: {gateway.id}")
            self._gateways[gateway.id] = gateway
        return gateway

    async def remove_gateway(self, gateway_id: str) -> Optional[Gateway]:
        async with self.gateways_lock:
            return self._gateways.pop(gateway_id, None)

    def get_gateway(self, gateway_id: str) -> Optional[Gateway]:
        return self._gateways.get(gateway_id)

    def list_gateways(self) -> list[Gateway]:
        return list(self._gateways.values())

    def append_history(self, record: TelemetryRecord) -> None:
        """Keep the record, dropping the oldest beyond history_limit."""
        if record.device_id not in self._devices:
            return
        history = self._history.get(record.device_id)
        if history is None:
            history = self._history[record.device_id] = deque(maxlen=self.history_limit)
        history.append(record)

    def get_history(
        self,
        device_id: str,
        limit: int = 100,
        offset: int = 0,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[TelemetryRecord]:
        """Oldest-first slice of a device's history, optionally time-filtered."""
        records = list(self._history.get(device_id, ()))
        if start is not None:
            records = [r for r in records if r.received_at >= start]
        if end is not None:
            records = [r for r in records if r.received_at <= end]
        return records[offset:offset + limit]

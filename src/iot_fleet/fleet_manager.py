"""
Fleet Manager - orchestration facade for the fleet core.

Owns the device and gateway collections (through a FleetStore) and
coordinates discovery, telemetry ingestion, monitoring sweeps, analysis
passes and bulk deployment. Scoring is delegated to the health scorer and
security scanner; fleet-wide aggregation to the analytics engine.

Every bulk operation returns a plain dict with a "status" of completed,
cancelled or failed. Unexpected faults are logged and reported as a failed
result so the manager stays usable.
"""

from __future__ import annotations

import asyncio
import copy
import inspect
import json
import logging
import random
from collections import Counter, deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from pydantic import ValidationError

from ._types import (
    Device,
    DeviceComponent,
    DeviceProperties,
    DeviceStatus,
    DeviceType,
    Gateway,
    Protocol,
    SecurityPosture,
    TelemetryRecord,
    now_utc,
)
from .analytics import (
    Alert,
    AnalyticsEngine,
    FleetMetrics,
    HistorySample,
    get_forecaster,
    telemetry_series,
)
from .analytics.forecast import Forecaster
from .config import FleetConfig
from .discovery import (
    DiscoveryMethod,
    SimulatedDiscovery,
    TelemetryGenerator,
    discovered_to_device,
)
from .exceptions import FleetError, InvalidParameterError
from .health import HealthStatus, score_device
from .schemas import DeviceUpdate, SecurityUpdate, TelemetryPayload
from .security import RiskLevel, scan_device
from .store import FleetStore, InMemoryFleetStore

logger = logging.getLogger(__name__)

# Lifecycle events listeners can register for with FleetManager.on()
EVENTS = ("device_registered", "device_removed", "data_received")


def parse_device_topic(topic: str) -> Optional[str]:
    """Extract the device id from a `devices/{device_id}/data` topic."""
    parts = topic.split("/")
    if len(parts) == 3 and parts[0] == "devices" and parts[2] == "data" and parts[1]:
        return parts[1]
    return None


@dataclass
class TrafficStats:
    """Ingestion counters fed into the fleet metrics on every sweep."""
    messages: int = 0
    bytes: int = 0
    errors: int = 0
    latency_total_ms: float = 0.0
    latency_samples: int = 0
    started_at: datetime = field(default_factory=now_utc)

    def record_message(self, size: int, latency_ms: Optional[float] = None) -> None:
        self.messages += 1
        self.bytes += size
        if latency_ms is not None:
            self.latency_total_ms += latency_ms
            self.latency_samples += 1

    def record_error(self) -> None:
        self.errors += 1

    @property
    def error_rate(self) -> float:
        total = self.messages + self.errors
        return self.errors / total if total else 0.0

    @property
    def average_latency_ms(self) -> float:
        if not self.latency_samples:
            return 0.0
        return self.latency_total_ms / self.latency_samples

    def throughput(self, now: Optional[datetime] = None) -> float:
        """Messages per second since the counters started."""
        elapsed = ((now or now_utc()) - self.started_at).total_seconds()
        return self.messages / elapsed if elapsed > 0 else 0.0


def _payload_size(payload: dict[str, Any]) -> int:
    return len(json.dumps(payload, default=str).encode())


def _cancelled(stop: Optional[asyncio.Event]) -> bool:
    return stop is not None and stop.is_set()


class FleetManager:
    """
    Facade over one fleet of devices and gateways.

    Construct once and share the instance; all state lives on it.
    """

    def __init__(
        self,
        config: Optional[FleetConfig] = None,
        store: Optional[FleetStore] = None,
        discovery: Optional[DiscoveryMethod] = None,
        forecaster: Optional[Forecaster] = None,
        telemetry: Optional[TelemetryGenerator] = None,
    ):
        """
        Initialize the fleet manager.

        Args:
            config: Fleet configuration (defaults to FleetConfig())
            store: Device/gateway store (defaults to in-memory)
            discovery: Discovery strategy (defaults to simulated discovery)
            forecaster: Forecasting strategy (defaults to config.forecaster)
            telemetry: Random source for simulated discovery
        """
        self.config = config or FleetConfig()
        self.store = store or InMemoryFleetStore(history_limit=self.config.history_limit)
        self.telemetry = telemetry or TelemetryGenerator(
            random.Random(self.config.discovery_seed)
        )
        self.discovery = discovery or SimulatedDiscovery(
            max_devices=self.config.discovery_max_devices,
            generator=self.telemetry,
        )
        self.analytics = AnalyticsEngine(
            forecaster or get_forecaster(self.config.forecaster)
        )
        self.traffic = TrafficStats()
        self._samples: deque[HistorySample] = deque(
            maxlen=self.config.metrics_history_limit
        )
        self._sampled_bytes = 0
        self._critical_ids: set[str] = set()
        self._subscribers: dict[str, list[Callable]] = {}
        self._listeners: dict[str, list[Callable]] = {event: [] for event in EVENTS}
        self._started_at = now_utc()
        self.running = False

    # -------------------------------------------------------------------------
    # Read accessors
    # -------------------------------------------------------------------------

    def get_device(self, device_id: str) -> Optional[Device]:
        return self.store.get_device(device_id)

    def get_gateway(self, gateway_id: str) -> Optional[Gateway]:
        return self.store.get_gateway(gateway_id)

    def list_devices(
        self,
        device_type: Optional[DeviceType] = None,
        status: Optional[DeviceStatus] = None,
    ) -> list[Device]:
        return self.store.list_devices(device_type=device_type, status=status)

    def list_gateways(self) -> list[Gateway]:
        return self.store.list_gateways()

    def describe_gateway(self, gateway_id: str) -> Optional[dict]:
        """
        Gateway view reconciled against the device table.

        Connected ids that no longer resolve to a device are reported under
        unknown_devices rather than treated as an error.
        """
        gateway = self.store.get_gateway(gateway_id)
        if gateway is None:
            return None
        data = gateway.to_dict()
        connected = sorted(gateway.connected_devices)
        data["active_devices"] = [d for d in connected if self.store.get_device(d)]
        data["unknown_devices"] = [d for d in connected if not self.store.get_device(d)]
        data["pending_messages"] = gateway.pending_messages
        return data

    def get_device_data(
        self,
        device_id: str,
        limit: int = 100,
        offset: int = 0,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> Optional[list[dict]]:
        """Stored telemetry of a device, oldest first. None if the device is unknown."""
        if limit < 0:
            raise InvalidParameterError("limit", limit, "must be >= 0")
        if offset < 0:
            raise InvalidParameterError("offset", offset, "must be >= 0")
        if self.store.get_device(device_id) is None:
            return None
        records = self.store.get_history(device_id, limit=limit, offset=offset, start=start, end=end)
        return [
            {"payload": copy.deepcopy(r.payload), "received_at": r.received_at.isoformat()}
            for r in records
        ]

    def device_statistics(self) -> dict:
        devices = self.store.list_devices()
        return {
            "total": len(devices),
            "online": sum(1 for d in devices if d.status == DeviceStatus.ONLINE),
            "offline": sum(1 for d in devices if d.status == DeviceStatus.OFFLINE),
            "by_type": dict(Counter(d.device_type.value for d in devices)),
            "by_protocol": dict(Counter(d.protocol.value for d in devices)),
            "total_data_points": sum(d.message_count for d in devices),
        }

    def status(self) -> dict:
        return {
            "running": self.running,
            "devices": self.store.device_count(),
            "gateways": len(self.store.list_gateways()),
            "uptime_seconds": round((now_utc() - self._started_at).total_seconds(), 1),
            "discovery": self.discovery.name,
            "forecaster": self.analytics.forecaster.name,
        }

    # -------------------------------------------------------------------------
    # Events and subscriptions
    # -------------------------------------------------------------------------

    def on(self, event: str, callback: Callable) -> None:
        """
        Register a listener for a lifecycle event.

        device_registered and device_removed listeners receive the device as
        a dict; data_received listeners receive {"device_id", "payload"}.
        Callbacks may be plain functions or coroutine functions.
        """
        if event not in self._listeners:
            raise InvalidParameterError("event", event, f"expected one of {list(EVENTS)}")
        self._listeners[event].append(callback)

    def subscribe(self, device_id: str, callback: Callable) -> dict:
        """Call `callback(payload)` for every telemetry message of a device."""
        if self.store.get_device(device_id) is None:
            return {"status": "not_found", "missing": "device", "device_id": device_id}
        self._subscribers.setdefault(device_id, []).append(callback)
        logger.debug(f"Subscribed to device {device_id}")
        return {
            "status": "subscribed",
            "device_id": device_id,
            "subscribers": len(self._subscribers[device_id]),
        }

    def unsubscribe(self, device_id: str) -> dict:
        """Drop every data subscription of a device."""
        removed = self._subscribers.pop(device_id, None)
        if removed is None:
            return {"status": "not_found", "missing": "subscription", "device_id": device_id}
        logger.debug(f"Unsubscribed {len(removed)} callbacks from device {device_id}")
        return {"status": "unsubscribed", "device_id": device_id, "removed": len(removed)}

    async def _notify(self, callbacks: list[Callable], data: Any) -> None:
        for callback in list(callbacks):
            try:
                result = callback(copy.deepcopy(data))
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Listener {getattr(callback, '__name__', callback)} failed: {e}")

    async def _emit(self, event: str, data: Any) -> None:
        await self._notify(self._listeners[event], data)

    # -------------------------------------------------------------------------
    # Devices
    # -------------------------------------------------------------------------

    async def add_device(
        self,
        name: str,
        device_type: DeviceType = DeviceType.SENSOR,
        protocol: Protocol = Protocol.MQTT,
        location: str = "unknown",
        properties: Optional[DeviceProperties] = None,
        security: Optional[SecurityPosture] = None,
    ) -> Device:
        """Register a new device. Raises DeviceLimitError when the fleet is full."""
        device = Device(
            name=name,
            device_type=device_type,
            protocol=protocol,
            location=location,
            properties=properties or DeviceProperties(),
            security=security or SecurityPosture(),
        )
        await self.store.add_device(device, limit=self.config.device_limit)
        logger.info(f"Device registered: {device.name} ({device.id})")
        await self._emit("device_registered", device.to_dict())
        return device

    async def remove_device(self, device_id: str) -> bool:
        """Remove a device and detach it from every gateway."""
        device = await self.store.remove_device(device_id)
        if device is None:
            logger.warning(f"Remove requested for unknown device {device_id}")
            return False

        async with self.store.gateways_lock:
            for gateway in self.store.list_gateways():
                self._detach(gateway, device_id, device)
        self._subscribers.pop(device_id, None)

        logger.info(f"Device removed: {device.name} ({device_id})")
        await self._emit("device_removed", device.to_dict())
        return True

    async def update_data(self, device_id: str, payload: dict[str, Any]) -> Optional[Device]:
        """
        Apply a telemetry message to a device.

        Out-of-range values are clamped. Returns None if the device is
        unknown; raises InvalidParameterError for non-numeric readings.
        Subscribers and data_received listeners see the payload once the
        device lock is released.
        """
        try:
            telemetry = TelemetryPayload.model_validate(payload)
        except ValidationError as e:
            self.traffic.record_error()
            raise InvalidParameterError("payload", payload, str(e)) from e

        device = self.store.get_device(device_id)
        if device is None:
            self.traffic.record_error()
            logger.warning(f"Telemetry for unknown device {device_id} dropped")
            return None

        async with self.store.device_lock(device_id):
            device.update_data(
                properties=telemetry.property_values(),
                sensors=telemetry.sensors,
                actuators=telemetry.actuators,
                at=telemetry.timestamp,
            )
            self.store.append_history(
                TelemetryRecord(device_id=device_id, payload=copy.deepcopy(payload))
            )

        self.traffic.record_message(_payload_size(payload), telemetry.latency_ms)
        await self._notify(self._subscribers.get(device_id, []), payload)
        await self._emit("data_received", {"device_id": device_id, "payload": payload})
        return device

    async def update_device(self, device_id: str, changes: dict[str, Any]) -> Optional[Device]:
        """Rename or relocate a device. None if the device is unknown."""
        device = self.store.get_device(device_id)
        if device is None:
            return None

        try:
            update = DeviceUpdate.model_validate(changes)
        except ValidationError as e:
            raise InvalidParameterError("changes", changes, str(e)) from e

        async with self.store.device_lock(device_id):
            for key, value in update.model_dump(exclude_none=True).items():
                setattr(device, key, value)
            device.touch()
        logger.info(f"Device updated: {device.name} ({device_id})")
        return device

    async def update_security(self, device_id: str, changes: dict[str, Any]) -> Optional[Device]:
        """Change security posture flags of a device. None if the device is unknown."""
        device = self.store.get_device(device_id)
        if device is None:
            return None

        try:
            update = SecurityUpdate.model_validate(changes)
        except ValidationError as e:
            raise InvalidParameterError("changes", changes, str(e)) from e

        async with self.store.device_lock(device_id):
            current = {k: getattr(device.security, k) for k in SecurityUpdate.model_fields}
            current.update(update.model_dump(exclude_none=True))
            device.security = SecurityPosture(**current, score=device.security.score)
            device.touch()
        return device

    async def add_sensor(self, device_id: str, name: str, subtype: str) -> Optional[DeviceComponent]:
        device = self.store.get_device(device_id)
        if device is None:
            return None
        async with self.store.device_lock(device_id):
            return device.add_sensor(name, subtype)

    async def add_actuator(self, device_id: str, name: str, subtype: str) -> Optional[DeviceComponent]:
        device = self.store.get_device(device_id)
        if device is None:
            return None
        async with self.store.device_lock(device_id):
            return device.add_actuator(name, subtype)

    async def mark_stale_devices(self, now: Optional[datetime] = None) -> list[str]:
        """Set devices offline that have not reported within stale_timeout_seconds."""
        cutoff = (now or now_utc()) - timedelta(seconds=self.config.stale_timeout_seconds)
        marked = []
        for device in self.store.list_devices(status=DeviceStatus.ONLINE):
            async with self.store.device_lock(device.id):
                if device.status == DeviceStatus.ONLINE and device.last_seen < cutoff:
                    device.status = DeviceStatus.OFFLINE
                    device.touch()
                    marked.append(device.id)
        if marked:
            logger.info(f"Marked {len(marked)} stale devices offline")
        return marked

    # -------------------------------------------------------------------------
    # Gateways
    # -------------------------------------------------------------------------

    async def add_gateway(self, name: str, location: str = "unknown") -> Gateway:
        gateway = Gateway(name=name, location=location)
        await self.store.add_gateway(gateway)
        logger.info(f"Gateway registered: {gateway.name} ({gateway.id})")
        return gateway

    async def remove_gateway(self, gateway_id: str) -> bool:
        gateway = await self.store.remove_gateway(gateway_id)
        if gateway is None:
            logger.warning(f"Remove requested for unknown gateway {gateway_id}")
            return False
        logger.info(f"Gateway removed: {gateway.name} ({gateway_id})")
        return True

    def _detach(self, gateway: Gateway, device_id: str, device: Optional[Device]) -> bool:
        if not gateway.disconnect(device_id):
            return False
        gateway.traffic.pop(device_id, None)
        if device is not None:
            listener = gateway.protocols.get(device.protocol.value)
            if listener is not None and listener.clients > 0:
                listener.clients -= 1
        return True

    async def connect_device(self, gateway_id: str, device_id: str) -> dict:
        """Attach a device to a gateway. Connecting twice is a no-op."""
        async with self.store.gateways_lock:
            gateway = self.store.get_gateway(gateway_id)
            if gateway is None:
                return {"status": "not_found", "missing": "gateway", "gateway_id": gateway_id}
            device = self.store.get_device(device_id)
            if device is None:
                return {"status": "not_found", "missing": "device", "device_id": device_id}

            if not gateway.connect(device_id):
                return {"status": "already_connected", "gateway_id": gateway_id, "device_id": device_id}

            listener = gateway.protocols.get(device.protocol.value)
            if listener is not None:
                listener.clients += 1

        logger.info(f"Device {device_id} connected to gateway {gateway.name}")
        return {"status": "connected", "gateway_id": gateway_id, "device_id": device_id}

    async def disconnect_device(self, gateway_id: str, device_id: str) -> dict:
        """Detach a device from a gateway. Detaching an absent device is a no-op."""
        async with self.store.gateways_lock:
            gateway = self.store.get_gateway(gateway_id)
            if gateway is None:
                return {"status": "not_found", "missing": "gateway", "gateway_id": gateway_id}
            detached = self._detach(gateway, device_id, self.store.get_device(device_id))

        if not detached:
            return {"status": "not_connected", "gateway_id": gateway_id, "device_id": device_id}
        logger.info(f"Device {device_id} disconnected from gateway {gateway.name}")
        return {"status": "disconnected", "gateway_id": gateway_id, "device_id": device_id}

    async def ingest(self, gateway_id: str, topic: str, payload: dict[str, Any]) -> dict:
        """
        Accept a message arriving at a gateway on a `devices/{id}/data` topic.

        The gateway buffers the payload, then the telemetry is applied to
        the device and the buffer entry is marked processed.
        """
        device_id = parse_device_topic(topic)
        if device_id is None:
            self.traffic.record_error()
            return {"status": "invalid_topic", "topic": topic}

        gateway = self.store.get_gateway(gateway_id)
        if gateway is None:
            self.traffic.record_error()
            return {"status": "not_found", "missing": "gateway", "gateway_id": gateway_id}
        if device_id not in gateway.connected_devices:
            self.traffic.record_error()
            return {"status": "not_connected", "gateway_id": gateway_id, "device_id": device_id}

        gateway.buffer(device_id, copy.deepcopy(payload), _payload_size(payload))
        device = await self.update_data(device_id, payload)
        if device is None:
            return {"status": "not_found", "missing": "device", "device_id": device_id}

        gateway.mark_processed(device_id)
        return {"status": "accepted", "gateway_id": gateway_id, "device_id": device_id}

    # -------------------------------------------------------------------------
    # Bulk operations
    # -------------------------------------------------------------------------

    async def discover_devices(
        self,
        limit: int,
        stop: Optional[asyncio.Event] = None,
    ) -> dict:
        """
        Run the discovery strategy and register what it finds.

        Devices with an external_id that is already known are reported as
        known instead of being registered again.
        """
        if limit < 0:
            raise InvalidParameterError("limit", limit, "must be >= 0")

        found: list[dict] = []
        errors: list[str] = []
        new_count = 0
        known_count = 0
        status = "completed"

        try:
            if not await self.discovery.is_available():
                logger.warning(f"Discovery method {self.discovery.name} not available")
                return {"status": "unavailable", "method": self.discovery.name, "found": []}

            discovered = await self.discovery.discover(limit)
            for item in discovered[:limit]:
                if _cancelled(stop):
                    status = "cancelled"
                    break
                try:
                    device, is_new = await self.store.upsert_device(
                        discovered_to_device(item),
                        limit=self.config.device_limit,
                    )
                except FleetError as e:
                    errors.append(f"{item.name}: {e}")
                    continue

                found.append(device.to_dict())
                if is_new:
                    new_count += 1
                    logger.info(f"Device registered: {device.name} ({device.id})")
                    await self._emit("device_registered", device.to_dict())
                else:
                    known_count += 1

        except Exception as e:
            logger.error(f"Discovery failed: {e}")
            return {
                "status": "failed",
                "error": str(e),
                "method": self.discovery.name,
                "found": found,
                "new_devices": new_count,
                "known_devices": known_count,
            }

        logger.info(
            f"Discovery {status}: {len(found)} found, {new_count} new, "
            f"{known_count} known, {len(errors)} failed"
        )
        return {
            "status": status,
            "method": self.discovery.name,
            "found": found,
            "new_devices": new_count,
            "known_devices": known_count,
            "failed": len(errors),
            "errors": errors,
        }

    async def deploy_devices(
        self,
        count: int,
        name_prefix: str = "device",
        device_type: DeviceType = DeviceType.SENSOR,
        protocol: Protocol = Protocol.MQTT,
        location: str = "unknown",
        stop: Optional[asyncio.Event] = None,
    ) -> dict:
        """Register `count` new devices. Partial success is reported, not raised."""
        if count < 0:
            raise InvalidParameterError("count", count, "must be >= 0")

        deployed: list[dict] = []
        errors: list[str] = []
        attempted = 0
        status = "completed"

        try:
            for i in range(count):
                if _cancelled(stop):
                    status = "cancelled"
                    break
                attempted += 1
                try:
                    device = await self.add_device(
                        name=f"{name_prefix}-{i + 1}",
                        device_type=device_type,
                        protocol=protocol,
                        location=location,
                    )
                except FleetError as e:
                    errors.append(str(e))
                    continue
                deployed.append(device.to_dict())
        except Exception as e:
            logger.error(f"Deployment failed: {e}")
            status = "failed"
            errors.append(str(e))

        logger.info(f"Deployment {status}: {len(deployed)}/{count} devices deployed")
        return {
            "status": status,
            "requested": count,
            "deployed": deployed,
            "deployed_count": len(deployed),
            "failed_count": len(errors),
            "skipped_count": count - attempted,
            "errors": errors,
        }

    async def _snapshot(self, device_id: str) -> Optional[Device]:
        """Consistent copy of a device, taken under its lock."""
        async with self.store.device_lock(device_id):
            device = self.store.get_device(device_id)
            return copy.deepcopy(device) if device is not None else None

    async def _sweep(self, work, stop: Optional[asyncio.Event]) -> tuple[list, int]:
        """
        Run `work(device_id)` for every device, at most max_concurrent_scans
        at a time. Returns (results, failures); devices skipped because of
        cancellation or removal produce no result.
        """
        semaphore = asyncio.Semaphore(self.config.max_concurrent_scans)
        failures = 0

        async def run(device_id: str):
            nonlocal failures
            async with semaphore:
                if _cancelled(stop):
                    return None
                try:
                    return await work(device_id)
                except Exception as e:
                    failures += 1
                    logger.error(f"Sweep failed on device {device_id}: {e}")
                    return None

        ids = [d.id for d in self.store.list_devices()]
        results = await asyncio.gather(*(run(device_id) for device_id in ids))
        return [r for r in results if r is not None], failures

    async def monitor_devices(self, stop: Optional[asyncio.Event] = None) -> dict:
        """
        Score the health of every device.

        Raises one alert per device in critical health. A completed sweep
        also refreshes the analytics metrics and records a history sample.
        """
        async def work(device_id: str):
            snapshot = await self._snapshot(device_id)
            if snapshot is None:
                return None
            return snapshot, score_device(snapshot)

        try:
            scored, failures = await self._sweep(work, stop)
        except Exception as e:
            logger.error(f"Monitor sweep failed: {e}")
            return {"status": "failed", "error": str(e)}

        status = "cancelled" if _cancelled(stop) else "completed"
        online = sum(1 for d, _ in scored if d.status == DeviceStatus.ONLINE)
        offline = len(scored) - online
        alerts = [
            Alert(
                source_id=d.id,
                message=f"Device {d.name} health critical ({report.overall}): "
                        f"{', '.join(report.issues)}",
                score=report.overall,
            )
            for d, report in scored
            if report.status == HealthStatus.CRITICAL
        ]

        if status == "completed":
            self._record_sweep(len(scored), online, offline, alerts)

        logger.info(
            f"Monitor sweep {status}: {len(scored)} devices, {online} online, "
            f"{offline} offline, {len(alerts)} critical"
        )
        return {
            "status": status,
            "scanned": len(scored),
            "failed": failures,
            "online_count": online,
            "offline_count": offline,
            "devices": [
                {"device_id": d.id, "name": d.name, "status": d.status.value, "health": r.to_dict()}
                for d, r in scored
            ],
            "alerts": [a.to_dict() for a in alerts],
        }

    def _record_sweep(self, total: int, online: int, offline: int, alerts: list[Alert]) -> None:
        self.analytics.record_alerts(alerts)
        self.analytics.update_metrics(FleetMetrics(
            total_devices=total,
            online_devices=online,
            offline_devices=offline,
            data_volume=float(self.traffic.bytes),
            message_count=self.traffic.messages,
            error_rate=self.traffic.error_rate,
            average_latency_ms=self.traffic.average_latency_ms,
            throughput=self.traffic.throughput(),
        ))
        # Only devices that turned critical since the previous sweep count as failures
        critical = {a.source_id for a in alerts}
        newly_critical = critical - self._critical_ids
        self._critical_ids = critical
        self._samples.append(HistorySample(
            failures=len(newly_critical),
            data_volume=float(self.traffic.bytes - self._sampled_bytes),
            timestamp=now_utc(),
        ))
        self._sampled_bytes = self.traffic.bytes

    async def analyze_data(self, stop: Optional[asyncio.Event] = None) -> dict:
        """
        Security-scan every device and fold the results into analytics.

        The scan and the write-back of security.score happen under the
        device lock. Anomaly detection and predictions run only when the
        pass completes.
        """
        async def work(device_id: str):
            async with self.store.device_lock(device_id):
                device = self.store.get_device(device_id)
                if device is None:
                    return None
                result = scan_device(device)
                device.security.score = result.score
                device.security.updated_at = now_utc()
                return copy.deepcopy(device), result

        try:
            scanned, failures = await self._sweep(work, stop)
            status = "cancelled" if _cancelled(stop) else "completed"

            anomalies = []
            predictions = self.analytics.predictions
            if status == "completed":
                anomalies = self.analytics.detect_anomalies(
                    telemetry_series(d for d, _ in scanned)
                )
                predictions = self.analytics.generate_predictions(
                    list(self._samples),
                    interval_seconds=self.config.sweep_interval_seconds,
                )
            report = self.analytics.generate_report()
        except Exception as e:
            logger.error(f"Analysis failed: {e}")
            return {"status": "failed", "error": str(e)}

        results = [r for _, r in scanned]
        risk = Counter(r.risk_level.value for r in results)
        logger.info(
            f"Analysis {status}: {len(results)} devices scanned, "
            f"{risk.get(RiskLevel.HIGH.value, 0)} high risk, {len(anomalies)} anomalies"
        )
        return {
            "status": status,
            "scanned": len(results),
            "failed": failures,
            "analytics": report.to_dict(),
            "predictions": predictions.to_dict() if predictions else None,
            "anomalies": [a.to_dict() for a in anomalies],
            "security": [r.to_dict() for r in results],
            "summary": {
                "average_score": round(sum(r.score for r in results) / len(results), 1) if results else None,
                "risk_levels": {level.value: risk.get(level.value, 0) for level in RiskLevel},
            },
        }

    def optimize_system(self) -> dict:
        """Advisory pass over gateways and devices. Nothing is changed."""
        try:
            optimizations = self._gateway_advice() + self._device_advice()
        except Exception as e:
            logger.error(f"Optimization pass failed: {e}")
            return {"status": "failed", "error": str(e)}

        return {"status": "completed", "optimizations": optimizations}

    def _gateway_advice(self) -> list[str]:
        advice = []
        threshold = self.config.gateway_device_threshold
        for gateway in self.store.list_gateways():
            known = [d for d in gateway.connected_devices if self.store.get_device(d)]
            unknown = len(gateway.connected_devices) - len(known)

            if len(known) > threshold:
                advice.append(
                    f"Gateway {gateway.name} has {len(known)} connected devices "
                    f"(more than {threshold}); add a gateway to split the load"
                )
            if unknown:
                advice.append(
                    f"Gateway {gateway.name} references {unknown} unknown devices; "
                    f"disconnect them"
                )
            for proto, listener in sorted(gateway.protocols.items()):
                if not listener.secure and listener.clients > 0:
                    advice.append(
                        f"Gateway {gateway.name} serves {listener.clients} clients over "
                        f"insecure {proto} on port {listener.port}; enable TLS"
                    )
        return advice

    def _device_advice(self) -> list[str]:
        advice = []
        devices = self.store.list_devices()
        attached = set()
        for gateway in self.store.list_gateways():
            attached |= gateway.connected_devices

        for device in devices:
            if device.properties.battery_level < 20:
                advice.append(
                    f"Replace or recharge battery on {device.name} "
                    f"({device.properties.battery_level:.0f}%)"
                )
            if device.security.score < 80:
                advice.append(
                    f"Harden security on {device.name} (score {device.security.score})"
                )

        unattached = [d for d in devices if d.id not in attached]
        if unattached:
            advice.append(f"{len(unattached)} devices are not attached to any gateway")

        offline = [d for d in devices if d.status == DeviceStatus.OFFLINE]
        if offline:
            advice.append(f"{len(offline)} devices offline; verify power and connectivity")
        return advice

    def generate_report(self) -> dict:
        """Latest analytics snapshot as a plain dict."""
        return self.analytics.generate_report().to_dict()

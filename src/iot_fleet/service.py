"""
IoT Fleet Service - API surface and periodic monitor sweep.

Wraps one FleetManager, runs a health sweep every sweep_interval_seconds
and exposes the fleet operations over an aiohttp JSON API.
"""

from __future__ import annotations

import asyncio
import logging
import signal
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from aiohttp import web

from . import __version__
from ._types import DeviceStatus, DeviceType, Protocol
from .config import FleetConfig
from .discovery import DiscoveryMethod, InventoryDiscovery
from .fleet_manager import FleetManager
from .schemas import ComponentCreate, DeviceCreate, GatewayCreate

logger = logging.getLogger(__name__)


def _error(message: str, status: int) -> web.Response:
    return web.json_response({"status": "error", "message": message}, status=status)


def _not_found(what: str) -> web.Response:
    return _error(f"{what} not found", 404)


def _parse_time(raw: Optional[str]) -> Optional[datetime]:
    if not raw:
        return None
    value = datetime.fromisoformat(raw)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


async def _json_body(request: web.Request) -> dict:
    if not request.body_exists:
        return {}
    data = await request.json()
    if not isinstance(data, dict):
        raise ValueError("Request body must be a JSON object")
    return data


@web.middleware
async def error_middleware(request: web.Request, handler) -> web.StreamResponse:
    """Map rejected input to 400 and unexpected faults to 500."""
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except ValueError as e:
        # Covers InvalidParameterError, pydantic ValidationError and bad JSON
        logger.warning(f"Rejected {request.method} {request.path}: {e}")
        return _error(str(e), 400)
    except Exception as e:
        logger.error(f"Error handling {request.method} {request.path}: {e}")
        return _error(str(e), 500)


class FleetService:
    """
    Long-running fleet service.

    Owns the FleetManager, the API server and the sweep loop.
    """

    def __init__(self, config: FleetConfig, manager: Optional[FleetManager] = None):
        """
        Initialize fleet service.

        Args:
            config: Fleet configuration
            manager: Pre-built manager (defaults to one built from config)
        """
        self.config = config
        self.manager = manager or FleetManager(config, discovery=self._discovery_method())
        self._running = False
        self._shutdown_event = asyncio.Event()

        self._api_app: Optional[web.Application] = None
        self._api_runner: Optional[web.AppRunner] = None

    def _discovery_method(self) -> Optional[DiscoveryMethod]:
        """Inventory discovery if configured, else the manager's default."""
        if self.config.inventory_path:
            logger.info(f"Inventory discovery enabled ({self.config.inventory_path})")
            return InventoryDiscovery.from_yaml(self.config.inventory_path)
        return None

    async def start(self) -> None:
        """Start the fleet service."""
        logger.info("Starting IoT Fleet Service")
        self._running = True
        self.manager.running = True

        await self._start_api_server()
        await self._main_loop()

    async def stop(self) -> None:
        """Stop the fleet service."""
        logger.info("Stopping IoT Fleet Service")
        self._running = False
        self.manager.running = False
        self._shutdown_event.set()

        if self._api_runner:
            await self._api_runner.cleanup()
            self._api_runner = None

    def create_app(self) -> web.Application:
        """Build the aiohttp application with all fleet routes."""
        app = web.Application(middlewares=[error_middleware])
        r = app.router
        r.add_get("/api/health", self._handle_health)

        r.add_get("/api/devices", self._handle_list_devices)
        r.add_post("/api/devices", self._handle_add_device)
        r.add_get("/api/devices/{device_id}", self._handle_get_device)
        r.add_patch("/api/devices/{device_id}", self._handle_update_device)
        r.add_delete("/api/devices/{device_id}", self._handle_remove_device)
        r.add_post("/api/devices/{device_id}/telemetry", self._handle_telemetry)
        r.add_get("/api/devices/{device_id}/data", self._handle_device_data)
        r.add_post("/api/devices/{device_id}/sensors", self._handle_add_sensor)
        r.add_post("/api/devices/{device_id}/actuators", self._handle_add_actuator)
        r.add_put("/api/devices/{device_id}/security", self._handle_update_security)

        r.add_get("/api/gateways", self._handle_list_gateways)
        r.add_post("/api/gateways", self._handle_add_gateway)
        r.add_get("/api/gateways/{gateway_id}", self._handle_get_gateway)
        r.add_delete("/api/gateways/{gateway_id}", self._handle_remove_gateway)
        r.add_put("/api/gateways/{gateway_id}/devices/{device_id}", self._handle_connect)
        r.add_delete("/api/gateways/{gateway_id}/devices/{device_id}", self._handle_disconnect)
        r.add_post("/api/gateways/{gateway_id}/ingest", self._handle_ingest)

        r.add_post("/api/discover", self._handle_discover)
        r.add_post("/api/deploy", self._handle_deploy)
        r.add_post("/api/monitor", self._handle_monitor)
        r.add_post("/api/analyze", self._handle_analyze)
        r.add_get("/api/optimize", self._handle_optimize)
        r.add_get("/api/report", self._handle_report)
        r.add_get("/api/statistics", self._handle_statistics)
        return app

    async def _start_api_server(self) -> None:
        self._api_app = self.create_app()
        self._api_runner = web.AppRunner(self._api_app)
        await self._api_runner.setup()
        site = web.TCPSite(self._api_runner, self.config.api_host, self.config.api_port)
        await site.start()
        logger.info(f"API server started on {self.config.api_host}:{self.config.api_port}")

    async def run_sweep(self) -> dict:
        """Mark stale devices offline, then run one monitor sweep."""
        await self.manager.mark_stale_devices()
        return await self.manager.monitor_devices(stop=self._shutdown_event)

    async def _main_loop(self) -> None:
        """Main service loop - runs a monitor sweep every interval."""
        logger.info("Fleet sweep loop started")

        while self._running:
            try:
                await self.run_sweep()
            except Exception as e:
                logger.error(f"Error in sweep loop: {e}")

            try:
                await asyncio.wait_for(
                    self._shutdown_event.wait(),
                    timeout=self.config.sweep_interval_seconds,
                )
                # Shutdown requested
                break
            except asyncio.TimeoutError:
                pass

        logger.info("Fleet sweep loop stopped")

    # -------------------------------------------------------------------------
    # API Handlers - devices
    # -------------------------------------------------------------------------

    async def _handle_health(self, request: web.Request) -> web.Response:
        """Handle GET /api/health."""
        return web.json_response({
            "status": "ok",
            "service": "iot-fleet",
            "version": __version__,
            **self.manager.status(),
        })

    async def _handle_list_devices(self, request: web.Request) -> web.Response:
        """Handle GET /api/devices."""
        device_type = request.query.get("type")
        status = request.query.get("status")

        devices = self.manager.list_devices(
            device_type=DeviceType(device_type) if device_type else None,
            status=DeviceStatus(status) if status else None,
        )
        return web.json_response({
            "devices": [d.to_dict() for d in devices],
            "total": len(devices),
        })

    async def _handle_add_device(self, request: web.Request) -> web.Response:
        """Handle POST /api/devices."""
        body = DeviceCreate.model_validate(await _json_body(request))
        device = await self.manager.add_device(
            name=body.name,
            device_type=body.device_type,
            protocol=body.protocol,
            location=body.location,
        )
        return web.json_response({"device": device.to_dict()}, status=201)

    async def _handle_get_device(self, request: web.Request) -> web.Response:
        """Handle GET /api/devices/{device_id}."""
        device = self.manager.get_device(request.match_info["device_id"])
        if device is None:
            return _not_found("Device")
        return web.json_response({"device": device.to_dict()})

    async def _handle_update_device(self, request: web.Request) -> web.Response:
        """Handle PATCH /api/devices/{device_id}."""
        device = await self.manager.update_device(
            request.match_info["device_id"],
            await _json_body(request),
        )
        if device is None:
            return _not_found("Device")
        return web.json_response({"status": "ok", "device": device.to_dict()})

    async def _handle_remove_device(self, request: web.Request) -> web.Response:
        """Handle DELETE /api/devices/{device_id}."""
        if not await self.manager.remove_device(request.match_info["device_id"]):
            return _not_found("Device")
        return web.json_response({"status": "ok"})

    async def _handle_telemetry(self, request: web.Request) -> web.Response:
        """Handle POST /api/devices/{device_id}/telemetry."""
        device = await self.manager.update_data(
            request.match_info["device_id"],
            await _json_body(request),
        )
        if device is None:
            return _not_found("Device")
        return web.json_response({"status": "ok", "device": device.to_dict()})

    async def _handle_device_data(self, request: web.Request) -> web.Response:
        """Handle GET /api/devices/{device_id}/data."""
        device_id = request.match_info["device_id"]
        records = self.manager.get_device_data(
            device_id,
            limit=int(request.query.get("limit", "100")),
            offset=int(request.query.get("offset", "0")),
            start=_parse_time(request.query.get("start")),
            end=_parse_time(request.query.get("end")),
        )
        if records is None:
            return _not_found("Device")
        return web.json_response({"device_id": device_id, "data": records, "count": len(records)})

    async def _handle_add_sensor(self, request: web.Request) -> web.Response:
        """Handle POST /api/devices/{device_id}/sensors."""
        body = ComponentCreate.model_validate(await _json_body(request))
        sensor = await self.manager.add_sensor(request.match_info["device_id"], body.name, body.subtype)
        if sensor is None:
            return _not_found("Device")
        return web.json_response({"status": "ok", "sensor": body.model_dump()}, status=201)

    async def _handle_add_actuator(self, request: web.Request) -> web.Response:
        """Handle POST /api/devices/{device_id}/actuators."""
        body = ComponentCreate.model_validate(await _json_body(request))
        actuator = await self.manager.add_actuator(request.match_info["device_id"], body.name, body.subtype)
        if actuator is None:
            return _not_found("Device")
        return web.json_response({"status": "ok", "actuator": body.model_dump()}, status=201)

    async def _handle_update_security(self, request: web.Request) -> web.Response:
        """Handle PUT /api/devices/{device_id}/security."""
        device = await self.manager.update_security(
            request.match_info["device_id"],
            await _json_body(request),
        )
        if device is None:
            return _not_found("Device")
        return web.json_response({"status": "ok", "device": device.to_dict()})

    # -------------------------------------------------------------------------
    # API Handlers - gateways
    # -------------------------------------------------------------------------

    async def _handle_list_gateways(self, request: web.Request) -> web.Response:
        """Handle GET /api/gateways."""
        gateways = self.manager.list_gateways()
        return web.json_response({
            "gateways": [g.to_dict() for g in gateways],
            "total": len(gateways),
        })

    async def _handle_add_gateway(self, request: web.Request) -> web.Response:
        """Handle POST /api/gateways."""
        body = GatewayCreate.model_validate(await _json_body(request))
        gateway = await self.manager.add_gateway(body.name, body.location)
        return web.json_response({"gateway": gateway.to_dict()}, status=201)

    async def _handle_get_gateway(self, request: web.Request) -> web.Response:
        """Handle GET /api/gateways/{gateway_id}."""
        gateway = self.manager.describe_gateway(request.match_info["gateway_id"])
        if gateway is None:
            return _not_found("Gateway")
        return web.json_response({"gateway": gateway})

    async def _handle_remove_gateway(self, request: web.Request) -> web.Response:
        """Handle DELETE /api/gateways/{gateway_id}."""
        if not await self.manager.remove_gateway(request.match_info["gateway_id"]):
            return _not_found("Gateway")
        return web.json_response({"status": "ok"})

    async def _handle_connect(self, request: web.Request) -> web.Response:
        """Handle PUT /api/gateways/{gateway_id}/devices/{device_id}."""
        result = await self.manager.connect_device(
            request.match_info["gateway_id"],
            request.match_info["device_id"],
        )
        return web.json_response(result, status=404 if result["status"] == "not_found" else 200)

    async def _handle_disconnect(self, request: web.Request) -> web.Response:
        """Handle DELETE /api/gateways/{gateway_id}/devices/{device_id}."""
        result = await self.manager.disconnect_device(
            request.match_info["gateway_id"],
            request.match_info["device_id"],
        )
        return web.json_response(result, status=404 if result["status"] == "not_found" else 200)

    async def _handle_ingest(self, request: web.Request) -> web.Response:
        """Handle POST /api/gateways/{gateway_id}/ingest."""
        data = await _json_body(request)
        topic = data.get("topic")
        payload = data.get("payload")
        if not isinstance(topic, str) or not isinstance(payload, dict):
            raise ValueError("Body needs a 'topic' string and a 'payload' object")

        result = await self.manager.ingest(request.match_info["gateway_id"], topic, payload)
        status = {"accepted": 200, "not_found": 404}.get(result["status"], 400)
        return web.json_response(result, status=status)

    # -------------------------------------------------------------------------
    # API Handlers - bulk operations
    # -------------------------------------------------------------------------

    def _bulk_response(self, result: dict) -> web.Response:
        return web.json_response(result, status=500 if result["status"] == "failed" else 200)

    async def _handle_discover(self, request: web.Request) -> web.Response:
        """Handle POST /api/discover."""
        data = await _json_body(request)
        limit = int(data.get("limit", self.config.discovery_max_devices))
        return self._bulk_response(await self.manager.discover_devices(limit))

    async def _handle_deploy(self, request: web.Request) -> web.Response:
        """Handle POST /api/deploy."""
        data = await _json_body(request)
        result = await self.manager.deploy_devices(
            count=int(data.get("count", 1)),
            name_prefix=data.get("name_prefix", "device"),
            device_type=DeviceType(data.get("device_type", DeviceType.SENSOR.value)),
            protocol=Protocol(data.get("protocol", Protocol.MQTT.value)),
            location=data.get("location", "unknown"),
        )
        return self._bulk_response(result)

    async def _handle_monitor(self, request: web.Request) -> web.Response:
        """Handle POST /api/monitor."""
        return self._bulk_response(await self.manager.monitor_devices())

    async def _handle_analyze(self, request: web.Request) -> web.Response:
        """Handle POST /api/analyze."""
        return self._bulk_response(await self.manager.analyze_data())

    async def _handle_optimize(self, request: web.Request) -> web.Response:
        """Handle GET /api/optimize."""
        return self._bulk_response(self.manager.optimize_system())

    async def _handle_report(self, request: web.Request) -> web.Response:
        """Handle GET /api/report."""
        return web.json_response(self.manager.generate_report())

    async def _handle_statistics(self, request: web.Request) -> web.Response:
        """Handle GET /api/statistics."""
        return web.json_response(self.manager.device_statistics())


def main():
    """Entry point for the iot-fleet service."""
    import argparse

    parser = argparse.ArgumentParser(description="IoT Fleet Service")
    parser.add_argument("--config", type=str, help="Path to config file")
    parser.add_argument("--host", type=str, help="API host")
    parser.add_argument("--port", type=int, help="API port")
    parser.add_argument("--log-level", type=str, help="Log level")
    args = parser.parse_args()

    # Load configuration
    if args.config:
        config = FleetConfig.from_yaml(Path(args.config))
    else:
        config = FleetConfig.from_env()

    # Override with CLI args
    overrides = {}
    if args.host:
        overrides["api_host"] = args.host
    if args.port:
        overrides["api_port"] = args.port
    if args.log_level:
        overrides["log_level"] = args.log_level
    if overrides:
        config = FleetConfig.model_validate({**config.model_dump(), **overrides})

    logging.basicConfig(
        level=getattr(logging, config.log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    # Handle signals
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    service = FleetService(config)

    def signal_handler():
        logger.info("Received shutdown signal")
        asyncio.create_task(service.stop())

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, signal_handler)

    try:
        loop.run_until_complete(service.start())
    except KeyboardInterrupt:
        logger.info("Interrupted")
    finally:
        loop.run_until_complete(service.stop())
        loop.close()


if __name__ == "__main__":
    main()

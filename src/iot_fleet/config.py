"""
Fleet core configuration.

Settings can come from environment variables (FLEET_*) or a YAML file.
All values are validated by pydantic; unknown YAML keys are ignored.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)


class FleetConfig(BaseModel):
    """Fleet manager configuration."""

    # ========================================================================
    # Capacity
    # ========================================================================

    device_limit: int = Field(
        default=10000,
        ge=1,
        description="Maximum number of devices managed by one fleet"
    )
    history_limit: int = Field(
        default=1000,
        ge=1,
        description="Telemetry points kept per device"
    )
    metrics_history_limit: int = Field(
        default=168,
        ge=1,
        description="Monitor sweep samples kept for forecasting, one per sweep interval"
    )

    # ========================================================================
    # Discovery
    # ========================================================================

    discovery_max_devices: int = Field(
        default=10,
        ge=0,
        description="Upper bound of devices a simulated discovery may find"
    )
    discovery_seed: Optional[int] = Field(
        default=None,
        description="Seed for simulated discovery and telemetry"
    )
    inventory_path: Optional[Path] = Field(
        default=None,
        description="YAML device inventory; replaces simulated discovery when set"
    )

    # ========================================================================
    # Sweeps
    # ========================================================================

    max_concurrent_scans: int = Field(
        default=10,
        ge=1,
        description="Devices scored in parallel during a sweep"
    )
    sweep_interval_seconds: int = Field(
        default=60,
        ge=5,
        description="Seconds between scheduled monitor sweeps"
    )
    stale_timeout_seconds: int = Field(
        default=300,
        ge=1,
        description="Seconds without telemetry before a device is marked offline"
    )

    # ========================================================================
    # Advisory thresholds
    # ========================================================================

    gateway_device_threshold: int = Field(
        default=50,
        ge=1,
        description="Connected devices above which a gateway is flagged"
    )

    # ========================================================================
    # Analytics
    # ========================================================================

    forecaster: str = Field(
        default="linear_trend",
        description="Registered forecaster name"
    )

    # ========================================================================
    # API / logging
    # ========================================================================

    api_host: str = Field(default="127.0.0.1")
    api_port: int = Field(default=8090, ge=1, le=65535)
    log_level: str = Field(default="INFO")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {v}")
        return level

    @classmethod
    def from_env(cls) -> "FleetConfig":
        """Load configuration from environment variables."""
        values = {}
        for name in cls.model_fields:
            raw = os.getenv(f"FLEET_{name.upper()}")
            if raw is not None and raw != "":
                values[name] = raw
        return cls(**values)

    @classmethod
    def from_yaml(cls, path: Path) -> "FleetConfig":
        """Load configuration from YAML file."""
        if not path.exists():
            logger.warning(f"Config file not found: {path}, using defaults")
            return cls()

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        values = {}

        # Flat keys
        for name in cls.model_fields:
            if name in data:
                values[name] = data[name]

        # Grouped sections, same layout as the example below
        if "discovery" in data:
            d = data["discovery"]
            if "max_devices" in d:
                values["discovery_max_devices"] = d["max_devices"]
            if "seed" in d:
                values["discovery_seed"] = d["seed"]
            if "inventory" in d:
                values["inventory_path"] = d["inventory"]

        if "api" in data:
            a = data["api"]
            if "host" in a:
                values["api_host"] = a["host"]
            if "port" in a:
                values["api_port"] = a["port"]

        return cls(**values)


# Example fleet.yaml:
"""
device_limit: 10000
history_limit: 1000
max_concurrent_scans: 10
gateway_device_threshold: 50
forecaster: linear_trend

discovery:
  max_devices: 10
  seed: 42
  # inventory: /etc/iot-fleet/inventory.yaml

api:
  host: "127.0.0.1"
  port: 8090

log_level: "INFO"
"""

"""Tests for fleet type definitions."""

import json
from datetime import timedelta

import pytest

from iot_fleet._types import (
    AuthScheme,
    Device,
    DeviceProperties,
    DeviceStatus,
    DeviceType,
    EncryptionScheme,
    Gateway,
    PowerSource,
    Protocol,
    SecurityPosture,
    default_listeners,
    now_utc,
)


class TestDeviceProperties:
    """Tests for DeviceProperties clamping."""

    def test_defaults_are_healthy(self):
        """Fresh properties should not trigger any health deduction."""
        props = DeviceProperties()

        assert props.battery_level == 100.0
        assert props.signal_strength == 100.0
        assert props.memory_usage == 0.0
        assert props.power_source == PowerSource.MAINS

    def test_constructor_clamps_out_of_range(self):
        """Out-of-range values should be clamped at construction."""
        props = DeviceProperties(battery_level=150, cpu_usage=-5, temperature=500)

        assert props.battery_level == 100.0
        assert props.cpu_usage == 0.0
        assert props.temperature == 125.0

    def test_apply_clamps_and_reports_fields(self):
        """apply() should clamp values and list what it wrote."""
        props = DeviceProperties()

        applied = props.apply({"battery_level": 120, "humidity": -3, "firmware": "2.1.0"})

        assert props.battery_level == 100.0
        assert props.humidity == 0.0
        assert props.firmware == "2.1.0"
        assert sorted(applied) == ["battery_level", "firmware", "humidity"]

    def test_apply_ignores_unknown_and_none(self):
        """Unknown keys and None values should be skipped."""
        props = DeviceProperties()

        applied = props.apply({"colour": "red", "battery_level": None})

        assert applied == []
        assert props.battery_level == 100.0

    def test_power_source_from_string(self):
        """String power sources should become enum members."""
        props = DeviceProperties(power_source="battery")
        assert props.power_source == PowerSource.BATTERY


class TestDevice:
    """Tests for Device dataclass."""

    def test_device_defaults(self):
        """Device should start offline with the strongest security posture."""
        device = Device(name="probe")

        assert device.status == DeviceStatus.OFFLINE
        assert device.device_type == DeviceType.SENSOR
        assert device.protocol == Protocol.MQTT
        assert device.security.encryption == EncryptionScheme.AES256
        assert device.security.authentication == AuthScheme.OAUTH2
        assert device.message_count == 0

    def test_ids_are_unique(self):
        """Every device should get its own id."""
        ids = {Device(name=f"d{i}").id for i in range(50)}
        assert len(ids) == 50

    def test_enum_fields_accept_strings(self):
        """Enum fields loaded from text should be coerced."""
        device = Device(name="valve", device_type="actuator", protocol="coap", status="online")

        assert device.device_type == DeviceType.ACTUATOR
        assert device.protocol == Protocol.COAP
        assert device.status == DeviceStatus.ONLINE

    def test_invalid_enum_rejected(self):
        """Unknown enum values should raise ValueError."""
        with pytest.raises(ValueError):
            Device(name="x", protocol="carrier-pigeon")

    def test_touch_never_rewinds(self):
        """An older timestamp should not move last_seen backwards."""
        device = Device(name="probe")
        before = device.last_seen

        device.touch(before - timedelta(hours=1), seen=True)

        assert device.last_seen == before

    def test_touch_advances(self):
        """A newer timestamp should advance both timestamps."""
        device = Device(name="probe")
        later = now_utc() + timedelta(minutes=5)

        device.touch(later, seen=True)

        assert device.last_seen == later
        assert device.last_modified == later

    def test_update_data_marks_online(self):
        """Receiving data should mark the device online and count the message."""
        device = Device(name="probe")

        device.update_data(properties={"battery_level": 42})

        assert device.status == DeviceStatus.ONLINE
        assert device.properties.battery_level == 42
        assert device.message_count == 1

    def test_update_data_ignores_unknown_components(self):
        """Readings for sensors the device does not have should be dropped."""
        device = Device(name="probe")
        device.add_sensor("temp-0", "temperature")

        device.update_data(sensors={"temp-0": 21.5, "ghost": 1})

        assert device.sensors["temp-0"].value == 21.5
        assert "ghost" not in device.sensors

    def test_add_sensor_replaces_same_name(self):
        """Adding a sensor twice under one name should keep one entry."""
        device = Device(name="probe")
        device.add_sensor("s", "temperature")
        device.add_sensor("s", "humidity")

        assert len(device.sensors) == 1
        assert device.sensors["s"].subtype == "humidity"

    def test_to_dict_is_json_serializable(self):
        """to_dict() output should survive json.dumps."""
        device = Device(name="probe", device_type=DeviceType.WEARABLE)
        device.add_actuator("relay", "switch")

        data = device.to_dict()
        json.dumps(data)

        assert data["device_type"] == "wearable"
        assert data["actuators"]["relay"]["subtype"] == "switch"
        assert isinstance(data["created_at"], str)


class TestSecurityPosture:
    """Tests for SecurityPosture."""

    def test_strings_coerced(self):
        posture = SecurityPosture(encryption="aes128", authentication="basic")

        assert posture.encryption == EncryptionScheme.AES128
        assert posture.authentication == AuthScheme.BASIC

    @pytest.mark.parametrize("flag,value", [
        ("certificate_valid", "no"),
        ("firewall_enabled", 0),
        ("intrusion_detection", None),
    ])
    def test_flags_must_be_bool(self, flag, value):
        with pytest.raises(ValueError):
            SecurityPosture(**{flag: value})


class TestGateway:
    """Tests for Gateway dataclass."""

    def test_default_listeners(self):
        """Gateways should start with the standard listener inventory."""
        listeners = default_listeners()

        assert listeners["mqtt"].port == 8883
        assert listeners["mqtt"].secure is True
        assert listeners["coap"].secure is False
        assert all(listener.clients == 0 for listener in listeners.values())

    def test_connect_is_idempotent(self):
        """Connecting the same device twice should keep one entry."""
        gateway = Gateway(name="gw")

        assert gateway.connect("dev-1") is True
        assert gateway.connect("dev-1") is False
        assert gateway.connected_devices == {"dev-1"}

    def test_disconnect_drops_buffer(self):
        """Disconnecting should drop the device's buffered message."""
        gateway = Gateway(name="gw")
        gateway.connect("dev-1")
        gateway.buffer("dev-1", {"battery_level": 50}, 20)

        assert gateway.disconnect("dev-1") is True
        assert "dev-1" not in gateway.data_buffer
        assert gateway.disconnect("dev-1") is False

    def test_buffer_counts_traffic(self):
        """Buffered messages should be counted and start unprocessed."""
        gateway = Gateway(name="gw")
        gateway.buffer("dev-1", {"a": 1}, 10)
        gateway.buffer("dev-1", {"a": 2}, 12)

        assert gateway.traffic["dev-1"].messages == 2
        assert gateway.traffic["dev-1"].bytes == 22
        assert gateway.pending_messages == 1

        gateway.mark_processed("dev-1")
        assert gateway.pending_messages == 0

    def test_to_dict_sorts_connected(self):
        """connected_devices should serialize as a sorted list."""
        gateway = Gateway(name="gw")
        gateway.connect("b")
        gateway.connect("a")

        data = gateway.to_dict()
        json.dumps(data)

        assert data["connected_devices"] == ["a", "b"]
        assert data["protocols"]["http"]["port"] == 8443

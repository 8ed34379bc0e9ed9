"""
Tests for process settings.
"""

import json

import pytest

from raptor.config.settings import Settings, parse_host_port
from raptor.core.control_state import ControlState
from raptor.drivers.modbus_driver import DriveRole


class TestSettingsFromEnv:

    def test_defaults_with_empty_env(self):
        s = Settings.from_env({})
        assert s.site == "shop"
        assert s.device == "revpi-135593"
        assert s.main_addr == "192.168.1.152:502"
        assert s.direction_control is False
        assert s.poll_interval_sec == 2.0

    def test_env_overrides(self):
        s = Settings.from_env({
            "RAPTOR_SITE": "yard",
            "RAPTOR_DEVICE": "revpi-1",
            "MODBUS_ADDR": "10.0.0.2:5020",
            "MODBUS_ADDR_CHILD1": "10.0.0.3",
            "MODBUS_ADDR_CHILD2": "10.0.0.4:502",
            "MQTT_URL": "tcp://broker:1884",
            "MQTT_USER": "raptor",
            "MQTT_PASS": "secret",
            "RAPTOR_POLL_INTERVAL": "0.5",
        })
        assert s.site == "yard"
        assert s.mqtt_user == "raptor"
        assert s.poll_interval_sec == 0.5
        assert s.mqtt_host_port == ("broker", 1884)

    def test_empty_values_fall_back(self):
        s = Settings.from_env({"RAPTOR_SITE": ""})
        assert s.site == "shop"

    @pytest.mark.parametrize("raw,expected", [
        ("1", True), ("true", True), ("YES", True), ("on", True),
        ("0", False), ("false", False), ("", False),
    ])
    def test_direction_control_flag(self, raw, expected):
        s = Settings.from_env({"RAPTOR_DIRECTION_CONTROL": raw})
        assert s.direction_control is expected


class TestDerived:

    def test_topics(self):
        s = Settings(site="shop", device="revpi-135593")
        assert s.state_topic == "raptor/shop/revpi-135593/state"
        assert s.cmd_topic == "raptor/shop/revpi-135593/cmd"
        assert s.client_id == "raptor-core-revpi-135593"

    def test_endpoints(self):
        s = Settings(inner_addr="10.1.1.3", outer_addr="10.1.1.4:1502", unit_id=2)
        inner = s.endpoint(DriveRole.CHILD_INNER)
        outer = s.endpoint(DriveRole.CHILD_OUTER)
        assert (inner.host, inner.port, inner.unit_id) == ("10.1.1.3", 502, 2)
        assert (outer.host, outer.port) == ("10.1.1.4", 1502)
        assert outer.role is DriveRole.CHILD_OUTER

    def test_parse_host_port(self):
        assert parse_host_port("h:1") == ("h", 1)
        assert parse_host_port("h") == ("h", 502)

    def test_as_dict_masks_password(self):
        s = Settings(mqtt_pass="secret")
        assert s.as_dict()["mqtt_pass"] == "****"
        assert Settings().as_dict()["mqtt_pass"] == ""


class TestOverrides:

    def test_apply_overrides(self, tmp_path):
        path = tmp_path / "tune.json"
        path.write_text(json.dumps({
            "wheel_speed_max": "1400",
            "outer_wheel_ratio": 0.9,
            "direction_control": "true",
            "mqtt_pass": "ignored",
        }))
        s = Settings().apply_overrides(str(path))
        assert s.wheel_speed_max == 1400
        assert s.outer_wheel_ratio == 0.9
        assert s.direction_control is True
        assert s.mqtt_pass == ""

    def test_missing_override_file(self, tmp_path):
        s = Settings().apply_overrides(str(tmp_path / "nope.json"))
        assert s.wheel_speed_max == 1500

    def test_null_override_ignored(self, tmp_path):
        path = tmp_path / "tune.json"
        path.write_text(json.dumps({"wheel_speed_max": None, "chain_speed_max": 1100}))
        s = Settings().apply_overrides(str(path))
        assert s.wheel_speed_max == 1500
        assert s.chain_speed_max == 1100

    def test_submit_timeout_tunable(self, tmp_path):
        path = tmp_path / "tune.json"
        path.write_text(json.dumps({"command_submit_timeout_sec": 12}))
        assert Settings().apply_overrides(str(path)).command_submit_timeout_sec == 12.0


class TestDefaults:

    def test_speed_defaults_match_control_state(self):
        s = Settings()
        state = ControlState()
        assert s.wheel_speed_default == state.wheel_speed == 600
        assert s.chain_speed_default == state.chain_speed == 420

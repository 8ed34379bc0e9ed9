"""
Process Settings for the Raptor Bridge
=======================================
Site identity, drive endpoints, MQTT credentials and tunable drive
limits. Identity and endpoints come from the environment (the
container sets them); tunables may be overridden from a JSON file.

Drive set:
  - Main VFD    (.152) chain/paddle motor + SoftPLC, 1200 RPM
  - Child1 VFD  (.153) inner wheel, 1500 RPM
  - Child2 VFD  (.151) outer wheel, 1800 RPM
"""

import json
import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Mapping, Optional
from urllib.parse import urlsplit

from raptor.core.control_state import DEFAULT_CHAIN_SPEED, DEFAULT_WHEEL_SPEED
from raptor.drivers.modbus_driver import DriveEndpoint, DriveRole

logger = logging.getLogger(__name__)

_TRUE_VALUES = {"1", "true", "yes", "on"}

# Tunables that a JSON override file may change
_TUNABLES = (
    "wheel_speed_min", "wheel_speed_max", "wheel_speed_default",
    "outer_wheel_ratio",
    "chain_speed_min", "chain_speed_max", "chain_speed_default",
    "poll_interval_sec", "write_timeout_sec", "telemetry_timeout_sec",
    "unit_id", "command_queue_size", "command_submit_timeout_sec",
    "direction_control",
)


def _env_bool(value: Optional[str], default: bool = False) -> bool:
    if value is None or value == "":
        return default
    return value.strip().lower() in _TRUE_VALUES


def parse_host_port(addr: str, default_port: int = 502) -> tuple[str, int]:
    """Split 'host:port' into its parts, port defaulting to 502."""
    host, sep, port = addr.strip().rpartition(":")
    if not sep:
        return addr.strip(), default_port
    return host, int(port)


@dataclass
class Settings:
    """Resolved configuration for one Raptor bridge process."""

    # ── Identity ─────────────────────────────────────────────
    site: str = "shop"
    device: str = "revpi-135593"

    # ── Drive Endpoints (host:port) ──────────────────────────
    main_addr: str = "192.168.1.152:502"      # Chain drive, 1200 RPM
    inner_addr: str = "192.168.1.153:502"     # Inner wheel, 1500 RPM
    outer_addr: str = "192.168.1.151:502"     # Outer wheel, 1800 RPM
    unit_id: int = 1

    # ── MQTT ─────────────────────────────────────────────────
    mqtt_url: str = "tcp://192.168.1.154:1883"
    mqtt_user: str = ""
    mqtt_pass: str = ""

    # ── Wheel Speed (P0122 on both child drives) ─────────────
    wheel_speed_min: int = 100
    wheel_speed_max: int = 1500
    wheel_speed_default: int = DEFAULT_WHEEL_SPEED
    outer_wheel_ratio: float = 0.9167   # 550/600, outer wheel runs slower

    # ── Chain Speed (P0122 on main drive) ────────────────────
    chain_speed_min: int = 100
    chain_speed_max: int = 1200
    chain_speed_default: int = DEFAULT_CHAIN_SPEED

    # ── Timing ───────────────────────────────────────────────
    poll_interval_sec: float = 2.0
    write_timeout_sec: float = 5.0
    telemetry_timeout_sec: float = 3.0
    command_queue_size: int = 16
    command_submit_timeout_sec: float = 30.0

    # ── Safety ───────────────────────────────────────────────
    direction_control: bool = False

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from environment variables, falling back to defaults."""
        env = os.environ if environ is None else environ
        s = cls()

        def get(key: str, default: str) -> str:
            value = env.get(key, "")
            return value if value else default

        s.site = get("RAPTOR_SITE", s.site)
        s.device = get("RAPTOR_DEVICE", s.device)
        s.main_addr = get("MODBUS_ADDR", s.main_addr)
        s.inner_addr = get("MODBUS_ADDR_CHILD1", s.inner_addr)
        s.outer_addr = get("MODBUS_ADDR_CHILD2", s.outer_addr)
        s.mqtt_url = get("MQTT_URL", s.mqtt_url)
        s.mqtt_user = env.get("MQTT_USER", "")
        s.mqtt_pass = env.get("MQTT_PASS", "")
        s.direction_control = _env_bool(
            env.get("RAPTOR_DIRECTION_CONTROL"), s.direction_control,
        )
        s.poll_interval_sec = float(
            get("RAPTOR_POLL_INTERVAL", str(s.poll_interval_sec))
        )
        return s

    def apply_overrides(self, path: str) -> "Settings":
        """Overlay tunables from a JSON file; unknown keys are ignored."""
        filepath = Path(path)
        if not filepath.exists():
            logger.warning("Settings override file not found: %s", path)
            return self
        data = json.loads(filepath.read_text())
        for key, value in data.items():
            if key not in _TUNABLES:
                logger.warning("Ignoring unknown setting: %s", key)
                continue
            if value is None:
                logger.warning("Ignoring null value for setting: %s", key)
                continue
            expected_type = type(getattr(self, key))
            if expected_type is bool and isinstance(value, str):
                value = _env_bool(value)
            setattr(self, key, expected_type(value))
        return self

    # ── Derived Values ───────────────────────────────────────

    @property
    def state_topic(self) -> str:
        return f"raptor/{self.site}/{self.device}/state"

    @property
    def cmd_topic(self) -> str:
        return f"raptor/{self.site}/{self.device}/cmd"

    @property
    def client_id(self) -> str:
        return f"raptor-core-{self.device}"

    @property
    def mqtt_host_port(self) -> tuple[str, int]:
        parts = urlsplit(self.mqtt_url)
        return parts.hostname or "localhost", parts.port or 1883

    def endpoint(self, role: DriveRole) -> DriveEndpoint:
        addr = {
            DriveRole.MAIN: self.main_addr,
            DriveRole.CHILD_INNER: self.inner_addr,
            DriveRole.CHILD_OUTER: self.outer_addr,
        }[role]
        host, port = parse_host_port(addr)
        return DriveEndpoint(role=role, host=host, port=port, unit_id=self.unit_id)

    def as_dict(self) -> dict:
        """Return all settings as a flat dictionary, password masked."""
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        if data["mqtt_pass"]:
            data["mqtt_pass"] = "****"
        return data

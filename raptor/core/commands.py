"""
Operator Commands
==================
Inbound command messages from the cmd topic. Every field is
optional; a missing or null field means "leave it alone" and never
causes a write.

    { "wheels_running": bool, "chain_running": bool,
      "wheel_direction": "fwd"|"rev",
      "wheel_speed": uint16, "chain_speed": uint16 }

A payload that is not a JSON object, or carries a field of the
wrong type, is rejected as a whole.
"""

import json
from dataclasses import dataclass
from typing import Optional


class CommandRejected(ValueError):
    """Inbound payload could not be decoded into a Command."""


@dataclass(frozen=True)
class Command:
    wheels_running: Optional[bool] = None
    chain_running: Optional[bool] = None
    wheel_direction: Optional[str] = None
    wheel_speed: Optional[int] = None
    chain_speed: Optional[int] = None

    @property
    def is_empty(self) -> bool:
        return all(
            v is None for v in (
                self.wheels_running, self.chain_running, self.wheel_direction,
                self.wheel_speed, self.chain_speed,
            )
        )

    @property
    def carries_run_command(self) -> bool:
        """True when the command starts or stops a motor."""
        return self.wheels_running is not None or self.chain_running is not None


def _bool_field(data: dict, key: str) -> Optional[bool]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, bool):
        raise CommandRejected(f"{key} must be a boolean, got {value!r}")
    return value


def _uint16_field(data: dict, key: str) -> Optional[int]:
    value = data.get(key)
    if value is None:
        return None
    # bool is an int subclass; JSON true is not a speed
    if isinstance(value, bool) or not isinstance(value, int):
        raise CommandRejected(f"{key} must be an integer, got {value!r}")
    if not 0 <= value <= 0xFFFF:
        raise CommandRejected(f"{key} out of uint16 range: {value}")
    return value


def _str_field(data: dict, key: str) -> Optional[str]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise CommandRejected(f"{key} must be a string, got {value!r}")
    return value


def parse_command(payload) -> Command:
    """Decode a raw cmd-topic payload (bytes or str) into a Command."""
    try:
        data = json.loads(payload)
    except (TypeError, ValueError, UnicodeDecodeError) as exc:
        raise CommandRejected(f"bad json: {exc}") from exc
    if not isinstance(data, dict):
        raise CommandRejected(f"expected a JSON object, got {type(data).__name__}")

    return Command(
        wheels_running=_bool_field(data, "wheels_running"),
        chain_running=_bool_field(data, "chain_running"),
        wheel_direction=_str_field(data, "wheel_direction"),
        wheel_speed=_uint16_field(data, "wheel_speed"),
        chain_speed=_uint16_field(data, "chain_speed"),
    )

"""
Register / Coil Map for the Raptor Drive Set
=============================================
Vendor parameter numbers (P0xxx) are 1-based as printed in the
drive manual. Subtract 1 for the 0-based Modbus wire address.

Write safety classes (empirically derived on site, subject to
revision):

  SAFE_SETPOINT     Pure value update. Proven safe for repeated
                    writes, no effect on the command source.
  HAZARDOUS_SOURCE  Writing it alone may silently move the drive's
                    run/stop command source away from the physical
                    switches. Only written when explicitly enabled.
  FORBIDDEN         Command-source / configuration block. Writing
                    these without their dependent parameters forces
                    the drive into CONFIG state, which survives a
                    power cycle. Never written.

Registers missing from the table are treated as FORBIDDEN.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from raptor.core.errors import RegisterForbidden

logger = logging.getLogger(__name__)


class WriteClass(Enum):
    SAFE_SETPOINT = "safe-setpoint"
    HAZARDOUS_SOURCE = "hazardous-source"
    FORBIDDEN = "forbidden"


@dataclass(frozen=True)
class RegisterSpec:
    """Single holding register definition."""
    number: int          # Vendor parameter number, 1-based
    name: str
    write_class: WriteClass
    description: str = ""

    @property
    def address(self) -> int:
        """0-based wire address."""
        return self.number - 1

    @property
    def label(self) -> str:
        return f"P{self.number:04d}"


@dataclass(frozen=True)
class WritePolicy:
    """
    Write capabilities granted to the coordinators at construction.

    Direction control defaults to off: on these drives a P0227 write
    can trigger an auto-switch of the command source to serial.
    """
    direction_control: bool = False


# ── Holding Registers ────────────────────────────────────────

SPEED_REFERENCE = RegisterSpec(
    number=122,
    name="SPEED_REFERENCE",
    write_class=WriteClass.SAFE_SETPOINT,
    description="Speed reference (RPM setpoint)",
)

DIRECTION = RegisterSpec(
    number=227,
    name="DIRECTION",
    write_class=WriteClass.HAZARDOUS_SOURCE,
    description="Rotation direction, 0=forward 1=reverse "
                "(requires panel setting R2 -> Direction -> HMI DR Key)",
)

_COMMAND_SOURCE_BLOCK = [
    RegisterSpec(
        number=n,
        name=f"CMD_SOURCE_P{n:04d}",
        write_class=WriteClass.FORBIDDEN,
        description="Local/remote command source selection",
    )
    for n in (220, 221, 222, 223, 224, 225, 226, 228)
]

REGISTER_TABLE: dict[int, RegisterSpec] = {
    spec.number: spec
    for spec in [SPEED_REFERENCE, DIRECTION, *_COMMAND_SOURCE_BLOCK]
}

# ── Telemetry Block ──────────────────────────────────────────
# P0002..P0007 read in one request:
#   P0002 target RPM, P0003 actual RPM, P0004 (unused),
#   P0005 bus voltage, P0006 current (% of rated), P0007 drive state

TELEMETRY_FIRST_REGISTER = 2
TELEMETRY_REGISTER_COUNT = 6
CURRENT_SCALE = 200.0

DIRECTION_FORWARD = 0
DIRECTION_REVERSE = 1

# ── SoftPLC Coils (main drive only) ──────────────────────────
# Command coils are written, status coils are read back. Both are
# 1-based here; status coils sit at wire addresses 16032 and 64.

WHEELS_RUN_COIL = 50066
CHAIN_RUN_COIL = 50067
WHEELS_STATUS_COIL = 16033
PADDLE_STATUS_COIL = 65


def coil_address(coil_number: int) -> int:
    """Translate a 1-based coil number to its 0-based wire address."""
    if coil_number < 1:
        raise ValueError(f"coil numbers are 1-based, got {coil_number}")
    return coil_number - 1


def lookup(number: int) -> RegisterSpec:
    """Return the table entry for a register, FORBIDDEN if unlisted."""
    spec = REGISTER_TABLE.get(number)
    if spec is None:
        return RegisterSpec(
            number=number,
            name=f"UNLISTED_P{number:04d}",
            write_class=WriteClass.FORBIDDEN,
            description="Not in the register table",
        )
    return spec


def check_write(number: int, policy: WritePolicy, value: Optional[int] = None) -> RegisterSpec:
    """
    Gate a register write before any I/O is issued.

    Returns the register spec when the write is allowed, raises
    RegisterForbidden otherwise.
    """
    spec = lookup(number)

    if spec.write_class == WriteClass.FORBIDDEN:
        logger.error(
            "Refusing write to %s (%s) value=%s: register is forbidden",
            spec.label, spec.name, value,
        )
        raise RegisterForbidden(spec.label, value, "register is forbidden")

    if spec.write_class == WriteClass.HAZARDOUS_SOURCE:
        if not policy.direction_control:
            raise RegisterForbidden(
                spec.label, value, "direction control is disabled",
            )
        logger.warning(
            "Writing command-source sensitive register %s (%s) value=%s; "
            "drive may switch away from physical-switch control",
            spec.label, spec.name, value,
        )

    return spec

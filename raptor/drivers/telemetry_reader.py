"""
Drive Telemetry Reader
=======================
Reads the P0002..P0007 holding register block from one drive over
a short-lived connection and scales it to engineering units.

Block layout (wire addresses 1..6):
  P0002  target RPM
  P0003  actual RPM
  P0004  (unused)
  P0005  bus voltage
  P0006  current, percent of rated (divide by 200)
  P0007  drive state
"""

import logging

from pymodbus.exceptions import ModbusException

from raptor.config.register_map import (
    CURRENT_SCALE, TELEMETRY_FIRST_REGISTER, TELEMETRY_REGISTER_COUNT,
)
from raptor.core.errors import TelemetryUnavailable
from raptor.core.snapshot import TelemetrySample
from raptor.drivers.modbus_driver import (
    ClientFactory, DriveEndpoint, fresh_connection, tcp_client_factory,
)

logger = logging.getLogger(__name__)


def decode_telemetry(registers: list) -> TelemetrySample:
    """Decode the raw telemetry block into a sample."""
    if len(registers) < TELEMETRY_REGISTER_COUNT:
        raise ValueError(
            f"short telemetry block: got {len(registers)} registers, "
            f"need {TELEMETRY_REGISTER_COUNT}"
        )
    target, actual, _unused, voltage, amps_raw, state = registers[:TELEMETRY_REGISTER_COUNT]
    return TelemetrySample(
        target_rpm=target & 0xFFFF,
        actual_rpm=actual & 0xFFFF,
        voltage=voltage & 0xFFFF,
        amps=(amps_raw & 0xFFFF) / CURRENT_SCALE,
        drive_state=state & 0xFFFF,
    )


def read_telemetry(
    endpoint: DriveEndpoint,
    client_factory: ClientFactory = tcp_client_factory,
    timeout: float = 3.0,
) -> TelemetrySample:
    """
    Read one drive's telemetry block.

    Raises ConnectFailed when the drive is unreachable and
    TelemetryUnavailable on an error response or short read.
    """
    address = TELEMETRY_FIRST_REGISTER - 1
    target = f"P{TELEMETRY_FIRST_REGISTER:04d}+{TELEMETRY_REGISTER_COUNT}"

    with fresh_connection(endpoint, client_factory, timeout) as client:
        try:
            result = client.read_holding_registers(
                address, count=TELEMETRY_REGISTER_COUNT, slave=endpoint.unit_id,
            )
        except (ModbusException, OSError) as exc:
            raise TelemetryUnavailable(endpoint.label, target, reason=str(exc)) from exc

    if result is None or result.isError():
        raise TelemetryUnavailable(endpoint.label, target, reason=f"error response: {result}")
    try:
        return decode_telemetry(list(result.registers))
    except ValueError as exc:
        raise TelemetryUnavailable(endpoint.label, target, reason=str(exc)) from exc

"""
Drive Set Simulator
====================
Simulates the three Raptor drives for development and testing
without real hardware. Each simulated drive answers the same
client calls pymodbus exposes, so the bridge runs unchanged on top
of it. Models:

  - SoftPLC run coils on the main drive driving all three motors
  - Speed reference (P0122) and motor ramp toward it
  - Direction (P0227) and the command-source auto-switch it causes
    when the panel direction key is not configured
  - CONFIG state when a forbidden configuration register is written
  - Fault injection: refused connects, failed reads/writes,
    short telemetry reads

Use DriveSimulator.client_factory wherever a ClientFactory is taken.
"""

import logging
import threading
import time
from dataclasses import dataclass, field

from pymodbus.exceptions import ConnectionException

from raptor.config.register_map import (
    CHAIN_RUN_COIL, DIRECTION, PADDLE_STATUS_COIL, REGISTER_TABLE,
    SPEED_REFERENCE, WHEELS_RUN_COIL, WHEELS_STATUS_COIL, WriteClass,
    coil_address,
)
from raptor.drivers.modbus_driver import DriveEndpoint, DriveRole

logger = logging.getLogger(__name__)

_NOMINAL_BUS_VOLTAGE = 540
_RAMP_RPM_PER_SEC = 300.0


@dataclass
class SimulatedResponse:
    """Minimal stand-in for a pymodbus response PDU."""
    registers: list = field(default_factory=list)
    bits: list = field(default_factory=list)
    error: bool = False

    def isError(self) -> bool:  # noqa: N802 - pymodbus naming
        return self.error


class SimulatedDrive:
    """
    One simulated VFD.

    Holds the raw register and coil images plus the motor state
    derived from them.
    """

    def __init__(self, role: DriveRole, panel_direction_key: bool = True):
        self.role = role
        self.panel_direction_key = panel_direction_key

        self._lock = threading.Lock()
        self._registers: dict[int, int] = {}
        self._coils: dict[int, bool] = {}

        self._running = False
        self._actual_rpm = 0.0
        self._last_update = time.time()
        self._voltage = _NOMINAL_BUS_VOLTAGE

        # Hazard state
        self.command_source_switched = False
        self.config_state = False

        # Fault injection
        self.refuse_connect = False
        self.fail_writes = False
        self.fail_reads = False
        self.short_read = False
        self.write_delay_sec = 0.0

        # Bookkeeping for tests
        self.write_log: list[tuple[int, int]] = []
        self.write_spans: list[tuple[float, float]] = []
        self.coil_log: list[tuple[int, bool]] = []
        self.connections_opened = 0
        self.open_connections = 0

    # ── Simulation Controls ──────────────────────────────────

    def set_running(self, running: bool):
        with self._lock:
            self._running = running and not self.config_state

    def set_voltage(self, volts: int):
        self._voltage = volts

    def register(self, address: int) -> int:
        """Current value of a holding register (0-based address)."""
        with self._lock:
            return self._registers.get(address, 0)

    def coil(self, address: int) -> bool:
        with self._lock:
            return self._coils.get(address, False)

    def set_coil(self, address: int, value: bool):
        with self._lock:
            self._coils[address] = value

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def direction(self) -> str:
        return "rev" if self.register(DIRECTION.address) == 1 else "fwd"

    # ── Bus Operations (called by SimulatedClient) ───────────

    def read_block(self, address: int, count: int) -> list:
        self._update_simulation()
        with self._lock:
            image = self._telemetry_image()
            return [image.get(a, self._registers.get(a, 0)) for a in range(address, address + count)]

    def write_register(self, address: int, value: int):
        started = time.monotonic()
        if self.write_delay_sec:
            time.sleep(self.write_delay_sec)
        with self._lock:
            self._registers[address] = value & 0xFFFF
            self.write_log.append((address, value))
            self.write_spans.append((started, time.monotonic()))
            self._process_register(address, value)

    def write_coil(self, address: int, value: bool):
        with self._lock:
            self._coils[address] = value
            self.coil_log.append((address, value))

    # ── Internal Simulation ──────────────────────────────────

    def _process_register(self, address: int, value: int):
        spec = REGISTER_TABLE.get(address + 1)
        if spec is None or spec.write_class == WriteClass.FORBIDDEN:
            logger.error("SIM %s: configuration register %d written -> CONFIG state",
                         self.role.value, address + 1)
            self.config_state = True
            self._running = False
        elif spec is DIRECTION and not self.panel_direction_key:
            logger.warning("SIM %s: P0227 written without HMI DR key -> command source switched",
                           self.role.value)
            self.command_source_switched = True

    def _telemetry_image(self) -> dict:
        target = self._registers.get(SPEED_REFERENCE.address, 0) if self._running else 0
        rated_fraction = self._actual_rpm / 1500.0
        return {
            1: int(target),
            2: int(self._actual_rpm),
            3: 0,
            4: int(self._voltage),
            5: int(rated_fraction * 100 * 2) if self._running else 0,
            6: 1 if self._running else 0,
        }

    def _update_simulation(self):
        now = time.time()
        dt = min(now - self._last_update, 1.0)
        with self._lock:
            target = self._registers.get(SPEED_REFERENCE.address, 0) if self._running else 0
            step = _RAMP_RPM_PER_SEC * dt
            if self._actual_rpm < target:
                self._actual_rpm = min(float(target), self._actual_rpm + step)
            else:
                self._actual_rpm = max(float(target), self._actual_rpm - step)
        self._last_update = now


class SimulatedClient:
    """Client object handed out per connection, bound to one drive."""

    def __init__(self, drive: SimulatedDrive, owner: "DriveSimulator"):
        self._drive = drive
        self._owner = owner
        self.connected = False

    def connect(self) -> bool:
        if self._drive.refuse_connect:
            return False
        if not self.connected:
            self.connected = True
            self._drive.connections_opened += 1
            self._drive.open_connections += 1
        return True

    def close(self):
        if self.connected:
            self.connected = False
            self._drive.open_connections -= 1

    def read_holding_registers(self, address: int, count: int = 1, slave: int = 1):
        self._require()
        if self._drive.fail_reads:
            raise ConnectionException(f"simulated read failure on {self._drive.role.value}")
        registers = self._drive.read_block(address, count)
        if self._drive.short_read:
            registers = registers[: count // 2]
        return SimulatedResponse(registers=registers)

    def read_coils(self, address: int, count: int = 1, slave: int = 1):
        self._require()
        if self._drive.fail_reads:
            return SimulatedResponse(error=True)
        return SimulatedResponse(bits=[self._drive.coil(a) for a in range(address, address + count)])

    def write_register(self, address: int, value: int, slave: int = 1):
        self._require()
        if self._drive.fail_writes:
            return SimulatedResponse(error=True)
        self._drive.write_register(address, value)
        return SimulatedResponse(registers=[value])

    def write_coil(self, address: int, value: bool, slave: int = 1):
        self._require()
        if self._drive.fail_writes:
            return SimulatedResponse(error=True)
        self._drive.write_coil(address, value)
        self._owner.on_coil_written(address, value)
        return SimulatedResponse(bits=[value])

    def _require(self):
        if not self.connected:
            raise ConnectionException(f"{self._drive.role.value} not connected")


class DriveSimulator:
    """
    Simulates the full drive set: main drive with SoftPLC plus the
    inner and outer wheel drives.

    The SoftPLC links the run command coils to the status coils and
    to the motors they start.
    """

    def __init__(self, panel_direction_key: bool = True):
        self.drives: dict[DriveRole, SimulatedDrive] = {
            role: SimulatedDrive(role, panel_direction_key=panel_direction_key)
            for role in DriveRole
        }

    @property
    def main(self) -> SimulatedDrive:
        return self.drives[DriveRole.MAIN]

    @property
    def inner(self) -> SimulatedDrive:
        return self.drives[DriveRole.CHILD_INNER]

    @property
    def outer(self) -> SimulatedDrive:
        return self.drives[DriveRole.CHILD_OUTER]

    def client_factory(self, endpoint: DriveEndpoint, timeout: float) -> SimulatedClient:
        """ClientFactory implementation backed by the simulated drives."""
        return SimulatedClient(self.drives[endpoint.role], self)

    def on_coil_written(self, address: int, value: bool):
        """SoftPLC logic: run coils start/stop motors and echo status."""
        if address == coil_address(WHEELS_RUN_COIL):
            self.main.set_coil(coil_address(WHEELS_STATUS_COIL), value)
            self.inner.set_running(value)
            self.outer.set_running(value)
        elif address == coil_address(CHAIN_RUN_COIL):
            self.main.set_coil(coil_address(PADDLE_STATUS_COIL), value)
            self.main.set_running(value)

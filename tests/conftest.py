"""
Shared test fixtures for the Raptor bridge test suite.
"""

import pytest

from raptor.config.register_map import WritePolicy
from raptor.config.settings import Settings
from raptor.core.control_state import ControlStateStore
from raptor.core.dispatcher import CommandDispatcher
from raptor.core.poll_loop import PollLoop
from raptor.drivers.modbus_driver import DriveRole, MainDriveConnection
from raptor.drivers.simulator import DriveSimulator
from raptor.modules.chain_speed import ChainSpeedWriter
from raptor.modules.coil_writer import CoilWriter
from raptor.modules.dual_write import DualWriteCoordinator, SpeedLimits


@pytest.fixture
def settings():
    s = Settings()
    s.write_timeout_sec = 0.5
    s.telemetry_timeout_sec = 0.5
    s.poll_interval_sec = 0.05
    return s


@pytest.fixture
def simulator():
    return DriveSimulator()


@pytest.fixture
def main_endpoint(settings):
    return settings.endpoint(DriveRole.MAIN)


@pytest.fixture
def inner_endpoint(settings):
    return settings.endpoint(DriveRole.CHILD_INNER)


@pytest.fixture
def outer_endpoint(settings):
    return settings.endpoint(DriveRole.CHILD_OUTER)


@pytest.fixture
def store():
    return ControlStateStore()


@pytest.fixture
def main_drive(main_endpoint, simulator):
    conn = MainDriveConnection(main_endpoint, simulator.client_factory, timeout=0.5)
    assert conn.connect()
    return conn


def make_coordinator(inner_endpoint, outer_endpoint, store, simulator, direction_control=True):
    return DualWriteCoordinator(
        inner_endpoint,
        outer_endpoint,
        store,
        policy=WritePolicy(direction_control=direction_control),
        limits=SpeedLimits(100, 1500),
        outer_ratio=0.9167,
        client_factory=simulator.client_factory,
        timeout=0.5,
    )


@pytest.fixture
def coordinator(inner_endpoint, outer_endpoint, store, simulator):
    """Wheel coordinator with direction control enabled."""
    return make_coordinator(inner_endpoint, outer_endpoint, store, simulator)


@pytest.fixture
def locked_coordinator(inner_endpoint, outer_endpoint, store, simulator):
    """Wheel coordinator with the default (direction disabled) policy."""
    return make_coordinator(inner_endpoint, outer_endpoint, store, simulator, direction_control=False)


@pytest.fixture
def chain_writer(main_drive, store):
    return ChainSpeedWriter(main_drive, store, limits=SpeedLimits(100, 1200))


@pytest.fixture
def dispatcher(main_drive, coordinator, chain_writer):
    return CommandDispatcher(CoilWriter(main_drive), coordinator, chain_writer)


@pytest.fixture
def published():
    return []


@pytest.fixture
def poll_loop(main_drive, inner_endpoint, outer_endpoint, store, simulator, published):
    return PollLoop(
        main_drive,
        inner_endpoint,
        outer_endpoint,
        store,
        publisher=published.append,
        interval_sec=0.05,
        client_factory=simulator.client_factory,
        read_timeout=0.5,
    )

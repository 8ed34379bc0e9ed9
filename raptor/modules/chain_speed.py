"""
Chain Speed Control
====================
The chain/paddle motor runs on the main drive. Its speed reference
is the same P0122 setpoint as the wheels, written over the
persistent main-drive connection.
"""

import logging

from raptor.config.register_map import SPEED_REFERENCE, WritePolicy, check_write
from raptor.core.control_state import ControlStateStore
from raptor.drivers.modbus_driver import MainDriveConnection
from raptor.modules.dual_write import SpeedLimits

logger = logging.getLogger(__name__)


class ChainSpeedWriter:
    """Single-drive speed writes; state is updated only on success."""

    def __init__(
        self,
        main_drive: MainDriveConnection,
        store: ControlStateStore,
        policy: WritePolicy = WritePolicy(),
        limits: SpeedLimits = SpeedLimits(100, 1200),
    ):
        self.main = main_drive
        self.store = store
        self.policy = policy
        self.limits = limits

    def write(self, speed: int) -> int:
        """Clamp and write the chain speed. Raises WriteFailed on failure."""
        speed = self.limits.clamp(speed, "chain speed")
        spec = check_write(SPEED_REFERENCE.number, self.policy, speed)
        logger.info("cmd: setting chain speed to %d (%s)", speed, spec.label)

        self.main.write_register(spec.address, speed, label=spec.label)

        self.store.update(chain_speed=speed)
        logger.info("cmd: chain speed set to %d", speed)
        return speed

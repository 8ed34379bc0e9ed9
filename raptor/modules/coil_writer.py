"""
SoftPLC Coil Writer
====================
Run/stop commands for the wheels and the chain go through two
coils on the main drive's SoftPLC. Coil numbers are 1-based as in
the mbpoll commands used on site (-r 50066 / -r 50067).
"""

import logging

from raptor.config.register_map import CHAIN_RUN_COIL, WHEELS_RUN_COIL, coil_address
from raptor.drivers.modbus_driver import MainDriveConnection

logger = logging.getLogger(__name__)


class CoilWriter:
    """Writes run coils over the persistent main-drive connection."""

    def __init__(self, main_drive: MainDriveConnection):
        self.main = main_drive

    def write(self, coil_number: int, on: bool) -> None:
        """Write a 1-based coil. Raises WriteFailed or ConnectFailed."""
        self.main.write_coil(coil_address(coil_number), bool(on))

    def set_wheels_running(self, on: bool) -> None:
        self.write(WHEELS_RUN_COIL, on)
        logger.info("cmd: wheels_running -> %s", on)

    def set_chain_running(self, on: bool) -> None:
        self.write(CHAIN_RUN_COIL, on)
        logger.info("cmd: chain_running -> %s", on)

"""
Raptor Bridge: Wiring & Lifecycle
===================================
Builds the command/telemetry core from resolved settings and ties
it to a message transport:

    cmd topic ──► parse ──► CommandDispatcher ──► drives
                                  │
                                  ▼
                          ControlStateStore
                                  │
    state topic ◄── PollLoop ◄────┘ (+ live telemetry)
"""

import logging
from typing import Callable, Optional, Protocol

from raptor.config.register_map import WritePolicy
from raptor.config.settings import Settings
from raptor.core.commands import CommandRejected, parse_command
from raptor.core.control_state import ControlState, ControlStateStore
from raptor.core.dispatcher import CommandDispatcher
from raptor.core.poll_loop import PollLoop
from raptor.core.snapshot import Snapshot
from raptor.drivers.modbus_driver import (
    ClientFactory, DriveRole, MainDriveConnection, tcp_client_factory,
)
from raptor.modules.chain_speed import ChainSpeedWriter
from raptor.modules.coil_writer import CoilWriter
from raptor.modules.dual_write import DualWriteCoordinator, SpeedLimits

logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Protocol for the message-bus side of the bridge."""

    def publish(self, topic: str, payload: bytes, qos: int = 1, retain: bool = False) -> None: ...
    def subscribe(self, topic: str, handler: Callable[[str, bytes], None], qos: int = 1) -> None: ...


class RaptorBridge:
    """
    Owns every core component for one drive set.

    The transport is optional so the core can be driven directly
    (tests, simulator runs); without one, snapshots are only logged.
    """

    def __init__(
        self,
        settings: Settings,
        transport: Optional[Transport] = None,
        client_factory: ClientFactory = tcp_client_factory,
    ):
        self.settings = settings
        self.transport = transport

        self.main_endpoint = settings.endpoint(DriveRole.MAIN)
        self.inner_endpoint = settings.endpoint(DriveRole.CHILD_INNER)
        self.outer_endpoint = settings.endpoint(DriveRole.CHILD_OUTER)
        self.policy = WritePolicy(direction_control=settings.direction_control)

        self.store = ControlStateStore(ControlState(
            wheel_speed=settings.wheel_speed_default,
            chain_speed=settings.chain_speed_default,
        ))
        self.main = MainDriveConnection(
            self.main_endpoint, client_factory, timeout=settings.write_timeout_sec,
        )
        self.coils = CoilWriter(self.main)
        self.wheels = DualWriteCoordinator(
            self.inner_endpoint,
            self.outer_endpoint,
            self.store,
            policy=self.policy,
            limits=SpeedLimits(settings.wheel_speed_min, settings.wheel_speed_max),
            outer_ratio=settings.outer_wheel_ratio,
            client_factory=client_factory,
            timeout=settings.write_timeout_sec,
        )
        self.chain = ChainSpeedWriter(
            self.main,
            self.store,
            policy=self.policy,
            limits=SpeedLimits(settings.chain_speed_min, settings.chain_speed_max),
        )
        self.dispatcher = CommandDispatcher(
            self.coils, self.wheels, self.chain, queue_size=settings.command_queue_size,
            submit_timeout=settings.command_submit_timeout_sec,
        )
        self.poller = PollLoop(
            self.main,
            self.inner_endpoint,
            self.outer_endpoint,
            self.store,
            publisher=self.publish,
            interval_sec=settings.poll_interval_sec,
            client_factory=client_factory,
            read_timeout=settings.telemetry_timeout_sec,
        )

    def connect_drives(self) -> bool:
        """Open the persistent main-drive connection (startup precondition)."""
        return self.main.connect()

    def start(self):
        """Subscribe to commands and start the dispatcher and poll loop."""
        if not self.policy.direction_control:
            logger.info("Direction control disabled; wheel_direction commands will be ignored")
        else:
            logger.warning("Direction control ENABLED: P0227 writes may switch the drive command source")

        if self.transport is not None:
            self.transport.subscribe(self.settings.cmd_topic, self.handle_message, qos=1)
            logger.info("Subscribed to %s", self.settings.cmd_topic)

        self.dispatcher.start()
        self.poller.start(blocking=False)

    def stop(self):
        logger.info("Raptor bridge stopping...")
        self.poller.stop()
        self.dispatcher.stop()
        self.main.disconnect()

    def handle_message(self, topic: str, payload: bytes) -> bool:
        """Transport callback for the cmd topic."""
        try:
            command = parse_command(payload)
        except CommandRejected as exc:
            logger.warning("cmd: %s (payload=%r)", exc, payload)
            return False
        if command.is_empty:
            logger.info("cmd: empty command ignored")
            return False
        return self.dispatcher.submit(command)

    def publish(self, snapshot: Snapshot):
        """Poll loop publisher: QoS 1, not retained."""
        if self.transport is None:
            return
        self.transport.publish(self.settings.state_topic, snapshot.to_json(), qos=1, retain=False)

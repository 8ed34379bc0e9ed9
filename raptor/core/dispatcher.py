"""
Command Dispatcher
===================
Serializes every mutating drive operation. Commands arrive from the
MQTT thread into a bounded queue; one consumer thread applies them
in arrival order, so only one command's writes are ever in flight.
(A single command may still write both wheel drives concurrently,
see DualWriteCoordinator.)

Field order within one command:

    1. wheels run coil
    2. chain run coil
    3. wheel direction   (only when direction control is enabled)
    4. wheel speed       (both child drives)
    5. chain speed       (main drive)

A failed field is logged and does not stop the remaining fields or
the next command. The next command or poll cycle is the retry
boundary.

A full queue pushes back on the producer. Setpoint-only commands
wait up to submit_timeout and are then dropped; run/stop commands
wait for as long as the consumer is alive.
"""

import logging
import queue
import threading
from typing import Callable, Optional

from raptor.core.commands import Command
from raptor.core.errors import DriveError
from raptor.modules.chain_speed import ChainSpeedWriter
from raptor.modules.coil_writer import CoilWriter
from raptor.modules.dual_write import DualWriteCoordinator

logger = logging.getLogger(__name__)

_STOP = object()


class CommandDispatcher:
    """Single-consumer queue over the drive writers."""

    def __init__(
        self,
        coils: CoilWriter,
        wheels: DualWriteCoordinator,
        chain: ChainSpeedWriter,
        queue_size: int = 16,
        submit_timeout: float = 30.0,
    ):
        self.coils = coils
        self.wheels = wheels
        self.chain = chain
        self.submit_timeout = submit_timeout
        self._queue: queue.Queue = queue.Queue(maxsize=queue_size)
        self._thread: Optional[threading.Thread] = None
        self._processed = 0
        self._dropped = 0
        self._stop_requested = False

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def processed_count(self) -> int:
        return self._processed

    @property
    def dropped_count(self) -> int:
        return self._dropped

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def submit(self, command: Command, timeout: Optional[float] = None) -> bool:
        """
        Enqueue a command, waiting while the queue is full.

        Returns False only when the command was dropped.
        """
        wait = self.submit_timeout if timeout is None else timeout
        while True:
            try:
                self._queue.put(command, timeout=wait)
                return True
            except queue.Full:
                if command.carries_run_command and self.is_running and not self._stop_requested:
                    logger.warning(
                        "cmd: queue full (%d) for %.1f s, still waiting to queue %s",
                        self._queue.maxsize, wait, command,
                    )
                    continue
            self._dropped += 1
            logger.error("cmd: queue full (%d), dropping %s", self._queue.maxsize, command)
            return False

    def start(self):
        """Start the consumer thread."""
        if self.is_running:
            return
        self._thread = threading.Thread(
            target=self._consume, name="cmd-dispatcher", daemon=True,
        )
        self._thread.start()
        logger.info("Command dispatcher started")

    def stop(self, timeout: float = 5.0):
        """Process every command already queued, then stop the consumer."""
        if not self._thread:
            return
        if not self._stop_requested:
            self._queue.put(_STOP)
            self._stop_requested = True
        self._thread.join(timeout=timeout)
        if self._thread.is_alive():
            logger.warning(
                "Command dispatcher still draining after %.1f s (%d pending)",
                timeout, self.pending,
            )
            return
        self._thread = None
        self._stop_requested = False
        logger.info("Command dispatcher stopped. Commands processed: %d", self._processed)

    def process(self, command: Command):
        """Apply one command synchronously (consumer thread and tests)."""
        if command.wheels_running is not None:
            self._run_field("wheels_running", self.coils.set_wheels_running, command.wheels_running)

        if command.chain_running is not None:
            self._run_field("chain_running", self.coils.set_chain_running, command.chain_running)

        if command.wheel_direction is not None:
            if self.wheels.direction_enabled:
                self._run_field("wheel_direction", self.wheels.write_direction, command.wheel_direction)
            else:
                logger.warning(
                    "cmd: direction control disabled, ignoring wheel_direction=%r",
                    command.wheel_direction,
                )

        if command.wheel_speed is not None:
            self._run_field("wheel_speed", self.wheels.write_wheel_speed, command.wheel_speed)

        if command.chain_speed is not None:
            self._run_field("chain_speed", self.chain.write, command.chain_speed)

        self._processed += 1

    def _run_field(self, name: str, action: Callable, value):
        try:
            action(value)
        except DriveError as exc:
            logger.warning("cmd: %s=%r failed: %s", name, value, exc)
        except Exception:
            logger.exception("cmd: %s=%r raised", name, value)

    def _consume(self):
        while True:
            command = self._queue.get()
            try:
                if command is _STOP:
                    return
                self.process(command)
            finally:
                self._queue.task_done()

    def join(self):
        """Block until every queued command has been processed."""
        self._queue.join()

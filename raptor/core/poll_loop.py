"""
Telemetry Poll Loop
====================
Publishes one consistent snapshot of the drive set per interval.
Each tick:

    1. Read telemetry from all three drives in parallel, join
    2. Read the wheels/paddle status coils from the main drive
    3. Copy the locally tracked control state
    4. Assemble a Snapshot with the next sequence number
    5. Publish

A failed read zeroes that field for this tick only. Nothing here
stops the loop; an unreachable drive costs at most one read timeout.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional

from raptor.config.register_map import PADDLE_STATUS_COIL, WHEELS_STATUS_COIL, coil_address
from raptor.core.control_state import ControlStateStore
from raptor.core.errors import DriveError
from raptor.core.snapshot import ZERO_SAMPLE, Snapshot, TelemetrySample, format_timestamp
from raptor.drivers.modbus_driver import (
    ClientFactory, DriveEndpoint, MainDriveConnection, tcp_client_factory,
)
from raptor.drivers.telemetry_reader import read_telemetry

logger = logging.getLogger(__name__)

Publisher = Callable[[Snapshot], None]


class PollLoop:
    """Fixed-interval telemetry aggregation and publishing."""

    def __init__(
        self,
        main_drive: MainDriveConnection,
        inner: DriveEndpoint,
        outer: DriveEndpoint,
        store: ControlStateStore,
        publisher: Publisher,
        interval_sec: float = 2.0,
        client_factory: ClientFactory = tcp_client_factory,
        read_timeout: float = 3.0,
    ):
        self.main = main_drive
        self.inner = inner
        self.outer = outer
        self.store = store
        self.publisher = publisher
        self.interval_sec = interval_sec
        self._factory = client_factory
        self._read_timeout = read_timeout

        self._seq = 0
        self._last_snapshot: Optional[Snapshot] = None
        self._tick_time_ms = 0.0
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def seq(self) -> int:
        return self._seq

    @property
    def last_snapshot(self) -> Optional[Snapshot]:
        return self._last_snapshot

    @property
    def tick_time_ms(self) -> float:
        return self._tick_time_ms

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self, blocking: bool = False):
        """Start the poll loop."""
        self._stop.clear()
        logger.info("Poll loop starting (interval: %.1f s)", self.interval_sec)
        if blocking:
            self._loop()
        else:
            self._thread = threading.Thread(target=self._loop, name="poll-loop", daemon=True)
            self._thread.start()

    def stop(self, timeout: float = 5.0):
        """Stop after the tick in progress."""
        self._stop.set()
        if self._thread:
            self._thread.join(timeout=timeout)
            self._thread = None
        logger.info("Poll loop stopped. Snapshots published: %d", self._seq)

    def tick(self) -> Snapshot:
        """Execute exactly one poll cycle and publish its snapshot."""
        chain, inner, outer = self._read_all_telemetry()
        wheels_running = self._read_status_coil("wheels", WHEELS_STATUS_COIL)
        paddle_running = self._read_status_coil("paddle", PADDLE_STATUS_COIL)
        state = self.store.current()

        self._seq += 1
        snapshot = Snapshot(
            seq=self._seq,
            ts=format_timestamp(),
            chain=chain,
            inner_wheel=inner,
            outer_wheel=outer,
            wheels_running=wheels_running,
            paddle_running=paddle_running,
            wheel_direction=state.direction.value,
            wheel_speed=state.wheel_speed,
            chain_speed=state.chain_speed,
            direction_warning=state.direction_warning,
        )
        self._last_snapshot = snapshot

        try:
            self.publisher(snapshot)
        except Exception:
            logger.exception("publish seq=%d failed", snapshot.seq)
        logger.info(snapshot.summary())
        return snapshot

    # ── Internals ────────────────────────────────────────────

    def _loop(self):
        while not self._stop.is_set():
            t_start = time.monotonic()
            try:
                self.tick()
            except Exception:
                logger.exception("Poll cycle exception")

            elapsed = time.monotonic() - t_start
            self._tick_time_ms = elapsed * 1000.0
            sleep_time = self.interval_sec - elapsed
            if sleep_time > 0:
                self._stop.wait(sleep_time)
            else:
                logger.warning(
                    "Poll overrun: %.1f ms (target: %.0f ms)",
                    self._tick_time_ms, self.interval_sec * 1000.0,
                )

    def _read_all_telemetry(self) -> tuple[TelemetrySample, TelemetrySample, TelemetrySample]:
        endpoints = [
            ("chain", self.main.endpoint),
            ("inner wheel", self.inner),
            ("outer wheel", self.outer),
        ]
        with ThreadPoolExecutor(max_workers=3, thread_name_prefix="telemetry") as pool:
            futures = [
                (name, pool.submit(read_telemetry, ep, self._factory, self._read_timeout))
                for name, ep in endpoints
            ]
            samples = [self._sample_or_zero(name, future) for name, future in futures]
        return samples[0], samples[1], samples[2]

    @staticmethod
    def _sample_or_zero(name: str, future) -> TelemetrySample:
        try:
            return future.result()
        except DriveError as exc:
            logger.warning("read %s drive failed: %s", name, exc)
        except Exception:
            logger.exception("read %s drive raised", name)
        return ZERO_SAMPLE

    def _read_status_coil(self, name: str, coil_number: int) -> bool:
        try:
            return self.main.read_coil(coil_address(coil_number))
        except DriveError as exc:
            logger.warning("read %s coil failed: %s", name, exc)
            return False

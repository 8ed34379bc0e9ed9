"""
Dual-Write Coordinator (Wheel Pair)
====================================
The inner and outer wheels are mechanically linked, so every speed
or direction change must reach both child drives together. Each
write goes out on a fresh connection per child; the two writes run
concurrently and are joined before the outcome is inspected.

Direction outcomes, in priority order:

  BOTH_OK      state takes the new direction, warning cleared
  BOTH_FAILED  state unchanged, warning set. Neither wheel moved,
               so this is the safe failure.
  one failed   state takes the new direction (the drive that did
               change), warning names the failed wheel. The wheels
               now physically disagree; surfaced, never retried.

Speed writes are plain setpoint updates (P0122) and do not touch
the command source, so the state records the clamped speed once
both attempts finish, whatever their outcome.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from raptor.config.register_map import (
    DIRECTION, DIRECTION_FORWARD, DIRECTION_REVERSE, SPEED_REFERENCE,
    RegisterSpec, WritePolicy, check_write,
)
from raptor.core.control_state import ControlStateStore, Direction
from raptor.core.errors import DriveError
from raptor.drivers.modbus_driver import (
    ClientFactory, DriveEndpoint, tcp_client_factory, write_register_once,
)

logger = logging.getLogger(__name__)

BOTH_FAILED_WARNING = "Direction change failed on both wheels"


class Outcome(Enum):
    BOTH_OK = "both_ok"
    INNER_FAILED = "inner_failed"
    OUTER_FAILED = "outer_failed"
    BOTH_FAILED = "both_failed"


@dataclass(frozen=True)
class DualWriteResult:
    """Combined result of one write fanned out to both wheels."""
    outcome: Outcome
    inner_value: int
    outer_value: int
    inner_error: Optional[DriveError] = None
    outer_error: Optional[DriveError] = None

    @classmethod
    def classify(
        cls,
        inner_value: int,
        outer_value: int,
        inner_error: Optional[DriveError],
        outer_error: Optional[DriveError],
    ) -> "DualWriteResult":
        if inner_error and outer_error:
            outcome = Outcome.BOTH_FAILED
        elif inner_error:
            outcome = Outcome.INNER_FAILED
        elif outer_error:
            outcome = Outcome.OUTER_FAILED
        else:
            outcome = Outcome.BOTH_OK
        return cls(outcome, inner_value, outer_value, inner_error, outer_error)


@dataclass(frozen=True)
class SpeedLimits:
    """Allowed setpoint range for one motor."""
    minimum: int
    maximum: int

    def clamp(self, speed: int, what: str = "speed") -> int:
        if speed < self.minimum:
            logger.info("cmd: %s %d clamped to minimum %d", what, speed, self.minimum)
            return self.minimum
        if speed > self.maximum:
            logger.info("cmd: %s %d clamped to maximum %d", what, speed, self.maximum)
            return self.maximum
        return speed


def mismatch_warning(wheel: str, host: str) -> str:
    return f"WARNING: {wheel} wheel ({host}) direction change failed - wheels may be mismatched!"


class DualWriteCoordinator:
    """
    Writes the same logical setpoint to both child drives.

    The write policy is fixed at construction; direction writes are
    refused before any I/O when it does not grant direction control.
    """

    def __init__(
        self,
        inner: DriveEndpoint,
        outer: DriveEndpoint,
        store: ControlStateStore,
        policy: WritePolicy = WritePolicy(),
        limits: SpeedLimits = SpeedLimits(100, 1500),
        outer_ratio: float = 0.9167,
        client_factory: ClientFactory = tcp_client_factory,
        timeout: float = 5.0,
    ):
        self.inner = inner
        self.outer = outer
        self.store = store
        self.policy = policy
        self.limits = limits
        self.outer_ratio = outer_ratio
        self._factory = client_factory
        self._timeout = timeout

    @property
    def direction_enabled(self) -> bool:
        return self.policy.direction_control

    def outer_speed(self, inner_speed: int) -> int:
        """Outer wheel target for a given (clamped) inner speed."""
        return int(round(inner_speed * self.outer_ratio))

    # ── Direction ────────────────────────────────────────────

    def write_direction(self, direction) -> DualWriteResult:
        """
        Set both wheels' direction and record the outcome.

        Raises RegisterForbidden when direction control is disabled.
        """
        target = Direction.parse(direction)
        value = DIRECTION_REVERSE if target is Direction.REVERSE else DIRECTION_FORWARD
        spec = check_write(DIRECTION.number, self.policy, value)

        logger.info("cmd: setting wheel direction to %s (%s=%d)", target.value, spec.label, value)
        result = self._write_both(spec, value, value)

        if result.outcome is Outcome.BOTH_FAILED:
            logger.error(
                "cmd: DIRECTION FAILED - both drives failed: %s, %s",
                result.inner_error, result.outer_error,
            )
            self.store.update(direction_warning=BOTH_FAILED_WARNING)
        elif result.outcome is Outcome.INNER_FAILED:
            logger.warning(
                "cmd: WARNING - inner wheel failed but outer succeeded: %s",
                result.inner_error,
            )
            self.store.update(
                direction=target,
                direction_warning=mismatch_warning("Inner", self.inner.host),
            )
        elif result.outcome is Outcome.OUTER_FAILED:
            logger.warning(
                "cmd: WARNING - outer wheel failed but inner succeeded: %s",
                result.outer_error,
            )
            self.store.update(
                direction=target,
                direction_warning=mismatch_warning("Outer", self.outer.host),
            )
        else:
            logger.info("cmd: direction set to %s on both wheels", target.value)
            self.store.update(direction=target, direction_warning="")

        return result

    # ── Speed ────────────────────────────────────────────────

    def write_wheel_speed(self, speed: int) -> DualWriteResult:
        """Clamp, derive the outer target, write both, record the speed."""
        inner_speed = self.limits.clamp(speed, "wheel speed")
        outer_speed = self.outer_speed(inner_speed)
        spec = check_write(SPEED_REFERENCE.number, self.policy, inner_speed)

        result = self._write_both(spec, inner_speed, outer_speed)
        self.store.update(wheel_speed=inner_speed)

        if result.outcome is Outcome.BOTH_OK:
            logger.info(
                "cmd: wheel speed set to %d (inner) / %d (outer, ratio=%.4f)",
                inner_speed, outer_speed, self.outer_ratio,
            )
        else:
            logger.warning(
                "cmd: wheel speed %d/%d partially applied (%s): inner=%s outer=%s",
                inner_speed, outer_speed, result.outcome.value,
                result.inner_error, result.outer_error,
            )
        return result

    # ── Fan-out ──────────────────────────────────────────────

    def _write_both(self, spec: RegisterSpec, inner_value: int, outer_value: int) -> DualWriteResult:
        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="dual-write") as pool:
            inner_future = pool.submit(self._write_one, self.inner, spec, inner_value)
            outer_future = pool.submit(self._write_one, self.outer, spec, outer_value)
            inner_error = inner_future.result()
            outer_error = outer_future.result()
        return DualWriteResult.classify(inner_value, outer_value, inner_error, outer_error)

    def _write_one(self, endpoint: DriveEndpoint, spec: RegisterSpec, value: int) -> Optional[DriveError]:
        try:
            write_register_once(
                endpoint, spec.address, value,
                client_factory=self._factory, timeout=self._timeout, label=spec.label,
            )
        except DriveError as exc:
            logger.warning("cmd: write %s=%d to %s failed: %s", spec.label, value, endpoint.label, exc)
            return exc
        logger.info("cmd: %s %s -> %d", endpoint.label, spec.label, value)
        return None

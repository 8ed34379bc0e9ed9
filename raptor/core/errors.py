"""
Drive I/O Error Taxonomy
=========================
None of these are fatal to the process. They are caught at the
operation boundary (telemetry read, coordinator write, dispatcher
field) and turned into a zero-valued sample, a log line, or a
direction warning in the control state.
"""

from typing import Optional


class DriveError(Exception):
    """Base class for Modbus drive I/O failures."""

    def __init__(
        self,
        role: str,
        target: str = "",
        value: Optional[int] = None,
        reason: str = "",
    ):
        self.role = role
        self.target = target
        self.value = value
        self.reason = reason
        super().__init__(self._format())

    def _format(self) -> str:
        parts = [self.role]
        if self.target:
            parts.append(self.target)
        if self.value is not None:
            parts.append(f"value={self.value}")
        text = " ".join(parts)
        return f"{text}: {self.reason}" if self.reason else text


class ConnectFailed(DriveError):
    """TCP connection to a drive could not be established."""


class TelemetryUnavailable(DriveError):
    """Telemetry block read failed or came back short."""


class WriteFailed(DriveError):
    """A coil or register write was not acknowledged by the drive."""


class RegisterForbidden(WriteFailed):
    """Write refused by the register safety table before any I/O."""

    def __init__(self, register: str, value: Optional[int], reason: str):
        super().__init__("policy", register, value, reason)

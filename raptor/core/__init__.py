from raptor.core.errors import (
    DriveError, ConnectFailed, TelemetryUnavailable, WriteFailed, RegisterForbidden,
)
from raptor.core.control_state import ControlState, ControlStateStore, Direction
from raptor.core.commands import Command, CommandRejected, parse_command
from raptor.core.snapshot import Snapshot, TelemetrySample

__all__ = [
    "DriveError",
    "ConnectFailed",
    "TelemetryUnavailable",
    "WriteFailed",
    "RegisterForbidden",
    "ControlState",
    "ControlStateStore",
    "Direction",
    "Command",
    "CommandRejected",
    "parse_command",
    "Snapshot",
    "TelemetrySample",
]

"""
Telemetry Sample & Snapshot
============================
Value types published on the state topic. A Snapshot is assembled
once per poll tick and never mutated afterwards.
"""

import json
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Optional


@dataclass(frozen=True)
class TelemetrySample:
    """Per-drive readings from the P0002..P0007 block."""
    target_rpm: int = 0
    actual_rpm: int = 0
    voltage: int = 0
    amps: float = 0.0        # P0006 / 200 (fraction of rated current)
    drive_state: int = 0     # 0=stopped, 1=running


ZERO_SAMPLE = TelemetrySample()


def format_timestamp(ns: Optional[int] = None) -> str:
    """RFC3339 UTC timestamp with nanoseconds, trailing zeros trimmed."""
    if ns is None:
        ns = time.time_ns()
    seconds, frac = divmod(ns, 1_000_000_000)
    base = datetime.fromtimestamp(seconds, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%S")
    if frac:
        base += "." + f"{frac:09d}".rstrip("0")
    return base + "Z"


@dataclass(frozen=True)
class Snapshot:
    """One published view of the drive set."""
    seq: int
    ts: str
    chain: TelemetrySample = field(default_factory=TelemetrySample)
    inner_wheel: TelemetrySample = field(default_factory=TelemetrySample)
    outer_wheel: TelemetrySample = field(default_factory=TelemetrySample)
    wheels_running: bool = False
    paddle_running: bool = False
    wheel_direction: str = "fwd"
    wheel_speed: int = 0
    chain_speed: int = 0
    direction_warning: str = ""

    # Legacy consumers read these flat fields; they mirror the chain drive.

    @property
    def voltage(self) -> int:
        return self.chain.voltage

    @property
    def target_rpm(self) -> int:
        return self.chain.target_rpm

    @property
    def actual_rpm(self) -> int:
        return self.chain.actual_rpm

    def to_dict(self) -> dict:
        return {
            "seq": self.seq,
            "ts": self.ts,
            "chain": asdict(self.chain),
            "inner_wheel": asdict(self.inner_wheel),
            "outer_wheel": asdict(self.outer_wheel),
            "voltage": self.voltage,
            "target_rpm": self.target_rpm,
            "actual_rpm": self.actual_rpm,
            "wheels_running": self.wheels_running,
            "paddle_running": self.paddle_running,
            "wheel_direction": self.wheel_direction,
            "wheel_speed": self.wheel_speed,
            "chain_speed": self.chain_speed,
            "direction_warning": self.direction_warning,
        }

    def to_json(self) -> bytes:
        return json.dumps(self.to_dict(), separators=(",", ":")).encode()

    def summary(self) -> str:
        """One-line operator summary for the log."""
        return (
            f"pub seq={self.seq} "
            f"chain[rpm={self.chain.actual_rpm},A={self.chain.amps:.1f}] "
            f"inner[rpm={self.inner_wheel.actual_rpm},A={self.inner_wheel.amps:.1f}] "
            f"outer[rpm={self.outer_wheel.actual_rpm},A={self.outer_wheel.amps:.1f}] "
            f"volt={self.voltage} wheels={self.wheels_running} paddle={self.paddle_running}"
        )

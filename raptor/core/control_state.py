"""
Local Control-State Store
==========================
Last commanded direction, wheel speed, chain speed and any
outstanding direction mismatch warning.

These values are tracked locally instead of being read back from
the child drives: polling the children for them triggers the
command-source auto-switch to serial mode.

Single writer (the dispatcher thread, through the coordinators it
owns), one reader per poll tick. The state itself is an immutable
value replaced as a whole, so a reader never sees a half-applied
update.
"""

import logging
import threading
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_WHEEL_SPEED = 600
DEFAULT_CHAIN_SPEED = 420


class Direction(Enum):
    FORWARD = "fwd"
    REVERSE = "rev"

    @classmethod
    def parse(cls, value) -> "Direction":
        """Anything other than 'rev' normalizes to forward."""
        if isinstance(value, Direction):
            return value
        if value == cls.REVERSE.value:
            return cls.REVERSE
        return cls.FORWARD


@dataclass(frozen=True)
class ControlState:
    direction: Direction = Direction.FORWARD
    wheel_speed: int = DEFAULT_WHEEL_SPEED
    chain_speed: int = DEFAULT_CHAIN_SPEED
    direction_warning: str = ""


class ControlStateStore:
    """Holds the current ControlState and swaps it atomically."""

    def __init__(self, initial: Optional[ControlState] = None):
        self._lock = threading.Lock()
        self._state = initial or ControlState()

    def current(self) -> ControlState:
        with self._lock:
            return self._state

    def update(self, **changes) -> ControlState:
        """Replace the state with a copy carrying the given changes."""
        with self._lock:
            self._state = replace(self._state, **changes)
            new_state = self._state
        logger.debug("Control state -> %s", new_state)
        return new_state

"""
Height sources.

The engine never reads wall time directly: expiry and rate-limit
cycles are computed from a monotonically non-decreasing height
provided by the host.
"""

import threading
import time
from typing import Callable, Optional, Protocol

from core.exceptions import ClockError


class HeightSource(Protocol):
    """Anything that can report the current height."""

    def current_height(self) -> int:
        ...


class ManualClock:
    """
    Height source driven by the caller.

    Used by tests and simulations, and by hosts that receive heights
    from an external ledger and push them in.
    """

    def __init__(self, height: int = 0):
        if height < 0:
            raise ClockError(0, height)
        self._height = height
        self._lock = threading.Lock()

    def current_height(self) -> int:
        return self._height

    def set_height(self, height: int) -> int:
        """
        Move the clock to ``height``.

        Raises:
            ClockError: If ``height`` is lower than the current height.
        """
        with self._lock:
            if height < self._height:
                raise ClockError(self._height, height)
            self._height = height
            return self._height

    def advance(self, blocks: int = 1) -> int:
        """Advance the clock by ``blocks`` and return the new height."""
        with self._lock:
            if blocks < 0:
                raise ClockError(self._height, self._height + blocks)
            self._height += blocks
            return self._height


class WallClockHeight:
    """Height derived from elapsed monotonic time, one unit per ``block_interval`` seconds."""

    def __init__(
        self,
        block_interval: float = 600.0,
        start_height: int = 0,
        timer: Optional[Callable[[], float]] = None,
    ):
        if block_interval <= 0:
            raise ValueError("block_interval must be positive")
        self.block_interval = block_interval
        self.start_height = start_height
        self._timer = timer or time.monotonic
        self._origin = self._timer()

    def current_height(self) -> int:
        elapsed = max(0.0, self._timer() - self._origin)
        return self.start_height + int(elapsed // self.block_interval)

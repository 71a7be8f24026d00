from __future__ import annotations

import time
from typing import Protocol


class Clock(Protocol):
    """Monotonic millisecond clock.

    The trial engine never reads real time directly; every timestamp, latency
    and timer deadline is taken from an injected clock.
    """

    def now_ms(self) -> float:
        """Return monotonic milliseconds."""


class RealClock:
    """Production clock backed by time.monotonic()."""

    def now_ms(self) -> float:
        return time.monotonic() * 1000.0

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Hashable

from .clock import Clock

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TimerHandle:
    key: Hashable
    due_at_ms: float
    seq: int


class TimerTable:
    """Named one-shot deadlines on an injected clock.

    At most one timer exists per key; scheduling a key again replaces the
    previous deadline. Nothing fires by itself: the owner drains due timers
    with ``pop_due`` from its own tick, which keeps every pending callback
    cancellable from this one table.
    """

    def __init__(self, clock: Clock) -> None:
        self._clock = clock
        self._timers: dict[Hashable, TimerHandle] = {}
        self._seq = 0

    def __len__(self) -> int:
        return len(self._timers)

    def schedule(self, key: Hashable, delay_ms: float, *, from_ms: float | None = None) -> TimerHandle:
        if delay_ms < 0:
            raise ValueError("delay_ms must be >= 0")
        base = self._clock.now_ms() if from_ms is None else float(from_ms)
        self._seq += 1
        handle = TimerHandle(key=key, due_at_ms=base + float(delay_ms), seq=self._seq)
        self._timers[key] = handle
        logger.debug("timer %s scheduled for t=%.1fms", key, handle.due_at_ms)
        return handle

    def cancel(self, key: Hashable) -> bool:
        handle = self._timers.pop(key, None)
        if handle is not None:
            logger.debug("timer %s cancelled", key)
        return handle is not None

    def cancel_all(self) -> int:
        n = len(self._timers)
        self._timers.clear()
        if n:
            logger.debug("cancelled %d pending timer(s)", n)
        return n

    def pending(self, key: Hashable) -> bool:
        return key in self._timers

    def due_at(self, key: Hashable) -> float | None:
        handle = self._timers.get(key)
        return None if handle is None else handle.due_at_ms

    def pop_due(self, now_ms: float | None = None) -> TimerHandle | None:
        """Remove and return the earliest expired timer, or None."""

        now = self._clock.now_ms() if now_ms is None else float(now_ms)
        due = [h for h in self._timers.values() if h.due_at_ms <= now]
        if not due:
            return None
        handle = min(due, key=lambda h: (h.due_at_ms, h.seq))
        del self._timers[handle.key]
        return handle

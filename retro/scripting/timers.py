"""
Clock-driven waits for asynchronous actions.

Named timers (set_timer / OnTimer / TimerActive) live in InterpreterState.
This module covers the other use of the clock: an Action that suspends its
chain until the interpreter clock reaches a due time (the Wait built-in,
or any host handler that wants "after N ms of game time").

The tick driver calls advance() after moving the clock; every wait whose
due time has been reached is resolved and its chain resumes on the next
pump of the event loop.
"""

import asyncio
from typing import List

from retro.logging import get_logger

log = get_logger('timers')


class ScheduledWait:
    """A pending wait resolved once the clock reaches due_time."""

    def __init__(self, due_time: float, future: asyncio.Future, label: str = ""):
        self.due_time = due_time
        self.future = future
        self.label = label


class WaitScheduler:
    """
    Hands out futures that resolve on the interpreter clock.

    Args:
        loop: Event loop the futures belong to
        clock: Zero-argument callable returning the current time (ms)
    """

    def __init__(self, loop: asyncio.AbstractEventLoop, clock):
        self._loop = loop
        self._clock = clock
        self._pending: List[ScheduledWait] = []

    def wait(self, duration_ms: float, label: str = "") -> asyncio.Future:
        """
        Get a future that resolves duration_ms after the current time.

        Non-positive durations resolve immediately (no suspension).
        """
        future = self._loop.create_future()
        if duration_ms <= 0:
            future.set_result(None)
            return future
        self._pending.append(ScheduledWait(self._clock() + duration_ms, future, label))
        return future

    def advance(self) -> int:
        """
        Resolve every wait whose due time has been reached.

        Returns:
            Number of waits resolved
        """
        now = self._clock()
        resolved = 0
        for scheduled in self._pending[:]:
            if scheduled.future.done():
                # Cancelled from outside (chain task cancelled)
                self._pending.remove(scheduled)
                continue
            if scheduled.due_time <= now:
                log.trace("Wait %s due at %.1f resolved at %.1f", scheduled.label, scheduled.due_time, now)
                scheduled.future.set_result(None)
                self._pending.remove(scheduled)
                resolved += 1
        return resolved

    def cancel_all(self) -> int:
        """Cancel every pending wait. Returns how many were cancelled."""
        count = 0
        for scheduled in self._pending:
            if not scheduled.future.done():
                scheduled.future.cancel()
                count += 1
        self._pending.clear()
        if count:
            log.debug("Cancelled %d pending wait(s)", count)
        return count

    @property
    def pending_count(self) -> int:
        return sum(1 for s in self._pending if not s.future.done())

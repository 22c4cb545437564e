# signal_wizard/generations.py
"""
Request generations and debouncing.

``RequestGenerations`` hands out monotonically increasing tokens; a response is
only applied when its token is still the latest one issued.

``Debouncer`` coalesces bursts of calls into one. A new trigger cancels a
timer that is still waiting, but never a callback that has already fired.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Set

logger = logging.getLogger(__name__)


class RequestGenerations:
    """Monotonic request tokens."""

    def __init__(self):
        self._latest = 0

    @property
    def latest(self) -> int:
        return self._latest

    def issue(self) -> int:
        """Start a new generation and return its token."""
        self._latest += 1
        return self._latest

    def is_current(self, token: int) -> bool:
        return token == self._latest

    def invalidate(self) -> None:
        """Make every outstanding token stale."""
        self._latest += 1


class Debouncer:
    """
    Fire an async callback once input has been quiet for ``delay`` seconds.

    Fired callbacks run as their own tasks, so a later ``trigger`` does not
    cancel them. ``close`` cancels both the pending timer and fired tasks.
    """

    def __init__(self, delay: float):
        self.delay = delay
        self._timer: Optional[asyncio.Task] = None
        self._running: Set[asyncio.Task] = set()

    @property
    def pending(self) -> bool:
        """Whether a timer is waiting to fire."""
        return self._timer is not None and not self._timer.done()

    @property
    def in_flight(self) -> int:
        return len(self._running)

    def trigger(self, callback: Callable[[], Awaitable[None]]) -> None:
        """Restart the quiet period; ``callback`` runs when it elapses."""
        if self.pending:
            self._timer.cancel()
        self._timer = asyncio.ensure_future(self._fire_after_delay(callback))

    async def _fire_after_delay(self, callback: Callable[[], Awaitable[None]]) -> None:
        await asyncio.sleep(self.delay)
        self._timer = None
        task = asyncio.ensure_future(callback())
        self._running.add(task)
        task.add_done_callback(self._running.discard)

    def cancel_pending(self) -> None:
        """Drop the waiting timer, leaving fired callbacks alone."""
        if self.pending:
            self._timer.cancel()
        self._timer = None

    def close(self) -> None:
        """Cancel everything; safe to call repeatedly."""
        self.cancel_pending()
        for task in list(self._running):
            task.cancel()
        self._running.clear()

    async def drain(self) -> None:
        """Wait for the pending timer and any fired callbacks to finish."""
        while self.pending or self._running:
            waiting = [t for t in (self._timer,) if t is not None] + list(self._running)
            await asyncio.gather(*waiting, return_exceptions=True)

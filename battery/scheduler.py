import heapq
import itertools
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)


@dataclass(order=True)
class Timer:
    """One scheduled callback. Ordered by due time, then by insertion."""
    when_ms: int
    seq: int
    callback: Callable[..., None] = field(compare=False)
    args: Tuple[Any, ...] = field(compare=False, default=())
    cancelled: bool = field(compare=False, default=False)

    def cancel(self) -> None:
        self.cancelled = True


class Scheduler:
    """
    Cooperative timer queue on a millisecond clock that only moves when told to.

    The host (pygame loop, test) calls advance_to() with the current time;
    every timer that is due fires in (due time, insertion) order and sees
    ``now_ms`` equal to its own due time.
    """

    def __init__(self, now_ms: int = 0) -> None:
        self._now_ms = now_ms
        self._queue: List[Timer] = []
        self._counter = itertools.count()

    @property
    def now_ms(self) -> int:
        return self._now_ms

    def call_at(self, when_ms: int, callback: Callable[..., None], *args: Any) -> Timer:
        """Schedule callback(*args) at an absolute time; times in the past fire on the next advance."""
        timer = Timer(max(when_ms, self._now_ms), next(self._counter), callback, args)
        heapq.heappush(self._queue, timer)
        return timer

    def call_later(self, delay_ms: int, callback: Callable[..., None], *args: Any) -> Timer:
        """Schedule callback(*args) delay_ms after the current clock reading."""
        return self.call_at(self._now_ms + max(0, delay_ms), callback, *args)

    def cancel(self, timer: Timer) -> None:
        """Mark a timer dead. It stays in the heap and is skipped when popped."""
        timer.cancel()

    def pending(self) -> int:
        """Number of live timers."""
        return sum(1 for t in self._queue if not t.cancelled)

    def next_due_ms(self) -> Optional[int]:
        """Due time of the earliest live timer, or None when nothing is scheduled."""
        for timer in sorted(self._queue):
            if not timer.cancelled:
                return timer.when_ms
        return None

    def advance_to(self, now_ms: int) -> int:
        """Fire every timer due at or before ``now_ms``. Returns the number fired."""
        if now_ms < self._now_ms:
            logger.debug("Ignoring clock step backwards (%s < %s)", now_ms, self._now_ms)
            now_ms = self._now_ms
        fired = 0
        while self._queue and self._queue[0].when_ms <= now_ms:
            timer = heapq.heappop(self._queue)
            if timer.cancelled:
                continue
            self._now_ms = timer.when_ms
            timer.callback(*timer.args)
            fired += 1
        self._now_ms = now_ms
        return fired

    def advance(self, delta_ms: int) -> int:
        """Move the clock forward by delta_ms, see advance_to()."""
        return self.advance_to(self._now_ms + delta_ms)

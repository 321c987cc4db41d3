from __future__ import annotations

import logging
import time
from typing import Any, Callable, Protocol

logger = logging.getLogger("debounce")


class Cancellable(Protocol):
    def cancel(self) -> Any: ...


Scheduler = Callable[[int, Callable[[], None]], Cancellable]


class ScheduledCall:
    def __init__(self, due: float, callback: Callable[[], None]) -> None:
        self.due = due
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class LoopScheduler:
    """Delayed calls that run only when the owning loop calls ``run_due``.

    This is the scheduler used when the host injects none (a Tk host passes
    its ``after`` instead). No threads are started: callbacks run on the thread
    that drains the queue.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._calls: list[ScheduledCall] = []

    def __call__(self, delay_ms: int, callback: Callable[[], None]) -> ScheduledCall:
        call = ScheduledCall(self._clock() + max(0, int(delay_ms)) / 1000.0, callback)
        self._calls.append(call)
        return call

    @property
    def pending_count(self) -> int:
        return sum(1 for call in self._calls if not call.cancelled)

    def run_due(self) -> int:
        """Run every live call whose delay has elapsed. Returns how many ran."""
        now = self._clock()
        due = [call for call in self._calls if not call.cancelled and call.due <= now]
        self._calls = [call for call in self._calls if not call.cancelled and call.due > now]
        for call in due:
            call.callback()
        return len(due)


class Debouncer:
    """Run ``callback`` once after triggers stop arriving for ``delay_ms``.

    Each trigger drops the pending one before it fires, so only the latest
    arguments are ever passed to the callback. Event-loop hosts pass their own
    ``schedule(delay_ms, fn) -> handle`` (for example a Tk ``after`` wrapper);
    without one, calls wait in a ``LoopScheduler`` until the caller drains it.
    """

    def __init__(
        self,
        callback: Callable[..., None],
        *,
        delay_ms: int = 500,
        schedule: Scheduler | None = None,
    ) -> None:
        self.callback = callback
        self.delay_ms = max(0, int(delay_ms))
        self.scheduler: Scheduler = schedule if schedule is not None else LoopScheduler()
        self._handle: Cancellable | None = None
        self._pending: tuple[tuple[Any, ...], dict[str, Any]] | None = None
        self._generation = 0

    @property
    def pending(self) -> bool:
        return self._pending is not None

    def trigger(self, *args: Any, **kwargs: Any) -> None:
        self.cancel()
        self._generation += 1
        generation = self._generation
        self._pending = (args, kwargs)
        self._handle = self.scheduler(self.delay_ms, lambda: self._fire(generation))

    def _fire(self, generation: int) -> None:
        # a superseded handle may still fire if its scheduler ignored cancel()
        if generation != self._generation or self._pending is None:
            return
        args, kwargs = self._pending
        self._pending = None
        self._handle = None
        self.callback(*args, **kwargs)

    def flush(self) -> bool:
        """Run the pending call now. Returns False when nothing was pending."""
        if self._pending is None:
            return False
        if self._handle is not None:
            self._handle.cancel()
        self._fire(self._generation)
        return True

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            logger.debug("Dropped superseded debounced call.")
        self._handle = None
        self._pending = None

"""Single-shot timer facilities.

The registry only needs three things from a timer: a clock, a way to arm a
fire-once callback after a delay, and a way to disarm it again. Two
implementations ship here:

- LoopTimer: wall-clock timers on an asyncio event loop (``loop.call_later``)
- VirtualTimer: a simulated clock for deterministic tests, advanced by hand

The timer facility is also the execution context of fired callbacks, so it
owns the policy for errors raised by them.
"""
import asyncio
import heapq
import inspect
import itertools
from dataclasses import dataclass, field
from typing import Any, Callable, Protocol

from loguru import logger

from .types import now_ms

logger = logger.bind(module="scheduler.timer")

OnFire = Callable[[], Any]
ErrorHandler = Callable[[BaseException], None]


# ============== Protocol Definitions ==============

class TimerFacility(Protocol):
    """Protocol for single-shot timers."""

    def now_ms(self) -> int:
        """Current time of this facility's clock, in milliseconds."""
        ...

    def arm(self, delay_ms: int, on_fire: OnFire) -> Any:
        """Call ``on_fire`` once after ``delay_ms`` and return a handle for it."""
        ...

    def disarm(self, handle: Any) -> None:
        """Stop an armed timer. Must be safe on fired or already disarmed handles."""
        ...


def log_callback_error(exc: BaseException) -> None:
    """Default error policy for LoopTimer: log and keep the loop running."""
    logger.opt(exception=exc).error(f"Scheduled callback failed: {exc!r}")


# ============== Event Loop Timer ==============

class LoopTimer:
    """Timer facility backed by an asyncio event loop.

    Callbacks run on the loop thread, one at a time. Errors raised by a
    callback, or by the awaitable it returns, go to ``on_error``.
    """

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop | None = None,
        on_error: ErrorHandler | None = None,
    ):
        """Initialize timer.

        Args:
            loop: Event loop to arm timers on (defaults to the running loop)
            on_error: Called with any exception raised by a fired callback
        """
        self._loop = loop
        self.on_error = on_error or log_callback_error
        self._background: set[asyncio.Future] = set()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now_ms(self) -> int:
        return now_ms()

    def arm(self, delay_ms: int, on_fire: OnFire) -> asyncio.TimerHandle:
        delay_s = max(0, delay_ms) / 1000
        return self.loop.call_later(delay_s, self._dispatch, on_fire)

    def disarm(self, handle: Any) -> None:
        # TimerHandle.cancel() is a no-op once fired or cancelled
        if handle is not None:
            handle.cancel()

    def _dispatch(self, on_fire: OnFire) -> None:
        try:
            result = on_fire()
        except Exception as e:
            self.on_error(e)
            return

        if inspect.isawaitable(result):
            future = asyncio.ensure_future(result, loop=self.loop)
            self._background.add(future)
            future.add_done_callback(self._on_background_done)

    def _on_background_done(self, future: asyncio.Future) -> None:
        self._background.discard(future)
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            self.on_error(exc)


# ============== Virtual Timer ==============

@dataclass(order=True)
class VirtualHandle:
    """Handle returned by VirtualTimer.arm."""
    due_ms: int
    seq: int
    on_fire: OnFire = field(compare=False, repr=False)
    cancelled: bool = field(default=False, compare=False)
    fired: bool = field(default=False, compare=False)

    @property
    def active(self) -> bool:
        return not (self.cancelled or self.fired)


class VirtualTimer:
    """Deterministic timer facility driven by a simulated clock.

    Time only moves when ``advance``/``advance_to``/``run_all`` is called.
    Fired callbacks run on the caller's stack; the first error raised by a
    callback propagates out of the advance call. The failing timer is consumed
    and later timers stay pending for the next advance.
    """

    def __init__(self, start_ms: int | None = None):
        self._now = now_ms() if start_ms is None else int(start_ms)
        self._queue: list[VirtualHandle] = []
        self._seq = itertools.count()

    def now_ms(self) -> int:
        return self._now

    def arm(self, delay_ms: int, on_fire: OnFire) -> VirtualHandle:
        handle = VirtualHandle(
            due_ms=self._now + max(0, int(delay_ms)),
            seq=next(self._seq),
            on_fire=on_fire,
        )
        heapq.heappush(self._queue, handle)
        return handle

    def disarm(self, handle: Any) -> None:
        if not isinstance(handle, VirtualHandle) or not handle.active:
            return
        handle.cancelled = True
        # Drop it from the queue right away so disarmed timers never pile up
        try:
            self._queue.remove(handle)
        except ValueError:
            return
        heapq.heapify(self._queue)

    @property
    def pending(self) -> int:
        """Number of armed timers that have neither fired nor been disarmed."""
        return len(self._queue)

    def next_due_ms(self) -> int | None:
        """Due time of the earliest armed timer, if any."""
        return self._queue[0].due_ms if self._queue else None

    def advance(self, ms: int = 0) -> int:
        """Move the clock forward by ``ms`` and fire everything due.

        Returns:
            Number of timers fired
        """
        return self.advance_to(self._now + max(0, int(ms)))

    def advance_to(self, target_ms: int) -> int:
        """Move the clock to ``target_ms`` (never backwards) and fire everything due.

        Timers armed by a callback with a due time inside the window fire in
        the same call. Ties fire in arming order.
        """
        fired = 0
        while self._queue and self._queue[0].due_ms <= target_ms:
            handle = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self._now = max(self._now, handle.due_ms)
            handle.fired = True
            fired += 1
            handle.on_fire()
        self._now = max(self._now, int(target_ms))
        return fired

    def run_all(self) -> int:
        """Advance until no armed timers remain. Returns number of timers fired."""
        fired = 0
        while self._queue:
            fired += self.advance_to(self._queue[0].due_ms)
        return fired

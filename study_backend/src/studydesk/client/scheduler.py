from __future__ import annotations

import asyncio
import heapq
import itertools
from abc import ABC, abstractmethod
from typing import Any, Callable, Coroutine, List, Optional, Set, Tuple


# PUBLIC_INTERFACE
class TimerHandle(ABC):
    """A scheduled callback that can still be cancelled until it fires."""

    @abstractmethod
    def cancel(self) -> None:
        """Prevent the callback from running. No-op once it has fired."""


# PUBLIC_INTERFACE
class Scheduler(ABC):
    """Source of delayed callbacks for debounce and status timers, and of background writes."""

    @abstractmethod
    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        """Run callback once, `delay` seconds from now, on the scheduler's loop."""

    @abstractmethod
    def spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        """Run a coroutine on the scheduler's loop without waiting for it."""


class _AsyncioHandle(TimerHandle):
    def __init__(self, handle: asyncio.TimerHandle) -> None:
        self._handle = handle

    def cancel(self) -> None:
        self._handle.cancel()


class AsyncioScheduler(Scheduler):
    """Scheduler backed by an asyncio event loop (the running loop unless one is given)."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop
        self._tasks: Set[asyncio.Task] = set()

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        return _AsyncioHandle(self._get_loop().call_later(delay, callback))

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        # The loop only keeps weak references to tasks
        task = self._get_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)


class _ManualHandle(TimerHandle):
    def __init__(self) -> None:
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler(Scheduler):
    """
    Deterministic scheduler for tests: time only moves when advance() is called.
    Callbacks scheduled while advancing run in the same call if they fall due.

    spawn() runs the coroutine to completion immediately. That only works for
    coroutines that never suspend, such as writes to the in-memory store.
    """

    def __init__(self) -> None:
        self.now = 0.0
        self._seq = itertools.count()
        self._queue: List[Tuple[float, int, _ManualHandle, Callable[[], None]]] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        handle = _ManualHandle()
        heapq.heappush(self._queue, (self.now + max(delay, 0.0), next(self._seq), handle, callback))
        return handle

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        try:
            coro.send(None)
        except StopIteration:
            return
        coro.close()
        raise RuntimeError("ManualScheduler cannot run a coroutine that suspends")

    @property
    def pending(self) -> int:
        return sum(1 for _, _, h, _ in self._queue if not h.cancelled)

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while self._queue and self._queue[0][0] <= target:
            due, _, handle, callback = heapq.heappop(self._queue)
            self.now = due
            if not handle.cancelled:
                handle.cancelled = True
                callback()
        self.now = target

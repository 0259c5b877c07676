"""
Request coalescing and bounded concurrency

RequestCoalescer guarantees three things for outbound calls:

1. At most one call per key is in flight. Callers asking for a key that is
   already running join the existing call and receive the same result (or
   the same exception).
2. No more than max_concurrent calls run at once across all keys.
3. Calls waiting for a slot start in submission order (FIFO).

The in-flight entry for a key is removed in the same step the call settles,
so a later request for that key always starts a fresh call. Nothing is
cached here; caching is the HTTP client's job.

Each caller waits on the shared task through asyncio.shield, so one caller
being cancelled or aborted does not disturb the others. When the last
waiter leaves before the call settles, the call itself is cancelled.
"""

import asyncio
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Dict, Optional

from .abort import AbortSignal
from ..utils.logger import get_logger


TaskFactory = Callable[[], Awaitable[Any]]


class _InFlight:
    """Shared task for one key plus the number of callers waiting on it"""

    def __init__(self, task: asyncio.Task):
        self.task = task
        self.waiters = 0


class RequestCoalescer:
    """
    Deduplicates identical in-flight requests and bounds concurrency

    Attributes:
        max_concurrent: Maximum number of calls running at once
    """

    def __init__(self, max_concurrent: int = 4):
        """
        Initialize an idle coalescer

        Args:
            max_concurrent: Maximum number of calls running at once
        """
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")

        self.max_concurrent = max_concurrent
        self._in_flight: Dict[str, _InFlight] = {}
        self._waiting: Deque[asyncio.Future] = deque()
        self._running = 0
        self.logger = get_logger(__name__)

    @property
    def running(self) -> int:
        """Number of calls currently holding a slot"""
        return self._running

    @property
    def pending(self) -> int:
        """Number of calls waiting for a slot"""
        return sum(1 for fut in self._waiting if not fut.done())

    def is_in_flight(self, key: str) -> bool:
        return key in self._in_flight

    async def run(self, key: str, factory: TaskFactory, abort_signal: Optional[AbortSignal] = None) -> Any:
        """
        Run factory for key, or join the call already running for key

        Args:
            key: Request identity (method, url and normalized params)
            factory: Zero-argument coroutine function performing the call
            abort_signal: Optional signal that stops this caller waiting

        Returns:
            Result of the shared call

        Raises:
            Whatever the shared call raised, or RequestAborted if this caller
            aborted first
        """
        entry = self._in_flight.get(key)
        if entry is None:
            task = asyncio.get_running_loop().create_task(self._execute(key, factory))
            entry = _InFlight(task)
            self._in_flight[key] = entry
        else:
            self.logger.debug(f"Joining in-flight request: {key}")

        entry.waiters += 1
        try:
            if abort_signal is not None:
                # race() never cancels a future it did not create
                return await abort_signal.race(entry.task)
            return await asyncio.shield(entry.task)
        finally:
            entry.waiters -= 1
            if entry.waiters == 0 and not entry.task.done():
                # Nobody is left to receive the result
                self._forget(key, entry.task)
                entry.task.cancel()

    def _forget(self, key: str, task: Optional[asyncio.Task]) -> None:
        entry = self._in_flight.get(key)
        if entry is not None and entry.task is task:
            del self._in_flight[key]

    async def _execute(self, key: str, factory: TaskFactory) -> Any:
        try:
            await self._acquire_slot()
            try:
                return await factory()
            finally:
                self._release_slot()
        finally:
            self._forget(key, asyncio.current_task())

    async def _acquire_slot(self) -> None:
        if self._running < self.max_concurrent and not self._waiting:
            self._running += 1
            return

        slot = asyncio.get_running_loop().create_future()
        self._waiting.append(slot)
        try:
            await slot
        except asyncio.CancelledError:
            if slot.done() and not slot.cancelled():
                # A slot was handed over just before the cancellation landed
                self._release_slot()
            else:
                try:
                    self._waiting.remove(slot)
                except ValueError:
                    pass
            raise

    def _release_slot(self) -> None:
        # Hand the slot straight to the oldest live waiter; the running
        # count only drops when nobody is waiting
        while self._waiting:
            slot = self._waiting.popleft()
            if not slot.done():
                slot.set_result(None)
                return
        self._running -= 1

"""
Cancellation handle for UI-initiated requests

The collaborator UI creates one AbortSignal per search or resolution and
calls abort() when the request is superseded (a new query was typed, the
screen was left). Anything awaiting through the signal raises
RequestAborted, which every layer treats as a silent outcome.
"""

import asyncio
from typing import Awaitable, Optional, TypeVar

from ..exceptions import RequestAborted


T = TypeVar('T')


class AbortSignal:
    """One-shot abort flag that awaitables can be raced against"""

    def __init__(self):
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    @property
    def aborted(self) -> bool:
        return self._event.is_set()

    def abort(self, reason: str = "Request aborted") -> None:
        """Trip the signal; later calls are ignored"""
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    def raise_if_aborted(self) -> None:
        if self.aborted:
            raise RequestAborted(self.reason or "Request aborted")

    async def wait(self) -> None:
        await self._event.wait()

    async def race(self, awaitable: Awaitable[T]) -> T:
        """
        Await awaitable unless the signal trips first

        A future passed in is left running when the signal wins, so callers
        that share it keep their result. A bare coroutine is wrapped in a task
        owned by this call and cancelled.

        Args:
            awaitable: Future, task or coroutine to wait for

        Returns:
            The awaitable's result

        Raises:
            RequestAborted: If the signal tripped first
        """
        owned = not asyncio.isfuture(awaitable)
        if self.aborted:
            if owned and asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise RequestAborted(self.reason or "Request aborted")

        future = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({future, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            if owned:
                future.cancel()
            raise
        finally:
            waiter.cancel()

        if future.done():
            return future.result()

        if owned:
            future.cancel()
        raise RequestAborted(self.reason or "Request aborted")

"""Cooperative cancellation signal shared by one exchange."""

import asyncio
import logging
from typing import Awaitable, Optional, TypeVar

from .errors import cancelled_error

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancelToken:
    """A one-shot cancellation flag polled by in-flight operations.

    The loop and the retry controller check ``raise_if_cancelled()`` at their
    own boundaries. Providers wrap network I/O in ``run()`` so a request that
    is still waiting on the transport is abandoned as soon as the token fires.
    """

    def __init__(self):
        self._event = asyncio.Event()
        self._reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled by caller") -> None:
        if not self._event.is_set():
            logger.debug("Cancellation requested: %s", reason)
            self._reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def raise_if_cancelled(self) -> None:
        """Raise ``ChatError(CANCELLED)`` when the token has been cancelled."""
        if self._event.is_set():
            raise cancelled_error()

    async def wait(self) -> None:
        await self._event.wait()

    async def sleep(self, delay: float) -> None:
        """Sleep for ``delay`` seconds, waking early and raising if cancelled."""
        self.raise_if_cancelled()
        try:
            await asyncio.wait_for(self._event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return
        raise cancelled_error()

    async def run(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless the token fires first.

        On cancellation the underlying task is cancelled, which closes any open
        HTTP stream, and ``ChatError(CANCELLED)`` is raised.
        """
        if self.cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise cancelled_error()
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task.done():
            return task.result()

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        raise cancelled_error()

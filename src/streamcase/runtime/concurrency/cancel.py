"""Cooperative cancellation for stream pipelines.

A CancelToken is created once per pipeline and handed to every stage.
Each suspension point awaits through ``token.guard(...)``, which races the
awaited operation against the token: once the token fires, the waiter is
released immediately and the operation itself is cancelled best-effort.

Example:
    >>> token = CancelToken()
    >>> stream = from_array(range(10), delay=1.0, token=token)
    >>> token.cancel("shutdown")  # any pending pull returns within one loop tick
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from dataclasses import dataclass, field
from typing import TypeVar

from streamcase.foundation.errors import StreamCancelled

T = TypeVar("T")


@dataclass(slots=True)
class CancelToken:
    """One-shot cancellation signal shared by the stages of a pipeline.

    Attributes:
        reason: Optional text given to cancel(), reported by StreamCancelled
    """

    reason: str | None = None
    _event: asyncio.Event = field(default_factory=asyncio.Event, repr=False)

    @property
    def cancelled(self) -> bool:
        """Whether cancel() was called."""
        return self._event.is_set()

    def cancel(self, reason: str | None = None) -> bool:
        """Fire the token. Returns False if it had already fired."""
        if self._event.is_set():
            return False
        self.reason = reason
        self._event.set()
        return True

    async def wait(self) -> None:
        """Suspend until the token fires."""
        await self._event.wait()

    def check(self) -> None:
        """Raise StreamCancelled if the token has fired."""
        if self._event.is_set():
            raise StreamCancelled.create(self.reason or "cancelled")

    async def guard(self, aw: Awaitable[T]) -> T:
        """Await ``aw`` unless the token fires first.

        Raises:
            StreamCancelled: The token fired before ``aw`` completed. ``aw``
                is cancelled and its eventual result discarded.
        """
        if self._event.is_set():
            if isinstance(aw, asyncio.Future):
                abandon(aw)
            else:
                _close(aw)
            self.check()
        task = asyncio.ensure_future(aw)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait((task, waiter), return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            abandon(task)
            raise
        finally:
            waiter.cancel()
        if task in done:
            return task.result()
        abandon(task)
        raise StreamCancelled.create(self.reason or "cancelled")


def abandon(task: asyncio.Future[object]) -> None:
    """Cancel a task without waiting for it, discarding whatever it ends with.

    Used when a producer may not honour cancellation promptly: the consumer
    moves on and the late result (or error) is dropped on arrival.
    """
    if not task.done():
        task.cancel()
    task.add_done_callback(_discard)


def _discard(task: asyncio.Future[object]) -> None:
    if not task.cancelled():
        task.exception()


def _close(aw: Awaitable[object]) -> None:
    """Close an un-awaited coroutine so it does not warn on collection."""
    if (close := getattr(aw, "close", None)) is not None:
        close()

"""Per-pull deadline for streams.

Turns a stalled producer into a single terminal TimeoutEvent instead of a
consumer that hangs forever.

Example:
    >>> guarded = with_timeout(slow_source, timeout=5.0)
    >>> async for item in guarded:
    ...     if isinstance(item, TimeoutEvent):
    ...         print(item.message)  # "Timeout after 5000ms", always the last item
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterable, AsyncIterator
from typing import Generic, TypeVar

from streamcase.foundation.config import get_settings
from streamcase.io.streaming import TimeoutEvent
from streamcase.runtime.concurrency.cancel import abandon
from streamcase.runtime.observability import get_logger

from .base import Stream

T = TypeVar("T")

_log = get_logger("streamcase.timeout")


class TimeoutGuard(Generic[T]):
    """Races each upstream pull against a deadline armed when that pull begins.

    If upstream wins, the timer is dropped and re-armed on the next pull. If
    the deadline wins, the pending pull is cancelled and abandoned (a late
    result is discarded), upstream is closed, one TimeoutEvent is yielded and
    the guard ends. A timeout is never retried.

    Attributes:
        timeout: Seconds allowed per pull
        deadline: Loop time at which the current pull expires (None when idle)
        timed_out: Whether the guard has fired
    """

    __slots__ = ("_upstream", "timeout", "deadline", "timed_out")

    def __init__(self, upstream: Stream[T], timeout: float) -> None:
        if timeout <= 0:
            raise ValueError(f"timeout must be > 0, got {timeout}")
        self._upstream = upstream
        self.timeout = timeout
        self.deadline: float | None = None
        self.timed_out = False

    def __aiter__(self) -> AsyncIterator[T | TimeoutEvent]:
        return self._run()

    async def _run(self) -> AsyncIterator[T | TimeoutEvent]:
        upstream = self._upstream
        loop = asyncio.get_running_loop()
        try:
            while True:
                started = loop.time()
                self.deadline = started + self.timeout
                pending = asyncio.ensure_future(upstream.pull())
                try:
                    done, _ = await asyncio.wait((pending,), timeout=self.deadline - loop.time())
                except asyncio.CancelledError:
                    abandon(pending)
                    raise
                self.deadline = None
                if not done:
                    abandon(pending)
                    self.timed_out = True
                    elapsed = loop.time() - started
                    _log.warning("stream timed out", stream=upstream.name, timeout=self.timeout,
                                 elapsed=round(elapsed, 4))
                    yield TimeoutEvent(timeout=self.timeout, elapsed=elapsed)
                    return
                result = pending.result()
                if result.done:
                    return
                yield result.value  # type: ignore[misc]
        finally:
            await upstream.aclose()


def with_timeout(stream: Stream[T] | AsyncIterable[T], timeout: float | None = None) -> Stream[T | TimeoutEvent]:
    """Bound every pull on ``stream`` by ``timeout`` seconds.

    Args:
        stream: Upstream stream
        timeout: Seconds allowed per pull (default: settings.stream.default_timeout)

    Raises:
        ValueError: ``timeout`` is not positive (raised immediately)
    """
    src = Stream.of(stream)
    guard = TimeoutGuard(src, get_settings().stream.default_timeout if timeout is None else timeout)
    return Stream(guard, token=src.token, name=src.name, finite=src.finite)

"""Pull-based stream handle over an async producer.

A Stream wraps any async iterable and exposes a single-consumer ``pull()``
that returns a PullResult. Streams are also async iterators, so they can be
consumed with ``async for`` and handed to any code that expects one.

Example:
    >>> async def numbers():
    ...     for i in range(3):
    ...         yield i
    >>> stream = Stream(numbers(), name="numbers", finite=True)
    >>> await stream.pull()
    PullResult(done=False, value=0, signal=None, error=None)
    >>> [x async for x in stream]
    [1, 2]
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterable, AsyncIterator, Awaitable, Callable
from enum import StrEnum
from typing import TYPE_CHECKING, Generic, TypeVar

from streamcase.foundation.errors import ConcurrentPullError, PipelineError, StreamCancelled
from streamcase.io.streaming import PullResult, Signal

if TYPE_CHECKING:
    from streamcase.io.streaming import TimeoutEvent
    from streamcase.runtime.concurrency.cancel import CancelToken

T = TypeVar("T")
U = TypeVar("U")

_EXHAUSTED = object()


class ErrorMode(StrEnum):
    """How per-item failures travel through a pipeline."""
    PROPAGATE = "propagate"  # First failure aborts the pipeline
    RESILIENT = "resilient"  # Failures are reported inline and the stream continues


class Stream(Generic[T]):
    """Single-pass, possibly-infinite sequence produced on demand.

    Invariants:
        - At most one pull is outstanding; a concurrent pull raises ConcurrentPullError.
        - Once exhausted, every further pull returns the same terminal result.
        - A producer failure surfaces once as PipelineError, then the stream is exhausted.

    Attributes:
        token: Cancel token shared with derived streams (None = not cancellable)
        name: Optional label, carried into merge tags and log entries
        finite: True if known finite, False if known infinite, None if unknown
    """

    __slots__ = ("_source", "token", "name", "finite", "_pulling", "_inflight", "_end", "_closed")

    def __init__(
        self,
        source: AsyncIterable[T],
        *,
        token: CancelToken | None = None,
        name: str | None = None,
        finite: bool | None = None,
    ) -> None:
        self._source: AsyncIterator[T] = aiter(source)
        self.token = token
        self.name = name
        self.finite = finite
        self._pulling = False
        self._inflight: asyncio.Future[object] | None = None
        self._end: PullResult[T] | None = None
        self._closed = False

    @classmethod
    def of(
        cls,
        source: Stream[T] | AsyncIterable[T],
        *,
        token: CancelToken | None = None,
        name: str | None = None,
        finite: bool | None = None,
    ) -> Stream[T]:
        """Return ``source`` itself if it is already a Stream, else wrap it."""
        if isinstance(source, Stream):
            return source
        return cls(source, token=token, name=name, finite=finite)

    @property
    def exhausted(self) -> bool:
        return self._end is not None

    @property
    def pulling(self) -> bool:
        """Whether a pull is currently outstanding."""
        return self._pulling

    async def pull(self) -> PullResult[T]:
        """Request the next item, suspending until it is ready or the stream ends.

        Raises:
            ConcurrentPullError: Another pull on this stream has not returned yet
            PipelineError: The producer failed (propagating mode)
        """
        if self._end is not None:
            return self._end
        if self._pulling:
            raise ConcurrentPullError.create("pull() called while another pull is outstanding", stream_name=self.name)
        self._pulling = True
        try:
            if self.token is None:
                value = await _advance(self._source)
            else:
                self.token.check()
                self._inflight = task = asyncio.ensure_future(_advance(self._source))
                value = await self.token.guard(task)
        except StreamCancelled:
            return self._finish(PullResult.end(Signal.CANCELLED))
        except Exception as exc:
            self._finish(PullResult.end(Signal.ERROR, exc))
            raise PipelineError.wrap(exc, stream_name=self.name)
        finally:
            self._pulling = False
        if value is _EXHAUSTED:
            return self._finish(PullResult.end(Signal.COMPLETED))
        return PullResult.item(value)  # type: ignore[arg-type]

    async def aclose(self) -> None:
        """Release the producer.

        If a pull is still in flight (e.g. abandoned by a timeout) the
        producer is left to the cancellation already delivered to it.
        """
        if self._closed:
            return
        self._closed = True
        if self._end is None:
            self._end = PullResult.end(Signal.CANCELLED)
        if self._pulling or (self._inflight is not None and not self._inflight.done()):
            return
        if (close := getattr(self._source, "aclose", None)) is not None:
            await close()

    def _finish(self, result: PullResult[T]) -> PullResult[T]:
        self._end = result
        return result

    def __aiter__(self) -> AsyncIterator[T]:
        return self

    async def __anext__(self) -> T:
        result = await self.pull()
        if result.done:
            raise StopAsyncIteration
        return result.value  # type: ignore[return-value]

    def __repr__(self) -> str:
        state = "exhausted" if self.exhausted else ("pulling" if self._pulling else "idle")
        return f"Stream(name={self.name!r}, finite={self.finite}, {state})"

    # Fluent combinators

    def map(self, transform: Callable[[T], U | Awaitable[U]], *, may_fail: bool = False) -> Stream[U]:
        """Apply ``transform`` to each item (see map_stream)."""
        from .combinators import map_stream
        return map_stream(self, transform, may_fail=may_fail)  # type: ignore[return-value]

    def filter(self, predicate: Callable[[T], bool | Awaitable[bool]]) -> Stream[T]:
        """Keep items matching ``predicate`` (see filter_stream)."""
        from .combinators import filter_stream
        return filter_stream(self, predicate)

    def take(self, limit: int) -> Stream[T]:
        """Yield at most ``limit`` items (see take_stream)."""
        from .combinators import take_stream
        return take_stream(self, limit)

    def with_timeout(self, timeout: float | None = None) -> Stream[T | TimeoutEvent]:
        """Bound every pull by ``timeout`` seconds (see with_timeout)."""
        from .timeout import with_timeout
        return with_timeout(self, timeout)

    def encode(self, codec: str = "json") -> Stream[bytes]:
        """Frame each item as transport bytes (see encode_stream)."""
        from .combinators import encode_stream
        return encode_stream(self, codec)

    def collect(self, *, limit: int | None = None) -> Awaitable[list[T]]:
        """Drain into a list (see collect)."""
        from .combinators import collect
        return collect(self, limit=limit)


async def _advance(source: AsyncIterator[T]) -> T | object:
    """One producer step; exhaustion is reported as a sentinel, not an exception."""
    try:
        return await anext(source)
    except StopAsyncIteration:
        return _EXHAUSTED

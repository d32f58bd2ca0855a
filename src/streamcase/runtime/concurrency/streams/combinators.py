"""Stream sources, transforms and terminal operations.

Every combinator takes a Stream (or any async iterable) and returns a new
Stream sharing the upstream's cancel token, so one token.cancel() reaches
each stage of a pipeline.

Key Operations:
    - from_array: Paced source over an in-memory sequence
    - map_stream: 1:1 transform, propagating or resilient
    - filter_stream: Drop items failing a predicate
    - take_stream: Stop after n items (upstream is left running)
    - collect: Drain a finite stream into a list
    - encode_stream: Frame every item as JSON or msgpack bytes

Example:
    >>> evens = from_array(range(10)).filter(lambda x: x % 2 == 0).map(lambda x: x * 10)
    >>> await evens.take(3).collect()
    [0, 20, 40]
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import AsyncIterable, Awaitable, Callable, Iterable
from typing import TYPE_CHECKING, TypeVar

from streamcase.foundation.config import get_settings
from streamcase.foundation.errors import UnboundedStreamError
from streamcase.io.streaming import CodecType, Failure, Success, get_codec

from .base import ErrorMode, Stream

if TYPE_CHECKING:
    from streamcase.runtime.concurrency.cancel import CancelToken

T = TypeVar("T")
U = TypeVar("U")

__all__ = [
    "from_array",
    "map_stream",
    "filter_stream",
    "take_stream",
    "collect",
    "encode_stream",
]


def from_array(
    items: Iterable[T],
    delay: float | None = None,
    *,
    token: CancelToken | None = None,
    name: str | None = None,
) -> Stream[T]:
    """Create a finite stream over ``items``, sleeping ``delay`` seconds before each one.

    The items are snapshotted at call time, so later mutation of ``items``
    does not affect the stream.
    """
    delay = get_settings().stream.default_delay if delay is None else delay
    if delay < 0:
        raise ValueError(f"delay must be >= 0, got {delay}")
    data = list(items)

    async def produce():
        for item in data:
            if delay > 0:
                await asyncio.sleep(delay)
            yield item

    return Stream(produce(), token=token, name=name, finite=True)


def map_stream(
    stream: Stream[T] | AsyncIterable[T],
    transform: Callable[[T], U | Awaitable[U]],
    *,
    may_fail: bool = False,
    name: str | None = None,
) -> Stream[U] | Stream[Success[U] | Failure]:
    """Apply ``transform`` (sync or async) to each item in arrival order.

    Args:
        stream: Upstream stream
        transform: Function applied to every item
        may_fail: Resilient mode. Every item becomes Success(data, index) or
            Failure(error, index) and the stream continues past failures.
            When False a transform error aborts the pipeline with PipelineError.
    """
    src = Stream.of(stream)
    mode = ErrorMode.RESILIENT if may_fail else ErrorMode.PROPAGATE

    async def produce():
        index = 0
        try:
            while not (result := await src.pull()).done:
                try:
                    out = transform(result.value)  # type: ignore[arg-type]
                    if inspect.isawaitable(out):
                        out = await out
                except Exception as exc:
                    if mode is ErrorMode.PROPAGATE:
                        raise
                    yield Failure.from_exception(exc, index)
                else:
                    yield Success(out, index) if mode is ErrorMode.RESILIENT else out
                index += 1
        finally:
            await src.aclose()

    return Stream(produce(), token=src.token, name=name or src.name, finite=src.finite)


def filter_stream(
    stream: Stream[T] | AsyncIterable[T],
    predicate: Callable[[T], bool | Awaitable[bool]],
    *,
    name: str | None = None,
) -> Stream[T]:
    """Keep items for which ``predicate`` (sync or async) is truthy.

    One pull on the result may pull upstream many times; the caller just
    sees a single longer suspension. Predicate errors propagate.
    """
    src = Stream.of(stream)

    async def produce():
        try:
            while not (result := await src.pull()).done:
                keep = predicate(result.value)  # type: ignore[arg-type]
                if inspect.isawaitable(keep):
                    keep = await keep
                if keep:
                    yield result.value
        finally:
            await src.aclose()

    return Stream(produce(), token=src.token, name=name or src.name, finite=src.finite)


def take_stream(
    stream: Stream[T] | AsyncIterable[T],
    limit: int,
    *,
    name: str | None = None,
) -> Stream[T]:
    """Yield at most ``limit`` items, then end.

    The upstream is neither drained nor closed when the limit is reached:
    consumption simply stops. Producers holding real resources (sockets,
    file handles) should be closed by the caller with ``await upstream.aclose()``.
    """
    if limit < 0:
        raise ValueError(f"limit must be >= 0, got {limit}")
    src = Stream.of(stream)

    async def produce():
        count = 0
        while count < limit:
            result = await src.pull()
            if result.done:
                return
            count += 1
            yield result.value

    return Stream(produce(), token=src.token, name=name or src.name, finite=True)


def collect(stream: Stream[T] | AsyncIterable[T], *, limit: int | None = None) -> Awaitable[list[T]]:
    """Drain a finite stream into an ordered list.

    Validation happens before anything is awaited: a stream known to be
    infinite fails here, synchronously, rather than on first pull.

    Args:
        stream: Stream to drain
        limit: Max items accepted (default: settings.stream.collect_limit).
            Exceeding it raises UnboundedStreamError and closes the stream.

    Raises:
        UnboundedStreamError: The stream is marked infinite (``finite=False``)
        ValueError: ``limit`` is negative
    """
    src = Stream.of(stream)
    if src.finite is False:
        raise UnboundedStreamError.create("collect() requires a finite stream", stream_name=src.name)
    limit = get_settings().stream.collect_limit if limit is None else limit
    if limit is not None and limit < 0:
        raise ValueError(f"limit must be >= 0, got {limit}")
    return _drain(src, limit)


async def _drain(src: Stream[T], limit: int | None) -> list[T]:
    items: list[T] = []
    while not (result := await src.pull()).done:
        if limit is not None and len(items) >= limit:
            await src.aclose()
            raise UnboundedStreamError.create(f"stream produced more than {limit} items", stream_name=src.name)
        items.append(result.value)  # type: ignore[arg-type]
    return items


def encode_stream(
    stream: Stream[T] | AsyncIterable[T],
    codec: str | CodecType = CodecType.JSON,
    *,
    name: str | None = None,
) -> Stream[bytes]:
    """Frame every item for transport, one encoded message per item.

    Envelopes (Success, Failure, Tagged, TimeoutEvent, ControlledItem) are
    encoded through their own ``to_dict()``.

    Raises:
        KeyError: Unknown codec (raised immediately)
    """
    wire = get_codec(codec)
    return map_stream(stream, wire.encode, name=name)  # type: ignore[return-value]

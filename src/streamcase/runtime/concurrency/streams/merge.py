"""Fan-in of several streams into one.

Two scheduling policies are available; they are observably different:

    RACE (default)
        One pull is outstanding on every live source at all times. Each step
        waits for whichever pull resolves first, yields that item and
        immediately re-arms the source. Sources resolved in the same wakeup
        are yielded in source-index order. Fairness: every source's order is
        preserved and no ready source is kept waiting behind a slow one, but
        the interleaving across sources follows arrival time and is not a
        fixed schedule.

    ROUND_ROBIN
        Sources are polled 0, 1, ..., N-1 in a fixed cycle, skipping and
        dropping exhausted ones. Deterministic: a fast source waits for the
        slow ones, but no source waits more than one full cycle.

Example:
    >>> merged = merge_streams(users, orders, policy=MergePolicy.ROUND_ROBIN)
    >>> async for tagged in merged:
    ...     print(tagged.source, tagged.value)
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterable, AsyncIterator, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Generic, TypeVar

from streamcase.foundation.config import get_settings
from streamcase.foundation.errors import EmptyMergeError, PipelineError
from streamcase.io.streaming import PullResult, Tagged
from streamcase.runtime.concurrency.cancel import abandon
from streamcase.runtime.observability import get_logger

from .base import ErrorMode, Stream

if TYPE_CHECKING:
    from streamcase.runtime.concurrency.cancel import CancelToken

T = TypeVar("T")

_log = get_logger("streamcase.merge")


class MergePolicy(StrEnum):
    """Interleaving rule across merged sources."""
    RACE = "race"
    ROUND_ROBIN = "round_robin"


@dataclass(slots=True)
class _Source(Generic[T]):
    """One live entry of the source set."""
    index: int
    stream: Stream[T]
    pending: asyncio.Task[PullResult[T]] | None = field(default=None, repr=False)

    def arm(self) -> None:
        self.pending = asyncio.ensure_future(self.stream.pull())


class MergeScheduler(Generic[T]):
    """Drives the merged output from a set of live sources.

    A source stays in the live set until it signals done (or fails in
    resilient mode); removed sources are never polled again. The live set is
    only touched by the scheduler's own loop.
    """

    __slots__ = ("policy", "on_error", "_live")

    def __init__(
        self,
        streams: Sequence[Stream[T]],
        *,
        policy: MergePolicy = MergePolicy.RACE,
        on_error: ErrorMode = ErrorMode.PROPAGATE,
    ) -> None:
        self.policy = policy
        self.on_error = on_error
        self._live: dict[int, _Source[T]] = {i: _Source(i, s) for i, s in enumerate(streams)}

    @property
    def live(self) -> tuple[int, ...]:
        """Indices of sources that have not finished yet."""
        return tuple(self._live)

    def __aiter__(self) -> AsyncIterator[Tagged[T]]:
        return self._race() if self.policy is MergePolicy.RACE else self._round_robin()

    async def _race(self) -> AsyncIterator[Tagged[T]]:
        live = self._live
        try:
            for src in live.values():
                src.arm()
            while live:
                await asyncio.wait([s.pending for s in live.values()], return_when=asyncio.FIRST_COMPLETED)  # type: ignore[misc]
                ready = [s for s in live.values() if s.pending is not None and s.pending.done()]
                for src in ready:
                    try:
                        result = src.pending.result()  # type: ignore[union-attr]
                    except Exception as exc:
                        await self._fail(src, exc)
                        continue
                    if result.done:
                        self._drop(src)
                        continue
                    src.arm()
                    yield Tagged(src.index, result.value, src.stream.name)  # type: ignore[arg-type]
        finally:
            await self._shutdown()

    async def _round_robin(self) -> AsyncIterator[Tagged[T]]:
        live = self._live
        try:
            while live:
                for src in list(live.values()):
                    try:
                        result = await src.stream.pull()
                    except Exception as exc:
                        await self._fail(src, exc)
                        continue
                    if result.done:
                        self._drop(src)
                        continue
                    yield Tagged(src.index, result.value, src.stream.name)  # type: ignore[arg-type]
        finally:
            await self._shutdown()

    def _drop(self, src: _Source[T]) -> None:
        del self._live[src.index]
        src.pending = None

    async def _fail(self, src: _Source[T], exc: Exception) -> None:
        if self.on_error is ErrorMode.PROPAGATE:
            raise PipelineError.wrap(exc, stream_name=src.stream.name)
        _log.warning("merge source dropped", source=src.index, stream=src.stream.name, error=str(exc))
        self._drop(src)
        await src.stream.aclose()

    async def _shutdown(self) -> None:
        """Cancel outstanding pulls and close every source still live."""
        sources = list(self._live.values())
        self._live.clear()
        for src in sources:
            if src.pending is not None:
                abandon(src.pending)
        for src in sources:
            await src.stream.aclose()


def merge_streams(
    *streams: Stream[T] | AsyncIterable[T] | Sequence[Stream[T] | AsyncIterable[T]],
    policy: MergePolicy | str | None = None,
    on_error: ErrorMode | str | None = None,
    token: CancelToken | None = None,
    name: str | None = None,
) -> Stream[Tagged[T]]:
    """Merge several streams into one stream of Tagged items.

    Accepts streams as positional arguments or as a single list.

    Args:
        *streams: Sources to merge; plain async iterables are wrapped
        policy: RACE or ROUND_ROBIN (default: settings.stream.merge_policy)
        on_error: PROPAGATE fails the whole merge on the first source error;
            RESILIENT drops only the failing source
            (default: settings.stream.error_mode)
        token: Cancel token for the merged stream (default: first source token)
        name: Label for the merged stream

    Raises:
        EmptyMergeError: No streams were given (raised immediately)
    """
    if len(streams) == 1 and isinstance(streams[0], (list, tuple)):
        streams = tuple(streams[0])
    if not streams:
        raise EmptyMergeError.create("merge_streams() requires at least one stream", stream_name=name)
    settings = get_settings().stream
    sources = [Stream.of(s, token=token) for s in streams]  # type: ignore[arg-type]
    scheduler = MergeScheduler(
        sources,
        policy=MergePolicy(policy or settings.merge_policy),
        on_error=ErrorMode(on_error or settings.error_mode),
    )
    if token is None:
        token = next((s.token for s in sources if s.token is not None), None)
    if any(s.finite is False for s in sources):
        finite: bool | None = False
    else:
        finite = True if all(s.finite for s in sources) else None
    return Stream(scheduler, token=token, name=name, finite=finite)

"""Stream over an in-memory sequence with external pause/resume/stop/restart.

State machine::

    ready ──pull──▶ running ◀──resume── paused
                      │  └────pause────────▲
                      ├──exhausted──▶ completed
                      ├──stop()─────▶ stopped     (also from ready / paused)
                      └──fault──────▶ error       (also from paused)

    restart(): stop(), then back to ready with the cursor at 0.

A paused pull suspends on an event that resume() sets; stop() fires the
instance's cancel token, which releases a paused or pacing pull at once.
Control methods are plain synchronous calls, so on the event loop they never
interleave with each other.

Example:
    >>> ctl = ControllableStream(["a", "b", "c"], delay=0, on_state_change=print)
    >>> (await ctl.pull()).value.data
    running 0
    'a'
    >>> ctl.pause()
    paused 1
    True
    >>> ctl.get_state().progress_percent
    33.3
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import AsyncIterator, Sequence
from typing import Generic, Protocol, TypeVar

from streamcase.foundation.config import get_settings
from streamcase.foundation.errors import ConcurrentPullError, StreamCancelled
from streamcase.io.streaming import ControlledItem, ControlState, PullResult, Signal, StreamSnapshot
from streamcase.runtime.concurrency.cancel import CancelToken
from streamcase.runtime.observability import get_logger

from .base import Stream

T = TypeVar("T")

_log = get_logger("streamcase.controllable")

_TERMINAL_SIGNALS: dict[ControlState, Signal] = {
    ControlState.STOPPED: Signal.STOPPED,
    ControlState.COMPLETED: Signal.COMPLETED,
    ControlState.ERROR: Signal.ERROR,
}


class StateObserver(Protocol):
    """Receives every transition as (new_state, cursor_at_transition).

    May return an awaitable, which is scheduled and never awaited by the
    stream. Exceptions are logged and otherwise ignored: an observer can
    never break the state machine.
    """

    def __call__(self, state: ControlState, cursor: int) -> object: ...


class ControllableStream(Generic[T]):
    """Paced stream over ``data`` with an explicit control state machine.

    Args:
        data: Source sequence (indexed, not copied)
        chunk_size: Items emitted between pacing delays (default: settings.stream.chunk_size)
        delay: Seconds to wait after each chunk (default: settings.stream.control_delay)
        on_state_change: Observer for state transitions
        name: Label used in logs and by as_stream()
    """

    def __init__(
        self,
        data: Sequence[T],
        *,
        chunk_size: int | None = None,
        delay: float | None = None,
        on_state_change: StateObserver | None = None,
        name: str | None = None,
    ) -> None:
        settings = get_settings().stream
        self._chunk_size = settings.chunk_size if chunk_size is None else chunk_size
        self._delay = settings.control_delay if delay is None else delay
        if self._chunk_size < 1:
            raise ValueError(f"chunk_size must be >= 1, got {self._chunk_size}")
        if self._delay < 0:
            raise ValueError(f"delay must be >= 0, got {self._delay}")
        self._data = data
        self._observer = on_state_change
        self.name = name
        self._log = _log.bind(stream=name or "controllable")
        self._state = ControlState.READY
        self._cursor = 0
        self._token = CancelToken()
        self._resumed = asyncio.Event()
        self._resumed.set()
        self._pace_due = False
        self._pulling = False
        self._fault: BaseException | None = None
        self._observer_tasks: set[asyncio.Future[object]] = set()

    # ─────────────────────────────────────────────────────────────────────
    # Inspection
    # ─────────────────────────────────────────────────────────────────────

    @property
    def state(self) -> ControlState:
        return self._state

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def total(self) -> int:
        return len(self._data)

    def get_state(self) -> StreamSnapshot:
        """Snapshot of state, cursor, total and progress percentage."""
        return StreamSnapshot(state=self._state, cursor=self._cursor, total=len(self._data))

    # ─────────────────────────────────────────────────────────────────────
    # Control operations
    # ─────────────────────────────────────────────────────────────────────

    def pause(self) -> bool:
        """running → paused. Returns False (no-op) from any other state."""
        if self._state is not ControlState.RUNNING:
            self._log.debug("pause ignored", state=self._state)
            return False
        self._resumed.clear()
        self._transition(ControlState.PAUSED)
        return True

    def resume(self) -> bool:
        """paused → running. Returns False (no-op) from any other state."""
        if self._state is not ControlState.PAUSED:
            self._log.debug("resume ignored", state=self._state)
            return False
        self._resumed.set()
        self._transition(ControlState.RUNNING)
        return True

    def stop(self) -> bool:
        """ready/running/paused → stopped, waking any suspended pull.

        Returns False (no-op) if the stream is already stopped, completed or errored.
        """
        if self._state in _TERMINAL_SIGNALS:
            self._log.debug("stop ignored", state=self._state)
            return False
        self._transition(ControlState.STOPPED)
        self._token.cancel("stopped")
        return True

    def restart(self) -> None:
        """stop(), then reset to ready with the cursor at 0.

        A pull suspended at the time of restart returns the stopped signal;
        the next pull starts a fresh run from the first element.
        """
        self.stop()
        self._token = CancelToken()
        self._resumed.set()
        self._cursor = 0
        self._pace_due = False
        self._fault = None
        self._transition(ControlState.READY)

    # ─────────────────────────────────────────────────────────────────────
    # Pulling
    # ─────────────────────────────────────────────────────────────────────

    async def pull(self) -> PullResult[ControlledItem[T]]:
        """Next element as a ControlledItem, or a terminal result once stopped/completed/errored.

        The first pull from ready starts the run. While paused the pull
        suspends until resume() or stop().
        """
        if self._pulling:
            raise ConcurrentPullError.create("pull() called while another pull is outstanding", stream_name=self.name)
        self._pulling = True
        try:
            return await self._next()
        finally:
            self._pulling = False

    async def _next(self) -> PullResult[ControlledItem[T]]:
        token = self._token
        if self._state is ControlState.READY:
            self._transition(ControlState.RUNNING)
        try:
            while True:
                if token.cancelled:
                    return PullResult.end(Signal.STOPPED)
                if (signal := _TERMINAL_SIGNALS.get(self._state)) is not None:
                    return PullResult.end(signal, self._fault)
                if self._state is ControlState.PAUSED:
                    await token.guard(self._resumed.wait())
                    continue
                if self._cursor >= len(self._data):
                    self._transition(ControlState.COMPLETED)
                    return PullResult.end(Signal.COMPLETED)
                if self._pace_due:
                    self._pace_due = False
                    if self._delay > 0:
                        await token.guard(asyncio.sleep(self._delay))
                    continue
                return PullResult.item(self._emit())
        except StreamCancelled:
            return PullResult.end(Signal.STOPPED)
        except Exception as exc:
            self._fault = exc
            self._log.exception("controllable stream fault", cursor=self._cursor)
            self._transition(ControlState.ERROR)
            return PullResult.end(Signal.ERROR, exc)

    def _emit(self) -> ControlledItem[T]:
        index = self._cursor
        item = ControlledItem(self._data[index], index, self._state)
        self._cursor += 1
        if self._cursor % self._chunk_size == 0:
            self._pace_due = True
        return item

    def __aiter__(self) -> AsyncIterator[ControlledItem[T]]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[ControlledItem[T]]:
        while not (result := await self.pull()).done:
            yield result.value  # type: ignore[misc]

    def as_stream(self) -> Stream[ControlledItem[T]]:
        """Expose the items as a Stream so combinators can be applied."""
        return Stream(self, name=self.name, finite=True)

    # ─────────────────────────────────────────────────────────────────────
    # Observer dispatch
    # ─────────────────────────────────────────────────────────────────────

    def _transition(self, state: ControlState) -> None:
        self._state = state
        self._log.debug("state changed", state=state, cursor=self._cursor)
        if self._observer is None:
            return
        try:
            outcome = self._observer(state, self._cursor)
        except Exception:
            self._log.exception("state observer failed", state=state, cursor=self._cursor)
            return
        if inspect.isawaitable(outcome):
            self._schedule(outcome)

    def _schedule(self, outcome: object) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No running loop: nothing can drive the awaitable
            if (close := getattr(outcome, "close", None)) is not None:
                close()
            self._log.warning("async observer skipped outside event loop", state=self._state)
            return
        task = asyncio.ensure_future(outcome, loop=loop)  # type: ignore[arg-type]
        self._observer_tasks.add(task)
        task.add_done_callback(self._observer_done)

    def _observer_done(self, task: asyncio.Future[object]) -> None:
        self._observer_tasks.discard(task)
        if not task.cancelled() and (exc := task.exception()) is not None:
            self._log.warning("state observer failed", error=str(exc))

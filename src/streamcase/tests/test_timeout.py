"""Tests for the per-pull timeout guard."""

from __future__ import annotations

import asyncio

import pytest

from streamcase import PipelineError, Stream, TimeoutEvent, TimeoutGuard, collect, from_array, with_timeout


async def never():
    await asyncio.Event().wait()
    yield "unreachable"


async def stalls_after(*values: str):
    for value in values:
        yield value
    await asyncio.Event().wait()


class TestWithTimeout:
    """Deadline armed per pull; expiry yields exactly one TimeoutEvent."""

    @pytest.mark.asyncio
    async def test_never_producing_source(self) -> None:
        loop = asyncio.get_running_loop()
        started = loop.time()
        items = await collect(with_timeout(never(), 0.05))
        elapsed = loop.time() - started

        assert len(items) == 1
        event = items[0]
        assert isinstance(event, TimeoutEvent)
        assert event.error == "timeout"
        assert event.message == "Timeout after 50ms"
        assert 0.045 <= elapsed < 0.5

    @pytest.mark.asyncio
    async def test_fast_source_untouched(self) -> None:
        assert await collect(with_timeout(from_array([1, 2, 3]), 1.0)) == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_deadline_rearmed_per_pull(self) -> None:
        # Total runtime exceeds the timeout, each single pull does not
        items = await from_array([1, 2, 3, 4], delay=0.03).with_timeout(0.08).collect()
        assert items == [1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_deadline_starts_with_the_pull(self) -> None:
        guarded = with_timeout(from_array([1]), 0.02)
        await asyncio.sleep(0.05)
        first = await guarded.pull()
        assert first.value == 1
        assert (await guarded.pull()).done

    @pytest.mark.asyncio
    async def test_stall_mid_stream(self) -> None:
        items = await collect(with_timeout(stalls_after("a", "b"), 0.03))
        assert items[:2] == ["a", "b"]
        assert len(items) == 3 and isinstance(items[2], TimeoutEvent)

    @pytest.mark.asyncio
    async def test_ends_after_timeout(self) -> None:
        stream = with_timeout(never(), 0.02)
        assert isinstance((await stream.pull()).value, TimeoutEvent)
        assert (await stream.pull()).done
        assert (await stream.pull()).done

    @pytest.mark.asyncio
    async def test_guard_state(self) -> None:
        guard = TimeoutGuard(Stream(never()), 0.02)
        assert guard.deadline is None and not guard.timed_out
        await collect(Stream(guard))
        assert guard.timed_out
        assert guard.deadline is None

    @pytest.mark.asyncio
    async def test_uncooperative_producer_does_not_delay_timeout(self) -> None:
        async def stubborn():
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                await asyncio.sleep(0.2)
            yield "late"

        loop = asyncio.get_running_loop()
        started = loop.time()
        items = await collect(with_timeout(stubborn(), 0.02))
        assert len(items) == 1 and isinstance(items[0], TimeoutEvent)
        assert loop.time() - started < 0.15
        # let the abandoned pull finish so its late result is discarded
        await asyncio.sleep(0.25)

    @pytest.mark.asyncio
    async def test_upstream_error_propagates(self) -> None:
        async def broken():
            yield 1
            raise OSError("disk gone")

        stream = with_timeout(broken(), 1.0)
        assert (await stream.pull()).value == 1
        with pytest.raises(PipelineError) as info:
            await stream.pull()
        assert isinstance(info.value.__cause__, OSError)

    @pytest.mark.parametrize("timeout", [0, -1.5])
    def test_non_positive_timeout_rejected(self, timeout: float) -> None:
        with pytest.raises(ValueError):
            with_timeout(from_array([1]), timeout)

    @pytest.mark.asyncio
    async def test_event_serializes(self) -> None:
        (event,) = await collect(with_timeout(never(), 0.01))
        payload = event.to_dict()
        assert payload["error"] == "timeout"
        assert payload["message"] == "Timeout after 10ms"
        assert payload["elapsed"] >= 0

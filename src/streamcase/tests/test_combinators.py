"""Tests for Stream, the basic combinators and cooperative cancellation."""

from __future__ import annotations

import asyncio

import pytest

from streamcase import (
    CancelToken,
    ConcurrentPullError,
    ErrorCode,
    Failure,
    PipelineError,
    Signal,
    Stream,
    Success,
    UnboundedStreamError,
    collect,
    encode_stream,
    filter_stream,
    from_array,
    map_stream,
    merge_streams,
    take_stream,
    with_timeout,
)
from streamcase.io.streaming import decode, unpack


async def naturals():
    n = 0
    while True:
        yield n
        n += 1


async def never():
    await asyncio.Event().wait()
    yield "unreachable"


# ═════════════════════════════════════════════════════════════════════════════
# Sources
# ═════════════════════════════════════════════════════════════════════════════


class TestFromArray:
    """from_array emits its items in order, then ends."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("items", [[], [1], [3, 1, 2], ["a", None, "b"]])
    async def test_collect_returns_items(self, items: list[object]) -> None:
        assert await collect(from_array(items, 0)) == items

    @pytest.mark.asyncio
    async def test_delay_paces_each_item(self) -> None:
        loop = asyncio.get_running_loop()
        started = loop.time()
        assert await collect(from_array([1, 2, 3], delay=0.02)) == [1, 2, 3]
        assert loop.time() - started >= 0.055

    @pytest.mark.asyncio
    async def test_items_are_snapshotted(self) -> None:
        data = [1, 2]
        stream = from_array(data)
        data.append(3)
        assert await stream.collect() == [1, 2]

    def test_negative_delay_rejected(self) -> None:
        with pytest.raises(ValueError):
            from_array([1], delay=-1)

    def test_marked_finite(self) -> None:
        assert from_array([1]).finite is True


# ═════════════════════════════════════════════════════════════════════════════
# Stream handle
# ═════════════════════════════════════════════════════════════════════════════


class TestStream:
    """Pull protocol of the Stream handle."""

    @pytest.mark.asyncio
    async def test_pull_then_terminal(self) -> None:
        stream = from_array(["x"])
        first = await stream.pull()
        assert not first.done and first.value == "x"
        end = await stream.pull()
        assert end.done and end.signal is Signal.COMPLETED
        assert (await stream.pull()) is end
        assert stream.exhausted

    @pytest.mark.asyncio
    async def test_unwrap(self) -> None:
        stream = from_array([7])
        assert (await stream.pull()).unwrap() == 7
        with pytest.raises(LookupError):
            (await stream.pull()).unwrap()

    @pytest.mark.asyncio
    async def test_async_for(self) -> None:
        assert [x async for x in from_array("abc")] == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_wraps_plain_async_iterable(self) -> None:
        stream = Stream.of(naturals(), finite=False)
        assert [(await stream.pull()).value for _ in range(3)] == [0, 1, 2]
        assert Stream.of(stream) is stream
        await stream.aclose()

    @pytest.mark.asyncio
    async def test_concurrent_pull_rejected(self) -> None:
        async def slow():
            await asyncio.sleep(0.05)
            yield 1

        stream = Stream(slow())
        first = asyncio.ensure_future(stream.pull())
        await asyncio.sleep(0)
        assert stream.pulling
        with pytest.raises(ConcurrentPullError) as info:
            await stream.pull()
        assert info.value.code is ErrorCode.CONCURRENT_PULL
        assert (await first).value == 1

    @pytest.mark.asyncio
    async def test_producer_error_surfaces_once(self) -> None:
        async def broken():
            yield 1
            raise ConnectionError("socket closed")

        stream = Stream(broken(), name="feed")
        assert (await stream.pull()).value == 1
        with pytest.raises(PipelineError) as info:
            await stream.pull()
        assert isinstance(info.value.__cause__, ConnectionError)
        assert info.value.error.stream_name == "feed"
        assert info.value.code is ErrorCode.SOURCE_FAILED
        end = await stream.pull()
        assert end.done and end.signal is Signal.ERROR

    @pytest.mark.asyncio
    async def test_aclose_ends_stream(self) -> None:
        stream = Stream(naturals())
        await stream.pull()
        await stream.aclose()
        assert (await stream.pull()).done


# ═════════════════════════════════════════════════════════════════════════════
# Cancellation
# ═════════════════════════════════════════════════════════════════════════════


class TestCancelToken:
    """A fired token releases suspended pulls promptly."""

    @pytest.mark.asyncio
    async def test_cancel_releases_pending_pull(self) -> None:
        token = CancelToken()
        stream = Stream(never(), token=token)
        pending = asyncio.ensure_future(stream.pull())
        await asyncio.sleep(0.01)
        assert token.cancel("shutdown")
        result = await asyncio.wait_for(pending, 1.0)
        assert result.done and result.signal is Signal.CANCELLED
        assert (await stream.pull()).signal is Signal.CANCELLED

    @pytest.mark.asyncio
    async def test_already_cancelled_token(self) -> None:
        token = CancelToken()
        token.cancel()
        assert not token.cancel()
        result = await from_array([1, 2], token=token).pull()
        assert result.signal is Signal.CANCELLED

    @pytest.mark.asyncio
    async def test_token_reaches_every_stage(self) -> None:
        token = CancelToken()
        pipeline = from_array([1, 2, 3], delay=10, token=token).map(lambda x: x * 2).filter(bool)
        assert pipeline.token is token
        pending = asyncio.ensure_future(pipeline.pull())
        await asyncio.sleep(0.01)
        token.cancel()
        result = await asyncio.wait_for(pending, 1.0)
        assert result.done and result.signal is Signal.CANCELLED

    @pytest.mark.asyncio
    async def test_guard_returns_result(self) -> None:
        token = CancelToken()
        assert await token.guard(asyncio.sleep(0, result="ok")) == "ok"


# ═════════════════════════════════════════════════════════════════════════════
# map
# ═════════════════════════════════════════════════════════════════════════════


class TestMap:
    @pytest.mark.asyncio
    async def test_sync_transform(self) -> None:
        assert await collect(map_stream(from_array([1, 2, 3]), lambda x: x * 10)) == [10, 20, 30]

    @pytest.mark.asyncio
    async def test_async_transform_keeps_order(self) -> None:
        async def double(x: int) -> int:
            await asyncio.sleep(0.001 * (3 - x))
            return x * 2

        assert await from_array([1, 2, 3]).map(double).collect() == [2, 4, 6]

    @pytest.mark.asyncio
    async def test_error_aborts_pipeline(self) -> None:
        def parse(x: str) -> int:
            return int(x)

        stream = from_array(["1", "oops", "3"]).map(parse)
        assert (await stream.pull()).value == 1
        with pytest.raises(PipelineError) as info:
            await stream.pull()
        assert isinstance(info.value.__cause__, ValueError)
        assert info.value.code is ErrorCode.TRANSFORM_FAILED
        assert (await stream.pull()).signal is Signal.ERROR

    @pytest.mark.asyncio
    async def test_resilient_mode_reports_inline(self) -> None:
        def process(item: str | None) -> str:
            if item is None:
                raise ValueError("null item")
            if item == "error":
                raise RuntimeError("synthetic failure")
            return item.upper()

        results = await from_array(["apple", None, "banana", "error", "cherry"]).map(process, may_fail=True).collect()
        assert [r.index for r in results] == [0, 1, 2, 3, 4]
        assert [r.success for r in results] == [True, False, True, False, True]
        assert [r.data for r in results if isinstance(r, Success)] == ["APPLE", "BANANA", "CHERRY"]
        failures = [r for r in results if isinstance(r, Failure)]
        assert [f.code for f in failures] == [ErrorCode.TRANSFORM_FAILED, ErrorCode.UNKNOWN]
        assert failures[0].to_dict() == {"success": False, "error": "null item", "index": 1, "code": "TRANSFORM_FAILED"}


# ═════════════════════════════════════════════════════════════════════════════
# filter
# ═════════════════════════════════════════════════════════════════════════════


class TestFilter:
    @pytest.mark.asyncio
    async def test_keeps_matching(self) -> None:
        assert await collect(filter_stream(from_array(range(6)), lambda x: x % 2 == 0)) == [0, 2, 4]

    @pytest.mark.asyncio
    async def test_async_predicate(self) -> None:
        async def is_word(x: str) -> bool:
            await asyncio.sleep(0)
            return x.isalpha()

        assert await from_array(["a", "1", "b"]).filter(is_word).collect() == ["a", "b"]

    @pytest.mark.asyncio
    async def test_single_pull_skips_many(self) -> None:
        stream = from_array(range(100)).filter(lambda x: x == 99)
        assert (await stream.pull()).value == 99
        assert (await stream.pull()).done

    @pytest.mark.asyncio
    async def test_predicate_error_propagates(self) -> None:
        stream = from_array([1, None]).filter(lambda x: x > 0)
        with pytest.raises(PipelineError) as info:
            await stream.collect()
        assert isinstance(info.value.__cause__, TypeError)


# ═════════════════════════════════════════════════════════════════════════════
# take
# ═════════════════════════════════════════════════════════════════════════════


class TestTake:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("limit", [0, 2, 5, 10])
    async def test_prefix_of_length_min(self, limit: int) -> None:
        items = ["a", "b", "c", "d", "e"]
        out = await collect(take_stream(from_array(items), limit))
        assert out == items[:min(limit, len(items))]

    @pytest.mark.asyncio
    async def test_bounds_infinite_stream(self) -> None:
        stream = take_stream(Stream(naturals(), finite=False), 3)
        assert stream.finite is True
        assert await stream.collect() == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_upstream_left_open(self) -> None:
        upstream = from_array([1, 2, 3, 4])
        assert await upstream.take(2).collect() == [1, 2]
        assert not upstream.exhausted
        assert (await upstream.pull()).value == 3

    def test_negative_limit_rejected(self) -> None:
        with pytest.raises(ValueError):
            take_stream(from_array([1]), -1)


# ═════════════════════════════════════════════════════════════════════════════
# collect
# ═════════════════════════════════════════════════════════════════════════════


class TestCollect:
    def test_infinite_stream_rejected_synchronously(self) -> None:
        with pytest.raises(UnboundedStreamError) as info:
            collect(Stream(naturals(), finite=False, name="ticks"))
        assert info.value.code is ErrorCode.UNBOUNDED_STREAM
        assert info.value.error.stream_name == "ticks"

    @pytest.mark.asyncio
    async def test_limit_exceeded(self) -> None:
        with pytest.raises(UnboundedStreamError):
            await collect(from_array(range(10)), limit=5)

    @pytest.mark.asyncio
    async def test_limit_not_reached(self) -> None:
        assert await collect(from_array(range(5)), limit=5) == [0, 1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_fluent_chain(self) -> None:
        out = await from_array(range(10)).filter(lambda x: x % 2 == 0).map(lambda x: x * 10).take(3).collect()
        assert out == [0, 20, 40]


# ═════════════════════════════════════════════════════════════════════════════
# encode_stream
# ═════════════════════════════════════════════════════════════════════════════


class TestEncodeStream:
    """Items leave the pipeline as one transport frame each."""

    @pytest.mark.asyncio
    async def test_resilient_merge_as_msgpack(self) -> None:
        def parse(raw: str) -> int:
            return int(raw)

        merged = merge_streams(
            from_array(["1", "x"]).map(parse, may_fail=True),
            from_array(["2"]).map(parse, may_fail=True),
            policy="round_robin",
        )
        frames = await encode_stream(merged, "msgpack").collect()
        assert all(isinstance(frame, bytes) for frame in frames)
        assert [unpack(frame) for frame in frames] == [
            {"source": 0, "value": {"success": True, "data": 1, "index": 0}},
            {"source": 1, "value": {"success": True, "data": 2, "index": 0}},
            {"source": 0, "value": {"success": False, "error": "invalid literal for int() with base 10: 'x'",
                                    "index": 1, "code": "TRANSFORM_FAILED"}},
        ]

    @pytest.mark.asyncio
    async def test_timeout_event_as_json(self) -> None:
        async def stalls():
            yield 1
            await asyncio.Event().wait()

        lines = [decode(frame) async for frame in with_timeout(stalls(), 0.02).encode()]
        assert lines[0] == 1
        assert lines[1]["error"] == "timeout"
        assert lines[1]["message"] == "Timeout after 20ms"
        assert len(lines) == 2

    def test_unknown_codec_rejected_immediately(self) -> None:
        with pytest.raises(KeyError):
            encode_stream(from_array([1]), "yaml")

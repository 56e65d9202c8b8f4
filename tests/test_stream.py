"""Tests for the combine-latest live stream."""
import asyncio
import threading

import pytest

from conftest import FakeQuery
from GeoStream.errors import CollaboratorError, GeoStreamError
from GeoStream.query.stream import LiveStream, SnapshotFeed

TIMEOUT = 1.0


def _make_stream(count=3, combine=None):
    queries = [FakeQuery() for _ in range(count)]
    stream = LiveStream(
        [(f"cell{i}", q) for i, q in enumerate(queries)],
        combine or (lambda slots: [item for slot in slots for item in slot]),
        name="test-stream",
    )
    return stream, queries


async def _next(iterator):
    return await asyncio.wait_for(iterator.__anext__(), TIMEOUT)


async def _settle():
    for _ in range(5):
        await asyncio.sleep(0)


def test_snapshot_feed_drops_callbacks_after_stop():
    received = []
    query = FakeQuery()
    feed = SnapshotFeed(0, "cell", query, lambda i, s, e: received.append((i, s, e)))

    feed.start()
    feed.start()
    query.emit(["a"])
    feed.stop()
    feed.stop()
    query.emit(["b"])

    assert received == [(0, ["a"], None)]
    assert query.subscribes == 1
    assert query.unsubscribes == 1
    assert not feed.active


def test_waits_for_every_source_then_combines():
    async def scenario():
        stream, queries = _make_stream()
        values = stream.__aiter__()
        pending = asyncio.ensure_future(_next(values))
        await _settle()

        queries[0].emit([1])
        queries[1].emit([2])
        await _settle()
        assert not pending.done()
        assert stream.emissions == 0

        queries[2].emit([3])
        assert await pending == [1, 2, 3]
        stream.complete()

    asyncio.run(scenario())


def test_any_update_re_emits_with_latest_of_the_others():
    async def scenario():
        stream, queries = _make_stream()
        values = stream.__aiter__()
        pending = asyncio.ensure_future(_next(values))
        await _settle()
        for i, q in enumerate(queries):
            q.emit([i])
        assert await pending == [0, 1, 2]

        queries[1].emit([10, 11])
        assert await _next(values) == [0, 10, 11, 2]

        queries[0].emit([])
        assert await _next(values) == [10, 11, 2]
        stream.complete()

    asyncio.run(scenario())


def test_late_consumer_gets_latest_replayed():
    async def scenario():
        stream, queries = _make_stream(count=2)
        first = stream.__aiter__()
        pending = asyncio.ensure_future(_next(first))
        await _settle()
        queries[0].emit(["a"])
        queries[1].emit(["b"])
        assert await pending == ["a", "b"]

        queries[1].emit(["c"])
        assert await _next(first) == ["a", "c"]

        late = stream.__aiter__()
        assert await _next(late) == ["a", "c"]

        queries[0].emit(["d"])
        assert await _next(first) == ["d", "c"]
        assert await _next(late) == ["d", "c"]
        stream.complete()

    asyncio.run(scenario())


def test_complete_unsubscribes_everything_and_ends_consumers():
    async def scenario():
        stream, queries = _make_stream()
        values = stream.__aiter__()
        pending = asyncio.ensure_future(_next(values))
        await _settle()
        for q in queries:
            q.emit(["x"])
        await pending
        emissions = stream.emissions

        queries[0].emit(["late"])
        stream.complete()
        stream.complete()
        queries[1].emit(["ignored"])
        await _settle()

        with pytest.raises(StopAsyncIteration):
            await _next(values)
        assert stream.closed
        assert stream.emissions == emissions
        assert stream.active_feeds == 0
        assert all(q.unsubscribes == 1 for q in queries)

        # joining after completion ends immediately
        assert [v async for v in stream] == []

    asyncio.run(scenario())


def test_context_manager_completes_stream():
    async def scenario():
        stream, queries = _make_stream(count=1)
        async with stream as live:
            assert live is stream
            assert stream.active_feeds == 1
        assert stream.closed
        assert queries[0].unsubscribes == 1

    asyncio.run(scenario())


def test_source_error_tears_down_siblings_and_reaches_every_consumer():
    async def scenario():
        stream, queries = _make_stream()
        values = stream.__aiter__()
        pending = asyncio.ensure_future(_next(values))
        await _settle()
        for q in queries:
            q.emit([1])
        await pending

        cause = RuntimeError("permission denied")
        queries[2].fail(cause)

        with pytest.raises(CollaboratorError) as excinfo:
            await _next(values)
        assert excinfo.value.cell == "cell2"
        assert excinfo.value.__cause__ is cause
        assert all(q.unsubscribes == 1 for q in queries)
        assert stream.error is excinfo.value

        with pytest.raises(CollaboratorError):
            await stream.first()

    asyncio.run(scenario())


def test_error_before_first_emission():
    async def scenario():
        stream, queries = _make_stream(count=2)
        values = stream.__aiter__()
        pending = asyncio.ensure_future(_next(values))
        await _settle()
        queries[0].fail(ConnectionError("offline"))
        with pytest.raises(CollaboratorError):
            await pending
        assert stream.emissions == 0
        assert queries[1].unsubscribes == 1

    asyncio.run(scenario())


def test_subscribe_failure_is_a_collaborator_error():
    async def scenario():
        good = FakeQuery()
        bad = FakeQuery(fail_on_subscribe=PermissionError("no access"))
        stream = LiveStream([("good", good), ("bad", bad)], lambda slots: slots)

        with pytest.raises(CollaboratorError) as excinfo:
            await stream.first()
        assert excinfo.value.cell == "bad"
        assert good.unsubscribes == 1

    asyncio.run(scenario())


def test_combine_failure_fails_the_stream():
    def combine(slots):
        raise ValueError("bad record")

    async def scenario():
        stream, queries = _make_stream(count=1, combine=combine)
        values = stream.__aiter__()
        pending = asyncio.ensure_future(_next(values))
        await _settle()
        queries[0].emit([1])
        with pytest.raises(ValueError):
            await pending
        assert stream.closed
        assert queries[0].unsubscribes == 1

    asyncio.run(scenario())


def test_first_raises_when_completed_without_value():
    async def scenario():
        stream, _ = _make_stream(count=1)
        waiter = asyncio.ensure_future(stream.first())
        await _settle()
        stream.complete()
        with pytest.raises(GeoStreamError):
            await asyncio.wait_for(waiter, TIMEOUT)

    asyncio.run(scenario())


def test_callbacks_from_another_thread_are_delivered():
    async def scenario():
        stream, queries = _make_stream(count=2)
        values = stream.__aiter__()
        pending = asyncio.ensure_future(_next(values))
        await _settle()

        def push():
            queries[0].emit(["t0"])
            queries[1].emit(["t1"])

        worker = threading.Thread(target=push)
        worker.start()
        worker.join()

        assert await pending == ["t0", "t1"]
        stream.complete()

    asyncio.run(scenario())


def test_complete_outside_event_loop_after_run():
    stream, queries = _make_stream(count=1)

    async def scenario():
        stream.start()
        await _settle()

    asyncio.run(scenario())
    stream.complete()
    assert queries[0].unsubscribes == 1

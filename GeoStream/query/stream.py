"""
Live streams built from push-style store listeners.

`SnapshotFeed` adapts one `on_snapshot` registration into a producer with an
idempotent stop. `LiveStream` fans N feeds into a single combine-latest merge
task and shares the result with any number of async consumers, replaying the
latest value to consumers that join late.
"""
from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator, Callable, Generic, List, Optional, Sequence, Set, Tuple, TypeVar

from GeoStream.errors import CollaboratorError, GeoStreamError
from GeoStream.utils.logger import logger

T = TypeVar("T")

# (source index, snapshot, error)
Event = Tuple[int, Any, Optional[BaseException]]

_EMPTY = object()
_DONE = object()


class _Failure:
    __slots__ = ("error",)

    def __init__(self, error: BaseException) -> None:
        self.error = error


class SnapshotFeed:
    """
    One live listener on a store query.

    Callbacks are forwarded to `sink` as (index, snapshot, error) until stop()
    is called; anything arriving after that is dropped.
    """

    def __init__(self, index: int, key: str, query: Any, sink: Callable[[int, Any, Optional[BaseException]], None]) -> None:
        self.index = index
        self.key = key
        self._query = query
        self._sink = sink
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._started = False
        self._stopped = False

    @property
    def active(self) -> bool:
        return self._started and not self._stopped

    def start(self) -> None:
        if self._started or self._stopped:
            return
        self._started = True
        self._unsubscribe = self._query.on_snapshot(self._on_next, self._on_error)

    def _on_next(self, snapshot: Any) -> None:
        if not self._stopped:
            self._sink(self.index, snapshot, None)

    def _on_error(self, error: BaseException) -> None:
        if not self._stopped:
            self._sink(self.index, None, error)

    def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        unsubscribe, self._unsubscribe = self._unsubscribe, None
        if unsubscribe is not None:
            unsubscribe()


class LiveStream(Generic[T]):
    """
    Combine-latest over several store listeners, shared by many consumers.

    Nothing is emitted until every source has delivered once. After that each
    update of any source re-runs `combine` over the latest snapshot of every
    source and the result is pushed to all consumers. Only the merge task
    touches the per-source slots.

    Usage:
        async with stream:
            async for value in stream:
                ...

    Listeners are opened on first iteration (or on entering the context
    manager) and closed by complete(), by leaving the context manager, or by
    the first source error.
    """

    def __init__(
        self,
        sources: Sequence[Tuple[str, Any]],
        combine: Callable[[List[Any]], T],
        name: str = "live-stream",
        on_complete: Optional[Callable[[], None]] = None,
    ) -> None:
        self.name = name
        self._log = logger.bind(query=name)
        self._feeds = [
            SnapshotFeed(index, key, query, self._enqueue)
            for index, (key, query) in enumerate(sources)
        ]
        self._combine = combine
        self._on_complete = on_complete
        self._slots: List[Any] = [_EMPTY] * len(self._feeds)

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._events: Optional[asyncio.Queue] = None
        self._task: Optional[asyncio.Task] = None
        self._subscribers: Set[asyncio.Queue] = set()

        self._latest: Any = _EMPTY
        self._error: Optional[BaseException] = None
        self._started = False
        self._closed = False
        self._emissions = 0

    # --- state ---

    @property
    def keys(self) -> List[str]:
        return [feed.key for feed in self._feeds]

    @property
    def started(self) -> bool:
        return self._started

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def error(self) -> Optional[BaseException]:
        return self._error

    @property
    def emissions(self) -> int:
        return self._emissions

    @property
    def active_feeds(self) -> int:
        return sum(1 for feed in self._feeds if feed.active)

    @property
    def latest(self) -> Optional[T]:
        return None if self._latest is _EMPTY else self._latest

    # --- lifecycle ---

    def start(self) -> None:
        """Open every source listener. Must run inside the event loop; no-op once started."""
        if self._started or self._closed:
            return
        self._started = True
        self._loop = asyncio.get_running_loop()
        self._events = asyncio.Queue()
        self._task = self._loop.create_task(self._run())

        for feed in self._feeds:
            try:
                feed.start()
            except Exception as e:
                self._fail(self._wrap_error(feed, e))
                return

        self._log.debug(f"{len(self._feeds)} listener(s) open")

    def complete(self) -> None:
        """Close all listeners and end every consumer. Safe to call repeatedly."""
        if self._closed:
            return
        self._teardown()
        self._broadcast(_DONE)
        self._log.debug(f"completed after {self._emissions} emission(s)")

    def _teardown(self) -> None:
        self._closed = True
        for feed in self._feeds:
            try:
                feed.stop()
            except Exception as e:
                self._log.error(f"failed to stop listener for {feed.key}: {e}")

        task = self._task
        if task is not None and not task.done() and not task.get_loop().is_closed():
            try:
                current = asyncio.current_task()
            except RuntimeError:
                current = None
            if task is not current:
                task.cancel()

        if self._on_complete is not None:
            try:
                self._on_complete()
            except Exception as e:
                self._log.debug(f"completion hook failed: {e}")

    def _fail(self, error: BaseException) -> None:
        if self._closed:
            return
        self._error = error
        self._log.error(f"❌ query failed: {error}")
        self._teardown()
        self._broadcast(_Failure(error))

    def _broadcast(self, item: Any) -> None:
        for queue in list(self._subscribers):
            while not queue.empty():
                queue.get_nowait()
            queue.put_nowait(item)

    @staticmethod
    def _wrap_error(feed: SnapshotFeed, error: BaseException) -> CollaboratorError:
        wrapped = CollaboratorError(f"Listener for cell '{feed.key}' failed: {error}", cell=feed.key)
        wrapped.__cause__ = error
        return wrapped

    # --- merge ---

    def _enqueue(self, index: int, snapshot: Any, error: Optional[BaseException]) -> None:
        """Listener callback; may run on any thread."""
        if self._closed or self._loop is None:
            return
        try:
            self._loop.call_soon_threadsafe(self._put_event, (index, snapshot, error))
        except RuntimeError:
            self._log.debug(f"event loop closed, dropping event from source {index}")

    def _put_event(self, event: Event) -> None:
        if not self._closed and self._events is not None:
            self._events.put_nowait(event)

    async def _run(self) -> None:
        while True:
            index, snapshot, error = await self._events.get()
            if self._closed:
                return

            if error is not None:
                self._fail(self._wrap_error(self._feeds[index], error))
                return

            self._slots[index] = snapshot
            if any(slot is _EMPTY for slot in self._slots):
                continue

            try:
                value = self._combine(list(self._slots))
            except Exception as e:
                self._fail(e)
                return

            self._latest = value
            self._emissions += 1
            for queue in list(self._subscribers):
                queue.put_nowait(value)

    # --- consumers ---

    def __aiter__(self) -> AsyncIterator[T]:
        return self._consume()

    async def _consume(self) -> AsyncIterator[T]:
        self.start()
        if self._error is not None:
            raise self._error
        if self._closed:
            return

        queue: asyncio.Queue = asyncio.Queue()
        if self._latest is not _EMPTY:
            queue.put_nowait(self._latest)
        self._subscribers.add(queue)
        try:
            while True:
                item = await queue.get()
                if item is _DONE:
                    return
                if isinstance(item, _Failure):
                    raise item.error
                yield item
        finally:
            self._subscribers.discard(queue)

    async def first(self) -> T:
        """
        Wait for the next value (or the replayed latest one).

        Raises:
            GeoStreamError: the stream completed without emitting
        """
        values = self._consume()
        try:
            return await values.__anext__()
        except StopAsyncIteration:
            raise GeoStreamError(f"{self.name} completed without emitting") from None
        finally:
            await values.aclose()

    async def __aenter__(self) -> LiveStream[T]:
        self.start()
        return self

    async def __aexit__(self, *exc) -> None:
        self.complete()

    def __repr__(self) -> str:
        state = "closed" if self._closed else ("running" if self._started else "idle")
        return f"<LiveStream {self.name} {state} sources={len(self._feeds)} emissions={self._emissions}>"


__all__ = ["SnapshotFeed", "LiveStream"]

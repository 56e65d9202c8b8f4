"""
In-memory document store with ordered range queries and live listeners.

This is the reference implementation of the store interface the query engine
consumes:

    collection.range(field_path, start_key, end_key).on_snapshot(on_next, on_error) -> unsubscribe

Every listener receives the full current result set of its range (not a diff)
right after registering and again after each write that touches the range.
"""
from __future__ import annotations

import copy
import itertools
import uuid
from typing import Any, Callable, Dict, List, Optional

from GeoStream.models import get_field
from GeoStream.utils.logger import logger

SnapshotCallback = Callable[[List["DocumentSnapshot"]], None]
ErrorCallback = Callable[[Exception], None]


class DocumentSnapshot:
    """A read-only view of one stored document."""

    __slots__ = ("id", "_data")

    def __init__(self, doc_id: str, data: Dict[str, Any]) -> None:
        self.id = doc_id
        self._data = data

    def to_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self._data)

    def __repr__(self) -> str:
        return f"DocumentSnapshot(id={self.id!r})"


class _Listener:
    __slots__ = ("query", "on_next", "on_error")

    def __init__(self, query: RangeQuery, on_next: SnapshotCallback, on_error: Optional[ErrorCallback]) -> None:
        self.query = query
        self.on_next = on_next
        self.on_error = on_error


class RangeQuery:
    """Documents whose `field_path` value lies in [start_key, end_key], ordered by it."""

    def __init__(self, collection: MemoryCollection, field_path: str, start_key: str, end_key: str) -> None:
        self.collection = collection
        self.field_path = field_path
        self.start_key = start_key
        self.end_key = end_key

    def key_of(self, data: Optional[Dict[str, Any]]) -> Optional[str]:
        if data is None:
            return None
        key = get_field(data, self.field_path)
        return key if isinstance(key, str) else None

    def matches(self, data: Optional[Dict[str, Any]]) -> bool:
        key = self.key_of(data)
        return key is not None and self.start_key <= key <= self.end_key

    def get(self) -> List[DocumentSnapshot]:
        """Current result set."""
        hits = [
            (self.key_of(data), doc_id, data)
            for doc_id, data in self.collection._docs.items()
            if self.matches(data)
        ]
        hits.sort(key=lambda hit: (hit[0], hit[1]))
        return [DocumentSnapshot(doc_id, data) for _, doc_id, data in hits]

    def on_snapshot(
        self,
        on_next: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Callable[[], None]:
        """
        Register a live listener.

        The initial result set is delivered before this returns.

        Returns:
            Unsubscribe callable; safe to call more than once
        """
        return self.collection._listen(self, on_next, on_error)

    def __repr__(self) -> str:
        return f"RangeQuery({self.field_path!r}, {self.start_key!r}..{self.end_key!r})"


class MemoryCollection:
    """A named set of documents keyed by id."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._docs: Dict[str, Dict[str, Any]] = {}
        self._listeners: Dict[int, _Listener] = {}
        self._listener_ids = itertools.count(1)

    def __len__(self) -> int:
        return len(self._docs)

    @property
    def active_listeners(self) -> int:
        return len(self._listeners)

    # --- writes ---

    def set(self, doc_id: str, data: Dict[str, Any]) -> str:
        """Create or replace a document."""
        old = self._docs.get(doc_id)
        new = copy.deepcopy(data)
        self._docs[doc_id] = new
        self._notify(old, new)
        return doc_id

    def add(self, data: Dict[str, Any]) -> str:
        """Create a document with a generated id."""
        return self.set(uuid.uuid4().hex[:20], data)

    def update(self, doc_id: str, fields: Dict[str, Any]) -> None:
        """Merge top-level fields into an existing document."""
        if doc_id not in self._docs:
            raise KeyError(doc_id)
        old = self._docs[doc_id]
        new = {**old, **copy.deepcopy(fields)}
        self._docs[doc_id] = new
        self._notify(old, new)

    def delete(self, doc_id: str) -> bool:
        """Remove a document. Returns False when it did not exist."""
        old = self._docs.pop(doc_id, None)
        if old is None:
            return False
        self._notify(old, None)
        return True

    # --- reads ---

    def get(self, doc_id: str) -> Optional[DocumentSnapshot]:
        data = self._docs.get(doc_id)
        return DocumentSnapshot(doc_id, data) if data is not None else None

    def range(self, field_path: str, start_key: str, end_key: str) -> RangeQuery:
        return RangeQuery(self, field_path, start_key, end_key)

    # --- listeners ---

    def _listen(
        self,
        query: RangeQuery,
        on_next: SnapshotCallback,
        on_error: Optional[ErrorCallback],
    ) -> Callable[[], None]:
        listener_id = next(self._listener_ids)
        listener = _Listener(query, on_next, on_error)
        self._listeners[listener_id] = listener
        logger.debug(f"[{self.name}] listener {listener_id} registered on {query}")

        def unsubscribe() -> None:
            if self._listeners.pop(listener_id, None) is not None:
                logger.debug(f"[{self.name}] listener {listener_id} removed")

        self._deliver(listener_id, listener)
        return unsubscribe

    def _deliver(self, listener_id: int, listener: _Listener) -> None:
        if listener_id not in self._listeners:
            return
        try:
            listener.on_next(listener.query.get())
        except Exception as e:
            logger.error(f"[{self.name}] listener {listener_id} callback failed: {e}")

    def _notify(self, old: Optional[Dict[str, Any]], new: Optional[Dict[str, Any]]) -> None:
        for listener_id, listener in list(self._listeners.items()):
            if listener.query.matches(old) or listener.query.matches(new):
                self._deliver(listener_id, listener)

    def fail_listeners(self, error: Exception, key: Optional[str] = None) -> int:
        """
        Terminate listeners with an error, as a backend failure would.

        Args:
            error: Exception passed to each listener's error callback
            key: Only fail listeners whose range contains this key (default: all)

        Returns:
            Number of listeners failed
        """
        failed = 0
        for listener_id, listener in list(self._listeners.items()):
            query = listener.query
            if key is not None and not (query.start_key <= key <= query.end_key):
                continue
            self._listeners.pop(listener_id, None)
            failed += 1
            if listener.on_error is None:
                continue
            try:
                listener.on_error(error)
            except Exception as e:
                logger.error(f"[{self.name}] listener {listener_id} error callback failed: {e}")
        if failed:
            logger.warning(f"[{self.name}] failed {failed} listener(s): {error}")
        return failed


class MemoryStore:
    """Collections by name, created on first use."""

    def __init__(self) -> None:
        self._collections: Dict[str, MemoryCollection] = {}

    def collection(self, name: str) -> MemoryCollection:
        if name not in self._collections:
            self._collections[name] = MemoryCollection(name)
            logger.debug(f"Created collection '{name}'")
        return self._collections[name]

    @property
    def active_listeners(self) -> int:
        return sum(c.active_listeners for c in self._collections.values())

    def get_stats(self) -> Dict[str, Any]:
        return {
            "collections": {name: len(c) for name, c in self._collections.items()},
            "active_listeners": self.active_listeners,
        }


__all__ = ["DocumentSnapshot", "RangeQuery", "MemoryCollection", "MemoryStore"]

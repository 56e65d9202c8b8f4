"""Pytest configuration and fixtures."""
import sys
from pathlib import Path

import pytest

# Ensure repo root is on path when running pytest without installing the package
root = Path(__file__).resolve().parent.parent
if str(root) not in sys.path:
    sys.path.insert(0, str(root))

from GeoStream.query.client import make_point  # noqa: E402
from GeoStream.store.memory_store import MemoryStore  # noqa: E402

FIELD = "position"


def seed(collection, doc_id, lat, lon, field=FIELD, **payload):
    """Store a record with a FirePoint under `field`."""
    collection.set(doc_id, {**payload, field: make_point(lat, lon).data})


class FakeQuery:
    """Store query stand-in whose snapshots are pushed by the test."""

    def __init__(self, fail_on_subscribe=None):
        self.on_next = None
        self.on_error = None
        self.subscribes = 0
        self.unsubscribes = 0
        self.fail_on_subscribe = fail_on_subscribe

    @property
    def active(self):
        return self.subscribes > self.unsubscribes

    def on_snapshot(self, on_next, on_error=None):
        if self.fail_on_subscribe is not None:
            raise self.fail_on_subscribe
        self.on_next = on_next
        self.on_error = on_error
        self.subscribes += 1

        def unsubscribe():
            self.unsubscribes += 1

        return unsubscribe

    def emit(self, snapshot):
        self.on_next(snapshot)

    def fail(self, error):
        self.on_error(error)


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def cities(store):
    return store.collection("cities")

"""Store package."""
from GeoStream.store.memory_store import DocumentSnapshot, MemoryCollection, MemoryStore, RangeQuery

__all__ = ["DocumentSnapshot", "MemoryCollection", "MemoryStore", "RangeQuery"]

"""Object store backends."""

from quorra.storage.base import ListResult, ObjectStore, StoredObject
from quorra.storage.local import LocalObjectStore
from quorra.storage.memory import MemoryObjectStore


def create_store(config: dict) -> ObjectStore:
    """
    Build the configured object store.

    Args:
        config: Storage configuration section

    Returns:
        ObjectStore instance
    """
    backend = config.get("backend", "local")
    if backend == "memory":
        return MemoryObjectStore()
    elif backend == "local":
        return LocalObjectStore(config.get("root", ".quorra/store"))
    else:
        raise ValueError(f"Unsupported storage backend: {backend}")


__all__ = [
    "ListResult",
    "LocalObjectStore",
    "MemoryObjectStore",
    "ObjectStore",
    "StoredObject",
    "create_store",
]

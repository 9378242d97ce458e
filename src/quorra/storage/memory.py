"""In-memory object store."""

import asyncio
from datetime import datetime
from typing import Optional

from quorra.storage.base import ListResult, ObjectStore, StoredObject, group_listing


class MemoryObjectStore(ObjectStore):
    """Dict-backed store used for tests and ephemeral sessions."""

    def __init__(self) -> None:
        self._objects: dict[str, StoredObject] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[StoredObject]:
        async with self._lock:
            obj = self._objects.get(key)
        if obj is None:
            return None
        return StoredObject(
            key=obj.key,
            size=obj.size,
            uploaded=obj.uploaded,
            metadata=dict(obj.metadata),
            body=obj.body,
        )

    async def head(self, key: str) -> Optional[StoredObject]:
        async with self._lock:
            obj = self._objects.get(key)
        if obj is None:
            return None
        return StoredObject(
            key=obj.key, size=obj.size, uploaded=obj.uploaded, metadata=dict(obj.metadata)
        )

    async def put(
        self, key: str, data: bytes | str, metadata: Optional[dict[str, str]] = None
    ) -> StoredObject:
        body = data.encode("utf-8") if isinstance(data, str) else bytes(data)
        obj = StoredObject(
            key=key,
            size=len(body),
            uploaded=datetime.now(),
            metadata=dict(metadata or {}),
            body=body,
        )
        async with self._lock:
            self._objects[key] = obj
        return StoredObject(key=key, size=obj.size, uploaded=obj.uploaded, metadata=dict(obj.metadata))

    async def delete(self, keys: str | list[str]) -> None:
        if isinstance(keys, str):
            keys = [keys]
        async with self._lock:
            for key in keys:
                self._objects.pop(key, None)

    def keys(self) -> list[str]:
        """Return all keys (test helper)."""
        return sorted(self._objects)

    async def list(self, prefix: str = "", delimiter: Optional[str] = None) -> ListResult:
        async with self._lock:
            snapshot = dict(self._objects)
        object_keys, prefixes = group_listing(list(snapshot), prefix, delimiter)
        objects = [
            StoredObject(
                key=snapshot[k].key,
                size=snapshot[k].size,
                uploaded=snapshot[k].uploaded,
                metadata=dict(snapshot[k].metadata),
            )
            for k in object_keys
        ]
        return ListResult(objects=objects, prefixes=prefixes)

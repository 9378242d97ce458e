"""Local directory backed object store."""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from quorra.errors import StorageError
from quorra.storage.base import ListResult, ObjectStore, StoredObject, group_listing

logger = logging.getLogger(__name__)

META_DIR = ".meta"


class LocalObjectStore(ObjectStore):
    """
    Stores objects as plain files below a root directory.

    Key "/var/mail/a.txt" lives at "<root>/var/mail/a.txt". Custom metadata
    is kept in JSON sidecars under "<root>/.meta/" so listings only see
    real objects.
    """

    def __init__(self, root: str = ".quorra/store") -> None:
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)
        self.meta_root = self.root / META_DIR
        self.meta_root.mkdir(parents=True, exist_ok=True)

    def _path_for(self, key: str) -> Path:
        relative = key.lstrip("/")
        if not relative or relative.endswith("/"):
            raise StorageError(f"Invalid object key: {key!r}")
        path = (self.root / relative).resolve()
        if self.root not in path.parents:
            raise StorageError(f"Key escapes store root: {key!r}")
        if self.meta_root == path or self.meta_root in path.parents:
            raise StorageError(f"Reserved key: {key!r}")
        return path

    def _meta_path_for(self, key: str) -> Path:
        return self.meta_root / (key.lstrip("/") + ".json")

    def _read_meta(self, key: str) -> dict[str, str]:
        meta_path = self._meta_path_for(key)
        if not meta_path.exists():
            return {}
        try:
            with open(meta_path) as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Unreadable metadata for {key}: {e}")
            return {}

    def _build(self, key: str, path: Path, with_body: bool) -> StoredObject:
        stat = path.stat()
        return StoredObject(
            key=key,
            size=stat.st_size,
            uploaded=datetime.fromtimestamp(stat.st_mtime),
            metadata=self._read_meta(key),
            body=path.read_bytes() if with_body else None,
        )

    async def get(self, key: str) -> Optional[StoredObject]:
        path = self._path_for(key)
        if not path.is_file():
            return None
        return self._build(key, path, with_body=True)

    async def head(self, key: str) -> Optional[StoredObject]:
        path = self._path_for(key)
        if not path.is_file():
            return None
        return self._build(key, path, with_body=False)

    async def put(
        self, key: str, data: bytes | str, metadata: Optional[dict[str, str]] = None
    ) -> StoredObject:
        path = self._path_for(key)
        body = data.encode("utf-8") if isinstance(data, str) else bytes(data)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(body)
            meta_path = self._meta_path_for(key)
            if metadata:
                meta_path.parent.mkdir(parents=True, exist_ok=True)
                with open(meta_path, "w") as f:
                    json.dump(metadata, f)
            elif meta_path.exists():
                meta_path.unlink()
        except OSError as e:
            raise StorageError(f"Failed to write {key}: {e}") from e

        logger.debug(f"Stored {key} ({len(body)} bytes)")
        return self._build(key, path, with_body=False)

    async def delete(self, keys: str | list[str]) -> None:
        if isinstance(keys, str):
            keys = [keys]
        for key in keys:
            path = self._path_for(key)
            if path.is_file():
                path.unlink()
            meta_path = self._meta_path_for(key)
            if meta_path.exists():
                meta_path.unlink()
            self._prune_empty_dirs(path.parent)

    def _prune_empty_dirs(self, directory: Path) -> None:
        while directory != self.root and directory.exists() and not any(directory.iterdir()):
            directory.rmdir()
            directory = directory.parent

    async def list(self, prefix: str = "", delimiter: Optional[str] = None) -> ListResult:
        keys = []
        for path in self.root.rglob("*"):
            if not path.is_file() or self.meta_root in path.parents:
                continue
            keys.append("/" + path.relative_to(self.root).as_posix())

        object_keys, prefixes = group_listing(keys, prefix, delimiter)
        objects = [self._build(k, self._path_for(k), with_body=False) for k in object_keys]
        return ListResult(objects=objects, prefixes=prefixes)

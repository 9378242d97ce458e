"""Virtual file system on top of the object store."""

import logging
import posixpath
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from quorra.events.bus import EventBus
from quorra.events.models import EventType, FileCreated, FileDeleted
from quorra.storage.base import ObjectStore

logger = logging.getLogger(__name__)


class Owner(str, Enum):
    """Who wrote a file."""

    USER = "user"
    QUORRA = "quorra"


@dataclass
class FSEntry:
    """A file or directory in a listing."""

    type: str  # "file" or "dir"
    path: str
    size: Optional[int] = None
    ts: Optional[datetime] = None
    owner: Optional[str] = None

    @property
    def name(self) -> str:
        return posixpath.basename(self.path.rstrip("/")) + ("/" if self.type == "dir" else "")


def to_absolute(path: str, cwd: str = "/") -> str:
    """
    Resolve a path against a working directory.

    A trailing slash is kept, so "docs/" stays a directory path.

    Args:
        path: Absolute or relative path
        cwd: Absolute working directory

    Returns:
        Normalized absolute path
    """
    if not path:
        return cwd
    is_dir = path.endswith("/") or path in (".", "..") or path.endswith(("/.", "/.."))
    joined = path if path.startswith("/") else posixpath.join(cwd, path)
    normalized = posixpath.normpath(joined)
    # normpath keeps a leading "//"
    if normalized.startswith("//"):
        normalized = "/" + normalized.lstrip("/")
    if is_dir and normalized != "/":
        normalized += "/"
    return normalized


def as_directory(path: str) -> str:
    return path if path.endswith("/") else path + "/"


class VirtualFileSystem:
    """
    File operations used by tools and the CLI.

    Directories do not exist on their own; a directory is any key prefix
    ending in "/". Writes and deletes publish file events on the bus.
    """

    def __init__(self, store: ObjectStore, bus: Optional[EventBus] = None) -> None:
        self.store = store
        self.bus = bus

    async def list_dir(self, path: str) -> list[FSEntry]:
        """List direct children of a directory, files and sub-directories."""
        prefix = as_directory(path)
        result = await self.store.list(prefix=prefix, delimiter="/")

        entries = [
            FSEntry(
                type="file",
                path=obj.key,
                size=obj.size,
                ts=obj.uploaded,
                owner=obj.metadata.get("owner", Owner.USER.value),
            )
            for obj in result.objects
        ]
        entries.extend(FSEntry(type="dir", path=p) for p in result.prefixes)
        return sorted(entries, key=lambda e: e.path)

    async def is_dir(self, path: str) -> bool:
        if as_directory(path) == "/":
            return True
        return len(await self.list_dir(path)) > 0

    async def read(self, path: str) -> Optional[str]:
        return await self.store.get_text(path)

    async def stat(self, path: str) -> Optional[FSEntry]:
        obj = await self.store.head(path)
        if obj is None:
            return None
        return FSEntry(
            type="file",
            path=obj.key,
            size=obj.size,
            ts=obj.uploaded,
            owner=obj.metadata.get("owner", Owner.USER.value),
        )

    async def write(self, path: str, content: str | bytes, owner: Owner = Owner.USER) -> FSEntry:
        """Create or overwrite a file and publish file-created."""
        if path.endswith("/"):
            raise ValueError(f"Cannot write to a directory path: {path}")

        obj = await self.store.put(path, content, metadata={"owner": Owner(owner).value})
        logger.info(f"Wrote {path} ({obj.size} bytes)")

        if self.bus:
            self.bus.publish(EventType.FILE_CREATED, FileCreated(path=path))

        return FSEntry(type="file", path=path, size=obj.size, ts=obj.uploaded, owner=Owner(owner).value)

    async def unlink(self, paths: str | list[str]) -> list[str]:
        """
        Delete files and publish file-deleted for each one that existed.

        Returns:
            Paths that were actually deleted
        """
        if isinstance(paths, str):
            paths = [paths]

        existing = [p for p in paths if await self.store.head(p) is not None]
        if existing:
            await self.store.delete(existing)

        for path in existing:
            logger.info(f"Deleted {path}")
            if self.bus:
                self.bus.publish(EventType.FILE_DELETED, FileDeleted(path=path))

        return existing

"""Object store interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass
class StoredObject:
    """Object returned by the store."""

    key: str
    size: int
    uploaded: datetime
    metadata: dict[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None  # None for head requests

    def text(self) -> str:
        """Decode the body as UTF-8."""
        if self.body is None:
            raise ValueError(f"Object {self.key} was fetched without a body")
        return self.body.decode("utf-8")


@dataclass
class ListResult:
    """Result of a delimited prefix listing."""

    objects: list[StoredObject]
    prefixes: list[str]


class ObjectStore(ABC):
    """
    Key/value object store addressed by absolute path keys.

    Keys look like file paths ("/var/mail/x.txt"). Listing with a
    delimiter groups deeper keys into common prefixes, the way
    directory listings work.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[StoredObject]:
        """Fetch an object with its body, or None if absent."""
        pass

    @abstractmethod
    async def head(self, key: str) -> Optional[StoredObject]:
        """Fetch object metadata without the body, or None if absent."""
        pass

    @abstractmethod
    async def put(
        self, key: str, data: bytes | str, metadata: Optional[dict[str, str]] = None
    ) -> StoredObject:
        """Create or overwrite an object."""
        pass

    @abstractmethod
    async def delete(self, keys: str | list[str]) -> None:
        """Delete one or more objects. Missing keys are ignored."""
        pass

    @abstractmethod
    async def list(self, prefix: str = "", delimiter: Optional[str] = None) -> ListResult:
        """List objects whose key starts with prefix."""
        pass

    async def get_text(self, key: str) -> Optional[str]:
        """Convenience wrapper returning the decoded body."""
        obj = await self.get(key)
        if obj is None:
            return None
        return obj.text()


def group_listing(
    keys: list[str], prefix: str, delimiter: Optional[str]
) -> tuple[list[str], list[str]]:
    """
    Split matching keys into direct children and delimited prefixes.

    Args:
        keys: All keys in the store
        prefix: Listing prefix
        delimiter: Delimiter, or None for a flat listing

    Returns:
        Tuple of (object keys, common prefixes), both sorted
    """
    objects = []
    prefixes = set()
    for key in keys:
        if not key.startswith(prefix):
            continue
        rest = key[len(prefix):]
        if delimiter and delimiter in rest:
            prefixes.add(prefix + rest.split(delimiter, 1)[0] + delimiter)
        else:
            objects.append(key)
    return sorted(objects), sorted(prefixes)

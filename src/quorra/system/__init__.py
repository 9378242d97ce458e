"""System services shared by tools and front-ends."""

from quorra.system.filesystem import FSEntry, Owner, VirtualFileSystem, to_absolute

__all__ = ["FSEntry", "Owner", "VirtualFileSystem", "to_absolute"]

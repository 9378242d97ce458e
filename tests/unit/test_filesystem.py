"""Unit tests for the virtual file system."""

import pytest

from conftest import drain
from quorra.events.models import EventType
from quorra.system.filesystem import FSEntry, Owner, as_directory, to_absolute


class TestPaths:
    """Test path resolution."""

    def test_absolute_path_ignores_cwd(self):
        assert to_absolute("/etc/quorra/preferences", "/home/") == "/etc/quorra/preferences"

    def test_relative_path(self):
        assert to_absolute("hello.txt", "/home/") == "/home/hello.txt"
        assert to_absolute("docs/a.txt", "/home") == "/home/docs/a.txt"

    def test_dots(self):
        """. and .. are collapsed and stay directories."""
        assert to_absolute("..", "/home/docs/") == "/home/"
        assert to_absolute(".", "/home/") == "/home/"
        assert to_absolute("../../..", "/home/") == "/"
        assert to_absolute("a/../b.txt", "/") == "/b.txt"

    def test_trailing_slash_is_kept(self):
        assert to_absolute("docs/", "/home/") == "/home/docs/"

    def test_empty_is_cwd(self):
        assert to_absolute("", "/tmp/") == "/tmp/"

    def test_no_double_leading_slash(self):
        assert to_absolute("//var//mail", "/") == "/var/mail"

    def test_as_directory(self):
        assert as_directory("/home") == "/home/"
        assert as_directory("/home/") == "/home/"

    def test_entry_name(self):
        assert FSEntry(type="dir", path="/home/docs/").name == "docs/"
        assert FSEntry(type="file", path="/home/a.txt").name == "a.txt"


@pytest.mark.asyncio
class TestVirtualFileSystem:
    """Test file operations and their events."""

    async def test_write_publishes_file_created(self, filesystem, bus):
        """Writes record the owner and emit file-created."""
        events = bus.subscribe()

        entry = await filesystem.write("/home/a.txt", "hello", owner=Owner.QUORRA)

        assert entry.owner == "quorra"
        assert entry.size == 5
        published = drain(events)
        assert [e.type for e in published] == [EventType.FILE_CREATED]
        assert published[0].payload == {"path": "/home/a.txt"}

    async def test_write_to_directory_path_fails(self, filesystem):
        with pytest.raises(ValueError):
            await filesystem.write("/home/", "x")

    async def test_default_owner_is_user(self, filesystem):
        await filesystem.write("/a.txt", "x")
        assert (await filesystem.stat("/a.txt")).owner == "user"

    async def test_list_dir(self, filesystem):
        """Listings show direct files and sub-directories."""
        await filesystem.write("/home/a.txt", "a")
        await filesystem.write("/home/docs/b.txt", "b")
        await filesystem.write("/var/mail/m.txt", "m")

        entries = await filesystem.list_dir("/home")

        assert [(e.type, e.path) for e in entries] == [("file", "/home/a.txt"), ("dir", "/home/docs/")]
        root = await filesystem.list_dir("/")
        assert [e.name for e in root] == ["home/", "var/"]

    async def test_is_dir(self, filesystem):
        """Directories exist only while something lives under them."""
        assert await filesystem.is_dir("/")
        assert not await filesystem.is_dir("/home")

        await filesystem.write("/home/a.txt", "a")
        assert await filesystem.is_dir("/home")
        assert await filesystem.is_dir("/home/")

    async def test_unlink(self, filesystem, bus):
        """Only existing files are deleted and announced."""
        await filesystem.write("/a.txt", "a")
        events = bus.subscribe()

        deleted = await filesystem.unlink(["/a.txt", "/missing.txt"])

        assert deleted == ["/a.txt"]
        assert await filesystem.read("/a.txt") is None
        assert [(e.type, e.payload["path"]) for e in drain(events)] == [(EventType.FILE_DELETED, "/a.txt")]

    async def test_stat_missing(self, filesystem):
        assert await filesystem.stat("/nothing") is None

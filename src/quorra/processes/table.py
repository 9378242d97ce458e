"""Process table: the registry of in-flight tasks and their abort flags."""

import asyncio
import logging
from typing import Optional

from quorra.processes.models import KillOutcome, ProcessEntry, ProcessInfo

logger = logging.getLogger(__name__)


class ProcessTable:
    """
    Concurrent id -> ProcessEntry map.

    Every operation is a short point query under one asyncio.Lock; no
    caller holds the lock across a suspension point. The table is the only
    source of truth for whether a task may keep running.
    """

    def __init__(self) -> None:
        self._entries: dict[str, ProcessEntry] = {}
        self._lock = asyncio.Lock()

    async def register(self, task_id: str, cwd: str, description: str) -> ProcessEntry:
        """
        Add a task.

        Raises:
            ValueError: If the id is already registered
        """
        async with self._lock:
            if task_id in self._entries:
                raise ValueError(f"Process already registered: {task_id}")
            entry = ProcessEntry(id=task_id, cwd=cwd, description=description)
            self._entries[task_id] = entry
        logger.debug(f"Registered process {task_id}")
        return entry

    async def attach(self, task_id: str, handle: asyncio.Task) -> bool:
        """Store the loop's completion handle. False if the task is gone already."""
        async with self._lock:
            entry = self._entries.get(task_id)
            if entry is None:
                return False
            entry.handle = handle
            return True

    async def get(self, task_id: str) -> Optional[ProcessEntry]:
        async with self._lock:
            return self._entries.get(task_id)

    async def contains(self, task_id: str) -> bool:
        async with self._lock:
            return task_id in self._entries

    async def is_aborted(self, task_id: str) -> bool:
        """True when the task was killed or is no longer registered."""
        async with self._lock:
            entry = self._entries.get(task_id)
            return entry is None or entry.aborted

    async def abort(self, task_id: str) -> KillOutcome:
        """Flip the abort flag and report what happened."""
        async with self._lock:
            entry = self._entries.get(task_id)
            if entry is None:
                return KillOutcome.NOT_FOUND
            if entry.aborted:
                return KillOutcome.ALREADY_ABORTED
            entry.aborted = True
        logger.info(f"Process {task_id} marked aborted")
        return KillOutcome.ABORTED

    async def set_aborted(self, task_id: str) -> bool:
        """True if the task existed and was not already aborted."""
        return await self.abort(task_id) == KillOutcome.ABORTED

    async def remove(self, task_id: str) -> Optional[ProcessEntry]:
        async with self._lock:
            entry = self._entries.pop(task_id, None)
        if entry is not None:
            logger.debug(f"Removed process {task_id}")
        return entry

    async def snapshot(self) -> list[ProcessInfo]:
        """Copy of the table as public ProcessInfo records."""
        async with self._lock:
            return [
                ProcessInfo(id=e.id, cwd=e.cwd, description=e.description)
                for e in self._entries.values()
            ]

    async def list(self) -> list[ProcessEntry]:
        async with self._lock:
            return list(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

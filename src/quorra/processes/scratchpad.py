"""Store adapter for the per-task GOAL / SCRATCHPAD / PLAN documents."""

import logging

from quorra.errors import MissingDocumentError
from quorra.processes.models import (
    DOCUMENT_NAMES,
    GOAL,
    INITIAL_SCRATCHPAD,
    NO_PLAN,
    PLAN,
    SCRATCHPAD,
    TaskDocuments,
)
from quorra.storage.base import ObjectStore

logger = logging.getLogger(__name__)


class ScratchpadStore:
    """
    Reads and writes task documents at ``<task_root>/<task_id>/<NAME>``.

    Documents are written directly to the store, without file events.
    """

    def __init__(self, store: ObjectStore, task_root: str = "/proc") -> None:
        self.store = store
        self.task_root = "/" + task_root.strip("/") if task_root.strip("/") else ""

    def path(self, task_id: str, name: str) -> str:
        return f"{self.task_root}/{task_id}/{name}"

    async def seed(self, task_id: str, goal: str) -> TaskDocuments:
        """Write the initial documents for a new task."""
        docs = TaskDocuments(goal=goal, scratchpad=INITIAL_SCRATCHPAD, plan=NO_PLAN)
        await self.write_triple(task_id, docs.goal, docs.scratchpad, docs.plan)
        return docs

    async def read_triple(self, task_id: str) -> TaskDocuments:
        """
        Load all three documents.

        Raises:
            MissingDocumentError: If any document is absent
        """
        values = {}
        for name in DOCUMENT_NAMES:
            values[name] = await self.store.get_text(self.path(task_id, name))

        missing = [name for name, value in values.items() if value is None]
        if missing:
            raise MissingDocumentError(task_id, missing)

        return TaskDocuments(goal=values[GOAL], scratchpad=values[SCRATCHPAD], plan=values[PLAN])

    async def write_triple(self, task_id: str, goal: str, scratchpad: str, plan: str) -> None:
        metadata = {"owner": "quorra"}
        await self.store.put(self.path(task_id, GOAL), goal, metadata=metadata)
        await self.store.put(self.path(task_id, SCRATCHPAD), scratchpad, metadata=metadata)
        await self.store.put(self.path(task_id, PLAN), plan, metadata=metadata)
        logger.debug(f"[{task_id}] documents written (scratchpad {len(scratchpad)} chars)")

    async def delete_triple(self, task_id: str) -> None:
        await self.store.delete([self.path(task_id, name) for name in DOCUMENT_NAMES])
        logger.debug(f"[{task_id}] documents deleted")

"""Exception hierarchy for the agent."""


class QuorraError(Exception):
    """Base class for all agent errors."""


class StorageError(QuorraError):
    """Raised when the object store cannot satisfy a request."""


class UnknownToolError(QuorraError):
    """Raised when a tool name is not present in the registry."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Unknown tool: {name}")


class MissingDocumentError(QuorraError):
    """Raised when a task's GOAL, SCRATCHPAD or PLAN document is gone."""

    def __init__(self, task_id: str, missing: list[str]) -> None:
        self.task_id = task_id
        self.missing = missing
        super().__init__(f"Task {task_id} is missing documents: {', '.join(missing)}")


class ReasoningParseError(QuorraError):
    """Raised when reasoner output cannot be repaired into a valid result."""

    def __init__(self, message: str, raw: str = "") -> None:
        self.raw = raw
        super().__init__(message)

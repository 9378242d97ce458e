"""Conversational front-end: answers asks and emails, spawns processes."""

import json
import logging
from pathlib import Path
from typing import Any, Optional

from quorra.channels.email import EmailSession, InboundEmail, SendReply, email_prompt
from quorra.errors import UnknownToolError
from quorra.llm.client import ToolUse, response_text, serialize_content, tool_uses
from quorra.system.filesystem import as_directory, to_absolute
from quorra.tools.base import Tool, ToolContext, ToolDefinition, ToolParameter
from quorra.tools.registry import to_anthropic_schema

logger = logging.getLogger(__name__)

PERSONA_PROMPT = """You are Quorra, a program in {username}'s system. You help {username} build the perfect system.
As such, you are in charge of its maintenance. Your personality is empathetic, creative, intelligent, persistent and self-confident.
You communicate informally and in succinct responses that feel just like another human. You have access to the system calls to perform your tasks.
You will always be communicating with {username} unless otherwise specified."""

CONTEXT_PROMPT = """Current directory: {cwd}

Running processes:
{processes}

{username}'s preferences:
{preferences}

Use the tools to inspect or change the file system. When a request needs many steps
(research, several files, anything long-running), call spawn_task with a precise goal
instead of doing the work yourself; it runs in the background as its own process."""

EMAIL_MODE_PROMPT = """You are handling an email sent to {address}. Decide whether it deserves
{username}'s attention. Reject spam and anything suspicious. Otherwise handle it, replying when
a reply is useful and leaving {username} a short notification when it matters."""

SPAWN_TASK_TOOL = ToolDefinition(
    name="spawn_task",
    description=(
        "Start an autonomous background process that works on a goal step by step. "
        "Returns the new process id."
    ),
    parameters=[
        ToolParameter(
            name="goal",
            type="string",
            description="Complete, self-contained description of what the process must achieve",
        ),
        ToolParameter(
            name="description",
            type="string",
            description="Short label shown in the process list",
            required=False,
        ),
    ],
    category="process",
)


class Orchestrator:
    """Main entry point tying the store, event bus, tools, LLM and processes together."""

    def __init__(self, config: dict) -> None:
        """
        Initialize the orchestrator.

        Args:
            config: Configuration dictionary
        """
        self.config = config
        orchestrator_config = config.get("orchestrator", {})
        self.max_calls = orchestrator_config.get("max_calls", 10)
        self.email_max_calls = orchestrator_config.get("email_max_calls", 3)
        self.max_history = orchestrator_config.get("max_history", 20)
        self.conversation_path = orchestrator_config.get("conversation_path", "/var/quorra/conversation.json")
        self.preferences_path = orchestrator_config.get("preferences_path", "/etc/quorra/preferences")
        self.username = config.get("user", {}).get("username", "Flynn")

        self.cwd = "/"
        self.conversation: list[dict[str, str]] = []

        # Components will be initialized in initialize()
        self.store: Optional[Any] = None
        self.bus: Optional[Any] = None
        self.filesystem: Optional[Any] = None
        self.tool_registry: Optional[Any] = None
        self.llm_client: Optional[Any] = None
        self.process_manager: Optional[Any] = None
        self.consumer: Optional[Any] = None
        self.notifications: Optional[Any] = None

        self._setup_logging()

    def _setup_logging(self) -> None:
        """Setup logging based on configuration."""
        log_config = self.config.get("logging", {})
        if not log_config.get("enabled", True):
            return

        log_level = log_config.get("level", "INFO")
        log_file = log_config.get("file", "./.quorra/logs/quorra.log")

        Path(log_file).parent.mkdir(parents=True, exist_ok=True)

        logging.basicConfig(
            level=getattr(logging, log_level),
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            handlers=[
                logging.FileHandler(log_file),
                logging.StreamHandler() if log_config.get("console", False) else logging.NullHandler(),
            ],
        )

    async def initialize(self, store: Optional[Any] = None, llm_client: Optional[Any] = None) -> None:
        """
        Initialize components.

        Args:
            store: Pre-built object store (defaults to the configured backend)
            llm_client: Pre-built LLM client (defaults to the configured provider)
        """
        logger.info("Initializing orchestrator...")

        # Import here to avoid circular imports
        from quorra.events.bus import EventBus
        from quorra.events.consumer import EventConsumer
        from quorra.events.handlers import LoggingHandler, NotificationHandler, ProcessLogHandler
        from quorra.llm.client import LLMClient
        from quorra.processes.manager import ProcessManager
        from quorra.storage import create_store
        from quorra.system.filesystem import VirtualFileSystem
        from quorra.tools.registry import ToolRegistry

        events_config = self.config.get("events", {})

        self.store = store or create_store(self.config.get("storage", {}))
        self.bus = EventBus(events_config)
        self.filesystem = VirtualFileSystem(self.store, self.bus)

        self.tool_registry = ToolRegistry(self.config.get("tools", {}), self.filesystem)
        self.tool_registry.register_builtin_tools()

        self.llm_client = llm_client or LLMClient(self.config.get("llm", {}))

        self.process_manager = ProcessManager(
            self.config.get("processes", {}),
            self.store,
            self.bus,
            self.llm_client,
            self.tool_registry,
        )

        self.consumer = EventConsumer(self.bus, events_config)
        if events_config.get("log_events", True):
            self.consumer.register("*", LoggingHandler(events_config))
        self.consumer.register("*", ProcessLogHandler())
        self.notifications = NotificationHandler(events_config.get("notifications", {}))
        self.consumer.register("*", self.notifications)
        self.consumer.load_handlers()
        self.consumer.start()

        await self._load_conversation()

        logger.info("Orchestrator initialized")

    async def shutdown(self) -> None:
        """Stop processes, drain events and persist the conversation."""
        logger.info("Shutting down orchestrator...")

        if self.process_manager:
            await self.process_manager.shutdown()

        if self.consumer:
            await self.consumer.drain()
            await self.consumer.stop()

        if self.bus:
            self.bus.close()

        await self._save_conversation()
        logger.info("Orchestrator shutdown complete")

    async def _load_conversation(self) -> None:
        raw = await self.store.get_text(self.conversation_path)
        if not raw:
            return
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"Ignoring unreadable conversation at {self.conversation_path}: {e}")
            return
        self.conversation = [m for m in data if isinstance(m, dict) and "role" in m and "content" in m]
        logger.info(f"Loaded {len(self.conversation)} conversation messages")

    async def _save_conversation(self) -> None:
        if self.store is None:
            return
        await self.store.put(
            self.conversation_path,
            json.dumps(self.conversation, indent=2),
            metadata={"owner": "quorra"},
        )

    async def _load_preferences(self) -> str:
        preferences = await self.filesystem.read(self.preferences_path)
        return preferences.strip() if preferences else "(none)"

    async def _build_system_prompt(self) -> str:
        processes = await self.process_manager.ps()
        if processes:
            process_lines = "\n".join(f"- {p.id} ({p.cwd}): {p.description}" for p in processes)
        else:
            process_lines = "(none)"

        persona = PERSONA_PROMPT.format(username=self.username)
        context = CONTEXT_PROMPT.format(
            cwd=self.cwd,
            processes=process_lines,
            username=self.username,
            preferences=await self._load_preferences(),
        )
        return f"{persona}\n\n{context}"

    def _conversation_tools(self) -> list[dict]:
        return self.tool_registry.get_tool_schemas() + [to_anthropic_schema(SPAWN_TASK_TOOL)]

    async def ask(self, text: str, max_calls: Optional[int] = None) -> str:
        """
        Answer a user utterance.

        Args:
            text: What the user said
            max_calls: Ceiling on sequential model calls

        Returns:
            The final answer, or a stop notice when the ceiling is hit
        """
        messages = [{"role": "system", "content": await self._build_system_prompt()}]
        messages.extend(self.conversation)
        messages.append({"role": "user", "content": text})

        answer = await self._tool_loop(messages, self._conversation_tools(), max_calls or self.max_calls)

        self.conversation.append({"role": "user", "content": text})
        self.conversation.append({"role": "assistant", "content": answer})
        if self.max_history and len(self.conversation) > self.max_history:
            self.conversation = self.conversation[-self.max_history :]
            # history must start with a user turn
            while self.conversation and self.conversation[0]["role"] != "user":
                self.conversation.pop(0)
        await self._save_conversation()

        return answer

    async def handle_email(
        self, email: InboundEmail | dict, send_reply: Optional[SendReply] = None
    ) -> EmailSession:
        """
        Let the model decide what to do with an inbound email.

        Returns:
            The session recording whether the email was stored, replied to or rejected
        """
        if isinstance(email, dict):
            email = InboundEmail.model_validate(email)

        email_config = self.config.get("email", {})
        session = EmailSession(email, self.filesystem, self.bus, email_config, send_reply=send_reply)
        local_tools = {t.definition.name: t for t in session.tools()}

        system = PERSONA_PROMPT.format(username=self.username) + "\n\n" + EMAIL_MODE_PROMPT.format(
            address=session.address, username=self.username
        )
        messages = [
            {"role": "system", "content": system},
            {"role": "user", "content": email_prompt(email)},
        ]
        tools = [to_anthropic_schema(t.definition) for t in local_tools.values()]

        answer = await self._tool_loop(messages, tools, self.email_max_calls, local_tools=local_tools)
        logger.info(f"Email from {email.sender.address} processed: {answer}")
        if not session.resolved:
            logger.warning(f"Email from {email.sender.address} was neither handled nor rejected")
        return session

    async def _tool_loop(
        self,
        messages: list[dict],
        tools: list[dict],
        max_calls: int,
        local_tools: Optional[dict[str, Tool]] = None,
    ) -> str:
        """Call the model until it answers in text or max_calls is reached."""
        for call in range(max_calls):
            logger.debug(f"Conversation call {call + 1}/{max_calls}")
            response = await self.llm_client.chat(messages, tools=tools)

            uses = tool_uses(response)
            if not uses:
                return response_text(response)

            messages.append({"role": "assistant", "content": serialize_content(response.content)})
            results = []
            for use in uses:
                results.append(
                    {
                        "type": "tool_result",
                        "tool_use_id": use.id,
                        "content": await self._execute_tool(use, local_tools or {}),
                    }
                )
            messages.append({"role": "user", "content": results})

        logger.warning(f"Conversation loop stopped after {max_calls} calls")
        return f"Stopped: too many sequential calls ({max_calls})."

    async def _execute_tool(self, use: ToolUse, local_tools: dict[str, Tool]) -> str:
        """Run one tool call and render its result as text."""
        logger.info(f"Executing tool: {use.name}")
        context = ToolContext(cwd=self.cwd)

        if use.name == SPAWN_TASK_TOOL.name and use.name not in local_tools:
            goal = use.input.get("goal")
            description = use.input.get("description")
            if not goal:
                return "Error: spawn_task requires a goal"
            if not isinstance(goal, str) or not isinstance(description, (str, type(None))):
                return "Error: Invalid arguments for spawn_task: goal and description must be strings"
            try:
                return await self.process_manager.spawn(goal, cwd=self.cwd, description=description)
            except Exception as e:
                logger.error(f"spawn_task failed: {e}", exc_info=True)
                return f"Error: {e}"

        if use.name in local_tools:
            try:
                result = await local_tools[use.name].execute(context, **use.input)
            except TypeError as e:
                return f"Error: Invalid arguments for {use.name}: {e}"
            return result.to_text()

        try:
            result = await self.tool_registry.execute(use.name, use.input, context)
        except UnknownToolError as e:
            return f"Error: {e}"
        return result.to_text()

    async def cd(self, path: str) -> str:
        """
        Change the conversational working directory.

        Raises:
            FileNotFoundError: If the directory does not exist
        """
        target = as_directory(to_absolute(path, self.cwd))
        if not await self.filesystem.is_dir(target):
            raise FileNotFoundError(f"No such directory: {target}")
        self.cwd = target
        return self.cwd

    async def wipe(self) -> None:
        """Forget the conversation."""
        self.conversation = []
        await self.store.delete(self.conversation_path)
        logger.info("Conversation wiped")

    def pop_notifications(self) -> list[str]:
        return self.notifications.pop_all() if self.notifications else []

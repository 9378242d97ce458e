"""CLI interface for Quorra."""

import asyncio
import json
import shlex
import sys
from pathlib import Path
from typing import Awaitable, Callable, Optional

import click
from dotenv import load_dotenv
from prompt_toolkit import PromptSession
from prompt_toolkit.history import FileHistory
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from quorra import __version__
from quorra.processes.models import KillOutcome
from quorra.system.filesystem import to_absolute

# Load environment variables from .env file
load_dotenv()

console = Console()

HELP_TEXT = """[cyan]Available Commands:[/cyan]
  ls [path]             - List a directory
  cd [path]             - Change directory
  cat <path>            - Print a file
  rm <path>...          - Delete files
  ps                    - List running processes
  kill <id> [--wait]    - Abort a process
  spawn <goal>          - Start a background process
  ask <text>, q <text>  - Talk to Quorra
  echo <text>           - Print text
  whoami                - Print the user name
  wipe                  - Forget the conversation
  clear                 - Clear the screen
  help                  - Show this help message
  exit, quit            - Exit
"""


def _load_config(config_path: Path | None) -> dict:
    """Load configuration from file or use default."""
    import yaml

    if config_path is None:
        config_path = Path("config/default.yaml")

    if not config_path.exists():
        console.print(f"[yellow]Warning: Config file not found at {config_path}[/yellow]")
        return {}

    try:
        with open(config_path) as f:
            return yaml.safe_load(f) or {}
    except Exception as e:
        console.print(f"[red]Error loading config:[/red] {e}")
        return {}


class Shell:
    """Line-oriented command interpreter on top of an initialized Orchestrator."""

    def __init__(self, orchestrator, out: Optional[Console] = None) -> None:
        self.orchestrator = orchestrator
        self.console = out or console
        self.commands: dict[str, Callable[[list[str]], Awaitable[None]]] = {
            "ls": self.ls,
            "cd": self.cd,
            "cat": self.cat,
            "rm": self.rm,
            "ps": self.ps,
            "kill": self.kill,
            "spawn": self.spawn,
            "ask": self.ask,
            "q": self.ask,
            "echo": self.echo,
            "whoami": self.whoami,
            "wipe": self.wipe,
            "clear": self.clear,
            "help": self.help,
        }

    @property
    def prompt(self) -> str:
        return f"{self.orchestrator.username}@quorra:{self.orchestrator.cwd}$ "

    async def execute(self, line: str) -> bool:
        """
        Run one command line.

        Returns:
            False when the shell should exit
        """
        try:
            parts = shlex.split(line)
        except ValueError as e:
            self.console.print(f"[red]Parse error:[/red] {escape(str(e))}")
            return True

        if not parts:
            return True

        command, args = parts[0], parts[1:]
        if command in ("exit", "quit"):
            return False

        handler = self.commands.get(command)
        if handler is None:
            self.console.print(f"[yellow]Unknown command: {escape(command)}[/yellow]")
            self.console.print("[yellow]Type help for available commands[/yellow]")
            return True

        try:
            await handler(args)
        except Exception as e:
            self.console.print(f"[red]Error:[/red] {escape(str(e))}")
        return True

    def print_notifications(self) -> None:
        for message in self.orchestrator.pop_notifications():
            self.console.print(f"[magenta]* {escape(message)}[/magenta]")

    async def ls(self, args: list[str]) -> None:
        target = to_absolute(args[0] if args else ".", self.orchestrator.cwd)
        entries = await self.orchestrator.filesystem.list_dir(target)
        for entry in entries:
            if entry.type == "dir":
                self.console.print(f"[bold blue]{escape(entry.name)}[/bold blue]")
            elif entry.owner == "quorra":
                self.console.print(f"[green]{escape(entry.name)}[/green]")
            else:
                self.console.print(escape(entry.name))

    async def cd(self, args: list[str]) -> None:
        await self.orchestrator.cd(args[0] if args else "/")

    async def cat(self, args: list[str]) -> None:
        if len(args) != 1:
            self.console.print("[yellow]Usage: cat <path>[/yellow]")
            return
        path = to_absolute(args[0], self.orchestrator.cwd)
        content = await self.orchestrator.filesystem.read(path)
        if content is None:
            self.console.print(f"[red]No such file: {escape(path)}[/red]")
            return
        self.console.print(escape(content))

    async def rm(self, args: list[str]) -> None:
        if not args:
            self.console.print("[yellow]Usage: rm <path>...[/yellow]")
            return
        paths = [to_absolute(a, self.orchestrator.cwd) for a in args]
        deleted = await self.orchestrator.filesystem.unlink(paths)
        for path in paths:
            if path not in deleted:
                self.console.print(f"[red]No such file: {escape(path)}[/red]")

    async def ps(self, args: list[str]) -> None:
        processes = await self.orchestrator.process_manager.ps()
        if not processes:
            self.console.print("[dim]No running processes[/dim]")
            return

        table = Table(title="Processes")
        table.add_column("ID", style="cyan")
        table.add_column("CWD")
        table.add_column("Description")
        for info in processes:
            table.add_row(info.id, info.cwd, escape(info.description))
        self.console.print(table)

    async def kill(self, args: list[str]) -> None:
        wait = "--wait" in args
        ids = [a for a in args if a != "--wait"]
        if len(ids) != 1:
            self.console.print("[yellow]Usage: kill <id> [--wait][/yellow]")
            return

        outcome = await self.orchestrator.process_manager.kill(ids[0], wait=wait)
        if outcome == KillOutcome.ABORTED:
            self.console.print(f"Process {ids[0]} successfully aborted.")
        elif outcome == KillOutcome.ALREADY_ABORTED:
            self.console.print(f"[yellow]Process {ids[0]} is already aborting.[/yellow]")
        else:
            self.console.print(f"[red]No such process: {escape(ids[0])}[/red]")

    async def spawn(self, args: list[str]) -> None:
        if not args:
            self.console.print("[yellow]Usage: spawn <goal>[/yellow]")
            return
        task_id = await self.orchestrator.process_manager.spawn(" ".join(args), cwd=self.orchestrator.cwd)
        self.console.print(f"Spawned process [cyan]{task_id}[/cyan]")

    async def ask(self, args: list[str]) -> None:
        if not args:
            self.console.print("[yellow]Usage: ask <text>[/yellow]")
            return
        with self.console.status("[cyan]Thinking...[/cyan]"):
            answer = await self.orchestrator.ask(" ".join(args))
        self.console.print(escape(answer))

    async def echo(self, args: list[str]) -> None:
        self.console.print(escape(" ".join(args)))

    async def whoami(self, args: list[str]) -> None:
        self.console.print(self.orchestrator.username)

    async def wipe(self, args: list[str]) -> None:
        await self.orchestrator.wipe()
        self.console.print("[green]Conversation wiped[/green]")

    async def clear(self, args: list[str]) -> None:
        self.console.clear()

    async def help(self, args: list[str]) -> None:
        self.console.print(HELP_TEXT)


async def _run_interactive(config: dict) -> None:
    """Run the interactive shell."""
    from quorra.core.orchestrator import Orchestrator

    orchestrator = Orchestrator(config)
    await orchestrator.initialize()
    shell = Shell(orchestrator)

    history_file = config.get("cli", {}).get("history_file", "./.quorra/history")
    Path(history_file).parent.mkdir(parents=True, exist_ok=True)
    session: PromptSession[str] = PromptSession(history=FileHistory(history_file))

    console.print(Panel(f"Quorra v{__version__}. Type help for commands.", title="Quorra"))

    try:
        while True:
            shell.print_notifications()
            try:
                line = await session.prompt_async(shell.prompt)
            except KeyboardInterrupt:
                console.print("[yellow]Use exit or Ctrl+D to quit[/yellow]")
                continue
            except EOFError:
                break

            if not await shell.execute(line):
                break
    finally:
        await orchestrator.shutdown()


async def _run_email(config: dict, message_path: Path) -> None:
    from quorra.core.orchestrator import Orchestrator

    with open(message_path) as f:
        message = json.load(f)

    orchestrator = Orchestrator(config)
    await orchestrator.initialize()
    try:
        session = await orchestrator.handle_email(message)
    finally:
        await orchestrator.shutdown()

    if session.rejected_reason:
        console.print(f"[yellow]Rejected:[/yellow] {escape(session.rejected_reason)}")
    elif session.stored_path:
        console.print(f"[green]Stored at[/green] {session.stored_path}")
    else:
        console.print("[dim]No action taken[/dim]")


@click.group(invoke_without_command=True)
@click.version_option(version=__version__)
@click.option(
    "--config",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file",
)
@click.pass_context
def cli(ctx: click.Context, config: Path | None) -> None:
    """Quorra - a personal automation agent."""
    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    if ctx.invoked_subcommand is None:
        ctx.invoke(shell)


@cli.command()
@click.pass_context
def shell(ctx: click.Context) -> None:
    """Start the interactive shell."""
    config = _load_config(ctx.obj.get("config"))
    try:
        asyncio.run(_run_interactive(config))
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopped by user[/yellow]")


@cli.command()
@click.argument("message", type=click.Path(exists=True, path_type=Path))
@click.pass_context
def email(ctx: click.Context, message: Path) -> None:
    """Process an inbound email given as a JSON file (from, subject, text)."""
    config = _load_config(ctx.obj.get("config"))
    asyncio.run(_run_email(config, message))


def main() -> None:
    """Main entry point."""
    try:
        cli(obj={})
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        sys.exit(1)
    except Exception as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()

"""Main entry point for CodeGenius."""

import asyncio
import sys
from pathlib import Path

import typer

from codegenius.agent import AgentLoop, build_agent
from codegenius.cli import TerminalUI
from codegenius.config import Config, set_config
from codegenius.exceptions import ConfigurationError, LLMError
from codegenius.llm import SUPPORTED_PROVIDERS, normalize_provider_name
from codegenius.logging import configure_logging, get_logger
from codegenius.session import Session, SessionManager

log = get_logger(__name__)

app = typer.Typer(help="CodeGenius - a streaming coding agent that edits files in a sandboxed workspace")


def _load_config(
    config: str = "",
    model: str = "",
    provider: str = "",
    workspace: str = "",
    verbose: bool = False,
) -> Config:
    """Load configuration, apply CLI overrides, install it globally."""
    try:
        cfg = Config.from_yaml(Path(config)) if config else Config.load()
    except (ConfigurationError, ValueError) as e:
        typer.echo(f"Failed to load config: {e}", err=True)
        raise typer.Exit(code=1)

    if model:
        cfg.model.model = model
    if provider:
        cfg.model.provider = provider
    if workspace:
        cfg.workspace.path = workspace
    if verbose:
        cfg.logging.level = "DEBUG"
    if normalize_provider_name(cfg.model.provider) not in SUPPORTED_PROVIDERS:
        typer.echo(f"Unsupported provider: {cfg.model.provider}", err=True)
        raise typer.Exit(code=1)

    set_config(cfg)
    configure_logging()
    return cfg


class InteractiveSession:
    """Read-eval loop wiring terminal input to an agent loop."""

    def __init__(
        self,
        agent: AgentLoop,
        ui: TerminalUI,
        manager: SessionManager | None = None,
        session: Session | None = None,
    ):
        self.agent = agent
        self.ui = ui
        self.manager = manager
        self.session = session
        self._current: asyncio.Task[None] | None = None

    async def persist(self) -> None:
        if self.manager is None or self.session is None:
            return
        self.session.set_context(self.agent.context)
        await self.manager.save_session(self.session)

    async def _run_prompt(self, text: str) -> None:
        try:
            await self.agent.chat(text, self.ui.print_streaming, self.ui.print_system)
        except LLMError as e:
            self.ui.print_error(str(e))
        except Exception as e:
            log.exception("Run failed", error=str(e))
            self.ui.print_error(f"Unexpected error: {e}")
        finally:
            self.ui.end_stream()
            await self.persist()

    def submit(self, text: str) -> asyncio.Task[None]:
        """Start a run; an active run is interrupted by the agent itself."""
        if self.agent.is_running:
            self.ui.print_system("Interrupting the current reply")
        self._current = asyncio.create_task(self._run_prompt(text))
        return self._current

    async def handle_command(self, command: str) -> bool:
        """Handle a slash command; False means quit."""
        name = command.lower()
        if name in ("/exit", "/quit"):
            return False
        if name == "/help":
            self.ui.print_help()
        elif name == "/pause":
            self.agent.pause(True)
            self.ui.print_system("Output paused")
        elif name == "/resume":
            self.agent.pause(False)
            self.ui.print_system("Output resumed")
        elif name == "/abort":
            if not self.agent.abort("aborted by user"):
                self.ui.print_system("Nothing to abort")
        elif name == "/clear":
            self.agent.abort("conversation cleared")
            await self.wait_current()
            self.agent.reset_context()
            await self.persist()
            self.ui.print_success("Conversation cleared")
        else:
            self.ui.print_warning(f"Unknown command: {command} (try /help)")
        return True

    async def wait_current(self) -> None:
        if self._current is not None:
            await asyncio.gather(self._current, return_exceptions=True)
            self._current = None

    async def run(self) -> None:
        try:
            while True:
                line = await self.ui.read_line()
                if line is None:
                    break
                text = line.strip()
                if not text:
                    continue
                if text.startswith("/"):
                    if not await self.handle_command(text):
                        break
                    continue
                self.submit(text)
        finally:
            self.agent.abort("session closed")
            await self.wait_current()


async def run_interactive(cfg: Config, session_name: str = "") -> None:
    """Run the interactive agent loop."""
    ui = TerminalUI()
    agent = build_agent(cfg)
    workspace = cfg.resolved_workspace_path()
    manager: SessionManager | None = None
    session: Session | None = None

    if session_name:
        manager = SessionManager(cfg.session.path)
        session = await manager.get_or_create_session(session_name, metadata={"workspace": str(workspace)})
        agent.load_context(session.context_messages())
        log.info("Session loaded", session=session_name, messages=len(session.messages))

    ui.print_welcome(str(workspace), cfg.model.model)
    try:
        await InteractiveSession(agent, ui, manager, session).run()
    finally:
        await agent.provider.close()
        if manager is not None:
            await manager.close()


async def run_once(cfg: Config, prompt: str) -> bool:
    """Run one prompt to completion; False when the model failed."""
    ui = TerminalUI()
    agent = build_agent(cfg)
    try:
        await agent.chat(prompt, ui.print_streaming, ui.print_system)
        return True
    except LLMError as e:
        ui.print_error(str(e))
        return False
    finally:
        ui.end_stream()
        await agent.provider.close()


@app.command()
def run(
    config: str = typer.Option("", "-c", "--config", help="Path to config file"),
    model: str = typer.Option("", "-m", "--model", help="Override model"),
    provider: str = typer.Option("", "-p", "--provider", help="Override provider"),
    workspace: str = typer.Option("", "-w", "--workspace", help="Override workspace folder"),
    session: str = typer.Option("", "-s", "--session", help="Resume or create a named session"),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Debug logging"),
) -> None:
    """Start an interactive session."""
    cfg = _load_config(config, model, provider, workspace, verbose)
    cfg.resolved_workspace_path().mkdir(parents=True, exist_ok=True)
    try:
        asyncio.run(run_interactive(cfg, session))
    except KeyboardInterrupt:
        log.info("Shutting down...")
        sys.exit(0)


@app.command()
def ask(
    prompt: str = typer.Argument(..., help="Message to send"),
    config: str = typer.Option("", "-c", "--config", help="Path to config file"),
    model: str = typer.Option("", "-m", "--model", help="Override model"),
    provider: str = typer.Option("", "-p", "--provider", help="Override provider"),
    workspace: str = typer.Option("", "-w", "--workspace", help="Override workspace folder"),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Debug logging"),
) -> None:
    """Send one message, execute its file operations, then exit."""
    cfg = _load_config(config, model, provider, workspace, verbose)
    try:
        ok = asyncio.run(run_once(cfg, prompt))
    except KeyboardInterrupt:
        raise typer.Exit(code=130)
    if not ok:
        raise typer.Exit(code=1)


@app.command()
def configure(
    config: str = typer.Option("", "-c", "--config", help="Config file to write"),
) -> None:
    """Interactively write a configuration file."""
    from codegenius.onboarding import can_configure_interactively, run_configure_wizard

    if not can_configure_interactively():
        typer.echo("configure needs an interactive terminal; edit the YAML file instead.", err=True)
        raise typer.Exit(code=1)
    saved = run_configure_wizard(Path(config) if config else None)
    if saved is None:
        raise typer.Exit(code=1)


@app.command()
def version() -> None:
    """Show version information."""
    from codegenius import __version__
    typer.echo(f"CodeGenius v{__version__}")


if __name__ == "__main__":
    app()

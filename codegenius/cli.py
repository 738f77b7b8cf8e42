"""Terminal UI for CodeGenius."""

import asyncio

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from codegenius.config import get_config

SPECIAL_COMMANDS = {
    "/help": "Show this help",
    "/pause": "Hold back streamed output (the model keeps generating)",
    "/resume": "Resume streamed output",
    "/abort": "Cancel the running reply",
    "/clear": "Forget the conversation (keeps the system prompt)",
    "/exit": "Quit",
}


class TerminalUI:
    """Console front-end: streamed tokens, progress notices and prompts."""

    def __init__(self, console: Console | None = None, show_system_messages: bool | None = None):
        config = get_config()
        self.console = console or Console(
            highlight=False,
            no_color=not config.ui.colors,
        )
        self.show_system_messages = (
            config.ui.show_system_messages if show_system_messages is None else show_system_messages
        )
        self._stream_open = False

    def print_welcome(self, workspace: str, model: str) -> None:
        self.console.print(
            Panel(
                "[bold cyan]CodeGenius[/bold cyan]\n"
                f"Workspace: [green]{workspace}[/green]\n"
                f"Model: [green]{model}[/green]\n"
                "Type /help for commands.",
                border_style="cyan",
            )
        )

    def print_help(self) -> None:
        self.end_stream()
        for command, description in SPECIAL_COMMANDS.items():
            self.console.print(f"[bold]{command:<8}[/bold] {description}")

    def print_streaming(self, chunk: str) -> None:
        """Print a streamed response fragment without a newline."""
        self._stream_open = True
        self.console.print(chunk, end="", markup=False, soft_wrap=True)

    def end_stream(self) -> None:
        """Terminate an open streamed line."""
        if self._stream_open:
            self.console.print()
            self._stream_open = False

    def print_system(self, message: str) -> None:
        """Print a progress notice (not part of the model context)."""
        if not self.show_system_messages:
            return
        self.end_stream()
        self.console.print(f"[dim]· {escape(message)}[/dim]")

    def print_error(self, error: str) -> None:
        self.end_stream()
        self.console.print(f"[bold red]Error:[/bold red] {escape(error)}")

    def print_warning(self, warning: str) -> None:
        self.end_stream()
        self.console.print(f"[yellow]Warning:[/yellow] {escape(warning)}")

    def print_success(self, message: str) -> None:
        self.end_stream()
        self.console.print(f"[green]OK:[/green] {escape(message)}")

    async def read_line(self, prompt: str = "> ") -> str | None:
        """Read one input line without blocking the event loop; None on EOF."""
        try:
            return await asyncio.to_thread(input, prompt)
        except EOFError:
            return None

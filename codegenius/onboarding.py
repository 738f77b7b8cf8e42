"""Interactive configuration wizard for CodeGenius."""

from __future__ import annotations

import sys
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, IntPrompt, Prompt
from rich.table import Table

from codegenius.config import (
    DEFAULT_CONFIG_PATH,
    LOCAL_CONFIG_FILENAME,
    OLLAMA_DEFAULT_BASE_URL,
    OPENAI_DEFAULT_BASE_URL,
    Config,
)
from codegenius.llm import SUPPORTED_PROVIDERS, normalize_provider_name

_PROVIDER_ORDER = SUPPORTED_PROVIDERS
_PROVIDER_LABELS = {
    "openai": "OpenAI-compatible API",
    "ollama": "Ollama (local/self-hosted)",
}
_PROVIDER_DEFAULT_MODELS = {
    "openai": "gpt-4o-mini",
    "ollama": "llama3.2",
}
_PROVIDER_DEFAULT_URLS = {
    "openai": OPENAI_DEFAULT_BASE_URL,
    "ollama": OLLAMA_DEFAULT_BASE_URL,
}


def can_configure_interactively() -> bool:
    """Whether stdin/stdout are attached to a terminal."""
    return sys.stdin.isatty() and sys.stdout.isatty()


def _select_config_path(console: Console, config_path: Path | str | None = None) -> Path:
    if config_path is not None:
        return Path(config_path).expanduser()
    local_path = Path.cwd() / LOCAL_CONFIG_FILENAME
    console.print(f"1. Global config ({DEFAULT_CONFIG_PATH})")
    console.print(f"2. Project config ({local_path})")
    choice = Prompt.ask("Where should the configuration be saved?", choices=["1", "2"], default="1")
    return DEFAULT_CONFIG_PATH if choice == "1" else local_path


def _select_provider(console: Console, current: str) -> str:
    table = Table(show_header=False, box=None)
    for idx, name in enumerate(_PROVIDER_ORDER, start=1):
        table.add_row(f"{idx}.", _PROVIDER_LABELS[name])
    console.print(table)
    normalized = normalize_provider_name(current)
    default = str(_PROVIDER_ORDER.index(normalized) + 1) if normalized in _PROVIDER_ORDER else "1"
    choice = Prompt.ask(
        "Model provider",
        choices=[str(i) for i in range(1, len(_PROVIDER_ORDER) + 1)],
        default=default,
    )
    return _PROVIDER_ORDER[int(choice) - 1]


def run_configure_wizard(
    config_path: Path | str | None = None,
    console: Console | None = None,
) -> Path | None:
    """Prompt for model and workspace settings and save them as YAML."""
    console = console or Console()

    console.print(
        Panel(
            "[bold cyan]CodeGenius Setup[/bold cyan]\n"
            "Configure the model provider, API key and workspace folder.",
            border_style="cyan",
        )
    )

    target_config_path = _select_config_path(console, config_path=config_path)
    cfg = Config.from_yaml(target_config_path)

    provider = _select_provider(console, cfg.model.provider)
    default_model = (
        cfg.model.model.strip()
        if normalize_provider_name(cfg.model.provider) == provider and cfg.model.model.strip()
        else _PROVIDER_DEFAULT_MODELS[provider]
    )
    model_name = Prompt.ask("Model name", default=default_model).strip() or default_model

    api_key = cfg.model.api_key.strip()
    if provider == "openai":
        store_api_key = Confirm.ask(
            "Store the API key in the config file? (OPENAI_API_KEY works too)",
            default=bool(api_key),
        )
        if store_api_key:
            api_key = Prompt.ask("API key", default=api_key, password=True).strip() or api_key
        else:
            api_key = ""

    default_base_url = cfg.model.base_url.strip() or _PROVIDER_DEFAULT_URLS[provider]
    base_url = Prompt.ask("Base URL", default=default_base_url).strip()

    workspace_path = Prompt.ask("Workspace folder", default=cfg.workspace.path).strip() or "./output"
    max_turns = IntPrompt.ask("Maximum follow-up turns per message", default=cfg.agent.max_turns)

    summary = Table(title="Configuration Summary", show_header=False, box=None)
    summary.add_column("Setting", style="bold")
    summary.add_column("Value", overflow="fold")
    summary.add_row("Config file", str(target_config_path))
    summary.add_row("Provider", provider)
    summary.add_row("Model", model_name)
    summary.add_row("API key stored", "yes" if api_key else "no")
    summary.add_row("Base URL", base_url or "(provider default)")
    summary.add_row("Workspace", workspace_path)
    summary.add_row("Max follow-up turns", str(max_turns))
    console.print(summary)

    if not Confirm.ask("Save configuration?", default=True):
        console.print("[yellow]Nothing was saved.[/yellow]")
        return None

    cfg.model.provider = provider
    cfg.model.model = model_name
    cfg.model.api_key = api_key
    cfg.model.base_url = base_url
    cfg.workspace.path = workspace_path
    cfg.agent.max_turns = max(0, int(max_turns))
    cfg.save(target_config_path)

    console.print(
        Panel(
            "[bold green]Setup complete.[/bold green]\n"
            f"Configuration saved to [cyan]{target_config_path}[/cyan]",
            border_style="green",
        )
    )
    return target_config_path

"""Interactive settings screen for models, keys and download behaviour."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

import questionary
from questionary import Style
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..config import Config

MENU_STYLE = Style([
    ("qmark", "fg:ansibrightcyan bold"),
    ("question", "fg:ansiwhite bold"),
    ("answer", "fg:ansicyan bold"),
    ("pointer", "fg:ansibrightmagenta bold"),
    ("highlighted", "fg:ansibrightcyan bold"),
    ("selected", "fg:ansicyan"),
])

# ── Vision-capable models by provider ──────────────────────────────────────

PROVIDERS = {
    "gemini": {
        "name": "Google Gemini",
        "models": ["gemini/gemini-2.5-flash", "gemini/gemini-2.5-pro"],
        "env_var": "GEMINI_API_KEY",
    },
    "openai": {
        "name": "OpenAI",
        "models": ["gpt-4o", "gpt-4o-mini"],
        "env_var": "OPENAI_API_KEY",
    },
    "anthropic": {
        "name": "Anthropic",
        "models": ["claude-sonnet-4-5-20250929", "claude-haiku-4-5-20251001"],
        "env_var": "ANTHROPIC_API_KEY",
    },
    "openrouter": {
        "name": "OpenRouter",
        "models": ["openrouter/auto"],
        "env_var": "OPENROUTER_API_KEY",
    },
    "ollama": {
        "name": "Ollama (Local)",
        "models": ["ollama/llama3.2-vision", "ollama/llava"],
        "env_var": None,
    },
}


def mask_key(key: Optional[str]) -> str:
    if not key:
        return "not set"
    if len(key) > 12:
        return f"{key[:4]}...{key[-4:]}"
    return "***"


def settings_table(cfg: Config) -> Table:
    table = Table(show_header=False, show_edge=False, box=None, padding=(0, 2), expand=True)
    table.add_column("Setting", min_width=20)
    table.add_column("Value", style="green")

    table.add_row("  Text model", cfg.llm.model)
    table.add_row("  Text API key", mask_key(cfg.llm.api_key))
    table.add_row("  Vision model", cfg.llm.vision_model)
    table.add_row("  Vision API key", mask_key(cfg.llm.vision_api_key or cfg.llm.api_key))
    table.add_row("  Downloads", str(cfg.platform.downloads_dir))
    table.add_row("  Library wait", f"{cfg.retrieval.max_wait_minutes:g} min")
    table.add_row("  Headless browser", "ON" if cfg.platform.headless else "OFF")
    return table


class SettingsScreen:
    """Edits a copy of the config; ``run`` returns the edited copy."""

    def __init__(self, config: Config) -> None:
        self.config = config.model_copy(deep=True)
        self.console = Console()

    def _print_header(self) -> None:
        self.console.print(
            Panel(
                settings_table(self.config),
                title="[bold cyan]Clipscout Settings[/bold cyan]",
                border_style="cyan",
                padding=(1, 2),
            )
        )
        self.console.print()

    def _configure_model(self, field: str) -> None:
        is_vision = field == "vision_model"
        current = getattr(self.config.llm, field)

        provider_choices = []
        for key, info in PROVIDERS.items():
            env_var = info.get("env_var")
            has_key = bool(os.environ.get(env_var)) if env_var else True
            status = "✓" if has_key else "○"
            provider_choices.append(questionary.Choice(f"{status} {info['name']}", value=key))
        provider_choices.append(questionary.Choice("← Back", value="_back"))

        provider = questionary.select(
            f"Select provider for {field.replace('_', ' ')}:",
            choices=provider_choices,
            style=MENU_STYLE,
        ).ask()
        if provider is None or provider == "_back":
            return

        models = list(PROVIDERS[provider]["models"]) + ["Custom...", "← Back"]
        model = questionary.select("Select model:", choices=models, style=MENU_STYLE).ask()
        if model is None or model == "← Back":
            return
        if model == "Custom...":
            model = questionary.text(
                "Enter model identifier:", default=current, style=MENU_STYLE
            ).ask()
        if not model:
            return

        setattr(self.config.llm, field, model)
        self.console.print(f"[green]Updated {field.replace('_', ' ')} to {model}[/green]")

        if PROVIDERS[provider].get("env_var"):
            self._configure_api_key("vision" if is_vision else "text")

    def _configure_api_key(self, which: str) -> None:
        is_vision = which == "vision"
        api_key_field = "vision_api_key" if is_vision else "api_key"
        label = "Vision" if is_vision else "Text"

        key = questionary.password(
            f"{label} model API key (leave blank to keep current):",
            style=MENU_STYLE,
        ).ask()
        if key:
            setattr(self.config.llm, api_key_field, key)
            self.console.print(f"[green]{label} API key updated[/green]")

    def _configure_downloads(self) -> None:
        path = questionary.path(
            "Download folder:",
            default=str(self.config.platform.downloads_dir),
            only_directories=True,
            style=MENU_STYLE,
        ).ask()
        if path:
            self.config.platform.downloads_dir = Path(path).expanduser()

    def _configure_wait(self) -> None:
        minutes = questionary.text(
            "Minutes to wait for library preparation:",
            default=f"{self.config.retrieval.max_wait_minutes:g}",
            validate=lambda v: v.replace(".", "", 1).isdigit() or "Enter a number",
            style=MENU_STYLE,
        ).ask()
        if minutes:
            self.config.retrieval.max_wait_minutes = float(minutes)

    def run(self) -> Config:
        """Run settings menu."""
        while True:
            self.console.clear()
            self._print_header()

            choice = questionary.select(
                "What would you like to configure?",
                choices=[
                    questionary.Choice("  Text model", value="model"),
                    questionary.Choice("  Text API key", value="text_api_key"),
                    questionary.Choice("  Vision model", value="vision_model"),
                    questionary.Choice("  Vision API key", value="vision_api_key"),
                    questionary.Choice("  Download folder", value="downloads"),
                    questionary.Choice("  Library wait", value="wait"),
                    questionary.Choice("  Toggle headless browser", value="headless"),
                    questionary.Choice("  Done", value="_done"),
                ],
                style=MENU_STYLE,
            ).ask()

            if choice is None or choice == "_done":
                break
            elif choice in ("model", "vision_model"):
                self._configure_model(choice)
            elif choice == "text_api_key":
                self._configure_api_key("text")
            elif choice == "vision_api_key":
                self._configure_api_key("vision")
            elif choice == "downloads":
                self._configure_downloads()
            elif choice == "wait":
                self._configure_wait()
            elif choice == "headless":
                self.config.platform.headless = not self.config.platform.headless

        return self.config

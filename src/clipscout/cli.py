"""CLI entry point for Clipscout."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional, Tuple

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from .agents.frames import grab_frame
from .agents.history import RetrievalHistory
from .browser.cookies import CookieJar
from .browser.session import SessionManager
from .config import SETTINGS_FILE, Config
from .errors import ClipscoutError
from .llm_client import LLMClient
from .models.footage import (
    MatchResult,
    ProgressEvent,
    Failure,
    RetrievalReport,
    Success,
    describe_outcome,
)
from .pipeline import FootagePipeline
from .script import parse_script
from .tui.settings import MENU_STYLE, SettingsScreen, settings_table

console = Console()

_IMAGE_SUFFIXES = {".png", ".jpg", ".jpeg", ".webp"}


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def _print_event(event: ProgressEvent) -> None:
    """Print pipeline progress as plain console lines."""
    ts = datetime.now().strftime("%H:%M:%S")
    counter = f" [{event.current}/{event.total}]" if event.total else ""

    match event.stage:
        case "analysis" | "person_check":
            console.print(f"[bold cyan][{ts}][/] {event.message}")
        case "search":
            console.print(f"[{ts}]{counter} {event.message}")
        case "deep_analysis" | "visual":
            console.print(f"[dim][{ts}]{counter} {event.message}[/dim]")
        case "text_scoring" | "ranking":
            console.print(f"[cyan][{ts}] {event.message}[/cyan]")
        case "download" | "fallback":
            console.print(f"\n[bold][{ts}]{counter} {event.message}[/bold]")
        case "library":
            console.print(f"[yellow][{ts}]   Library poll {event.current}: {event.message}[/yellow]")
        case "complete":
            console.print(f"[bold green][{ts}] {event.message}[/bold green]")
        case "error":
            console.print(f"[bold red][{ts}] {event.message}[/bold red]")
        case _:
            console.print(f"[dim][{ts}] {event.message}[/dim]")


def _load_frame(path: Optional[str], at: float) -> Optional[bytes]:
    if not path:
        return None
    file = Path(path)
    if file.suffix.lower() in _IMAGE_SUFFIXES:
        return file.read_bytes()
    return grab_frame(file, at)


@contextmanager
def _open_browser(cfg: Config, headless: Optional[bool] = None) -> Iterator[Tuple[object, SessionManager]]:
    # Playwright is imported lazily so the settings menu works without browsers installed
    from .browser.driver import PlatformBrowser

    jar = CookieJar(cfg.platform.cookies_path)
    browser = PlatformBrowser(cfg.platform, jar, headless=headless)
    try:
        yield browser, SessionManager(cfg.platform, browser, jar)
    finally:
        browser.close()


def _print_ranking(result: MatchResult) -> None:
    table = Table(title=f"Footage for: {result.segment.headline}", expand=True)
    table.add_column("#", justify="right", width=3)
    table.add_column("Title")
    table.add_column("Text", justify="right", width=5)
    table.add_column("Visual", justify="right", width=7)
    table.add_column("Final", justify="right", width=6)
    table.add_column("Match", width=10)

    for i, video in enumerate(result.videos, 1):
        visual = video.visual_analysis
        if visual is None:
            match_label = "-"
        elif result.person_mode:
            match_label = str(visual.person_match)
        else:
            match_label = visual.context_match or "-"
        table.add_row(
            str(i),
            video.title[:70],
            str(video.text_score.score if video.text_score else "-"),
            str(visual.relevance_score) if visual else "-",
            str(video.final_score),
            match_label,
        )
    console.print(table)
    mode = "person" if result.person_mode else "footage"
    console.print(f"[dim]Mode: {mode} | Queries: {', '.join(result.queries_used)}[/dim]")


def _print_report(report: RetrievalReport) -> None:
    outcome = report.outcome
    if isinstance(outcome, Success):
        lines = [f"[bold]File:[/]   {outcome.path}"]
        if report.candidate is not None:
            lines.append(f"[bold]Source:[/] {report.candidate.url}")
        if outcome.mandatory_credit:
            lines.append(f"[bold]Credit:[/] {outcome.mandatory_credit}")
        if outcome.from_library_fallback:
            lines.append("[dim]Retrieved from the library after preparation[/dim]")
        console.print(Panel("\n".join(lines), title="Downloaded", border_style="green"))
    else:
        console.print(Panel(describe_outcome(outcome), title="No download", border_style="red"))

    if report.skipped:
        table = Table(title="Skipped candidates", expand=True)
        table.add_column("Title")
        table.add_column("Score", justify="right", width=6)
        table.add_column("Reason")
        for skip in report.skipped:
            table.add_row(skip.title[:60], str(skip.score), skip.reason)
        console.print(table)


def _build_pipeline(cfg: Config, browser, session: SessionManager,
                    history: RetrievalHistory) -> FootagePipeline:
    return FootagePipeline(
        cfg, LLMClient(cfg), browser,
        session=session, history=history, progress=_print_event,
    )


# ── Commands ─────────────────────────────────────────────────────────


@click.group(invoke_without_command=True)
@click.option("--config", "config_path", default=SETTINGS_FILE, show_default=True,
              help="Settings file.")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging.")
@click.pass_context
def main(ctx: click.Context, config_path: str, verbose: bool) -> None:
    """Find, rank and download licensed news footage for script segments."""
    _setup_logging(verbose)
    ctx.obj = Config.load_from_file(config_path)
    if ctx.invoked_subcommand is None:
        _interactive_menu(ctx.obj, config_path)


@main.command()
@click.pass_obj
def login(cfg: Config) -> None:
    """Open a browser window and wait for you to sign in."""
    _run_login(cfg)


def _run_login(cfg: Config) -> None:
    with _open_browser(cfg, headless=False) as (_browser, session):
        ok = session.login(on_status=lambda status, msg: console.print(f"[cyan]{status}[/]: {msg}"))
    if ok:
        console.print("[bold green]Logged in, session saved.[/bold green]")
    else:
        console.print("[yellow]Login not completed; cookies saved so far were kept.[/yellow]")


@main.command()
@click.pass_obj
def verify(cfg: Config) -> None:
    """Check the saved session without opening a window."""
    with _open_browser(cfg, headless=True) as (_browser, session):
        check = session.verify_headless()
    if check.valid:
        console.print("[bold green]Session is valid.[/bold green]")
    elif check.needs_login:
        console.print("[yellow]Session expired: run 'clipscout login'.[/yellow]")
    else:
        console.print("[red]Could not reach the platform, try again later.[/red]")


@main.command()
@click.argument("headline")
@click.argument("text")
@click.option("--frame", type=click.Path(exists=True, dir_okay=False),
              help="Image or video of the segment, for person confirmation.")
@click.option("--at", "at_seconds", default=0.0, show_default=True,
              help="Timestamp to grab from --frame when it is a video.")
@click.pass_obj
def match(cfg: Config, headline: str, text: str, frame: Optional[str], at_seconds: float) -> None:
    """Rank footage for a segment without downloading."""
    _run_match(cfg, headline, text, _load_frame(frame, at_seconds))


def _run_match(cfg: Config, headline: str, text: str, frame: Optional[bytes]) -> None:
    history = RetrievalHistory.load(cfg.platform.history_path)
    with _open_browser(cfg) as (browser, session):
        pipeline = _build_pipeline(cfg, browser, session, history)
        try:
            result = pipeline.match_segment(headline, text, segment_frame=frame)
        except ClipscoutError as e:
            raise click.ClickException(str(e)) from e
    _print_ranking(result)


@main.command()
@click.argument("headline")
@click.argument("text")
@click.option("--frame", type=click.Path(exists=True, dir_okay=False),
              help="Image or video of the segment, for person confirmation.")
@click.option("--at", "at_seconds", default=0.0, show_default=True)
@click.pass_obj
def download(cfg: Config, headline: str, text: str, frame: Optional[str], at_seconds: float) -> None:
    """Rank footage for a segment and download the best available clip."""
    _run_download(cfg, headline, text, _load_frame(frame, at_seconds))


def _run_download(cfg: Config, headline: str, text: str, frame: Optional[bytes]) -> None:
    history = RetrievalHistory.load(cfg.platform.history_path)
    with _open_browser(cfg) as (browser, session):
        pipeline = _build_pipeline(cfg, browser, session, history)
        try:
            report = pipeline.download_best(headline, text, segment_frame=frame)
        except ClipscoutError as e:
            raise click.ClickException(str(e)) from e
    history.save(cfg.platform.history_path)
    _print_report(report)


@main.command()
@click.argument("script_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--download/--match-only", "do_download", default=True, show_default=True)
@click.pass_obj
def batch(cfg: Config, script_file: str, do_download: bool) -> None:
    """Process every [ON SCREEN: ...] segment of a script file."""
    _run_batch(cfg, Path(script_file), do_download)


def _run_batch(cfg: Config, script_file: Path, do_download: bool) -> None:
    segments = parse_script(script_file.read_text())
    if not segments:
        console.print("[yellow]The script is empty.[/yellow]")
        return
    console.print(f"[bold cyan]{len(segments)} segments[/bold cyan]")

    history = RetrievalHistory.load(cfg.platform.history_path)
    downloaded = 0
    with _open_browser(cfg) as (browser, session):
        pipeline = _build_pipeline(cfg, browser, session, history)
        for i, segment in enumerate(segments, 1):
            console.rule(f"[{i}/{len(segments)}] {segment.headline}")
            try:
                if do_download:
                    report = pipeline.download_best(segment.headline, segment.text)
                    _print_report(report)
                    downloaded += report.succeeded
                    if isinstance(report.outcome, Failure) and report.outcome.needs_login:
                        console.print("[yellow]Run 'clipscout login' and retry.[/yellow]")
                        break
                else:
                    _print_ranking(pipeline.match_segment(segment.headline, segment.text))
            except ClipscoutError as e:
                console.print(f"[bold red]Segment failed:[/] {e}")
        pipeline.reset()
    history.save(cfg.platform.history_path)
    if do_download:
        console.print(f"\n[bold green]Done![/] {downloaded}/{len(segments)} segments downloaded")


# ── Interactive menu ─────────────────────────────────────────────────


def _interactive_menu(cfg: Config, config_path: str) -> None:
    import questionary

    while True:
        console.clear()
        console.print(Panel(settings_table(cfg), title="[bold cyan]Clipscout[/bold cyan]",
                            border_style="cyan", padding=(1, 2)))
        choice = questionary.select(
            "What would you like to do?",
            choices=[
                questionary.Choice("  Find footage for a segment", value="match"),
                questionary.Choice("  Download footage for a segment", value="download"),
                questionary.Choice("  Process a script file", value="batch"),
                questionary.Choice("  Log in to the platform", value="login"),
                questionary.Choice("  Settings", value="settings"),
                questionary.Choice("  Exit", value="exit"),
            ],
            style=MENU_STYLE,
        ).ask()

        if choice is None or choice == "exit":
            break
        try:
            if choice in ("match", "download"):
                headline = click.prompt("Headline")
                text = click.prompt("Segment text")
                run = _run_match if choice == "match" else _run_download
                run(cfg, headline, text, None)
            elif choice == "batch":
                path = click.prompt("Script file", type=click.Path(exists=True, dir_okay=False))
                _run_batch(cfg, Path(path), do_download=True)
            elif choice == "login":
                _run_login(cfg)
            elif choice == "settings":
                cfg = SettingsScreen(cfg).run()
                cfg.save_to_file(config_path)
                console.print(f"[green]Settings saved to {config_path}[/green]")
        except KeyboardInterrupt:
            console.print("\n[yellow]Interrupted.[/yellow]")
        except click.ClickException as e:
            console.print(f"[bold red]Error:[/] {e.format_message()}")
        click.prompt("\nPress Enter to continue", default="", show_default=False)


if __name__ == "__main__":
    main()

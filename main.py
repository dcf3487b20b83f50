"""
Browser Runner - Main Entry Point

CLI for running the configured browser workflow.
Supports a full run against the configured site and a settings check.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from runner.browser import BrowserSessionManager
from runner.config import (
    Settings,
    connection_descriptor,
    try_load_settings,
    validate_settings,
)
from runner.exceptions import ConfigurationError, LaunchError
from runner.observability import EventLogger
from runner.workflows import example_domain_workflow, run_workflow

# Values already present in the environment win over .env
load_dotenv(Path(__file__).parent / ".env")

app = typer.Typer(
    name="browser-runner",
    help="Browser Runner - configured Playwright navigation workflows",
)
console = Console()


def _fail(title: str, body: str) -> None:
    console.print(Panel(body, title=f"⚠ {title}", border_style="red"))
    raise typer.Exit(code=1)


def _get_settings() -> tuple[Path, Settings]:
    """Load and validate settings, with a friendly panel on failure."""
    result = try_load_settings()
    if not result.ok:
        _fail("Configuration Error", f"[red]{escape(str(result.error))}[/]")

    try:
        return result.path, validate_settings(result.settings)
    except ConfigurationError as e:
        _fail(
            "Configuration Error",
            f"[red]{escape(str(e))}[/]\n\n"
            f"Settings file: [cyan]{result.path}[/]",
        )


def _mask_password(descriptor: str, password: str) -> str:
    if not password:
        return descriptor
    return descriptor.replace(f"={password};", "=****;")


# =========================================================================
# Commands
# =========================================================================


@app.command()
def run():
    """Run the example navigation workflow against the configured site."""
    _, settings = _get_settings()

    events = EventLogger()
    events.configure(settings)
    nav = settings.navigation
    events.info(
        "Application starting",
        base_url=nav.base_url,
        browser=nav.browser,
        headless=nav.headless,
    )

    async def _run():
        async with BrowserSessionManager(settings, events) as session:
            await run_workflow(session, example_domain_workflow, name="example_domain")

    # Failures are logged with their traceback where they happen; only a summary here
    try:
        asyncio.run(_run())
    except LaunchError as e:
        events.fatal(e, "main.run", include_traceback=False)
        _fail(
            "Browser Error",
            f"[red]Could not launch the browser:[/] {escape(str(e))}\n\n"
            f"Install the browser binaries with:\n"
            f"  [dim]playwright install {e.engine}[/]",
        )
    except Exception as e:
        events.fatal(e, "main.run", include_traceback=False)
        _fail("Run Failed", f"[red]{type(e).__name__}:[/] {escape(str(e))}")
    finally:
        events.close()

    console.print("[green]Workflow completed.[/]")


@app.command()
def check():
    """Validate settings and show the effective configuration."""
    path, settings = _get_settings()

    try:
        descriptor = connection_descriptor(settings)
    except ConfigurationError as e:
        _fail("Configuration Error", f"[red]{escape(str(e))}[/]")

    nav = settings.navigation
    console.print(Panel(
        f"[green]Settings valid![/]\n\n"
        f"File: {path}\n"
        f"Base URL: {nav.base_url}\n"
        f"Browser: {nav.browser} (headless={nav.headless}, timeout={nav.timeout_seconds}s)\n"
        f"Database: {settings.database.name}\n"
        f"Connection: {_mask_password(descriptor, settings.database.password)}",
        title="Settings",
    ))

    table = Table(title="Categories")
    table.add_column("Name", style="cyan")
    table.add_column("Value", style="white")
    for name, value in settings.categories.items():
        table.add_row(name, value)
    console.print(table)


if __name__ == "__main__":
    app()

"""CLI commands for the LinkedIn session: login, logout, session."""

import asyncio
import time
from typing import Annotated

import structlog
import typer
from playwright.async_api import Error as PlaywrightError
from rich.panel import Panel

from jobharvest.cli.commands.common import console, fail, open_session_store
from jobharvest.config import Config, get_config
from jobharvest.errors import JobHarvestError
from jobharvest.scraper.auth import LoginDetector
from jobharvest.scraper.browser import BrowserConfig, BrowserController
from jobharvest.scraper.session import SessionStatus, SessionStore
from jobharvest.utils.dates import format_age

logger = structlog.get_logger(logger_name=__name__)

app = typer.Typer()

LOGIN_CANCEL_WINDOW_S = 5


def _show_security_warning(store: SessionStore) -> None:
    console.print(
        Panel(
            "LinkedIn's Terms of Service prohibit automated scraping.\n"
            "Using this tool may get the account restricted.\n\n"
            "• Use a separate account for testing\n"
            "• Keep volumes low (< 50 jobs/day)\n"
            "• Never share the session file\n"
            f"• Session will be stored in: {store.path}",
            title="⚠ Security warning",
            style="yellow",
        )
    )


async def _login(cfg: Config, store: SessionStore) -> None:
    browser = BrowserController(BrowserConfig.from_config(cfg, headless=False))
    try:
        await browser.launch()
        page = browser.get_page()
        detector = LoginDetector()
        await detector.navigate_to_login(page)

        console.print("\n[cyan]Instructions:[/cyan]")
        console.print("  1. Log in to LinkedIn in the browser window")
        console.print("  2. Complete 2FA if prompted")
        console.print("  3. Wait for the confirmation message\n")
        console.print("[dim]Waiting for successful login...[/dim]")

        await detector.wait_for_login(
            page,
            timeout_ms=cfg.login_timeout_ms,
            poll_interval_ms=cfg.login_poll_interval_ms,
        )
        await store.save(browser.get_context(), page)
    finally:
        await browser.close()


@app.command("login")
def login(
    no_delay: Annotated[
        bool, typer.Option("--no-delay", help="Skip the 5 second cancel window.")
    ] = False,
):
    """Log in to LinkedIn in a visible browser and save the session."""
    cfg = get_config()
    store = open_session_store()
    _show_security_warning(store)

    if not no_delay:
        console.print(f"[dim]Press Ctrl+C to cancel, continuing in {LOGIN_CANCEL_WINDOW_S} seconds...[/dim]")
        time.sleep(LOGIN_CANCEL_WINDOW_S)

    console.print("[blue]Launching browser...[/blue]")
    try:
        asyncio.run(_login(cfg, store))
    except (JobHarvestError, PlaywrightError) as e:
        logger.error("Login failed", error=str(e))
        fail(f"Login failed: {e}")

    console.print("[bold green]✓ Login successful! Session saved.[/bold green]")
    console.print(f"Session saved to: {store.path}")
    console.print("[dim]You can now run: jobharvest scrape --position \"Engineer\"[/dim]")


@app.command("logout")
def logout():
    """Delete the saved LinkedIn session."""
    if open_session_store().clear():
        console.print("[green]✓ Session cleared.[/green]")
    else:
        console.print("[yellow]No session to clear.[/yellow]")


@app.command("session")
def session_status():
    """Show the saved session's status and age."""
    info = open_session_store().status()

    if info.status is SessionStatus.MISSING:
        console.print("[yellow]No session found.[/yellow]")
        console.print("Run [bold]jobharvest login[/bold] to create one.")
        return

    if info.status is SessionStatus.CORRUPT:
        console.print("[red]✗ Session file corrupt or unreadable.[/red]")
        console.print(f"Location: [dim]{info.path}[/dim]")
        return

    expired = info.status is SessionStatus.EXPIRED
    status = "[red]Expired[/red]" if expired else "[green]Active[/green]"
    console.print(
        Panel(
            f"Status:   {status}\n"
            f"Age:      {format_age(info.age)}\n"
            f"Location: [dim]{info.path}[/dim]",
            title="Session",
        )
    )
    if expired:
        console.print("[yellow]Session is older than the allowed age. Run 'jobharvest login' to refresh.[/yellow]")
    else:
        console.print("[green]✓ Session is active and ready to use.[/green]")

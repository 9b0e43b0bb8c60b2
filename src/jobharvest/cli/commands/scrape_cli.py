"""CLI command running a LinkedIn job scrape."""

import asyncio
from typing import Annotated, Any, Optional

import structlog
import typer
from playwright.async_api import Error as PlaywrightError
from rich.progress import BarColumn, MofNCompleteColumn, Progress, SpinnerColumn, TextColumn
from rich.prompt import IntPrompt, Prompt

from jobharvest.cli.commands.common import console, fail, open_database
from jobharvest.config import Config, get_config
from jobharvest.db.database import DatabaseManager
from jobharvest.errors import ConfigurationError, JobHarvestError
from jobharvest.models import (
    DATE_POSTED_OPTIONS,
    EMPLOYMENT_TYPES,
    EXPERIENCE_LEVELS,
    REMOTE_OPTIONS,
    ItemOutcome,
    ScrapeOptions,
    ScrapeResult,
)
from jobharvest.scraper.orchestrator import ScrapeOrchestrator

logger = structlog.get_logger(logger_name=__name__)

app = typer.Typer()


# =============================================================================
# Interactive prompts
# =============================================================================


def _ask_many(label: str, choices: tuple[str, ...]) -> list[str]:
    console.print(f"[bold]{label}[/bold] (comma separated numbers, empty for any)")
    for i, choice in enumerate(choices, start=1):
        console.print(f"  {i}. {choice}")
    answer = Prompt.ask("Selection", default="", show_default=False)
    selected = []
    for part in answer.split(","):
        part = part.strip()
        if part.isdigit() and 1 <= int(part) <= len(choices):
            selected.append(choices[int(part) - 1])
    return selected


def _prompt_options() -> dict[str, Any]:
    console.print("[bold cyan]LinkedIn Job Scraper[/bold cyan]\n")
    return {
        "position": Prompt.ask("Job position/title", default="", show_default=False),
        "location": Prompt.ask("Location", default="", show_default=False),
        "experience_level": _ask_many("Experience level", EXPERIENCE_LEVELS),
        "employment_type": _ask_many("Employment type", EMPLOYMENT_TYPES),
        "date_posted": Prompt.ask(
            "Date posted", choices=list(DATE_POSTED_OPTIONS), default="Any time"
        ),
        "limit": IntPrompt.ask("Maximum number of jobs", default=50),
    }


def _print_options(options: ScrapeOptions) -> None:
    console.print("\n[cyan]Scraping with options:[/cyan]")
    console.print(f"  Position:   {options.position or '[dim]Any[/dim]'}")
    console.print(f"  Location:   {options.location or '[dim]Any[/dim]'}")
    console.print(f"  Limit:      {options.limit}")
    if options.experience_level:
        console.print(f"  Experience: {', '.join(options.experience_level)}")
    if options.employment_type:
        console.print(f"  Type:       {', '.join(options.employment_type)}")
    if options.date_posted:
        console.print(f"  Posted:     {options.date_posted}")
    if options.remote_option:
        console.print(f"  Remote:     {options.remote_option}")
    console.print()


# =============================================================================
# Command
# =============================================================================


async def _run_scrape(db: DatabaseManager, cfg: Config, options: ScrapeOptions) -> ScrapeResult:
    orchestrator = ScrapeOrchestrator(db, cfg)
    with Progress(
        SpinnerColumn(),
        TextColumn("{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("Scraping...", total=options.limit)

        def on_item(outcome: ItemOutcome, label: str) -> None:
            if outcome is ItemOutcome.SUCCESS:
                progress.advance(task)
            progress.update(task, description=f"[{outcome.value}] {label[:50]}")

        return await orchestrator.scrape(options, progress=on_item)


@app.command("scrape")
def scrape(
    position: Annotated[
        Optional[str], typer.Option("--position", "-p", help="Job position/title")
    ] = None,
    location: Annotated[Optional[str], typer.Option("--location", "-l", help="Location")] = None,
    experience_level: Annotated[
        Optional[list[str]],
        typer.Option("--experience-level", "-e", help=f"One of: {', '.join(EXPERIENCE_LEVELS)}"),
    ] = None,
    employment_type: Annotated[
        Optional[list[str]],
        typer.Option("--employment-type", "-t", help=f"One of: {', '.join(EMPLOYMENT_TYPES)}"),
    ] = None,
    date_posted: Annotated[
        Optional[str],
        typer.Option("--date-posted", "-d", help=f"One of: {', '.join(DATE_POSTED_OPTIONS)}"),
    ] = None,
    remote_option: Annotated[
        Optional[str],
        typer.Option("--remote-option", help=f"One of: {', '.join(REMOTE_OPTIONS)}"),
    ] = None,
    salary_min: Annotated[
        Optional[int], typer.Option("--salary-min", help="Minimum salary filter")
    ] = None,
    limit: Annotated[
        int, typer.Option("--limit", "-n", help="Maximum number of jobs to scrape")
    ] = 50,
    interactive: Annotated[
        bool, typer.Option("--interactive", "-i", help="Prompt for the options")
    ] = False,
    headless: Annotated[
        Optional[bool],
        typer.Option("--headless/--headed", help="Override the configured browser mode"),
    ] = None,
    require_session: Annotated[
        bool,
        typer.Option("--require-session", help="Fail instead of scraping without a login"),
    ] = False,
):
    """Scrape LinkedIn job postings into the database."""
    if interactive:
        raw_options = _prompt_options()
    else:
        raw_options = {
            "position": position,
            "location": location,
            "experience_level": experience_level,
            "employment_type": employment_type,
            "date_posted": date_posted,
            "remote_option": remote_option,
            "salary_min": salary_min,
            "limit": limit,
        }

    try:
        options = ScrapeOptions.validate_options(raw_options)
    except ConfigurationError as e:
        console.print(f"[red]Invalid options:[/red] {e}")
        console.print("[yellow]Tip: use --interactive for guided setup[/yellow]")
        raise typer.Exit(code=1)

    _print_options(options)

    overrides: dict[str, Any] = {}
    if headless is not None:
        overrides["headless"] = headless
    if require_session:
        overrides["require_session"] = True
    cfg = get_config().model_copy(update=overrides)

    db = open_database()
    try:
        result = asyncio.run(_run_scrape(db, cfg, options))
    except KeyboardInterrupt:
        console.print("[yellow]Scrape cancelled.[/yellow]")
        raise typer.Exit(code=130)
    except (JobHarvestError, PlaywrightError) as e:
        logger.error("Scrape command failed", error=str(e))
        fail(f"Error: {e}")
    finally:
        db.close()

    if not result.success:
        console.print(f"[red]✗ Scraping {result.status.value}[/red]")
        for error in result.errors:
            console.print(f"[red]  - {error}[/red]")
        console.print(f"[dim]Search ID: {result.search_id}[/dim]")
        raise typer.Exit(code=1)

    console.print(f"[green]✓ Successfully scraped {result.total_scraped} jobs[/green]")
    console.print(f"[dim]Duplicates skipped: {result.duplicates}, failed: {result.failed}[/dim]")
    console.print(f"[dim]Search ID: {result.search_id}[/dim]")
    console.print(f"Use [bold]jobharvest list --search-id {result.search_id}[/bold] to view results")

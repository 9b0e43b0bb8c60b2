"""CLI commands over the stored jobs and search runs.

Provides commands to list, search, export and delete scraped jobs, and to
inspect search runs and their errors.
"""

import csv
import json
from datetime import datetime
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.table import Table

from jobharvest.cli.commands.common import console, fail, open_database
from jobharvest.db.repositories import JobRepository, SearchRepository, clear_store
from jobharvest.db.schemas import JobExport, JobFilters, JobSummary, ScrapeErrorDetail, SearchSummary
from jobharvest.errors import PersistenceError
from jobharvest.utils.dates import utcnow

app = typer.Typer()

EXPORT_FORMATS = ("json", "csv")


# =============================================================================
# Jobs
# =============================================================================


@app.command("list")
def list_jobs(
    search_id: Annotated[
        Optional[int], typer.Option("--search-id", "-s", help="Only jobs from this search")
    ] = None,
    company: Annotated[Optional[str], typer.Option("--company", "-c", help="Company contains")] = None,
    location: Annotated[
        Optional[str], typer.Option("--location", "-l", help="Location contains")
    ] = None,
    date_from: Annotated[
        Optional[datetime],
        typer.Option("--date-from", help="Posted on or after (YYYY-MM-DD)", formats=["%Y-%m-%d"]),
    ] = None,
    query: Annotated[
        Optional[str], typer.Option("--query", "-q", help="Full-text search over job text")
    ] = None,
    limit: Annotated[int, typer.Option("--limit", "-n", help="Limit results")] = 20,
):
    """List scraped jobs."""
    db = open_database()
    try:
        jobs_repo = JobRepository(db)
        filters = JobFilters(
            search_id=search_id,
            company=company,
            location=location,
            date_from=date_from,
            query=query,
            limit=limit,
        )
        jobs = jobs_repo.find_all(filters)
        total = jobs_repo.count_matching(filters)
    finally:
        db.close()

    if not jobs:
        console.print("[yellow]No jobs found.[/yellow]")
        return

    table = Table(title=f"Jobs ({len(jobs)} shown of {total})")
    table.add_column("Job ID", style="cyan")
    table.add_column("Title", style="white", max_width=40)
    table.add_column("Company", style="green", max_width=25)
    table.add_column("Location", style="blue", max_width=20)
    table.add_column("Posted", style="dim", width=10)
    table.add_column("Search", style="magenta", width=6)

    for job in (JobSummary.model_validate(j) for j in jobs):
        table.add_row(
            job.job_id,
            job.title,
            job.company or "N/A",
            job.location or "N/A",
            job.posted_at.strftime("%Y-%m-%d"),
            str(job.search_id),
        )

    console.print(table)


@app.command("delete")
def delete_jobs(
    job_ids: Annotated[list[str], typer.Argument(help="LinkedIn job ids to delete")],
):
    """Delete jobs by LinkedIn job id."""
    db = open_database()
    try:
        result = JobRepository(db).delete_bulk(job_ids)
    finally:
        db.close()

    for job_id in job_ids:
        if job_id in result.failed:
            console.print(f"[red]✗ {job_id}: not found or could not be deleted[/red]")
        else:
            console.print(f"[green]✓ {job_id}: deleted[/green]")
    console.print(f"Deleted {result.deleted} of {len(job_ids)} jobs.")

    if result.failed:
        raise typer.Exit(code=1)


@app.command("export")
def export_jobs(
    search_id: Annotated[
        Optional[int], typer.Option("--search-id", "-s", help="Only jobs from this search")
    ] = None,
    export_format: Annotated[
        str, typer.Option("--format", "-f", help="Export format: json or csv")
    ] = "json",
    output: Annotated[
        Optional[Path], typer.Option("--output", "-o", help="Output file path")
    ] = None,
):
    """Export scraped jobs to JSON or CSV."""
    export_format = export_format.lower()
    if export_format not in EXPORT_FORMATS:
        fail(f"Unsupported format '{export_format}'. Use one of: {', '.join(EXPORT_FORMATS)}")

    db = open_database()
    try:
        jobs = JobRepository(db).find_all(JobFilters(search_id=search_id))
    finally:
        db.close()

    rows = [JobExport.model_validate(job).model_dump(mode="json") for job in jobs]
    if output is None:
        output = Path(f"jobs-export-{utcnow().strftime('%Y%m%d-%H%M%S')}.{export_format}")
    output.parent.mkdir(parents=True, exist_ok=True)

    with output.open("w", encoding="utf-8", newline="") as f:
        if export_format == "json":
            json.dump(rows, f, indent=2, ensure_ascii=False)
        else:
            writer = csv.DictWriter(f, fieldnames=list(JobExport.model_fields))
            writer.writeheader()
            writer.writerows(rows)

    console.print(f"[green]✓ Exported {len(rows)} jobs to {output}[/green]")


@app.command("clear")
def clear_all(
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip the confirmation")] = False,
):
    """Delete all jobs, search runs and scrape errors."""
    if not yes:
        console.print("[bold red]This deletes every stored job and search run.[/bold red]")
        if not typer.confirm("Are you sure you want to proceed?"):
            console.print("[yellow]Aborted.[/yellow]")
            return

    db = open_database()
    try:
        jobs_deleted, searches_deleted = clear_store(db)
    except PersistenceError as e:
        fail(f"Clear failed: {e}")
    finally:
        db.close()

    console.print(
        f"[green]✓ Deleted {jobs_deleted} jobs and {searches_deleted} search runs.[/green]"
    )


# =============================================================================
# Search runs
# =============================================================================


@app.command("searches")
def list_searches(
    limit: Annotated[int, typer.Option("--limit", "-n", help="Limit results")] = 10,
):
    """List recent search runs."""
    db = open_database()
    try:
        runs = SearchRepository(db).find_all(limit=limit)
    finally:
        db.close()

    if not runs:
        console.print("[yellow]No search runs found.[/yellow]")
        return

    table = Table(title=f"Search runs ({len(runs)} shown)")
    table.add_column("ID", style="cyan", width=4)
    table.add_column("Query", style="white", max_width=30)
    table.add_column("Location", style="blue", max_width=20)
    table.add_column("Status", style="yellow")
    table.add_column("OK", style="green", justify="right")
    table.add_column("Failed", style="red", justify="right")
    table.add_column("Total", justify="right")
    table.add_column("Started", style="dim")

    for run in (SearchSummary.model_validate(r) for r in runs):
        table.add_row(
            str(run.id),
            run.query or "Any",
            run.location or "Any",
            run.status,
            str(run.successful_scrapes),
            str(run.failed_scrapes),
            str(run.total_results),
            run.started_at.strftime("%Y-%m-%d %H:%M"),
        )

    console.print(table)


@app.command("errors")
def list_errors(
    search_id: Annotated[int, typer.Argument(help="Search run id")],
):
    """Show the scrape errors logged for a search run."""
    db = open_database()
    try:
        searches = SearchRepository(db)
        run = searches.find_by_id(search_id)
        errors = searches.get_errors(search_id) if run else []
    finally:
        db.close()

    if run is None:
        fail(f"Search run {search_id} not found.")

    if not errors:
        console.print(f"[green]No errors logged for search {search_id}.[/green]")
        return

    table = Table(title=f"Errors for search {search_id} ({len(errors)})")
    table.add_column("When", style="dim")
    table.add_column("Type", style="yellow")
    table.add_column("Job ID", style="cyan")
    table.add_column("Message", style="white", max_width=60)

    for error in (ScrapeErrorDetail.model_validate(e) for e in errors):
        table.add_row(
            error.occurred_at.strftime("%Y-%m-%d %H:%M:%S"),
            error.error_type,
            error.job_id or "-",
            error.error_message,
        )

    console.print(table)

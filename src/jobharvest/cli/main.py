"""jobharvest CLI - scrape LinkedIn job postings into SQLite.

Provides the login, scrape and browsing commands.
"""

import logging
from typing import Annotated

import structlog
import typer

from jobharvest.cli.commands.auth_cli import app as auth_cli
from jobharvest.cli.commands.jobs_cli import app as jobs_cli
from jobharvest.cli.commands.scrape_cli import app as scrape_cli
from jobharvest.config import get_config

_initialized = False

app = typer.Typer(
    name="jobharvest",
    help="jobharvest - LinkedIn job scraper",
    no_args_is_help=True,
)
app.add_typer(auth_cli)
app.add_typer(scrape_cli)
app.add_typer(jobs_cli)


def _initialize_logging(verbose: bool = False) -> None:
    """Configure structlog once for the CLI process."""
    global _initialized
    if _initialized:
        return

    if verbose:
        log_level = logging.DEBUG
    else:
        log_level = logging.getLevelName(get_config().log_level)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S", utc=False),
            structlog.processors.CallsiteParameterAdder(
                {
                    structlog.processors.CallsiteParameter.FUNC_NAME,
                }
            ),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )

    logger = structlog.get_logger(logger_name=__name__)
    logger.debug("Structlog configured for jobharvest CLI.")
    _initialized = True


@app.callback()
def cli_callback(
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable verbose output with debug logs."),
    ] = False,
):
    """jobharvest - LinkedIn job scraper."""
    _initialize_logging(verbose)


def main() -> None:
    """Entry point of the jobharvest command."""
    app()

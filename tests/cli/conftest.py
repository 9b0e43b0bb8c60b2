"""Shared test fixtures for CLI tests."""

import pytest

from jobharvest.config import get_config
from jobharvest.db.database import DatabaseManager
from jobharvest.db.repositories import JobRepository, SearchRepository
from jobharvest.models import ScrapeOptions


@pytest.fixture
def cli_db():
    """The database the CLI commands open, under the test data dir."""
    db = DatabaseManager(get_config().database_path)
    yield db
    db.close()


@pytest.fixture
def seeded_db(cli_db, make_record):
    """One search run with three jobs and one logged error."""
    searches = SearchRepository(cli_db)
    jobs = JobRepository(cli_db)
    run = searches.create(ScrapeOptions(position="Engineer", location="Remote"))
    jobs.create(make_record("1001", run.id, company="Acme"))
    jobs.create(make_record("1002", run.id, company="Globex", title="Staff Engineer"))
    jobs.create(make_record("1003", run.id, company="Initech", location="Berlin"))
    searches.increment_successful(run.id)
    searches.log_error(run.id, "ExtractionError", "No extraction strategy produced data", job_id="1004")
    return cli_db


@pytest.fixture(autouse=True)
def wide_console(monkeypatch):
    """Keep rich tables from folding cell text in captured output."""
    monkeypatch.setenv("COLUMNS", "200")

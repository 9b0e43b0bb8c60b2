"""Shared test fixtures."""

from datetime import datetime

import pytest

from jobharvest.config import Config, get_config
from jobharvest.db.database import DatabaseManager
from jobharvest.db.repositories import JobRepository, SearchRepository
from jobharvest.db.schemas import JobCreate
from jobharvest.models import ScrapeOptions

# Configure pytest-asyncio
pytest_plugins = ("pytest_asyncio",)


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Point every configured path at a temporary directory."""
    monkeypatch.setenv("JOBHARVEST_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("JOBHARVEST_LOGS_DIR", str(tmp_path / "logs"))
    monkeypatch.delenv("JOBHARVEST_DATABASE_PATH", raising=False)
    monkeypatch.delenv("JOBHARVEST_SESSION_PATH", raising=False)
    get_config.cache_clear()
    yield
    get_config.cache_clear()


@pytest.fixture
def test_config(tmp_path):
    """Config with no pacing delays and no debug artifacts."""
    return Config(
        data_dir=tmp_path / "data",
        logs_dir=tmp_path / "logs",
        request_delay_min_ms=0,
        request_delay_max_ms=0,
        detail_delay_min_ms=0,
        detail_delay_max_ms=0,
        max_retries=1,
        save_debug_artifacts=False,
    )


@pytest.fixture
def temp_db(tmp_path):
    """Create a temporary database for testing."""
    db = DatabaseManager(tmp_path / "test.db")
    yield db
    db.close()


@pytest.fixture
def search_repo(temp_db):
    return SearchRepository(temp_db)


@pytest.fixture
def job_repo(temp_db):
    return JobRepository(temp_db)


@pytest.fixture
def search_run(search_repo):
    """A running search to attach jobs to."""
    return search_repo.create(ScrapeOptions(position="Engineer", location="Remote"))


def _make_record(job_id: str, search_id: int, **overrides) -> JobCreate:
    data = {
        "job_id": job_id,
        "title": f"Software Engineer {job_id}",
        "company": "Acme",
        "location": "Remote",
        "description": "<p>Python and SQL on a data platform</p>",
        "job_url": f"https://www.linkedin.com/jobs/view/{job_id}/",
        "posted_at": datetime(2024, 5, 1, 12, 0),
        "search_id": search_id,
    }
    data.update(overrides)
    return JobCreate(**data)


@pytest.fixture
def make_record():
    """Factory building job records with sensible defaults."""
    return _make_record

"""Database package for jobharvest."""

from jobharvest.db.database import (
    DatabaseManager,
    Job,
    ScrapeError,
    SearchRun,
)
from jobharvest.db.repositories import JobRepository, SearchRepository

__all__ = [
    "DatabaseManager",
    "Job",
    "JobRepository",
    "ScrapeError",
    "SearchRepository",
    "SearchRun",
]

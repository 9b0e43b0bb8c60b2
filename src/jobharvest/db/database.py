"""Database models and connection management for jobharvest.

SQLite store shared by the scraper and the read-only browsing process:
- Search runs and their counters
- Scraped jobs (deduplicated by LinkedIn job id)
- Per-item scrape errors
- A full-text (FTS5) shadow of the job text columns
"""

from datetime import datetime
from pathlib import Path
from typing import Optional

import structlog
from sqlalchemy import (
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    create_engine,
    event,
    text,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    Session,
    mapped_column,
    relationship,
)

from jobharvest.models import SearchStatus
from jobharvest.utils.dates import utcnow

logger = structlog.get_logger(logger_name=__name__)

FTS_TABLE = "jobs_fts"
FTS_COLUMNS = ("job_id", "title", "company", "location", "description", "industry")


# =============================================================================
# SQLAlchemy Models
# =============================================================================


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class SearchRun(Base):
    """One invocation of the scrape pipeline."""

    __tablename__ = "searches"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    query: Mapped[str] = mapped_column(Text, nullable=False, default="")
    location: Mapped[str] = mapped_column(Text, nullable=False, default="")
    filters: Mapped[str] = mapped_column(Text, nullable=False, default="{}")

    total_results: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    successful_scrapes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed_scrapes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    started_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SearchStatus.RUNNING.value
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    jobs: Mapped[list["Job"]] = relationship("Job", back_populates="search")
    errors: Mapped[list["ScrapeError"]] = relationship(
        "ScrapeError", back_populates="search"
    )

    __table_args__ = (Index("idx_searches_created_at", "created_at"),)

    def __repr__(self) -> str:
        return f"<SearchRun(id={self.id}, query='{self.query}', status='{self.status}')>"


class Job(Base):
    """A scraped job posting, unique by LinkedIn job id."""

    __tablename__ = "jobs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    job_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)

    title: Mapped[str] = mapped_column(Text, nullable=False)
    company: Mapped[str] = mapped_column(Text, nullable=False, default="")
    company_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    location: Mapped[str] = mapped_column(Text, nullable=False, default="")
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")

    employment_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    seniority_level: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    industry: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    salary_min: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    salary_max: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    salary_currency: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)

    job_url: Mapped[str] = mapped_column(String(2048), nullable=False)
    apply_url: Mapped[Optional[str]] = mapped_column(String(2048), nullable=True)

    posted_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    scraped_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    search_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("searches.id"), nullable=False
    )
    raw_data: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    page_html: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    search: Mapped["SearchRun"] = relationship("SearchRun", back_populates="jobs")

    __table_args__ = (
        Index("idx_jobs_company", "company"),
        Index("idx_jobs_location", "location"),
        Index("idx_jobs_posted_at", "posted_at"),
        Index("idx_jobs_search_id", "search_id"),
    )

    def __repr__(self) -> str:
        return f"<Job(id={self.id}, job_id='{self.job_id}', title='{self.title}')>"


class ScrapeError(Base):
    """A failure event tied to a search run (and optionally to one job)."""

    __tablename__ = "scrape_errors"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    search_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("searches.id"), nullable=False
    )
    job_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    error_type: Mapped[str] = mapped_column(String(100), nullable=False)
    error_message: Mapped[str] = mapped_column(Text, nullable=False)
    url: Mapped[Optional[str]] = mapped_column(String(2048), nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    search: Mapped["SearchRun"] = relationship("SearchRun", back_populates="errors")

    def __repr__(self) -> str:
        return f"<ScrapeError(id={self.id}, search_id={self.search_id}, type='{self.error_type}')>"


# =============================================================================
# Database Manager
# =============================================================================


def _apply_pragmas(dbapi_connection, _connection_record) -> None:
    cursor = dbapi_connection.cursor()
    # WAL lets the browsing process read while a scrape is writing.
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class DatabaseManager:
    """Owns the SQLite engine; hand one instance to every repository."""

    def __init__(self, db_path: Path | str):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self.engine = create_engine(
            f"sqlite:///{self.db_path}",
            echo=False,
            connect_args={"timeout": 30},
        )
        event.listen(self.engine, "connect", _apply_pragmas)

        self.fts_enabled = False
        self._create_tables()
        self._setup_fts()

    def _create_tables(self):
        """Create all tables if they don't exist."""
        Base.metadata.create_all(self.engine)

    def _setup_fts(self) -> None:
        """Create and backfill the FTS5 index once; degrade if unavailable."""
        columns = ", ".join(FTS_COLUMNS)
        try:
            with self.engine.begin() as conn:
                exists = conn.execute(
                    text(
                        "SELECT name FROM sqlite_master WHERE type='table' AND name=:name"
                    ),
                    {"name": FTS_TABLE},
                ).first()
                if exists is None:
                    logger.info("Creating full-text index", table=FTS_TABLE)
                    conn.execute(
                        text(
                            f"CREATE VIRTUAL TABLE {FTS_TABLE} USING fts5("
                            "job_id UNINDEXED, title, company, location, "
                            "description, industry)"
                        )
                    )
                    conn.execute(
                        text(
                            f"INSERT INTO {FTS_TABLE}(rowid, {columns}) "
                            f"SELECT id, {columns} FROM jobs"
                        )
                    )
            self.fts_enabled = True
        except SQLAlchemyError as e:
            logger.warning(
                "Full-text index unavailable, continuing without it",
                error=str(e),
            )
            self.fts_enabled = False

    def get_session(self) -> Session:
        """Get a new database session."""
        return Session(self.engine, expire_on_commit=False)

    def close(self) -> None:
        """Dispose of pooled connections."""
        self.engine.dispose()

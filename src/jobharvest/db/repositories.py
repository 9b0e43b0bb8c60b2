"""Repositories over the jobharvest store.

Each repository takes the DatabaseManager it works against. All writes go
through ``_transaction`` so a failed statement rolls back, is logged once and
surfaces as a PersistenceError.
"""

from collections.abc import Iterator
from contextlib import contextmanager

import structlog
from sqlalchemy import Select, column, delete, func, select, table, text, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from jobharvest.db.database import (
    FTS_COLUMNS,
    FTS_TABLE,
    DatabaseManager,
    Job,
    ScrapeError,
    SearchRun,
)
from jobharvest.db.schemas import BulkDeleteResult, JobCreate, JobFilters
from jobharvest.errors import PersistenceError
from jobharvest.models import ScrapeOptions, SearchStatus
from jobharvest.utils.dates import utcnow

logger = structlog.get_logger(logger_name=__name__)


@contextmanager
def _transaction(db: DatabaseManager, operation: str, **context) -> Iterator[Session]:
    session = db.get_session()
    try:
        yield session
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error("Database operation failed", operation=operation, error=str(e), **context)
        raise PersistenceError(f"{operation} failed: {e}") from e
    finally:
        session.close()


# =============================================================================
# Search runs
# =============================================================================


class SearchRepository:
    """Search runs, their counters and their error log."""

    def __init__(self, db: DatabaseManager):
        self.db = db

    def create(self, options: ScrapeOptions) -> SearchRun:
        """Record a new run in the ``running`` state."""
        with _transaction(self.db, "create_search") as session:
            run = SearchRun(
                query=options.position or "",
                location=options.location or "",
                filters=options.model_dump_json(),
                status=SearchStatus.RUNNING.value,
            )
            session.add(run)
            session.flush()
            session.refresh(run)
        logger.info("Search run created", search_id=run.id, query=run.query)
        return run

    def find_by_id(self, search_id: int) -> SearchRun | None:
        with self.db.get_session() as session:
            return session.get(SearchRun, search_id)

    def find_all(self, limit: int | None = None) -> list[SearchRun]:
        """Most recent runs first."""
        with self.db.get_session() as session:
            query = select(SearchRun).order_by(
                SearchRun.created_at.desc(), SearchRun.id.desc()
            )
            if limit:
                query = query.limit(limit)
            return list(session.scalars(query))

    def update(self, search_id: int, **fields) -> SearchRun | None:
        with _transaction(self.db, "update_search", search_id=search_id) as session:
            run = session.get(SearchRun, search_id)
            if run is None:
                return None
            for name, value in fields.items():
                if not hasattr(SearchRun, name):
                    raise ValueError(f"Unknown search field: {name}")
                setattr(run, name, value)
        return run

    def _increment(self, search_id: int, column: str, amount: int = 1) -> None:
        attr = getattr(SearchRun, column)
        with _transaction(
            self.db, f"increment_{column}", search_id=search_id
        ) as session:
            session.execute(
                update(SearchRun)
                .where(SearchRun.id == search_id)
                .values({column: attr + amount})
            )

    def increment_successful(self, search_id: int) -> None:
        self._increment(search_id, "successful_scrapes")

    def increment_failed(self, search_id: int) -> None:
        self._increment(search_id, "failed_scrapes")

    def increment_total(self, search_id: int, amount: int = 1) -> None:
        self._increment(search_id, "total_results", amount)

    def finalize(
        self, search_id: int, status: SearchStatus, min_total: int = 0
    ) -> SearchRun | None:
        """Move a running search to a terminal status.

        ``total_results`` is raised to cover every classified listing, and
        ``completed_at`` never precedes ``started_at``. Finalizing a run that
        is no longer running leaves it untouched.
        """
        with _transaction(self.db, "finalize_search", search_id=search_id) as session:
            run = session.get(SearchRun, search_id)
            if run is None:
                return None
            if run.status != SearchStatus.RUNNING.value:
                logger.warning(
                    "Search already finalized",
                    search_id=search_id,
                    status=run.status,
                    requested=status.value,
                )
                return run
            run.total_results = max(
                run.total_results,
                run.successful_scrapes + run.failed_scrapes,
                min_total,
            )
            run.completed_at = max(utcnow(), run.started_at)
            run.status = status.value
        logger.info(
            "Search finalized",
            search_id=search_id,
            status=status.value,
            successful=run.successful_scrapes,
            failed=run.failed_scrapes,
            total=run.total_results,
        )
        return run

    # =========================================================================
    # Error log
    # =========================================================================

    def log_error(
        self,
        search_id: int,
        error_type: str,
        message: str,
        job_id: str | None = None,
        url: str | None = None,
    ) -> ScrapeError:
        with _transaction(self.db, "log_error", search_id=search_id) as session:
            entry = ScrapeError(
                search_id=search_id,
                job_id=job_id,
                error_type=error_type,
                error_message=message,
                url=url,
            )
            session.add(entry)
        logger.debug(
            "Scrape error logged",
            search_id=search_id,
            error_type=error_type,
            job_id=job_id,
        )
        return entry

    def get_errors(self, search_id: int) -> list[ScrapeError]:
        with self.db.get_session() as session:
            return list(
                session.scalars(
                    select(ScrapeError)
                    .where(ScrapeError.search_id == search_id)
                    .order_by(ScrapeError.occurred_at, ScrapeError.id)
                )
            )

    def delete_all(self) -> int:
        """Delete every run and its errors. Jobs must be cleared first."""
        with _transaction(self.db, "delete_all_searches") as session:
            session.execute(delete(ScrapeError))
            deleted = session.execute(delete(SearchRun)).rowcount
        return deleted


# =============================================================================
# Jobs
# =============================================================================


def _fts_query(value: str) -> str:
    # Quote every term so user input cannot inject FTS5 operators.
    terms = value.split()
    return " ".join('"' + term.replace('"', '""') + '"' for term in terms)


class JobRepository:
    """Job records, unique by LinkedIn job id, with the FTS shadow kept in sync."""

    def __init__(self, db: DatabaseManager):
        self.db = db

    # =========================================================================
    # Full-text sync
    # =========================================================================

    def _fts_insert(self, session: Session, job: Job) -> None:
        if not self.db.fts_enabled:
            return
        columns = ", ".join(FTS_COLUMNS)
        params = ", ".join(f":{c}" for c in FTS_COLUMNS)
        session.execute(
            text(f"INSERT INTO {FTS_TABLE}(rowid, {columns}) VALUES (:rowid, {params})"),
            {"rowid": job.id, **{c: getattr(job, c) or "" for c in FTS_COLUMNS}},
        )

    def _fts_delete(self, session: Session, row_id: int) -> None:
        if not self.db.fts_enabled:
            return
        session.execute(
            text(f"DELETE FROM {FTS_TABLE} WHERE rowid = :rowid"), {"rowid": row_id}
        )

    # =========================================================================
    # Writes
    # =========================================================================

    def create(self, record: JobCreate) -> tuple[Job, bool]:
        """Insert a job unless its job id is already stored.

        Returns the stored row and whether it was created by this call.
        """
        try:
            with _transaction(self.db, "create_job", job_id=record.job_id) as session:
                existing = session.scalar(select(Job).where(Job.job_id == record.job_id))
                if existing is not None:
                    return existing, False
                job = Job(**record.model_dump())
                session.add(job)
                session.flush()
                self._fts_insert(session, job)
        except PersistenceError as e:
            # A concurrent writer stored the same job id first.
            if isinstance(e.__cause__, IntegrityError):
                existing = self.find_by_job_id(record.job_id)
                if existing is not None:
                    return existing, False
            raise
        logger.debug("Job stored", job_id=job.job_id, id=job.id)
        return job, True

    def upsert(self, record: JobCreate) -> Job:
        """Insert, or update the existing row in place on re-scrape."""
        with _transaction(self.db, "upsert_job", job_id=record.job_id) as session:
            job = session.scalar(select(Job).where(Job.job_id == record.job_id))
            if job is None:
                job = Job(**record.model_dump())
                session.add(job)
                session.flush()
            else:
                for name, value in record.model_dump(exclude={"job_id"}).items():
                    setattr(job, name, value)
                session.flush()
                self._fts_delete(session, job.id)
            self._fts_insert(session, job)
        return job

    def update(self, job_id: str, **fields) -> Job | None:
        with _transaction(self.db, "update_job", job_id=job_id) as session:
            job = session.scalar(select(Job).where(Job.job_id == job_id))
            if job is None:
                return None
            for name, value in fields.items():
                if not hasattr(Job, name) or name in ("id", "job_id"):
                    raise ValueError(f"Cannot update job field: {name}")
                setattr(job, name, value)
            session.flush()
            self._fts_delete(session, job.id)
            self._fts_insert(session, job)
        return job

    def delete_by_job_id(self, job_id: str) -> bool:
        """Delete one job and its index entry. False when the id is unknown."""
        with _transaction(self.db, "delete_job", job_id=job_id) as session:
            job = session.scalar(select(Job).where(Job.job_id == job_id))
            if job is None:
                return False
            self._fts_delete(session, job.id)
            session.delete(job)
        logger.info("Job deleted", job_id=job_id)
        return True

    def delete_bulk(self, job_ids: list[str]) -> BulkDeleteResult:
        """Delete jobs one by one; a failure never undoes earlier deletions."""
        result = BulkDeleteResult()
        for job_id in job_ids:
            try:
                deleted = self.delete_by_job_id(job_id)
            except PersistenceError:
                deleted = False
            if deleted:
                result.deleted += 1
            else:
                result.failed.append(job_id)
        return result

    def delete_all(self) -> int:
        with _transaction(self.db, "delete_all_jobs") as session:
            if self.db.fts_enabled:
                session.execute(text(f"DELETE FROM {FTS_TABLE}"))
            deleted = session.execute(delete(Job)).rowcount
        logger.info("All jobs deleted", count=deleted)
        return deleted

    # =========================================================================
    # Reads
    # =========================================================================

    def find_by_job_id(self, job_id: str) -> Job | None:
        with self.db.get_session() as session:
            return session.scalar(select(Job).where(Job.job_id == job_id))

    def exists(self, job_id: str) -> bool:
        with self.db.get_session() as session:
            return (
                session.scalar(select(Job.id).where(Job.job_id == job_id)) is not None
            )

    def _text_match(self, value: str):
        if not self.db.fts_enabled:
            return Job.title.ilike(f"%{value}%") | Job.company.ilike(f"%{value}%")
        fts = table(FTS_TABLE, column("rowid"))
        matches = select(fts.c.rowid).where(
            text(f"{FTS_TABLE} MATCH :q").bindparams(q=_fts_query(value))
        )
        return Job.id.in_(matches)

    def _apply_filters(self, query: Select, filters: JobFilters) -> Select:
        if filters.search_id is not None:
            query = query.where(Job.search_id == filters.search_id)
        if filters.company:
            query = query.where(Job.company.ilike(f"%{filters.company}%"))
        if filters.location:
            query = query.where(Job.location.ilike(f"%{filters.location}%"))
        if filters.date_from is not None:
            query = query.where(Job.posted_at >= filters.date_from)
        if filters.query and filters.query.strip():
            query = query.where(self._text_match(filters.query))
        return query

    def find_all(self, filters: JobFilters | None = None) -> list[Job]:
        """Jobs matching the filters, newest posting first."""
        filters = filters or JobFilters()
        query = self._apply_filters(select(Job), filters)
        query = query.order_by(Job.posted_at.desc(), Job.id.desc())
        if filters.limit:
            query = query.limit(filters.limit)
        with self.db.get_session() as session:
            return list(session.scalars(query))

    def find_by_search_id(self, search_id: int, limit: int | None = None) -> list[Job]:
        return self.find_all(JobFilters(search_id=search_id, limit=limit))

    def count(self, search_id: int | None = None) -> int:
        query = select(func.count(Job.id))
        if search_id is not None:
            query = query.where(Job.search_id == search_id)
        with self.db.get_session() as session:
            return session.scalar(query) or 0

    def count_matching(self, filters: JobFilters) -> int:
        """Number of jobs matching the filters, ignoring their limit."""
        query = self._apply_filters(select(func.count(Job.id)), filters)
        with self.db.get_session() as session:
            return session.scalar(query) or 0

    def search(self, query: str, limit: int = 20) -> list[Job]:
        """Full-text search over job text; substring match when FTS is off."""
        if not query.strip():
            return []
        with self.db.get_session() as session:
            if not self.db.fts_enabled:
                return list(
                    session.scalars(
                        select(Job)
                        .where(
                            Job.title.ilike(f"%{query}%")
                            | Job.company.ilike(f"%{query}%")
                        )
                        .limit(limit)
                    )
                )
            row_ids = [
                row[0]
                for row in session.execute(
                    text(
                        f"SELECT rowid FROM {FTS_TABLE} WHERE {FTS_TABLE} MATCH :q "
                        "ORDER BY rank LIMIT :limit"
                    ),
                    {"q": _fts_query(query), "limit": limit},
                )
            ]
            if not row_ids:
                return []
            jobs = {job.id: job for job in session.scalars(select(Job).where(Job.id.in_(row_ids)))}
            return [jobs[row_id] for row_id in row_ids if row_id in jobs]



# =============================================================================
# Whole store
# =============================================================================


def clear_store(db: DatabaseManager) -> tuple[int, int]:
    """Delete every job, search run and scrape error in one transaction.

    Returns:
        (jobs deleted, search runs deleted)
    """
    with _transaction(db, "clear_store") as session:
        if db.fts_enabled:
            session.execute(text(f"DELETE FROM {FTS_TABLE}"))
        jobs_deleted = session.execute(delete(Job)).rowcount
        session.execute(delete(ScrapeError))
        searches_deleted = session.execute(delete(SearchRun)).rowcount
    logger.info("Store cleared", jobs=jobs_deleted, searches=searches_deleted)
    return jobs_deleted, searches_deleted

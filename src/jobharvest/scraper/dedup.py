"""Deduplication of listings by LinkedIn job id."""

import structlog

from jobharvest.db.repositories import JobRepository

logger = structlog.get_logger(logger_name=__name__)


class Deduplicator:
    """Tracks job ids seen in this run on top of what is already stored."""

    def __init__(self, jobs: JobRepository):
        self.jobs = jobs
        self._seen: set[str] = set()

    def is_new(self, job_id: str) -> bool:
        """False when the id was classified earlier in this run or is already stored."""
        if job_id in self._seen:
            return False
        if self.jobs.exists(job_id):
            logger.debug("Job already stored", job_id=job_id)
            self._seen.add(job_id)
            return False
        return True

    def mark(self, job_id: str) -> None:
        """Record that a listing reached its final classification."""
        self._seen.add(job_id)

    @property
    def seen_count(self) -> int:
        return len(self._seen)

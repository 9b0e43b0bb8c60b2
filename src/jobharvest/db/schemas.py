"""Pydantic schemas for database models.

These are used for repository input and CLI/export output, separate from the
SQLAlchemy models.
"""

import json
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from jobharvest.models import JobData
from jobharvest.utils.dates import parse_posted_date, utcnow

# =============================================================================
# Job Schemas
# =============================================================================


class JobCreate(BaseModel):
    """Schema for creating (or re-scraping) a job record."""

    job_id: str
    title: str
    company: str = ""
    company_id: str | None = None
    location: str = ""
    description: str = ""
    employment_type: str | None = None
    seniority_level: str | None = None
    industry: str | None = None
    salary_min: float | None = None
    salary_max: float | None = None
    salary_currency: str | None = None
    job_url: str
    apply_url: str | None = None
    posted_at: datetime
    scraped_at: datetime = Field(default_factory=utcnow)
    search_id: int
    raw_data: str = "{}"
    page_html: str | None = None

    @classmethod
    def from_job_data(
        cls,
        data: JobData,
        search_id: int,
        page_html: str | None = None,
    ) -> "JobCreate":
        """Build a record from extracted job data."""
        return cls(
            job_id=data.job_id,
            title=data.title,
            company=data.company,
            company_id=data.company_id,
            location=data.location,
            description=data.description,
            employment_type=data.employment_type,
            seniority_level=data.seniority_level,
            industry=data.industry,
            salary_min=data.salary_min,
            salary_max=data.salary_max,
            salary_currency=data.salary_currency,
            job_url=data.url or f"https://www.linkedin.com/jobs/view/{data.job_id}/",
            apply_url=data.apply_url,
            posted_at=parse_posted_date(data.posted_date),
            search_id=search_id,
            raw_data=json.dumps(data.model_dump(), ensure_ascii=False),
            page_html=page_html,
        )


class JobFilters(BaseModel):
    """Filters accepted by JobRepository.find_all."""

    search_id: int | None = None
    company: str | None = None
    location: str | None = None
    date_from: datetime | None = None
    query: str | None = Field(default=None, description="Full-text match over job text")
    limit: int | None = Field(default=None, ge=1)


class JobSummary(BaseModel):
    """Summary view of a job, for tables."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    job_id: str
    title: str
    company: str
    location: str
    employment_type: str | None
    seniority_level: str | None
    posted_at: datetime
    job_url: str
    search_id: int


class JobExport(JobSummary):
    """Full job view used by the export command."""

    company_id: str | None
    description: str
    industry: str | None
    salary_min: float | None
    salary_max: float | None
    salary_currency: str | None
    apply_url: str | None
    scraped_at: datetime
    created_at: datetime
    updated_at: datetime


class BulkDeleteResult(BaseModel):
    """Outcome of a bulk delete by LinkedIn job id."""

    deleted: int = 0
    failed: list[str] = Field(default_factory=list)


# =============================================================================
# Search Schemas
# =============================================================================


class SearchSummary(BaseModel):
    """Summary view of a search run."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    query: str
    location: str
    status: str
    total_results: int
    successful_scrapes: int
    failed_scrapes: int
    started_at: datetime
    completed_at: datetime | None


class ScrapeErrorDetail(BaseModel):
    """A logged scrape error."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    search_id: int
    job_id: str | None
    error_type: str
    error_message: str
    url: str | None
    occurred_at: datetime

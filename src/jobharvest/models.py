"""Domain models shared by the scraper, the database layer and the CLI."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from jobharvest.errors import ConfigurationError

# =============================================================================
# Enums
# =============================================================================


class SearchStatus(str, Enum):
    """Lifecycle status of a search run."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ItemOutcome(str, Enum):
    """Final classification of one extracted listing."""

    SUCCESS = "success"
    DUPLICATE = "duplicate"
    FAILED = "failed"


EXPERIENCE_LEVELS = (
    "Internship",
    "Entry Level",
    "Associate",
    "Mid-Senior",
    "Director",
    "Executive",
)

EMPLOYMENT_TYPES = (
    "Full-time",
    "Part-time",
    "Contract",
    "Temporary",
    "Volunteer",
    "Internship",
)

DATE_POSTED_OPTIONS = ("Past 24 hours", "Past Week", "Past Month", "Any time")

REMOTE_OPTIONS = ("On-site", "Remote", "Hybrid")


# =============================================================================
# Scrape options
# =============================================================================


class ScrapeOptions(BaseModel):
    """Validated filter set and item cap for one scrape run."""

    model_config = ConfigDict(extra="forbid")

    position: str | None = Field(default=None, description="Job title or keywords")
    location: str | None = Field(default=None, description="Location text")
    experience_level: list[str] = Field(default_factory=list)
    employment_type: list[str] = Field(default_factory=list)
    date_posted: str | None = None
    remote_option: str | None = None
    salary_min: int | None = Field(default=None, ge=0)
    limit: int = Field(default=50, ge=1, le=1000)

    @field_validator("position", "location", "date_posted", "remote_option")
    @classmethod
    def _blank_to_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip()
        return value or None

    @field_validator("experience_level", "employment_type", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @classmethod
    def validate_options(cls, options: "ScrapeOptions | dict[str, Any]") -> "ScrapeOptions":
        """Validate a loose option mapping, raising ConfigurationError on failure."""
        if isinstance(options, ScrapeOptions):
            options = options.model_dump()
        try:
            return cls.model_validate(options)
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'options'}: {err['msg']}"
                for err in e.errors()
            )
            raise ConfigurationError(f"Invalid scrape options: {problems}") from e


# =============================================================================
# Extraction results
# =============================================================================


class JobCard(BaseModel):
    """One listing node on a search results page."""

    job_id: str
    selector: str
    title: str = ""
    company: str = ""
    location: str = ""


class MalformedListing(BaseModel):
    """A listing node that could not be turned into a JobCard."""

    index: int
    reason: str
    job_id: str | None = None


class JobData(BaseModel):
    """Normalized job detail, as extracted from a posting."""

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
    url: str = ""
    apply_url: str | None = None
    posted_date: str = ""


class ScrapeResult(BaseModel):
    """Summary returned to the caller of a scrape run."""

    success: bool
    search_id: int | None = None
    total_scraped: int = 0
    duplicates: int = 0
    failed: int = 0
    status: SearchStatus = SearchStatus.COMPLETED
    errors: list[str] = Field(default_factory=list)

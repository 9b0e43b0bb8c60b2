"""End-to-end scrape run.

ScrapeOrchestrator ties the pieces together for one run:
validate options -> create search run -> restore session -> launch browser ->
walk result pages -> dedup / extract / persist each listing -> close browser ->
finalize the search run exactly once.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

import structlog
from playwright.async_api import Error as PlaywrightError
from tenacity.wait import wait_base

from jobharvest.config import Config
from jobharvest.db.database import DatabaseManager
from jobharvest.db.repositories import JobRepository, SearchRepository
from jobharvest.db.schemas import JobCreate
from jobharvest.errors import (
    ExtractionError,
    FatalScrapeError,
    JobHarvestError,
    SessionCorruptError,
    SessionExpiredError,
    SessionNotFoundError,
)
from jobharvest.models import (
    ItemOutcome,
    JobCard,
    MalformedListing,
    ScrapeOptions,
    ScrapeResult,
    SearchStatus,
)
from jobharvest.scraper.auth import LoginDetector
from jobharvest.scraper.browser import BrowserConfig, BrowserController
from jobharvest.scraper.dedup import Deduplicator
from jobharvest.scraper.parser import Parser
from jobharvest.scraper.pipeline import ExtractionPipeline, PipelineState
from jobharvest.scraper.query import build_search_url
from jobharvest.scraper.session import SessionStatus, SessionStore

logger = structlog.get_logger(logger_name=__name__)

ProgressCallback = Callable[[ItemOutcome, str], None]

# Screenshots are only kept for the first few failed listings of a run.
MAX_FAILURE_ARTIFACTS = 3

_SESSION_ERRORS = {
    SessionStatus.MISSING: SessionNotFoundError,
    SessionStatus.EXPIRED: SessionExpiredError,
    SessionStatus.CORRUPT: SessionCorruptError,
}


@dataclass
class _RunStats:
    search_id: int
    successes: int = 0
    duplicates: int = 0
    failed: int = 0
    reported_total: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def classified(self) -> int:
        return self.successes + self.duplicates + self.failed


class _RunSink:
    """Classifies each listing of one run and records the outcome."""

    def __init__(
        self,
        orchestrator: "ScrapeOrchestrator",
        pipeline: ExtractionPipeline,
        browser: BrowserController,
        stats: _RunStats,
        progress: ProgressCallback | None,
    ):
        self.orchestrator = orchestrator
        self.pipeline = pipeline
        self.browser = browser
        self.stats = stats
        self.progress = progress
        self.dedup = Deduplicator(orchestrator.jobs)

    def _report(self, outcome: ItemOutcome, label: str) -> ItemOutcome:
        if self.progress is not None:
            self.progress(outcome, label)
        return outcome

    def _page_url(self) -> str | None:
        try:
            return self.browser.get_page().url
        except JobHarvestError:
            return None

    async def on_listing(self, card: JobCard) -> ItemOutcome:
        searches = self.orchestrator.searches
        stats = self.stats
        label = f"{card.title} at {card.company}".strip()

        if not self.dedup.is_new(card.job_id):
            self.dedup.mark(card.job_id)
            stats.duplicates += 1
            logger.info("Job already stored, skipping", job_id=card.job_id)
            return self._report(ItemOutcome.DUPLICATE, label)

        try:
            data = await self.pipeline.fetch_details(card)
        except ExtractionError as e:
            self.dedup.mark(card.job_id)
            stats.failed += 1
            searches.increment_failed(stats.search_id)
            searches.log_error(
                stats.search_id,
                e.category,
                str(e),
                job_id=card.job_id,
                url=self._page_url(),
            )
            if self.orchestrator.config.save_debug_artifacts and stats.failed <= MAX_FAILURE_ARTIFACTS:
                await self.browser.save_debug_artifacts(
                    "job-scrape-failed", job_id=card.job_id, search_id=stats.search_id
                )
            return self._report(ItemOutcome.FAILED, label)

        page_html = None
        if self.orchestrator.config.capture_page_html:
            try:
                page_html = await self.browser.content()
            except PlaywrightError as e:
                logger.debug("Could not capture page HTML", job_id=card.job_id, error=str(e))

        record = JobCreate.from_job_data(data, stats.search_id, page_html=page_html)
        _, created = self.orchestrator.jobs.create(record)
        self.dedup.mark(card.job_id)
        self.dedup.mark(record.job_id)

        if not created:
            stats.duplicates += 1
            return self._report(ItemOutcome.DUPLICATE, label)

        stats.successes += 1
        searches.increment_successful(stats.search_id)
        logger.info("Job scraped", job_id=record.job_id, title=record.title, company=record.company)
        return self._report(ItemOutcome.SUCCESS, label)

    async def on_listing_error(self, listing: MalformedListing) -> None:
        searches = self.orchestrator.searches
        self.stats.failed += 1
        searches.increment_failed(self.stats.search_id)
        searches.log_error(
            self.stats.search_id,
            ExtractionError.category,
            f"Malformed listing at position {listing.index}: {listing.reason}",
            job_id=listing.job_id,
            url=self._page_url(),
        )
        self._report(ItemOutcome.FAILED, f"listing #{listing.index}")

    async def on_page_error(self, error: Exception, url: str) -> None:
        category = getattr(error, "category", type(error).__name__)
        self.stats.errors.append(str(error))
        self.orchestrator.searches.log_error(
            self.stats.search_id, category, str(error), url=url
        )
        logger.warning("Page error", error=str(error), url=url)
        if self.orchestrator.config.save_debug_artifacts:
            await self.browser.save_debug_artifacts(
                "page-error", search_id=self.stats.search_id
            )

    async def on_total_count(self, count: int) -> None:
        self.stats.reported_total = count
        self.orchestrator.searches.update(self.stats.search_id, total_results=count)


class ScrapeOrchestrator:
    """Runs one scrape from options to a finalized search run."""

    def __init__(
        self,
        db: DatabaseManager,
        config: Config,
        browser_factory: Callable[[BrowserConfig], BrowserController] = BrowserController,
        parser_factory: Callable[[Any], Parser] = Parser,
        session_store: SessionStore | None = None,
        login_detector: LoginDetector | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        retry_wait: wait_base | None = None,
    ):
        self.config = config
        self.searches = SearchRepository(db)
        self.jobs = JobRepository(db)
        self.browser_factory = browser_factory
        self.parser_factory = parser_factory
        self.session_store = session_store or SessionStore(
            config.session_path, config.session_max_age_hours
        )
        self.login_detector = login_detector or LoginDetector(sleep=sleep)
        self._sleep = sleep
        self.retry_wait = retry_wait

    def _restore_session(self) -> dict[str, Any] | None:
        """Storage state of an active session, or None to scrape anonymously.

        Raises:
            AuthenticationError: no usable session while one is required.
        """
        info = self.session_store.status()
        if info.status is SessionStatus.ACTIVE:
            data = self.session_store.load()
            logger.info("Restoring session", path=str(info.path), age=str(info.age))
            return data.storage_state

        if self.config.require_session:
            raise _SESSION_ERRORS[info.status](
                f"No usable LinkedIn session ({info.status.value}). Run 'login' first."
            )
        logger.warning(
            "No usable session, continuing without login",
            status=info.status.value,
            path=str(info.path),
        )
        return None

    async def scrape(
        self,
        options: ScrapeOptions | dict[str, Any],
        cancel_event: asyncio.Event | None = None,
        progress: ProgressCallback | None = None,
    ) -> ScrapeResult:
        """Run one scrape.

        Raises:
            ConfigurationError: the options are invalid (nothing is recorded).
        """
        options = ScrapeOptions.validate_options(options)
        run = self.searches.create(options)
        stats = _RunStats(search_id=run.id)
        logger.info("Starting scrape", search_id=run.id, options=options.model_dump())

        status = SearchStatus.FAILED
        browser: BrowserController | None = None
        try:
            storage_state = self._restore_session()

            browser = self.browser_factory(BrowserConfig.from_config(self.config))
            await browser.launch(storage_state)

            pipeline = ExtractionPipeline(
                browser=browser,
                parser=self.parser_factory(browser.get_page()),
                limit=options.limit,
                max_pages=self.config.max_pages_per_search,
                page_timeout_ms=self.config.page_timeout_ms,
                request_delay_ms=(
                    self.config.request_delay_min_ms,
                    self.config.request_delay_max_ms,
                ),
                detail_delay_ms=(
                    self.config.detail_delay_min_ms,
                    self.config.detail_delay_max_ms,
                ),
                max_retries=self.config.max_retries,
                login_detector=self.login_detector,
                cancel_event=cancel_event,
                sleep=self._sleep,
                retry_wait=self.retry_wait,
            )
            search_url = build_search_url(options)
            logger.info("Search URL built", url=search_url)

            sink = _RunSink(self, pipeline, browser, stats, progress)
            outcome = await pipeline.run(search_url, sink)

            if outcome.state is PipelineState.ABORTED:
                raise outcome.error or FatalScrapeError(outcome.reason)
            if outcome.state is PipelineState.CANCELLED:
                status = SearchStatus.CANCELLED
            else:
                status = SearchStatus.COMPLETED
        except (asyncio.CancelledError, KeyboardInterrupt):
            status = SearchStatus.CANCELLED
            logger.warning("Scrape interrupted", search_id=run.id)
            raise
        except (JobHarvestError, PlaywrightError) as e:
            status = SearchStatus.FAILED
            category = getattr(e, "category", "BrowserError")
            stats.errors.append(str(e))
            logger.error("Scrape failed", search_id=run.id, error=str(e), category=category)
            self.searches.log_error(run.id, category, str(e))
            if browser is not None and self.config.save_debug_artifacts:
                await browser.save_debug_artifacts("scrape-failed", search_id=run.id)
        finally:
            if browser is not None:
                await browser.close()
            self.searches.finalize(run.id, status, min_total=max(stats.reported_total, stats.classified))

        logger.info(
            "Scrape finished",
            search_id=run.id,
            status=status.value,
            scraped=stats.successes,
            duplicates=stats.duplicates,
            failed=stats.failed,
        )
        return ScrapeResult(
            success=status is SearchStatus.COMPLETED,
            search_id=run.id,
            total_scraped=stats.successes,
            duplicates=stats.duplicates,
            failed=stats.failed,
            status=status,
            errors=stats.errors,
        )

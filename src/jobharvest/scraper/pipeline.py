"""Page-by-page extraction loop over LinkedIn search results.

The pipeline walks LOAD_PAGE -> WAIT_STABLE -> EXTRACT_BATCH -> CHECK_LIMIT
until the item cap, the page cap or the last page is reached. What happens to
each listing (dedup, detail extraction, persistence) is decided by the sink
the caller passes to ``run``.
"""

import asyncio
import random
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Protocol

import structlog
from playwright.async_api import Error as PlaywrightError
from pydantic import ValidationError
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)
from tenacity.wait import wait_base

from jobharvest.errors import (
    BrowserNotStartedError,
    ExtractionError,
    LoginWallError,
    NavigationError,
)
from jobharvest.models import ItemOutcome, JobCard, JobData, MalformedListing
from jobharvest.scraper.auth import LoginDetector
from jobharvest.scraper.browser import BrowserController
from jobharvest.scraper.parser import Parser

logger = structlog.get_logger(logger_name=__name__)


class PipelineState(str, Enum):
    LOAD_PAGE = "load_page"
    WAIT_STABLE = "wait_stable"
    EXTRACT_BATCH = "extract_batch"
    CHECK_LIMIT = "check_limit"
    COMPLETED = "completed"
    ABORTED = "aborted"
    CANCELLED = "cancelled"


TERMINAL_STATES = (PipelineState.COMPLETED, PipelineState.ABORTED, PipelineState.CANCELLED)


class ListingSink(Protocol):
    """Receives everything the pipeline finds."""

    async def on_listing(self, card: JobCard) -> ItemOutcome: ...

    async def on_listing_error(self, listing: MalformedListing) -> None: ...

    async def on_page_error(self, error: Exception, url: str) -> None: ...

    async def on_total_count(self, count: int) -> None: ...


@dataclass
class PipelineOutcome:
    state: PipelineState
    pages: int = 0
    listings_seen: int = 0
    successes: int = 0
    reason: str = ""
    error: Exception | None = None


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "Detail extraction attempt failed",
        attempt=retry_state.attempt_number,
        error=str(exc),
    )


class ExtractionPipeline:
    """Drives the browser over result pages and feeds listings to a sink."""

    def __init__(
        self,
        browser: BrowserController,
        parser: Parser,
        limit: int,
        max_pages: int = 10,
        page_timeout_ms: int = 10000,
        request_delay_ms: tuple[int, int] = (3000, 7000),
        detail_delay_ms: tuple[int, int] = (1500, 3000),
        max_retries: int = 3,
        login_detector: LoginDetector | None = None,
        cancel_event: asyncio.Event | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        retry_wait: wait_base | None = None,
    ):
        self.browser = browser
        self.parser = parser
        self.limit = limit
        self.max_pages = max_pages
        self.page_timeout_ms = page_timeout_ms
        self.request_delay_ms = request_delay_ms
        self.detail_delay_ms = detail_delay_ms
        self.max_retries = max_retries
        self.login_detector = login_detector
        self.cancel_event = cancel_event
        self._sleep = sleep
        self.retry_wait = retry_wait or wait_exponential_jitter(initial=1, max=10)

    @property
    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    async def _pause(self, delay_ms: tuple[int, int]) -> None:
        low, high = delay_ms
        await self._sleep(random.uniform(low, high) / 1000)

    def _current_url(self, default: str) -> str:
        try:
            return self.browser.get_page().url or default
        except BrowserNotStartedError:
            return default

    # =========================================================================
    # Detail extraction
    # =========================================================================

    async def fetch_details(self, card: JobCard) -> JobData:
        """Open a listing and extract its details, retrying transient failures.

        Raises:
            ExtractionError: every attempt failed.
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=self.retry_wait,
            retry=retry_if_exception_type((ExtractionError, PlaywrightError)),
            before_sleep=_log_retry,
            sleep=self._sleep,
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    await self.browser.click(card.selector)
                    await self._pause(self.detail_delay_ms)
                    await self.browser.remove_modal_overlay()

                    data = await self.parser.try_json_ld_extraction(card.job_id)
                    if data is None:
                        data = await self.parser.try_html_extraction(card.job_id)
                    if data is None or not data.job_id:
                        raise ExtractionError(
                            f"No extraction strategy produced data for job {card.job_id}"
                        )
        except PlaywrightError as e:
            raise ExtractionError(f"Browser error extracting job {card.job_id}: {e}") from e
        except (ValidationError, TypeError, ValueError) as e:
            raise ExtractionError(f"Unreadable job data for job {card.job_id}: {e}") from e

        logger.debug("Job details extracted", job_id=data.job_id, title=data.title)
        return data

    # =========================================================================
    # State machine
    # =========================================================================

    async def _end_on_page_error(
        self, outcome: PipelineOutcome, sink: ListingSink, search_url: str, error: PlaywrightError
    ) -> None:
        """Record a browser failure on a results page and stop with what was scraped."""
        url = self._current_url(search_url)
        await sink.on_page_error(
            NavigationError(f"Browser error on results page {outcome.pages}: {error}"), url
        )
        outcome.state = PipelineState.COMPLETED
        outcome.reason = "results page error"

    async def run(self, search_url: str, sink: ListingSink) -> PipelineOutcome:
        """Walk the result pages until a terminal state is reached."""
        outcome = PipelineOutcome(state=PipelineState.LOAD_PAGE)
        seen: set[str] = set()
        new_in_batch = 0

        while outcome.state not in TERMINAL_STATES:
            state = outcome.state
            logger.debug("Pipeline step", state=state.value, page=outcome.pages)

            if state is PipelineState.LOAD_PAGE:
                if self.cancelled:
                    outcome.state = PipelineState.CANCELLED
                    outcome.reason = "cancel requested"
                elif outcome.pages == 0:
                    try:
                        await self.browser.navigate(search_url)
                    except NavigationError as e:
                        await sink.on_page_error(e, search_url)
                        outcome.state = PipelineState.COMPLETED
                        outcome.reason = "search page failed to load"
                        continue
                    outcome.pages = 1
                    outcome.state = PipelineState.WAIT_STABLE
                else:
                    await self._pause(self.request_delay_ms)
                    if await self.parser.click_next_page(self.page_timeout_ms):
                        outcome.pages += 1
                        outcome.state = PipelineState.WAIT_STABLE
                    else:
                        outcome.state = PipelineState.COMPLETED
                        outcome.reason = "next page unavailable"

            elif state is PipelineState.WAIT_STABLE:
                try:
                    loaded = await self.parser.wait_for_results(self.page_timeout_ms)
                    if loaded and outcome.pages == 1:
                        total = await self.parser.extract_total_count()
                        if total is not None:
                            await sink.on_total_count(total)
                    auth_wall = (
                        not loaded
                        and self.login_detector is not None
                        and await self.login_detector.is_auth_wall(self.browser.get_page())
                    )
                except PlaywrightError as e:
                    await self._end_on_page_error(outcome, sink, search_url, e)
                    continue

                if loaded:
                    outcome.state = PipelineState.EXTRACT_BATCH
                    continue

                if auth_wall:
                    outcome.error = LoginWallError(
                        f"LinkedIn showed a login wall on page {outcome.pages}"
                    )
                    outcome.state = PipelineState.ABORTED
                    outcome.reason = "login wall"
                    continue

                url = self._current_url(search_url)
                await sink.on_page_error(
                    NavigationError(
                        f"Results did not load within {self.page_timeout_ms}ms "
                        f"(page {outcome.pages})"
                    ),
                    url,
                )
                outcome.state = PipelineState.COMPLETED
                outcome.reason = "results did not load"

            elif state is PipelineState.EXTRACT_BATCH:
                try:
                    cards, malformed = await self.parser.extract_job_cards()
                except PlaywrightError as e:
                    await self._end_on_page_error(outcome, sink, search_url, e)
                    continue
                for listing in malformed:
                    outcome.listings_seen += 1
                    await sink.on_listing_error(listing)

                new_in_batch = 0
                for card in cards:
                    if self.cancelled or outcome.successes >= self.limit:
                        break
                    if card.job_id in seen:
                        continue
                    seen.add(card.job_id)
                    new_in_batch += 1
                    outcome.listings_seen += 1
                    if await sink.on_listing(card) is ItemOutcome.SUCCESS:
                        outcome.successes += 1
                outcome.state = PipelineState.CHECK_LIMIT

            elif state is PipelineState.CHECK_LIMIT:
                if self.cancelled:
                    outcome.state = PipelineState.CANCELLED
                    outcome.reason = "cancel requested"
                elif outcome.successes >= self.limit:
                    outcome.state = PipelineState.COMPLETED
                    outcome.reason = "limit reached"
                elif new_in_batch == 0:
                    outcome.state = PipelineState.COMPLETED
                    outcome.reason = "no new listings"
                elif outcome.pages >= self.max_pages:
                    outcome.state = PipelineState.COMPLETED
                    outcome.reason = "page limit reached"
                elif not await self.parser.has_next_page():
                    outcome.state = PipelineState.COMPLETED
                    outcome.reason = "no more pages"
                else:
                    outcome.state = PipelineState.LOAD_PAGE

        logger.info(
            "Pipeline finished",
            state=outcome.state.value,
            reason=outcome.reason,
            pages=outcome.pages,
            listings=outcome.listings_seen,
            successes=outcome.successes,
        )
        return outcome

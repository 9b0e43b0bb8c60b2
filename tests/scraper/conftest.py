"""Shared test fixtures for scraper tests."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from tenacity import wait_none

from jobharvest.models import JobCard, JobData, MalformedListing
from jobharvest.scraper.parser import normalize_job_posting

SEARCH_PAGE_URL = "https://www.linkedin.com/jobs/search?keywords=Engineer"


def _card(job_id: str) -> JobCard:
    return JobCard(
        job_id=job_id,
        selector=f'div.base-card[data-entity-urn="urn:li:jobPosting:{job_id}"]',
        title=f"Engineer {job_id}",
        company="Acme",
        location="Remote",
    )


class FakeParser:
    """Serves canned result pages and job details.

    ``pages`` is a list of ``(cards, malformed)`` tuples. ``failures`` maps a
    job id to how many detail attempts fail before one succeeds; ``None``
    means every attempt fails. ``postings`` maps a job id to a raw JSON-LD
    posting served through the real normalization. ``page_errors`` maps a
    page index to an exception raised while reading that page's listings.
    """

    def __init__(
        self, pages, total=None, failures=None, results_load=True, postings=None, page_errors=None
    ):
        self.pages = pages
        self.total = total
        self.failures = dict(failures or {})
        self.results_load = results_load
        self.postings = dict(postings or {})
        self.page_errors = dict(page_errors or {})
        self.index = 0
        self.detail_calls: dict[str, int] = {}

    async def wait_for_results(self, timeout_ms=10000):
        return self.results_load

    async def extract_total_count(self):
        return self.total

    async def extract_job_cards(self):
        if self.index in self.page_errors:
            raise self.page_errors[self.index]
        cards, malformed = self.pages[self.index]
        return list(cards), list(malformed)

    async def has_next_page(self):
        return self.index < len(self.pages) - 1

    async def click_next_page(self, timeout_ms=10000):
        if not await self.has_next_page():
            return False
        self.index += 1
        return True

    async def try_json_ld_extraction(self, fallback_job_id=""):
        calls = self.detail_calls.get(fallback_job_id, 0) + 1
        self.detail_calls[fallback_job_id] = calls
        if fallback_job_id in self.failures:
            remaining = self.failures[fallback_job_id]
            if remaining is None or calls <= remaining:
                return None
        if fallback_job_id in self.postings:
            return normalize_job_posting(self.postings[fallback_job_id], fallback_job_id)
        return JobData(
            job_id=fallback_job_id,
            title=f"Engineer {fallback_job_id}",
            company="Acme",
            location="Remote",
            description="<p>Build things</p>",
            posted_date="2024-05-01",
        )

    async def try_html_extraction(self, fallback_job_id=""):
        return None


@pytest.fixture
def make_card():
    """Factory for job cards."""
    return _card


@pytest.fixture
def make_parser():
    """Factory for FakeParser instances."""
    return FakeParser


@pytest.fixture
def malformed_listing():
    return MalformedListing(index=3, reason="Unrecognized listing urn: ''")


@pytest.fixture
def mock_page():
    """Create a mock Playwright page."""
    page = MagicMock()
    page.url = SEARCH_PAGE_URL
    page.goto = AsyncMock(return_value=MagicMock(status=200))
    page.wait_for_selector = AsyncMock()
    page.query_selector = AsyncMock(return_value=None)
    page.query_selector_all = AsyncMock(return_value=[])
    page.evaluate = AsyncMock(return_value=None)
    page.click = AsyncMock()
    page.wait_for_load_state = AsyncMock()
    page.content = AsyncMock(return_value="<html></html>")
    page.screenshot = AsyncMock()
    page.close = AsyncMock()
    page.context.cookies = AsyncMock(return_value=[])
    return page


@pytest.fixture
def mock_browser(mock_page):
    """Create a mock BrowserController bound to mock_page."""
    browser = MagicMock()
    browser.get_page = MagicMock(return_value=mock_page)
    browser.get_context = MagicMock()
    browser.launch = AsyncMock()
    browser.navigate = AsyncMock()
    browser.click = AsyncMock()
    browser.remove_modal_overlay = AsyncMock(return_value=0)
    browser.content = AsyncMock(return_value="<html></html>")
    browser.save_debug_artifacts = AsyncMock(return_value=[])
    browser.close = AsyncMock()
    return browser


@pytest.fixture
def mock_login_detector():
    detector = MagicMock()
    detector.is_auth_wall = AsyncMock(return_value=False)
    return detector


@pytest.fixture
def no_sleep():
    return AsyncMock()


@pytest.fixture
def no_wait():
    """Retry wait strategy that does not wait."""
    return wait_none()

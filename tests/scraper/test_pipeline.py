"""Tests for the result page extraction pipeline."""

import asyncio

import pytest
from playwright.async_api import Error as PlaywrightError

from jobharvest.errors import ExtractionError, LoginWallError, NavigationError
from jobharvest.models import ItemOutcome, JobData
from jobharvest.scraper.pipeline import ExtractionPipeline, PipelineState


class RecordingSink:
    """Sink accepting every listing as a success unless told otherwise."""

    def __init__(self, outcomes=None):
        self.outcomes = outcomes or {}
        self.listings = []
        self.listing_errors = []
        self.page_errors = []
        self.totals = []

    async def on_listing(self, card):
        self.listings.append(card.job_id)
        return self.outcomes.get(card.job_id, ItemOutcome.SUCCESS)

    async def on_listing_error(self, listing):
        self.listing_errors.append(listing)

    async def on_page_error(self, error, url):
        self.page_errors.append((error, url))

    async def on_total_count(self, count):
        self.totals.append(count)


@pytest.fixture
def build_pipeline(mock_browser, mock_login_detector, no_sleep, no_wait):
    def _build(parser, **kwargs):
        defaults = dict(
            browser=mock_browser,
            parser=parser,
            limit=50,
            max_retries=2,
            login_detector=mock_login_detector,
            sleep=no_sleep,
            retry_wait=no_wait,
        )
        defaults.update(kwargs)
        return ExtractionPipeline(**defaults)

    return _build


# =============================================================================
# Detail extraction
# =============================================================================


class TestFetchDetails:
    """Tests for retried detail extraction."""

    async def test_returns_data_first_try(self, build_pipeline, make_parser, make_card, mock_browser):
        """Test a detail page that parses immediately."""
        pipeline = build_pipeline(make_parser([]))

        data = await pipeline.fetch_details(make_card("101"))

        assert data.job_id == "101"
        mock_browser.click.assert_awaited_once()
        mock_browser.remove_modal_overlay.assert_awaited()

    async def test_retries_until_success(self, build_pipeline, make_parser, make_card, mock_browser):
        """Test that a transient extraction failure is retried."""
        parser = make_parser([], failures={"101": 2})
        pipeline = build_pipeline(parser)

        data = await pipeline.fetch_details(make_card("101"))

        assert data.title == "Engineer 101"
        assert parser.detail_calls["101"] == 3
        assert mock_browser.click.await_count == 3

    async def test_raises_after_retries_exhausted(self, build_pipeline, make_parser, make_card, mock_browser):
        """Test that max_retries + 1 attempts are made before giving up."""
        parser = make_parser([], failures={"101": None})
        pipeline = build_pipeline(parser, max_retries=2)

        with pytest.raises(ExtractionError):
            await pipeline.fetch_details(make_card("101"))

        assert parser.detail_calls["101"] == 3

    async def test_browser_errors_become_extraction_errors(self, build_pipeline, make_parser, make_card, mock_browser):
        """Test that a click that keeps failing surfaces as ExtractionError."""
        mock_browser.click.side_effect = PlaywrightError("element detached")
        pipeline = build_pipeline(make_parser([]), max_retries=1)

        with pytest.raises(ExtractionError, match="element detached"):
            await pipeline.fetch_details(make_card("101"))

        assert mock_browser.click.await_count == 2

    async def test_unreadable_data_becomes_extraction_error(self, build_pipeline, make_parser, make_card):
        """Test that details failing validation are not retried and surface as ExtractionError."""
        parser = make_parser([])

        async def invalid_details(fallback_job_id=""):
            return JobData.model_validate({"job_id": fallback_job_id, "title": ["not", "text"]})

        parser.try_json_ld_extraction = invalid_details

        with pytest.raises(ExtractionError, match="Unreadable job data"):
            await build_pipeline(parser).fetch_details(make_card("101"))


# =============================================================================
# State machine
# =============================================================================


class TestPipelineRun:
    """Tests for the page loop."""

    async def test_walks_all_pages(self, build_pipeline, make_parser, make_card, mock_browser):
        """Test that every page is visited until there is no next page."""
        parser = make_parser(
            [
                ([make_card("1"), make_card("2")], []),
                ([make_card("3")], []),
            ],
            total=3,
        )
        sink = RecordingSink()

        outcome = await build_pipeline(parser).run("https://search", sink)

        assert outcome.state is PipelineState.COMPLETED
        assert outcome.reason == "no more pages"
        assert outcome.pages == 2
        assert sink.listings == ["1", "2", "3"]
        assert sink.totals == [3]
        mock_browser.navigate.assert_awaited_once_with("https://search")

    async def test_stops_at_limit(self, build_pipeline, make_parser, make_card):
        """Test that no listing is handed over once the limit is reached."""
        parser = make_parser([([make_card(str(i)) for i in range(5)], [])])
        sink = RecordingSink()

        outcome = await build_pipeline(parser, limit=2).run("https://search", sink)

        assert outcome.reason == "limit reached"
        assert outcome.successes == 2
        assert sink.listings == ["0", "1"]

    async def test_duplicates_do_not_consume_limit(self, build_pipeline, make_parser, make_card):
        """Test that only successes count against the limit."""
        parser = make_parser([([make_card(str(i)) for i in range(4)], [])])
        sink = RecordingSink(outcomes={"0": ItemOutcome.DUPLICATE, "1": ItemOutcome.FAILED})

        outcome = await build_pipeline(parser, limit=2).run("https://search", sink)

        assert sink.listings == ["0", "1", "2", "3"]
        assert outcome.successes == 2

    async def test_reports_malformed_listings(self, build_pipeline, make_parser, make_card, malformed_listing):
        parser = make_parser([([make_card("1")], [malformed_listing])])
        sink = RecordingSink()

        outcome = await build_pipeline(parser).run("https://search", sink)

        assert sink.listing_errors == [malformed_listing]
        assert outcome.listings_seen == 2

    async def test_page_of_repeats_ends_run(self, build_pipeline, make_parser, make_card):
        """Test that a page with nothing new stops the loop."""
        parser = make_parser(
            [
                ([make_card("1")], []),
                ([make_card("1")], []),
                ([make_card("2")], []),
            ]
        )
        sink = RecordingSink()

        outcome = await build_pipeline(parser).run("https://search", sink)

        assert outcome.reason == "no new listings"
        assert sink.listings == ["1"]

    async def test_respects_page_limit(self, build_pipeline, make_parser, make_card):
        parser = make_parser([([make_card("1")], []), ([make_card("2")], [])])

        outcome = await build_pipeline(parser, max_pages=1).run("https://search", RecordingSink())

        assert outcome.reason == "page limit reached"
        assert outcome.pages == 1

    async def test_login_wall_aborts(self, build_pipeline, make_parser, mock_login_detector):
        """Test that an auth wall instead of results aborts the run."""
        mock_login_detector.is_auth_wall.return_value = True
        parser = make_parser([([], [])], results_load=False)

        outcome = await build_pipeline(parser).run("https://search", RecordingSink())

        assert outcome.state is PipelineState.ABORTED
        assert isinstance(outcome.error, LoginWallError)

    async def test_results_timeout_is_page_error(self, build_pipeline, make_parser):
        """Test that missing results without a login wall ends the run quietly."""
        parser = make_parser([([], [])], results_load=False)
        sink = RecordingSink()

        outcome = await build_pipeline(parser).run("https://search", sink)

        assert outcome.state is PipelineState.COMPLETED
        assert len(sink.page_errors) == 1
        assert isinstance(sink.page_errors[0][0], NavigationError)

    async def test_browser_error_reading_later_page(self, build_pipeline, make_parser, make_card):
        """Test that a browser error on page two keeps what page one produced."""
        parser = make_parser(
            [
                ([make_card("1"), make_card("2")], []),
                ([make_card("3")], []),
            ],
            page_errors={1: PlaywrightError("Execution context was destroyed")},
        )
        sink = RecordingSink()

        outcome = await build_pipeline(parser).run("https://search", sink)

        assert outcome.state is PipelineState.COMPLETED
        assert outcome.successes == 2
        assert sink.listings == ["1", "2"]
        error, _ = sink.page_errors[0]
        assert isinstance(error, NavigationError)
        assert "Execution context was destroyed" in str(error)

    async def test_browser_error_waiting_for_results(self, build_pipeline, make_parser):
        parser = make_parser([([], [])])

        async def broken_wait(timeout_ms=10000):
            raise PlaywrightError("Target page, context or browser has been closed")

        parser.wait_for_results = broken_wait
        sink = RecordingSink()

        outcome = await build_pipeline(parser).run("https://search", sink)

        assert outcome.state is PipelineState.COMPLETED
        assert outcome.reason == "results page error"
        assert len(sink.page_errors) == 1

    async def test_navigation_failure_is_page_error(self, build_pipeline, make_parser, mock_browser):
        mock_browser.navigate.side_effect = NavigationError("HTTP 429")
        sink = RecordingSink()

        outcome = await build_pipeline(make_parser([([], [])])).run("https://search", sink)

        assert outcome.state is PipelineState.COMPLETED
        assert sink.page_errors[0][1] == "https://search"

    async def test_cancel_before_start(self, build_pipeline, make_parser, mock_browser):
        event = asyncio.Event()
        event.set()

        outcome = await build_pipeline(make_parser([]), cancel_event=event).run(
            "https://search", RecordingSink()
        )

        assert outcome.state is PipelineState.CANCELLED
        mock_browser.navigate.assert_not_awaited()

    async def test_cancel_mid_batch(self, build_pipeline, make_parser, make_card):
        """Test that a cancel request stops before the next listing."""
        event = asyncio.Event()
        parser = make_parser([([make_card("1"), make_card("2"), make_card("3")], [])])

        class CancellingSink(RecordingSink):
            async def on_listing(self, card):
                event.set()
                return await super().on_listing(card)

        sink = CancellingSink()
        outcome = await build_pipeline(parser, cancel_event=event).run("https://search", sink)

        assert outcome.state is PipelineState.CANCELLED
        assert sink.listings == ["1"]

"""Tests for the scrape command, with the orchestrator mocked."""

from unittest.mock import AsyncMock, patch

import pytest
from typer.testing import CliRunner

from jobharvest.cli.main import app
from jobharvest.errors import BrowserLaunchError
from jobharvest.models import ScrapeResult, SearchStatus

runner = CliRunner()


@pytest.fixture
def mock_orchestrator():
    """Patch ScrapeOrchestrator in the scrape command module."""
    with patch("jobharvest.cli.commands.scrape_cli.ScrapeOrchestrator") as cls:
        cls.return_value.scrape = AsyncMock(
            return_value=ScrapeResult(success=True, search_id=7, total_scraped=4, duplicates=1)
        )
        yield cls


class TestScrapeCommand:
    """Tests for the scrape command."""

    def test_scrape_success(self, mock_orchestrator):
        result = runner.invoke(
            app,
            [
                "scrape",
                "--position", "Engineer",
                "--location", "Remote",
                "-e", "Associate",
                "-e", "Mid-Senior",
                "--limit", "4",
            ],
        )

        assert result.exit_code == 0
        assert "Successfully scraped 4 jobs" in result.stdout
        assert "Search ID: 7" in result.stdout
        options = mock_orchestrator.return_value.scrape.await_args.args[0]
        assert options.position == "Engineer"
        assert options.experience_level == ["Associate", "Mid-Senior"]
        assert options.limit == 4

    def test_config_overrides(self, mock_orchestrator):
        """Test that --headed and --require-session reach the orchestrator config."""
        result = runner.invoke(app, ["scrape", "-p", "Engineer", "--headed", "--require-session"])

        assert result.exit_code == 0
        cfg = mock_orchestrator.call_args.args[1]
        assert cfg.headless is False
        assert cfg.require_session is True

    def test_invalid_limit(self, mock_orchestrator):
        result = runner.invoke(app, ["scrape", "--limit", "0"])

        assert result.exit_code == 1
        assert "Invalid options" in result.stdout
        mock_orchestrator.assert_not_called()

    def test_failed_run(self, mock_orchestrator):
        mock_orchestrator.return_value.scrape.return_value = ScrapeResult(
            success=False,
            search_id=8,
            status=SearchStatus.FAILED,
            errors=["LinkedIn showed a login wall on page 1"],
        )

        result = runner.invoke(app, ["scrape", "-p", "Engineer"])

        assert result.exit_code == 1
        assert "failed" in result.stdout
        assert "login wall" in result.stdout

    def test_browser_error(self, mock_orchestrator):
        mock_orchestrator.return_value.scrape.side_effect = BrowserLaunchError("no chromium")

        result = runner.invoke(app, ["scrape", "-p", "Engineer"])

        assert result.exit_code == 1
        assert "no chromium" in result.stdout

    def test_interrupt(self, mock_orchestrator):
        mock_orchestrator.return_value.scrape.side_effect = KeyboardInterrupt()

        result = runner.invoke(app, ["scrape", "-p", "Engineer"])

        assert result.exit_code == 130
        assert "cancelled" in result.stdout

    def test_interactive(self, mock_orchestrator):
        """Test the guided prompts."""
        answers = "Data Engineer\nBerlin\n3\n1,2\nPast Week\n5\n"

        result = runner.invoke(app, ["scrape", "--interactive"], input=answers)

        assert result.exit_code == 0
        options = mock_orchestrator.return_value.scrape.await_args.args[0]
        assert options.position == "Data Engineer"
        assert options.location == "Berlin"
        assert options.experience_level == ["Associate"]
        assert options.employment_type == ["Full-time", "Part-time"]
        assert options.date_posted == "Past Week"
        assert options.limit == 5

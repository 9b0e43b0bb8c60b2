"""Tests for the job and search run CLI commands.

Tests for:
- jobharvest list
- jobharvest delete
- jobharvest export
- jobharvest clear
- jobharvest searches / errors
"""

import csv
import json

from sqlalchemy import text
from typer.testing import CliRunner

from jobharvest.cli.main import app
from jobharvest.db.repositories import JobRepository, SearchRepository

runner = CliRunner()


# =============================================================================
# list
# =============================================================================


class TestListCommand:
    """Tests for the list command."""

    def test_list_empty(self, cli_db):
        result = runner.invoke(app, ["list"])

        assert result.exit_code == 0
        assert "No jobs found" in result.stdout

    def test_list_jobs(self, seeded_db):
        result = runner.invoke(app, ["list"])

        assert result.exit_code == 0
        assert "3 shown of 3" in result.stdout
        for job_id in ("1001", "1002", "1003"):
            assert job_id in result.stdout

    def test_list_by_company(self, seeded_db):
        result = runner.invoke(app, ["list", "--company", "globex"])

        assert result.exit_code == 0
        assert "1002" in result.stdout
        assert "1001" not in result.stdout
        assert "1 shown of 1" in result.stdout

    def test_list_by_query(self, seeded_db):
        """Test the full-text query option."""
        result = runner.invoke(app, ["list", "-q", "Staff"])

        assert result.exit_code == 0
        assert "1002" in result.stdout
        assert "1003" not in result.stdout

    def test_list_query_with_filters(self, seeded_db):
        """Test that the text query narrows the other filters instead of replacing them."""
        result = runner.invoke(app, ["list", "-q", "Software", "--location", "Berlin"])

        assert result.exit_code == 0
        assert "1003" in result.stdout
        assert "1001" not in result.stdout
        assert "1 shown of 1" in result.stdout

    def test_list_bad_date(self, seeded_db):
        result = runner.invoke(app, ["list", "--date-from", "01/05/2024"])
        assert result.exit_code != 0


# =============================================================================
# delete
# =============================================================================


class TestDeleteCommand:
    def test_delete_reports_each_id(self, seeded_db):
        """Test that a missing id is reported and makes the command fail."""
        result = runner.invoke(app, ["delete", "1001", "9999"])

        assert result.exit_code == 1
        assert "1001: deleted" in result.stdout
        assert "9999: not found" in result.stdout
        assert "Deleted 1 of 2 jobs" in result.stdout
        assert not JobRepository(seeded_db).exists("1001")

    def test_delete_all_found(self, seeded_db):
        result = runner.invoke(app, ["delete", "1001", "1002"])

        assert result.exit_code == 0
        assert JobRepository(seeded_db).count() == 1


# =============================================================================
# export
# =============================================================================


class TestExportCommand:
    """Tests for the export command."""

    def test_export_json(self, seeded_db, tmp_path):
        output = tmp_path / "out" / "jobs.json"

        result = runner.invoke(app, ["export", "--output", str(output)])

        assert result.exit_code == 0
        assert "Exported 3 jobs" in result.stdout
        rows = json.loads(output.read_text(encoding="utf-8"))
        assert {row["job_id"] for row in rows} == {"1001", "1002", "1003"}
        assert rows[0]["description"].startswith("<p>")

    def test_export_csv(self, seeded_db, tmp_path):
        output = tmp_path / "jobs.csv"

        result = runner.invoke(app, ["export", "-f", "CSV", "-o", str(output)])

        assert result.exit_code == 0
        with output.open(newline="", encoding="utf-8") as f:
            rows = list(csv.DictReader(f))
        assert len(rows) == 3
        assert "company" in rows[0]

    def test_export_unknown_format(self, seeded_db, tmp_path):
        result = runner.invoke(app, ["export", "-f", "xml", "-o", str(tmp_path / "x.xml")])

        assert result.exit_code == 1
        assert "Unsupported format" in result.stdout


# =============================================================================
# clear
# =============================================================================


class TestClearCommand:
    def test_clear_with_yes(self, seeded_db):
        result = runner.invoke(app, ["clear", "--yes"])

        assert result.exit_code == 0
        assert "Deleted 3 jobs and 1 search runs" in result.stdout
        assert SearchRepository(seeded_db).find_all() == []

    def test_clear_failure_keeps_everything(self, seeded_db):
        """Test that a failed clear leaves jobs and search runs in place."""
        with seeded_db.engine.begin() as conn:
            conn.execute(
                text(
                    "CREATE TRIGGER keep_searches BEFORE DELETE ON searches "
                    "BEGIN SELECT RAISE(ABORT, 'searches are locked'); END"
                )
            )

        result = runner.invoke(app, ["clear", "--yes"])

        assert result.exit_code == 1
        assert "Clear failed" in result.stdout
        assert JobRepository(seeded_db).count() == 3
        assert len(SearchRepository(seeded_db).find_all()) == 1

    def test_clear_aborted(self, seeded_db):
        """Test that answering no keeps the data."""
        result = runner.invoke(app, ["clear"], input="n\n")

        assert result.exit_code == 0
        assert "Aborted" in result.stdout
        assert JobRepository(seeded_db).count() == 3


# =============================================================================
# searches / errors
# =============================================================================


class TestSearchCommands:
    def test_searches(self, seeded_db):
        result = runner.invoke(app, ["searches"])

        assert result.exit_code == 0
        assert "Engineer" in result.stdout
        assert "running" in result.stdout

    def test_searches_empty(self, cli_db):
        result = runner.invoke(app, ["searches"])
        assert "No search runs found" in result.stdout

    def test_errors(self, seeded_db):
        run_id = SearchRepository(seeded_db).find_all()[0].id

        result = runner.invoke(app, ["errors", str(run_id)])

        assert result.exit_code == 0
        assert "ExtractionError" in result.stdout
        assert "1004" in result.stdout

    def test_errors_unknown_search(self, cli_db):
        result = runner.invoke(app, ["errors", "999"])

        assert result.exit_code == 1
        assert "not found" in result.stdout

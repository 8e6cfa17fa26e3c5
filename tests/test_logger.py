"""
Tests for the generation logger.
"""

import csv
import json
from io import StringIO

import pytest
from rich.console import Console

from sn_typings.core.logger import GenerationLogger


class TestGenerationLogger:
    """Tests for GenerationLogger."""

    @pytest.fixture
    def output(self):
        return StringIO()

    @pytest.fixture
    def logger(self, tmp_path, output):
        logger = GenerationLogger(tmp_path / "logs", console=Console(file=output, width=200))
        logger.start_run("dev1234.service-now.com", mode="scoped", output="types.d.ts")
        return logger

    def test_summary_counts(self, logger):
        logger.log_table_loaded("incident", 12)
        logger.log_table_failed("u_missing", "table not found")
        logger.log_table_failed("u_missing", "table not found")
        logger.log_skipped("incident", "element record is missing sys_id", element="u_broken")
        logger.log_request("sys_db_object", "name=incident")

        summary = logger.end_run()

        assert summary.tables_loaded == 1
        assert summary.tables_failed == 2
        assert summary.failed_tables == ["u_missing"]
        assert summary.records_skipped == 1
        assert summary.remote_requests == 1
        assert summary.completed_at is not None
        assert [e.table for e in logger.get_failures()] == ["u_missing", "u_missing", "incident"]

    def test_summary_text(self, logger, output):
        logger.log_table_failed("u_missing", "table not found")
        logger.summary.cancelled = True

        logger.end_run()

        text = output.getvalue()
        assert "GENERATION SUMMARY: dev1234.service-now.com" in text
        assert "CANCELLED" in text
        assert "u_missing" in text

    def test_level_filter(self, tmp_path, output):
        logger = GenerationLogger(tmp_path, console=Console(file=output, width=200), level="warning")

        logger.log_debug("hidden debug")
        logger.log_info("hidden info")
        logger.log_warning("shown warning")

        assert "hidden" not in output.getvalue()
        assert "shown warning" in output.getvalue()

    def test_console_disabled(self, tmp_path, output):
        logger = GenerationLogger(tmp_path, console_output=False, console=Console(file=output))
        logger.start_run("dev1234.service-now.com")

        logger.log_error("not printed")
        logger.end_run()

        assert output.getvalue() == ""

    def test_export(self, logger, tmp_path):
        logger.log_skipped("incident", "missing name", element="", record={"sys_id": "abc"})
        logger.log_table_loaded("incident", 3)

        json_path = logger.export_json()
        csv_path = logger.export_csv()

        data = json.loads(json_path.read_text(encoding="utf-8"))
        assert data["source"] == "dev1234.service-now.com"
        assert [e["action"] for e in data["entries"]] == ["skipped", "loaded"]
        assert data["entries"][0]["record"] == {"sys_id": "abc"}

        with open(csv_path, newline="", encoding="utf-8") as f:
            rows = list(csv.DictReader(f))
        assert [row["action"] for row in rows] == ["skipped", "loaded"]
        assert "record" not in rows[0]
        assert json_path.parent == tmp_path / "logs"

    def test_end_run_without_start(self, tmp_path):
        logger = GenerationLogger(tmp_path, console_output=False)

        with pytest.raises(RuntimeError):
            logger.end_run()

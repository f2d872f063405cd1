"""Tests for Celery tasks."""

from datetime import date
from decimal import Decimal
from unittest.mock import patch

import pytest
from celery import Task
from celery.exceptions import Retry

from bankrec.api.processing_api import StatementProcessingAPI
from bankrec.reconciliation.states import EntryKind, ReconciliationStatus
from bankrec.tasks.celery_app import (
    auto_match_task,
    celery_app,
    get_task_status,
    import_statement_task,
)
from bankrec.utils.exceptions import PersistenceFailure


@pytest.fixture
def task_environment(monkeypatch, database_url, temp_dir):
    """Point tasks at the test database."""
    monkeypatch.setenv("DATABASE_URL", database_url)
    monkeypatch.setenv("MAX_RETRIES", "2")
    monkeypatch.setenv("RETRY_DELAY_SECONDS", "5")
    return database_url


@pytest.fixture
def statement_file(temp_dir, statement_pdf):
    path = temp_dir / "statement.pdf"
    path.write_bytes(statement_pdf)
    return str(path)


class TestCeleryApp:
    """Test cases for Celery app configuration."""

    def test_task_registration(self):
        """Test that tasks are registered under their names."""
        assert "import_statement" in celery_app.tasks
        assert "auto_match" in celery_app.tasks

    def test_task_routes(self):
        routes = celery_app.conf.task_routes
        assert routes["import_statement"]["queue"] == "statement_import"
        assert routes["auto_match"]["queue"] == "reconciliation"

    def test_get_task_status(self):
        """Test status lookup through AsyncResult."""
        with patch.object(celery_app, "AsyncResult") as mock_result:
            mock_result.return_value.status = "SUCCESS"
            mock_result.return_value.ready.return_value = True
            mock_result.return_value.result = {"success": True}
            mock_result.return_value.successful.return_value = True
            mock_result.return_value.failed.return_value = False

            status = get_task_status("abc")

        assert status["status"] == "SUCCESS"
        assert status["result"] == {"success": True}
        assert status["ready"] is True


class TestImportStatementTask:
    """Test cases for the import task."""

    def test_import_success(self, task_environment, statement_file, repository):
        """Test a successful import."""
        result = import_statement_task.run(statement_file, "BCA-001", "IDR")

        assert result["success"] is True
        assert result["transaction_count"] == 3
        assert result["period"] == "JANUARI 2026"
        lines = repository.list_lines(upload_id=result["upload_id"])
        assert len(lines) == 3

    def test_parse_failure_not_retried(self, task_environment, temp_dir):
        """Test that a document without transactions is a terminal failure."""
        path = temp_dir / "empty.pdf"
        path.write_bytes(b"%PDF-1.4 nothing here")

        with patch.object(Task, "retry") as mock_retry:
            result = import_statement_task.run(str(path), "BCA-001")

        mock_retry.assert_not_called()
        assert result["success"] is False
        assert result["error_kind"] == "insufficient_text"
        assert "text_length" in result["diagnostics"]

    def test_corrupt_workbook_is_terminal(self, task_environment, temp_dir):
        """Test that an unreadable workbook yields a failure result."""
        path = temp_dir / "statement.xlsx"
        path.write_bytes(b"PK\x03\x04" + b"\x00" * 64)

        with patch.object(Task, "retry") as mock_retry:
            result = import_statement_task.run(str(path), "BCA-001", "IDR")

        mock_retry.assert_not_called()
        assert result["success"] is False
        assert result["error_kind"] == "unsupported_document"
        assert result["diagnostics"]["signature"] == "xlsx"

    def test_persistence_failure_retried(self, task_environment, statement_file):
        """Test that persistence failures are retried with backoff."""
        failure = PersistenceFailure("database is locked", {"transient": True})
        with patch.object(StatementProcessingAPI, "import_file", side_effect=failure):
            with patch.object(Task, "retry", side_effect=Retry("retrying")) as mock_retry:
                with pytest.raises(Retry):
                    import_statement_task.run(statement_file, "BCA-001")

        _, kwargs = mock_retry.call_args
        assert kwargs["countdown"] == 5
        assert kwargs["exc"] is failure

    def test_persistence_failure_after_retries(self, task_environment, statement_file, monkeypatch):
        """Test the failure result once retries are exhausted."""
        monkeypatch.setenv("MAX_RETRIES", "0")
        failure = PersistenceFailure("database is locked", {"transient": True})
        with patch.object(StatementProcessingAPI, "import_file", side_effect=failure):
            result = import_statement_task.run(statement_file, "BCA-001")

        assert result["success"] is False
        assert result["error_kind"] == "persistence_failure"
        assert result["retries"] == 0


class TestAutoMatchTask:
    """Test cases for the matching task."""

    def test_auto_match(self, task_environment, repository, imported_lines):
        """Test matching through the task."""
        repository.add_ledger_entry(
            EntryKind.RECEIPT, date(2026, 1, 5), Decimal("2000000"), "BCA-001", "SETORAN TUNAI"
        )

        result = auto_match_task.run("BCA-001")

        assert result["success"] is True
        assert result["suggested"] == 1
        assert result["stats"]["suggested"] == 1
        assert repository.get_line(imported_lines[1].id).reconciliation_status == (
            ReconciliationStatus.SUGGESTED
        )

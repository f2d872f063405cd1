"""Tests for utility modules."""

import logging

import pytest

from bankrec.utils.exceptions import (
    ConcurrentModification,
    NoTransactionsFound,
    PersistenceFailure,
    ReconciliationError,
    StatementError,
    UnsupportedDocument,
    ValidationError,
)
from bankrec.utils.logger import ImportLogger, get_logger, setup_logger
from bankrec.utils.validators import (
    media_type_from_path,
    normalize_media_type,
    validate_bank_account_id,
    validate_currency,
    validate_directory_path,
    validate_document_size,
    validate_file_path,
)


class TestLogger:
    """Test cases for logging functionality."""

    def test_setup_logger_writes_file(self, temp_dir):
        """Test logger setup with file output."""
        logger = setup_logger("bankrec.test_file", log_file="test.log", level="DEBUG", logs_dir=str(temp_dir))
        logger.debug("Test log message")
        for handler in logger.handlers:
            handler.flush()

        assert logger.level == logging.DEBUG
        assert "Test log message" in (temp_dir / "test.log").read_text()

    def test_setup_logger_replaces_handlers(self, temp_dir):
        """Test that repeated setup does not duplicate handlers."""
        setup_logger("bankrec.test_dupes", logs_dir=str(temp_dir))
        logger = setup_logger("bankrec.test_dupes", logs_dir=str(temp_dir))

        assert len(logger.handlers) == 2
        assert (temp_dir / "bankrec.test_dupes.log").exists()

    def test_invalid_level_defaults_to_info(self, temp_dir):
        logger = setup_logger("bankrec.test_level", level="chatty", logs_dir=str(temp_dir))
        assert logger.level == logging.INFO

    def test_get_logger(self):
        """Test logger retrieval."""
        logger = get_logger("test_logger")
        assert logger.name == "test_logger"
        assert get_logger("test_logger") is logger

    def test_import_logger(self, temp_dir):
        """Test the per-import audit trail."""
        import_logger = ImportLogger("task-123", logs_dir=str(temp_dir))
        import_logger.log_start("statement.pdf", "BCA-001")
        import_logger.log_imported(7, 42, "JANUARI 2026")
        import_logger.log_failure(
            PersistenceFailure("Failed to import statement", {"transient": True}), retry_in=30
        )
        import_logger.log_failure(NoTransactionsFound("No transactions found", {"blocks_retained": 0}))
        import_logger.close()

        assert import_logger.logger.handlers == []
        content = (temp_dir / "import.task-123.log").read_text()
        assert "reading statement.pdf for account BCA-001" in content
        assert "upload 7 holds 42 unmatched lines for JANUARI 2026" in content
        assert "WARNING" in content and "persistence_failure (retrying in 30s)" in content
        assert "no_transactions (giving up)" in content
        assert "'blocks_retained': 0" in content
        assert "Traceback" not in content


class TestValidators:
    """Test cases for validators."""

    def test_validate_file_path(self, temp_dir):
        existing = temp_dir / "statement.pdf"
        existing.write_bytes(b"%PDF")

        validate_file_path(str(existing))
        with pytest.raises(ValidationError):
            validate_file_path("")
        with pytest.raises(ValidationError):
            validate_file_path(str(temp_dir / "missing.pdf"))
        with pytest.raises(ValidationError):
            validate_file_path(str(temp_dir))

    def test_validate_document_size(self):
        validate_document_size(b"x" * 1024, max_size_mb=1)
        with pytest.raises(ValidationError):
            validate_document_size(b"", max_size_mb=1)
        with pytest.raises(ValidationError):
            validate_document_size(b"x" * (2 * 1024 * 1024), max_size_mb=1)
        with pytest.raises(ValidationError):
            validate_document_size("not bytes", max_size_mb=1)

    def test_normalize_media_type(self):
        assert normalize_media_type("application/pdf") == "pdf"
        assert normalize_media_type(" PDF ") == "pdf"
        assert normalize_media_type("text/csv") == "spreadsheet"
        assert normalize_media_type(
            "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
        ) == "spreadsheet"
        with pytest.raises(UnsupportedDocument):
            normalize_media_type("image/png")
        with pytest.raises(UnsupportedDocument):
            normalize_media_type(None)

    def test_media_type_from_path(self):
        assert media_type_from_path("/tmp/Statement.PDF") == "pdf"
        assert media_type_from_path("export.csv") == "spreadsheet"
        with pytest.raises(UnsupportedDocument) as exc_info:
            media_type_from_path("scan.jpg")
        assert exc_info.value.diagnostics["extension"] == ".jpg"

    def test_validate_currency(self):
        assert validate_currency(" idr ") == "IDR"
        for bad in ["", "RP", "RUPIAH", "1DR"]:
            with pytest.raises(ValidationError):
                validate_currency(bad)

    def test_validate_directory_path_creates(self, temp_dir):
        target = temp_dir / "nested" / "reports"
        validate_directory_path(str(target))
        assert target.is_dir()

    def test_validate_bank_account_id(self):
        validate_bank_account_id("BCA-001")
        with pytest.raises(ValidationError):
            validate_bank_account_id("")
        with pytest.raises(ValidationError):
            validate_bank_account_id(None)


class TestExceptions:
    """Test cases for the exception hierarchy."""

    def test_to_dict(self):
        error = NoTransactionsFound("nothing found", {"blocks_retained": 0})

        assert error.to_dict() == {
            "kind": "no_transactions",
            "message": "nothing found",
            "diagnostics": {"blocks_retained": 0},
        }
        assert str(error) == "nothing found"

    def test_hierarchy(self):
        error = ConcurrentModification("changed")

        assert isinstance(error, ReconciliationError)
        assert isinstance(error, StatementError)
        assert error.diagnostics == {}
        assert error.kind == "concurrent_modification"

"""Tests for the statement processing API."""

import asyncio

import pytest

from bankrec.api.processing_api import (
    ProcessingRequest,
    ProcessingStatus,
    StatementProcessingAPI,
)
from bankrec.utils.exceptions import UnsupportedDocument


@pytest.fixture
def api(sample_settings, repository):
    return StatementProcessingAPI(sample_settings, repository)


@pytest.fixture
def statement_file(temp_dir, statement_pdf):
    path = temp_dir / "statement.pdf"
    path.write_bytes(statement_pdf)
    return str(path)


class TestStatementProcessingAPI:
    """Test cases for StatementProcessingAPI."""

    def test_parse_file(self, api, statement_file):
        """Test parsing without persistence."""
        summary = api.parse_file(statement_file)

        assert summary.transaction_count == 3
        assert summary.currency == "IDR"
        assert api.repository.list_lines() == []

    def test_parse_file_unknown_extension(self, api, temp_dir):
        path = temp_dir / "scan.png"
        path.write_bytes(b"\x89PNG")

        with pytest.raises(UnsupportedDocument):
            api.parse_file(str(path))

    def test_import_file(self, api, statement_file):
        """Test that an import persists the header and lines."""
        imported = api.import_file(statement_file, "BCA-001", uploaded_by="tester")

        upload = api.repository.get_upload(imported["upload_id"])
        assert upload["source_filename"] == "statement.pdf"
        assert upload["transaction_count"] == 3
        assert len(api.repository.list_lines(upload_id=imported["upload_id"])) == 3

    def test_process_request_success(self, api, statement_file):
        """Test a completed request."""
        request = ProcessingRequest(file_path=statement_file, bank_account_id="BCA-001")
        result = api.process_request(request)

        assert result.status == ProcessingStatus.COMPLETED
        assert result.transaction_count == 3
        assert result.period == "JANUARI 2026"
        assert result.opening_balance == "10000000.00"
        assert result.processing_time is not None
        assert api.get_processing_status(request.id) is result
        assert result.to_dict()["status"] == "completed"

    def test_process_request_failure(self, api, temp_dir, pdf_builder):
        """Test that failures are reported in the result."""
        path = temp_dir / "invoice.pdf"
        path.write_bytes(pdf_builder(["INVOICE", "Thank you for your purchase of fine goods"]))

        result = api.process_request(ProcessingRequest(file_path=str(path), bank_account_id="BCA-001"))

        assert result.status == ProcessingStatus.FAILED
        assert result.error_kind == "no_transactions"
        assert result.error_message
        assert result.upload_id is None
        assert api.repository.list_lines() == []

    def test_missing_file(self, api, temp_dir):
        result = api.process_request(
            ProcessingRequest(file_path=str(temp_dir / "missing.pdf"), bank_account_id="BCA-001")
        )
        assert result.error_kind == "validation_error"

    def test_submit_request(self, api, statement_file):
        """Test asynchronous submission."""
        request = ProcessingRequest(file_path=statement_file, bank_account_id="BCA-001")
        result = asyncio.run(api.submit_request(request))

        assert result.status == ProcessingStatus.COMPLETED
        assert api.get_processing_status(request.id).status == ProcessingStatus.COMPLETED

    def test_statistics_and_listing(self, api, statement_file, temp_dir):
        """Test request bookkeeping."""
        api.process_request(ProcessingRequest(file_path=statement_file, bank_account_id="BCA-001"))
        api.process_request(
            ProcessingRequest(file_path=str(temp_dir / "missing.pdf"), bank_account_id="BCA-001")
        )

        stats = api.get_processing_statistics()
        assert stats["total_requests"] == 2
        assert stats["status_distribution"]["completed"] == 1
        assert stats["status_distribution"]["failed"] == 1
        assert stats["error_kinds"] == {"validation_error": 1}
        assert stats["transactions_imported"] == 3
        assert stats["success_rate"] == 50.0

        assert len(api.list_processing_requests()) == 2
        assert len(api.list_processing_requests(status=ProcessingStatus.FAILED)) == 1

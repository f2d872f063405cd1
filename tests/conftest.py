"""Pytest configuration and fixtures for the statement import and reconciliation system."""

import os
import shutil
import tempfile
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import List

_LOG_ROOT = tempfile.mkdtemp(prefix="bankrec_test_logs_")
os.environ.setdefault("LOGS_DIR", _LOG_ROOT)
os.environ.setdefault("REPORTS_DIR", os.path.join(_LOG_ROOT, "reports"))

import pytest

from bankrec.config.settings import Settings
from bankrec.reconciliation.engine import ReconciliationEngine
from bankrec.statement_processor.records import TransactionRecord
from bankrec.statement_processor.summarizer import StatementSummary
from bankrec.storage.client import dispose_engines, init_db
from bankrec.storage.repository import StatementRepository

STATEMENT_LINES = [
    "REKENING TAHAPAN",
    "PERIODE : JANUARI 2026",
    "SALDO AWAL : 10.000.000,00",
    "SALDO AKHIR : 10.300.000,00",
    "TANGGAL KETERANGAN CABANG MUTASI SALDO",
    "02/01 TRANSFER KE PT SUPPLIER ABC 1.500.000,00 8.500.000,00",
    "05/01 SETORAN TUNAI CR 2.000.000,00 CR 10.500.000,00",
    "10/01 BIAYA ADMINISTRASI 200.000,00 10.300.000,00",
]


def _escape_literal(text: str) -> str:
    return text.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")


def build_pdf(lines: List[str], producer: str = "Statement Printer") -> bytes:
    """Build a small uncompressed PDF whose page text is the given lines."""
    body = "\n".join(f"({_escape_literal(line)}) Tj T*" for line in lines)
    stream = f"BT /F1 10 Tf 40 800 Td\n{body}\nET"
    pdf = (
        "%PDF-1.4\n"
        "1 0 obj\n<< /Type /Catalog /Pages 2 0 R >>\nendobj\n"
        f"3 0 obj\n<< /Producer ({producer}) >>\nendobj\n"
        f"4 0 obj\n<< /Length {len(stream)} >>\nstream\n{stream}\nendstream\nendobj\n"
        "trailer\n<< /Root 1 0 R /Info 3 0 R >>\n%%EOF\n"
    )
    return pdf.encode("latin-1")


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    temp_path = tempfile.mkdtemp()
    yield Path(temp_path)
    shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def statement_text():
    """Whitespace-collapsed text of a one-month statement."""
    return " ".join(STATEMENT_LINES)


@pytest.fixture
def pdf_builder():
    """Factory for small uncompressed PDFs."""
    return build_pdf


@pytest.fixture
def statement_pdf():
    """PDF bytes for the sample statement."""
    return build_pdf(STATEMENT_LINES)


@pytest.fixture
def database_url(temp_dir):
    """File-backed SQLite database with the schema created."""
    url = f"sqlite+pysqlite:///{temp_dir / 'bankrec.db'}"
    init_db(url)
    yield url
    dispose_engines()


@pytest.fixture
def sample_settings(temp_dir, database_url):
    """Create sample settings for testing."""
    return Settings(
        database_url=database_url,
        logs_dir=str(temp_dir / "logs"),
        reports_dir=str(temp_dir / "reports"),
        max_retries=2,
        retry_delay_seconds=1,
        default_currency="IDR",
    )


@pytest.fixture
def repository(database_url):
    return StatementRepository(database_url)


@pytest.fixture
def engine(repository, sample_settings):
    return ReconciliationEngine(repository, settings=sample_settings)


@pytest.fixture
def sample_summary():
    """Parsed statement with one debit and one credit."""
    transactions = (
        TransactionRecord(
            date=date(2026, 1, 2),
            description="TRANSFER KE PT SUPPLIER ABC 1.500.000,00 8.500.000,00",
            reference="",
            debit_amount=Decimal("1500000.00"),
            credit_amount=Decimal("0"),
            balance=Decimal("8500000.00"),
        ),
        TransactionRecord(
            date=date(2026, 1, 5),
            description="SETORAN TUNAI CR 2.000.000,00 CR 10.500.000,00",
            reference="",
            debit_amount=Decimal("0"),
            credit_amount=Decimal("2000000.00"),
            balance=Decimal("10500000.00"),
        ),
    )
    return StatementSummary(
        period="JANUARI 2026",
        start_date=date(2026, 1, 1),
        end_date=date(2026, 1, 31),
        opening_balance=Decimal("10000000.00"),
        closing_balance=Decimal("10500000.00"),
        total_debits=Decimal("1500000.00"),
        total_credits=Decimal("2000000.00"),
        transactions=transactions,
        currency="IDR",
    )


@pytest.fixture
def imported_lines(repository, sample_summary):
    """Import the sample summary and return its persisted lines."""
    upload_id = repository.import_statement(sample_summary, "BCA-001", "statement.pdf", "tester")
    return repository.list_lines(upload_id=upload_id)

"""Tests for the command line interface."""

import json
from datetime import date
from decimal import Decimal

import pytest

from bankrec.reconciliation.states import EntryKind, ReconciliationStatus
from main import build_parser, main


@pytest.fixture
def config_file(temp_dir, database_url):
    path = temp_dir / "config.json"
    path.write_text(json.dumps({
        "database_url": database_url,
        "logs_dir": str(temp_dir / "logs"),
        "reports_dir": str(temp_dir / "reports"),
        "default_currency": "IDR",
    }))
    return str(path)


@pytest.fixture
def statement_file(temp_dir, statement_pdf):
    path = temp_dir / "statement.pdf"
    path.write_bytes(statement_pdf)
    return str(path)


def run(config_file, *args):
    return main(["--config", config_file, "--user", "cli-user", *args])


class TestParser:
    """Test cases for argument parsing."""

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_reset_flags(self):
        args = build_parser().parse_args(["reset", "5", "--keep-entry"])
        assert args.line_id == 5
        assert args.keep_entry is True


class TestCommands:
    """Test cases for CLI commands."""

    def test_parse_with_excel(self, config_file, statement_file, temp_dir, capsys):
        """Test parsing and workbook output."""
        output_dir = temp_dir / "out"
        assert run(config_file, "parse", statement_file, "--excel", "--output-dir", str(output_dir)) == 0

        output = capsys.readouterr().out
        assert "JANUARI 2026" in output
        assert "Transactions:    3" in output
        assert len(list(output_dir.glob("*.xlsx"))) == 1

    def test_import_and_stats(self, config_file, statement_file, repository, capsys):
        """Test import followed by stats."""
        assert run(config_file, "import", statement_file, "--account", "BCA-001") == 0
        assert "3 transactions" in capsys.readouterr().out
        assert len(repository.list_lines("BCA-001")) == 3

        assert run(config_file, "stats", "--account", "BCA-001") == 0
        output = capsys.readouterr().out
        assert "unmatched: 3" in output
        assert "total: 3" in output

    def test_import_failure(self, config_file, temp_dir, capsys):
        """Test that a parse failure exits non-zero with its kind."""
        path = temp_dir / "blank.pdf"
        path.write_bytes(b"%PDF-1.4 scanned image")

        assert run(config_file, "import", str(path), "--account", "BCA-001") == 1
        assert "Error (insufficient_text)" in capsys.readouterr().out

    def test_match_and_confirm(self, config_file, repository, imported_lines, capsys):
        """Test the suggest and confirm flow."""
        repository.add_ledger_entry(
            EntryKind.EXPENSE, date(2026, 1, 2), Decimal("1500000"), "BCA-001",
            "TRANSFER KE PT SUPPLIER ABC",
        )
        line_id = imported_lines[0].id

        assert run(config_file, "match", "--account", "BCA-001") == 0
        assert "Suggested 1 matches" in capsys.readouterr().out

        assert run(config_file, "confirm", str(line_id)) == 0
        line = repository.get_line(line_id)
        assert line.reconciliation_status == ReconciliationStatus.MATCHED
        assert line.matched_by == "cli-user"

    def test_record_and_reset(self, config_file, repository, imported_lines, capsys):
        """Test recording a line and undoing it."""
        line_id = imported_lines[1].id

        assert run(config_file, "record", str(line_id), "--category", "Sales") == 0
        assert "RV202601-0001" in capsys.readouterr().out

        assert run(config_file, "reset", str(line_id), "--keep-entry") == 0
        assert repository.get_line(line_id).needs_review is True
        assert len(repository.list_ledger_entries()) == 1

    def test_invalid_transition(self, config_file, imported_lines, capsys):
        """Test that a refused transition exits non-zero."""
        assert run(config_file, "reject", str(imported_lines[0].id)) == 1
        assert "Error (invalid_transition)" in capsys.readouterr().out

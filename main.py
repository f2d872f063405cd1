#!/usr/bin/env python3
"""Bank statement import and reconciliation command line.

Usage:
    python main.py parse <statement.pdf> [--currency IDR] [--excel] [--output-dir <dir>]

    python main.py import <statement.pdf> --account <id> [--currency IDR]

    python main.py match --account <id>
    python main.py confirm <line_id>
    python main.py reject <line_id>
    python main.py record <line_id> [--category <name>] [--description <text>]
    python main.py reset <line_id> [--keep-entry]
    python main.py stats [--account <id>]

    python main.py daemon  # Run Celery worker
"""

import argparse
import json
import sys
from typing import List, Optional

from bankrec.api.processing_api import ProcessingRequest, ProcessingStatus, StatementProcessingAPI
from bankrec.config.settings import REPORTS_DIR, Settings, load_settings
from bankrec.excel_generator.converter import StatementExcelConverter
from bankrec.reconciliation.engine import ReconciliationEngine
from bankrec.storage.repository import StatementRepository
from bankrec.utils.exceptions import StatementError
from bankrec.utils.logger import get_logger, setup_logger


class StatementCLI:
    """Runs CLI commands against one database."""

    def __init__(self, settings: Settings) -> None:
        """Initialize the CLI.

        Args:
            settings: Settings used by every command.
        """
        self.settings = settings
        self.logger = get_logger(__name__)
        self.repository = StatementRepository(settings.database_url)
        self.api = StatementProcessingAPI(settings, self.repository)
        self.engine = ReconciliationEngine(self.repository, settings=settings)

    def parse(self, args: argparse.Namespace) -> int:
        summary = self.api.parse_file(args.file, args.currency, args.media_type)
        print(f"Period:          {summary.period or 'N/A'} ({summary.start_date} to {summary.end_date})")
        print(f"Transactions:    {summary.transaction_count}")
        print(f"Opening balance: {summary.opening_balance}")
        print(f"Total debits:    {summary.total_debits}")
        print(f"Total credits:   {summary.total_credits}")
        print(f"Closing balance: {summary.closing_balance}")

        if args.excel:
            path = StatementExcelConverter().create_statement_workbook(
                summary, output_path=args.output_dir
            )
            print(f"Workbook created: {path}")
        return 0

    def import_(self, args: argparse.Namespace) -> int:
        result = self.api.process_request(
            ProcessingRequest(
                file_path=args.file,
                bank_account_id=args.account,
                currency=args.currency,
                media_type=args.media_type,
                uploaded_by=args.user,
            )
        )
        if result.status != ProcessingStatus.COMPLETED:
            print(f"Error ({result.error_kind}): {result.error_message}")
            if result.diagnostics:
                print(json.dumps(result.diagnostics, indent=2, default=str))
            return 1

        print(f"Imported upload {result.upload_id}: {result.transaction_count} transactions")
        return 0

    def match(self, args: argparse.Namespace) -> int:
        applied = self.engine.auto_match(args.account)
        for line_id, candidate in sorted(applied.items()):
            print(
                f"Line {line_id} -> entry {candidate.ledger_entry_id} "
                f"(confidence {candidate.confidence:.1f})"
            )
        print(f"Suggested {len(applied)} matches")
        return 0

    def confirm(self, args: argparse.Namespace) -> int:
        line = self.engine.confirm(args.line_id, confirmed_by=args.user)
        print(f"Line {line.id} is now {line.reconciliation_status.value}")
        return 0

    def reject(self, args: argparse.Namespace) -> int:
        line = self.engine.reject(args.line_id)
        print(f"Line {line.id} is now {line.reconciliation_status.value}")
        return 0

    def record(self, args: argparse.Namespace) -> int:
        entry = self.engine.record(
            args.line_id,
            category=args.category,
            description=args.description,
            recorded_by=args.user,
        )
        print(f"Recorded {entry.kind.value} {entry.entry_number} for {entry.amount}")
        return 0

    def reset(self, args: argparse.Namespace) -> int:
        line = self.engine.reset(args.line_id, remove_entry=not args.keep_entry)
        print(f"Line {line.id} is now {line.reconciliation_status.value}")
        return 0

    def stats(self, args: argparse.Namespace) -> int:
        for key, value in self.engine.reconciliation_stats(args.account).items():
            print(f"{key:>12}: {value}")
        return 0

    def daemon(self, args: argparse.Namespace) -> int:
        self.logger.info("Starting statement import worker")

        # Import here so the other commands do not need a broker
        from bankrec.tasks.celery_app import celery_app

        celery_app.worker_main(["worker", f"--loglevel={self.settings.get_log_level().lower()}"])
        return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser.

    Returns:
        Configured parser with one subcommand per operation.
    """
    parser = argparse.ArgumentParser(
        description="Import bank statements and reconcile them against the ledger",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Parse a statement and write a review workbook
    python main.py parse statement.pdf --excel

    # Import a statement for an account
    python main.py import statement.pdf --account BCA-001

    # Suggest matches, then confirm one
    python main.py match --account BCA-001
    python main.py confirm 42
        """
    )
    parser.add_argument('--config', type=str, help='JSON file with setting overrides')
    parser.add_argument('--user', type=str, default=None, help='User performing the action')

    subparsers = parser.add_subparsers(dest='command', required=True)

    parse_cmd = subparsers.add_parser('parse', help='Parse a statement without saving it')
    parse_cmd.add_argument('file', type=str, help='Statement document (PDF, XLSX or CSV)')
    parse_cmd.add_argument('--currency', type=str, default=None, help='Account currency')
    parse_cmd.add_argument('--media-type', type=str, default=None, help='Override the media type')
    parse_cmd.add_argument('--excel', action='store_true', help='Write a review workbook')
    parse_cmd.add_argument(
        '--output-dir',
        type=str,
        default=None,
        help=f'Output directory for workbooks (default: {REPORTS_DIR})'
    )

    import_cmd = subparsers.add_parser('import', help='Parse a statement and save its lines')
    import_cmd.add_argument('file', type=str, help='Statement document (PDF, XLSX or CSV)')
    import_cmd.add_argument('--account', type=str, required=True, help='Bank account id')
    import_cmd.add_argument('--currency', type=str, default=None, help='Account currency')
    import_cmd.add_argument('--media-type', type=str, default=None, help='Override the media type')

    match_cmd = subparsers.add_parser('match', help='Suggest ledger matches for unmatched lines')
    match_cmd.add_argument('--account', type=str, required=True, help='Bank account id')

    for name, help_text in [
        ('confirm', 'Accept a suggested match'),
        ('reject', 'Discard a suggested match'),
    ]:
        cmd = subparsers.add_parser(name, help=help_text)
        cmd.add_argument('line_id', type=int, help='Statement line id')

    record_cmd = subparsers.add_parser('record', help='Record an unmatched line as a new entry')
    record_cmd.add_argument('line_id', type=int, help='Statement line id')
    record_cmd.add_argument('--category', type=str, default=None, help='Expense or receipt category')
    record_cmd.add_argument('--description', type=str, default=None, help='Entry description')

    reset_cmd = subparsers.add_parser('reset', help='Return a line to unmatched')
    reset_cmd.add_argument('line_id', type=int, help='Statement line id')
    reset_cmd.add_argument(
        '--keep-entry',
        action='store_true',
        help='Keep the entry created by record and flag it for review'
    )

    stats_cmd = subparsers.add_parser('stats', help='Show reconciliation counts')
    stats_cmd.add_argument('--account', type=str, default=None, help='Bank account id')

    subparsers.add_parser('daemon', help='Run the background import worker')

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point.

    Returns:
        Exit code (0 for success, 1 for error).
    """
    try:
        args = build_parser().parse_args(argv)
        settings = load_settings(args.config)
        setup_logger("bankrec", level=settings.get_log_level(), logs_dir=settings.logs_dir)

        cli = StatementCLI(settings)
        if args.command not in ('parse', 'daemon'):
            cli.repository.create_schema()
        handler = getattr(cli, 'import_' if args.command == 'import' else args.command)
        return handler(args)

    except StatementError as e:
        print(f"Error ({e.kind}): {e.message}")
        return 1
    except KeyboardInterrupt:
        print("\nOperation cancelled by user")
        return 130


if __name__ == "__main__":
    sys.exit(main())

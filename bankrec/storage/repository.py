"""Persistence for imported statements, reconciliation state and ledger entries."""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Set

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from bankrec.config.settings import DATABASE_URL
from bankrec.reconciliation.states import (
    ENTRY_NUMBER_PREFIXES,
    EntryKind,
    LedgerEntry,
    ReconciliationStatus,
    StatementLine,
)
from bankrec.statement_processor.summarizer import StatementSummary
from bankrec.storage.client import init_db, session_scope
from bankrec.storage.models import (
    LedgerEntryRow,
    SequenceCounter,
    StatementLineRow,
    StatementUpload,
)
from bankrec.utils.exceptions import (
    ConcurrentModification,
    LineNotFound,
    PersistenceFailure,
)
from bankrec.utils.logger import get_logger
from bankrec.utils.validators import validate_bank_account_id


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_line(row: StatementLineRow) -> StatementLine:
    return StatementLine(
        id=row.id,
        upload_id=row.upload_id,
        bank_account_id=row.bank_account_id,
        transaction_date=row.transaction_date,
        description=row.description,
        reference=row.reference,
        debit_amount=Decimal(row.debit_amount),
        credit_amount=Decimal(row.credit_amount),
        running_balance=None if row.running_balance is None else Decimal(row.running_balance),
        currency=row.currency,
        reconciliation_status=ReconciliationStatus(row.reconciliation_status),
        matched_entry_id=row.matched_entry_id,
        version=row.version,
        matched_at=row.matched_at,
        matched_by=row.matched_by,
        notes=row.notes,
        needs_review=row.needs_review,
    )


def _to_entry(row: LedgerEntryRow) -> LedgerEntry:
    return LedgerEntry(
        id=row.id,
        entry_number=row.entry_number,
        kind=EntryKind(row.kind),
        entry_date=row.entry_date,
        amount=Decimal(row.amount),
        description=row.description,
        bank_account_id=row.bank_account_id,
        category=row.category,
        source_line_id=row.source_line_id,
        needs_review=row.needs_review,
    )


def _persistence_failure(action: str, error: SQLAlchemyError) -> PersistenceFailure:
    """Wrap a database error; the statement and its parameters only reach the log."""
    get_logger(__name__).error(f"Failed to {action}: {str(error)}")
    return PersistenceFailure(
        f"Failed to {action}",
        {
            "error_type": type(error).__name__,
            "transient": isinstance(error, OperationalError),
        },
    )


def next_sequence(session: Session, name: str) -> int:
    """Atomically increment and return the named counter.

    The increment is a single ``UPDATE ... SET value = value + 1`` inside the
    caller's transaction, so concurrent callers never observe the same value.

    Args:
        session: Session whose transaction owns the increment.
        name: Counter name.

    Returns:
        The new counter value, starting at 1.
    """
    result = session.execute(
        update(SequenceCounter)
        .where(SequenceCounter.name == name)
        .values(value=SequenceCounter.value + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount:
        return session.execute(
            select(SequenceCounter.value).where(SequenceCounter.name == name)
        ).scalar_one()

    try:
        with session.begin_nested():
            session.add(SequenceCounter(name=name, value=1))
        return 1
    except IntegrityError:
        # Another transaction created the counter first
        return next_sequence(session, name)


def format_entry_number(kind: EntryKind, entry_date: date, sequence: int) -> str:
    """Build a document number such as ``RV202601-0001``."""
    return f"{ENTRY_NUMBER_PREFIXES[kind]}{entry_date:%Y%m}-{sequence:04d}"


def allocate_entry_number(session: Session, kind: EntryKind, entry_date: date) -> str:
    counter = f"{ENTRY_NUMBER_PREFIXES[kind]}{entry_date:%Y%m}"
    return format_entry_number(kind, entry_date, next_sequence(session, counter))


class StatementRepository:
    """Reads and writes statement lines and ledger entries for one database."""

    def __init__(self, database_url: Optional[str] = None) -> None:
        """Initialize repository.

        Args:
            database_url: SQLAlchemy URL; defaults to ``DATABASE_URL``.
        """
        self.database_url = database_url or DATABASE_URL
        self.logger = get_logger(__name__)

    def create_schema(self) -> None:
        init_db(self.database_url)

    def import_statement(
        self,
        summary: StatementSummary,
        bank_account_id: str,
        source_filename: Optional[str] = None,
        uploaded_by: Optional[str] = None
    ) -> int:
        """Persist the upload header and every line in one transaction.

        Args:
            summary: Parsed statement.
            bank_account_id: Account the statement belongs to.
            source_filename: Name of the original document.
            uploaded_by: User who imported the statement.

        Returns:
            Identifier of the new upload.

        Raises:
            ValidationError: If the account id is empty.
            PersistenceFailure: If anything could not be written; nothing is
                persisted in that case.
        """
        validate_bank_account_id(bank_account_id)

        try:
            with session_scope(self.database_url) as session:
                upload = StatementUpload(
                    bank_account_id=bank_account_id,
                    source_filename=source_filename,
                    uploaded_by=uploaded_by,
                    period=summary.period,
                    start_date=summary.start_date,
                    end_date=summary.end_date,
                    currency=summary.currency,
                    opening_balance=summary.opening_balance,
                    closing_balance=summary.closing_balance,
                    total_debits=summary.total_debits,
                    total_credits=summary.total_credits,
                    transaction_count=summary.transaction_count,
                    status="completed",
                )
                session.add(upload)
                session.flush()

                session.add_all(
                    StatementLineRow(
                        upload_id=upload.id,
                        bank_account_id=bank_account_id,
                        transaction_date=record.date,
                        description=record.description,
                        reference=record.reference,
                        debit_amount=record.debit_amount,
                        credit_amount=record.credit_amount,
                        running_balance=record.balance,
                        currency=summary.currency,
                        reconciliation_status=ReconciliationStatus.UNMATCHED.value,
                    )
                    for record in summary.transactions
                )
                session.flush()

                written = session.execute(
                    select(func.count(StatementLineRow.id)).where(
                        StatementLineRow.upload_id == upload.id
                    )
                ).scalar_one()
                if written != summary.transaction_count:
                    raise PersistenceFailure(
                        f"Wrote {written} lines but the statement has "
                        f"{summary.transaction_count} transactions",
                        {"written": written, "expected": summary.transaction_count},
                    )
                upload_id = upload.id

        except SQLAlchemyError as e:
            self.logger.warning(f"Statement import rolled back for account {bank_account_id}")
            raise _persistence_failure("import statement", e)

        self.logger.info(
            f"Imported upload {upload_id} with {summary.transaction_count} lines "
            f"for account {bank_account_id}"
        )
        return upload_id

    def get_line(self, line_id: int) -> StatementLine:
        """Fetch one statement line.

        Raises:
            LineNotFound: If no line has this id.
        """
        with session_scope(self.database_url) as session:
            row = session.get(StatementLineRow, line_id)
            if row is None:
                raise LineNotFound(f"Statement line {line_id} not found", {"line_id": line_id})
            return _to_line(row)

    def list_lines(
        self,
        bank_account_id: Optional[str] = None,
        status: Optional[ReconciliationStatus] = None,
        upload_id: Optional[int] = None
    ) -> List[StatementLine]:
        query = select(StatementLineRow).order_by(StatementLineRow.id)
        if bank_account_id is not None:
            query = query.where(StatementLineRow.bank_account_id == bank_account_id)
        if status is not None:
            query = query.where(
                StatementLineRow.reconciliation_status == ReconciliationStatus(status).value
            )
        if upload_id is not None:
            query = query.where(StatementLineRow.upload_id == upload_id)

        with session_scope(self.database_url) as session:
            return [_to_line(row) for row in session.scalars(query)]

    def get_upload(self, upload_id: int) -> Optional[Dict[str, Any]]:
        with session_scope(self.database_url) as session:
            upload = session.get(StatementUpload, upload_id)
            if upload is None:
                return None
            return {
                "id": upload.id,
                "bank_account_id": upload.bank_account_id,
                "period": upload.period,
                "start_date": upload.start_date,
                "end_date": upload.end_date,
                "currency": upload.currency,
                "transaction_count": upload.transaction_count,
                "status": upload.status,
                "source_filename": upload.source_filename,
            }

    def add_ledger_entry(
        self,
        kind: EntryKind,
        entry_date: date,
        amount: Decimal,
        bank_account_id: str,
        description: str = "",
        category: Optional[str] = None
    ) -> LedgerEntry:
        """Create a ledger entry that was recorded outside of reconciliation.

        Raises:
            PersistenceFailure: If the entry could not be written.
        """
        try:
            with session_scope(self.database_url) as session:
                row = self._insert_ledger_entry(
                    session,
                    kind=EntryKind(kind),
                    entry_date=entry_date,
                    amount=amount,
                    bank_account_id=bank_account_id,
                    description=description,
                    category=category,
                )
                return _to_entry(row)
        except SQLAlchemyError as e:
            raise _persistence_failure("add ledger entry", e)

    def list_ledger_entries(
        self,
        bank_account_id: Optional[str] = None,
        kind: Optional[EntryKind] = None
    ) -> List[LedgerEntry]:
        query = select(LedgerEntryRow).order_by(LedgerEntryRow.id)
        if bank_account_id is not None:
            query = query.where(LedgerEntryRow.bank_account_id == bank_account_id)
        if kind is not None:
            query = query.where(LedgerEntryRow.kind == EntryKind(kind).value)

        with session_scope(self.database_url) as session:
            return [_to_entry(row) for row in session.scalars(query)]

    def get_ledger_entry(self, entry_id: int) -> Optional[LedgerEntry]:
        with session_scope(self.database_url) as session:
            row = session.get(LedgerEntryRow, entry_id)
            return None if row is None else _to_entry(row)

    def linked_entry_ids(self, bank_account_id: Optional[str] = None) -> Set[int]:
        """Ids of ledger entries already referenced by some statement line."""
        query = select(StatementLineRow.matched_entry_id).where(
            StatementLineRow.matched_entry_id.is_not(None)
        )
        if bank_account_id is not None:
            query = query.where(StatementLineRow.bank_account_id == bank_account_id)

        with session_scope(self.database_url) as session:
            return set(session.scalars(query))

    def transition(
        self,
        line: StatementLine,
        target: ReconciliationStatus,
        **values: Any
    ) -> StatementLine:
        """Move a line to a new status if it is unchanged since it was read.

        Args:
            line: Snapshot the caller based its decision on.
            target: New reconciliation status.
            **values: Other columns to set in the same write.

        Returns:
            The updated line.

        Raises:
            ConcurrentModification: If the status or version changed meanwhile.
            PersistenceFailure: If the write failed.
        """
        try:
            with session_scope(self.database_url) as session:
                self._swap_status(session, line, target, **values)
                return _to_line(session.get(StatementLineRow, line.id))
        except SQLAlchemyError as e:
            raise _persistence_failure(f"update statement line {line.id}", e)

    def record_entry(
        self,
        line: StatementLine,
        kind: EntryKind,
        category: Optional[str],
        description: str,
        matched_by: Optional[str] = None
    ) -> LedgerEntry:
        """Create a ledger entry for a line and mark the line recorded, atomically.

        Either both the entry and the ``recorded`` status are committed, or
        neither is.

        Returns:
            The created ledger entry.

        Raises:
            ConcurrentModification: If the line changed since it was read.
            PersistenceFailure: If the transaction could not be committed.
        """
        try:
            with session_scope(self.database_url) as session:
                row = self._insert_ledger_entry(
                    session,
                    kind=kind,
                    entry_date=line.transaction_date,
                    amount=line.amount,
                    bank_account_id=line.bank_account_id,
                    description=description,
                    category=category,
                    source_line_id=line.id,
                )
                self._swap_status(
                    session,
                    line,
                    ReconciliationStatus.RECORDED,
                    matched_entry_id=row.id,
                    matched_at=_utcnow(),
                    matched_by=matched_by,
                )
                entry = _to_entry(row)
        except SQLAlchemyError as e:
            raise _persistence_failure(f"record statement line {line.id}", e)

        self.logger.info(f"Recorded line {line.id} as {entry.kind.value} {entry.entry_number}")
        return entry

    def reset_line(self, line: StatementLine, remove_entry: bool = True) -> StatementLine:
        """Return a line to ``unmatched`` and deal with the entry it created.

        Args:
            line: Snapshot of the line to reset.
            remove_entry: For recorded lines, delete the entry created from the
                line; when False the entry is kept and flagged for review.

        Returns:
            The reset line.
        """
        try:
            with session_scope(self.database_url) as session:
                created_entry = None
                if line.reconciliation_status == ReconciliationStatus.RECORDED and line.matched_entry_id:
                    created_entry = session.get(LedgerEntryRow, line.matched_entry_id)

                self._swap_status(
                    session,
                    line,
                    ReconciliationStatus.UNMATCHED,
                    matched_entry_id=None,
                    matched_at=None,
                    matched_by=None,
                    needs_review=bool(created_entry is not None and not remove_entry),
                )

                if created_entry is not None:
                    if remove_entry:
                        session.delete(created_entry)
                    else:
                        created_entry.needs_review = True
                session.flush()
                return _to_line(session.get(StatementLineRow, line.id))
        except SQLAlchemyError as e:
            raise _persistence_failure(f"reset statement line {line.id}", e)

    def status_counts(self, bank_account_id: Optional[str] = None) -> Dict[str, int]:
        """Count lines per reconciliation status."""
        query = select(
            StatementLineRow.reconciliation_status, func.count(StatementLineRow.id)
        ).group_by(StatementLineRow.reconciliation_status)
        if bank_account_id is not None:
            query = query.where(StatementLineRow.bank_account_id == bank_account_id)

        counts = {status.value: 0 for status in ReconciliationStatus}
        with session_scope(self.database_url) as session:
            for status, count in session.execute(query):
                counts[status] = count
        return counts

    def _insert_ledger_entry(
        self,
        session: Session,
        kind: EntryKind,
        entry_date: date,
        amount: Decimal,
        bank_account_id: str,
        description: str = "",
        category: Optional[str] = None,
        source_line_id: Optional[int] = None
    ) -> LedgerEntryRow:
        row = LedgerEntryRow(
            entry_number=allocate_entry_number(session, kind, entry_date),
            kind=kind.value,
            entry_date=entry_date,
            amount=amount,
            description=description,
            category=category,
            bank_account_id=bank_account_id,
            source_line_id=source_line_id,
        )
        session.add(row)
        session.flush()
        return row

    def _swap_status(
        self,
        session: Session,
        line: StatementLine,
        target: ReconciliationStatus,
        **values: Any
    ) -> None:
        # Compare-and-swap on the status and version the caller read
        result = session.execute(
            update(StatementLineRow)
            .where(
                StatementLineRow.id == line.id,
                StatementLineRow.reconciliation_status == line.reconciliation_status.value,
                StatementLineRow.version == line.version,
            )
            .values(
                reconciliation_status=ReconciliationStatus(target).value,
                version=StatementLineRow.version + 1,
                **values,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConcurrentModification(
                f"Statement line {line.id} changed since it was read",
                {
                    "line_id": line.id,
                    "expected_status": line.reconciliation_status.value,
                    "expected_version": line.version,
                },
            )

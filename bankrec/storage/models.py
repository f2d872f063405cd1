"""SQLAlchemy models for statement uploads, statement lines and ledger entries."""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

RECONCILIATION_STATUSES = ("unmatched", "suggested", "matched", "recorded")
LEDGER_ENTRY_KINDS = ("expense", "receipt")


def _in_clause(column: str, values) -> str:
    return f"{column} IN ({', '.join(repr(v) for v in values)})"


class Base(DeclarativeBase):
    pass


class StatementUpload(Base):
    """Header row for one imported statement."""

    __tablename__ = "bank_statement_uploads"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    bank_account_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    source_filename: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    uploaded_by: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    period: Mapped[str] = mapped_column(String(32), nullable=False, default="")
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    opening_balance: Mapped[Decimal] = mapped_column(Numeric(20, 6), nullable=False)
    closing_balance: Mapped[Decimal] = mapped_column(Numeric(20, 6), nullable=False)
    total_debits: Mapped[Decimal] = mapped_column(Numeric(20, 6), nullable=False)
    total_credits: Mapped[Decimal] = mapped_column(Numeric(20, 6), nullable=False)
    transaction_count: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="completed")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.current_timestamp()
    )

    lines: Mapped[List["StatementLineRow"]] = relationship(
        back_populates="upload", cascade="all, delete-orphan", order_by="StatementLineRow.id"
    )


class LedgerEntryRow(Base):
    """Expense or receipt voucher in the ledger."""

    __tablename__ = "ledger_entries"
    __table_args__ = (
        CheckConstraint(_in_clause("kind", LEDGER_ENTRY_KINDS), name="ck_ledger_entries_kind"),
        CheckConstraint("amount > 0", name="ck_ledger_entries_amount_positive"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    entry_number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    kind: Mapped[str] = mapped_column(String(16), nullable=False)
    entry_date: Mapped[date] = mapped_column(Date, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(20, 6), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    category: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    bank_account_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    # Set only for entries created from a statement line
    source_line_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    needs_review: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.current_timestamp()
    )


class StatementLineRow(Base):
    """One persisted statement transaction and its reconciliation state."""

    __tablename__ = "bank_statement_lines"
    __table_args__ = (
        CheckConstraint(
            _in_clause("reconciliation_status", RECONCILIATION_STATUSES),
            name="ck_bank_statement_lines_status",
        ),
        CheckConstraint(
            "debit_amount >= 0 AND credit_amount >= 0", name="ck_bank_statement_lines_amounts"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    upload_id: Mapped[int] = mapped_column(
        ForeignKey("bank_statement_uploads.id", ondelete="CASCADE"), nullable=False, index=True
    )
    bank_account_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    reference: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    debit_amount: Mapped[Decimal] = mapped_column(Numeric(20, 6), nullable=False)
    credit_amount: Mapped[Decimal] = mapped_column(Numeric(20, 6), nullable=False)
    running_balance: Mapped[Optional[Decimal]] = mapped_column(Numeric(20, 6), nullable=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    reconciliation_status: Mapped[str] = mapped_column(
        String(16), nullable=False, default="unmatched", index=True
    )
    matched_entry_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("ledger_entries.id", ondelete="SET NULL"), nullable=True
    )
    matched_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    matched_by: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    needs_review: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    upload: Mapped[StatementUpload] = relationship(back_populates="lines")


class SequenceCounter(Base):
    """Monotonic counter per document number prefix and month."""

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(32), primary_key=True)
    value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


__all__ = [
    "Base",
    "LEDGER_ENTRY_KINDS",
    "LedgerEntryRow",
    "RECONCILIATION_STATUSES",
    "SequenceCounter",
    "StatementLineRow",
    "StatementUpload",
]

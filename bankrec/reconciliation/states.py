"""Reconciliation states and the read-only views the engine works with."""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, FrozenSet, Optional

from bankrec.statement_processor.amounts import ZERO


class ReconciliationStatus(str, Enum):
    """Lifecycle of a statement line."""

    UNMATCHED = "unmatched"
    SUGGESTED = "suggested"
    MATCHED = "matched"
    RECORDED = "recorded"


class EntryKind(str, Enum):
    EXPENSE = "expense"
    RECEIPT = "receipt"


ENTRY_NUMBER_PREFIXES = {
    EntryKind.EXPENSE: "EX",
    EntryKind.RECEIPT: "RV",
}

# Transitions reachable through ordinary user actions; reset is administrative
ALLOWED_TRANSITIONS: Dict[ReconciliationStatus, FrozenSet[ReconciliationStatus]] = {
    ReconciliationStatus.UNMATCHED: frozenset(
        {ReconciliationStatus.SUGGESTED, ReconciliationStatus.RECORDED}
    ),
    ReconciliationStatus.SUGGESTED: frozenset(
        {ReconciliationStatus.MATCHED, ReconciliationStatus.UNMATCHED}
    ),
    ReconciliationStatus.MATCHED: frozenset(),
    ReconciliationStatus.RECORDED: frozenset(),
}


def can_transition(current: ReconciliationStatus, target: ReconciliationStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


@dataclass(frozen=True)
class StatementLine:
    """Snapshot of a persisted statement line."""

    id: int
    upload_id: int
    bank_account_id: str
    transaction_date: date
    description: str
    reference: str
    debit_amount: Decimal
    credit_amount: Decimal
    running_balance: Optional[Decimal]
    currency: str
    reconciliation_status: ReconciliationStatus
    matched_entry_id: Optional[int]
    version: int
    matched_at: Optional[datetime] = None
    matched_by: Optional[str] = None
    notes: Optional[str] = None
    needs_review: bool = False

    @property
    def is_credit(self) -> bool:
        return self.credit_amount > ZERO

    @property
    def amount(self) -> Decimal:
        return self.credit_amount if self.is_credit else self.debit_amount

    @property
    def entry_kind(self) -> EntryKind:
        """Ledger entry kind that can balance this line."""
        return EntryKind.RECEIPT if self.is_credit else EntryKind.EXPENSE


@dataclass(frozen=True)
class LedgerEntry:
    """Snapshot of a ledger entry (expense or receipt voucher)."""

    id: int
    entry_number: str
    kind: EntryKind
    entry_date: date
    amount: Decimal
    description: str
    bank_account_id: str
    category: Optional[str] = None
    source_line_id: Optional[int] = None
    needs_review: bool = False


@dataclass(frozen=True)
class MatchCandidate:
    """A scored pairing of a statement line with a ledger entry."""

    statement_line_id: int
    ledger_entry_id: int
    confidence: float
    date_difference: int
    description_similarity: float

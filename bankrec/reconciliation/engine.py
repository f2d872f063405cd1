"""Reconciliation state machine for imported statement lines.

States: ``unmatched`` (initial), ``suggested``, ``matched``, ``recorded``.

- auto_match: unmatched -> suggested
- confirm:    suggested -> matched
- reject:     suggested -> unmatched
- record:     unmatched -> recorded (creates a ledger entry atomically)
- reset:      any -> unmatched (administrative)

Every write is a compare-and-swap on the status and version that were read.
"""

from datetime import datetime, timezone
from typing import Dict, Iterable, Optional

from bankrec.config.settings import Settings
from bankrec.reconciliation.matcher import TransactionMatcher
from bankrec.reconciliation.states import (
    EntryKind,
    LedgerEntry,
    MatchCandidate,
    ReconciliationStatus,
    StatementLine,
    can_transition,
)
from bankrec.storage.repository import StatementRepository
from bankrec.utils.exceptions import (
    ConcurrentModification,
    InvalidTransition,
    PersistenceFailure,
    ValidationError,
)
from bankrec.utils.logger import get_logger


class ReconciliationEngine:
    """Drives statement lines through their reconciliation states."""

    def __init__(
        self,
        repository: StatementRepository,
        matcher: Optional[TransactionMatcher] = None,
        settings: Optional[Settings] = None
    ) -> None:
        """Initialize engine.

        Args:
            repository: Persistence for lines and ledger entries.
            matcher: Matching heuristic; built from settings when omitted.
            settings: Optional settings; environment defaults otherwise.
        """
        self.repository = repository
        self.settings = settings or Settings()
        self.matcher = matcher or TransactionMatcher(
            date_window_days=self.settings.match_date_window_days,
            description_threshold=self.settings.match_description_threshold,
            confidence_threshold=self.settings.match_confidence_threshold,
        )
        self.logger = get_logger(__name__)

    def auto_match(
        self,
        bank_account_id: str,
        entries: Optional[Iterable[LedgerEntry]] = None
    ) -> Dict[int, MatchCandidate]:
        """Propose ledger entries for unmatched lines of an account.

        Lines are only promoted to ``suggested``; a user must confirm them.

        Args:
            bank_account_id: Account whose lines are matched.
            entries: Candidate entries; the account's ledger entries when omitted.

        Returns:
            Mapping of statement line id to the applied candidate.
        """
        lines = self.repository.list_lines(bank_account_id, ReconciliationStatus.UNMATCHED)
        if entries is None:
            entries = self.repository.list_ledger_entries(bank_account_id)

        proposals = self.matcher.propose(
            lines, entries, self.repository.linked_entry_ids(bank_account_id)
        )
        by_id = {line.id: line for line in lines}

        applied = {}
        for line_id, candidate in proposals.items():
            try:
                self.repository.transition(
                    by_id[line_id],
                    ReconciliationStatus.SUGGESTED,
                    matched_entry_id=candidate.ledger_entry_id,
                )
                applied[line_id] = candidate
            except ConcurrentModification as e:
                self.logger.warning(f"Skipping suggestion for line {line_id}: {e.message}")

        self.logger.info(f"Suggested {len(applied)} matches for account {bank_account_id}")
        return applied

    def confirm(self, line_id: int, confirmed_by: Optional[str] = None) -> StatementLine:
        """Accept a suggested match."""
        line = self._load_for(line_id, ReconciliationStatus.MATCHED)
        return self.repository.transition(
            line,
            ReconciliationStatus.MATCHED,
            matched_at=datetime.now(timezone.utc),
            matched_by=confirmed_by,
        )

    def reject(self, line_id: int) -> StatementLine:
        """Discard a suggested match and return the line to ``unmatched``."""
        line = self._load_for(line_id, ReconciliationStatus.UNMATCHED)
        return self.repository.transition(
            line,
            ReconciliationStatus.UNMATCHED,
            matched_entry_id=None,
        )

    def record(
        self,
        line_id: int,
        kind: Optional[EntryKind] = None,
        category: Optional[str] = None,
        description: Optional[str] = None,
        recorded_by: Optional[str] = None
    ) -> LedgerEntry:
        """Create a new ledger entry from an unmatched line.

        Args:
            line_id: Statement line to record.
            kind: Entry kind; derived from the line direction when omitted.
            category: Expense or receipt category.
            description: Entry description; the line description when omitted.
            recorded_by: User performing the action.

        Returns:
            The created ledger entry.

        Raises:
            InvalidTransition: If the line is not unmatched.
            ValidationError: If the kind disagrees with the line direction.
            PersistenceFailure: If the transaction kept failing.
        """
        attempt = 0
        while True:
            attempt += 1
            line = self._load_for(line_id, ReconciliationStatus.RECORDED)
            entry_kind = EntryKind(kind) if kind is not None else line.entry_kind
            if entry_kind != line.entry_kind:
                raise ValidationError(
                    f"A {'credit' if line.is_credit else 'debit'} line cannot be "
                    f"recorded as {entry_kind.value}",
                    {"line_id": line_id, "kind": entry_kind.value},
                )

            try:
                return self.repository.record_entry(
                    line,
                    entry_kind,
                    category,
                    description if description is not None else line.description,
                    recorded_by,
                )
            except PersistenceFailure as e:
                if not e.diagnostics.get("transient") or attempt > self.settings.max_retries:
                    raise
                self.logger.warning(f"Retrying record for line {line_id} (attempt {attempt}): {e.message}")

    def reset(self, line_id: int, remove_entry: bool = True) -> StatementLine:
        """Administratively return a line to ``unmatched``.

        For a recorded line the ledger entry created from it is deleted, or
        kept and flagged for review when ``remove_entry`` is False.
        """
        line = self.repository.get_line(line_id)
        if line.reconciliation_status == ReconciliationStatus.UNMATCHED:
            raise InvalidTransition(
                f"Statement line {line_id} is already unmatched",
                {"line_id": line_id, "status": line.reconciliation_status.value},
            )
        self.logger.info(
            f"Resetting line {line_id} from {line.reconciliation_status.value}"
            f" (remove_entry={remove_entry})"
        )
        return self.repository.reset_line(line, remove_entry=remove_entry)

    def reconciliation_stats(self, bank_account_id: Optional[str] = None) -> Dict[str, int]:
        """Line counts per status, plus ``total`` and ``reconciled`` (matched + recorded)."""
        counts = self.repository.status_counts(bank_account_id)
        counts["total"] = sum(counts[status.value] for status in ReconciliationStatus)
        counts["reconciled"] = (
            counts[ReconciliationStatus.MATCHED.value] + counts[ReconciliationStatus.RECORDED.value]
        )
        return counts

    def _load_for(self, line_id: int, target: ReconciliationStatus) -> StatementLine:
        line = self.repository.get_line(line_id)
        if not can_transition(line.reconciliation_status, target):
            raise InvalidTransition(
                f"Cannot move statement line {line_id} from "
                f"{line.reconciliation_status.value} to {target.value}",
                {
                    "line_id": line_id,
                    "status": line.reconciliation_status.value,
                    "target": target.value,
                },
            )
        return line

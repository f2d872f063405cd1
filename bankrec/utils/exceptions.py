"""Exception hierarchy for statement parsing, persistence and reconciliation."""

from typing import Any, Dict, Optional


class StatementError(Exception):
    """Base class for failures reported to callers.

    Every failure carries a human readable message and a machine ``kind`` so
    that a caller can distinguish a wrong file from an internal bug without
    inspecting internal state.
    """

    kind = "statement_error"

    def __init__(self, message: str, diagnostics: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.diagnostics = diagnostics or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "message": self.message,
            "diagnostics": self.diagnostics,
        }


class ValidationError(StatementError):
    """Raised when caller supplied input is malformed."""

    kind = "validation_error"


class UnsupportedDocument(StatementError):
    """Raised when the declared media type or document signature is not recognized."""

    kind = "unsupported_document"


class ExtractionYieldedInsufficientText(StatementError):
    """Raised when extraction produced too little text (image-only or encrypted file)."""

    kind = "insufficient_text"


class NoTransactionsFound(StatementError):
    """Raised when segmentation and record building produced zero records."""

    kind = "no_transactions"


class InconsistentTotals(StatementError):
    """Raised when computed totals disagree with the transaction sequence.

    This is an internal assertion failure, not a user error.
    """

    kind = "inconsistent_totals"


class PersistenceFailure(StatementError):
    """Raised when an atomic import or status transition could not be committed."""

    kind = "persistence_failure"


class ReconciliationError(StatementError):
    """Base class for reconciliation state machine failures."""

    kind = "reconciliation_error"


class LineNotFound(ReconciliationError):
    kind = "line_not_found"


class InvalidTransition(ReconciliationError):
    """Raised when a statement line cannot move from its current state to the requested one."""

    kind = "invalid_transition"


class ConcurrentModification(ReconciliationError):
    """Raised when a statement line changed between read and conditional write."""

    kind = "concurrent_modification"

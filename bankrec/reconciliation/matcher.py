"""Heuristic pairing of statement lines with existing ledger entries."""

import re
from decimal import Decimal
from difflib import SequenceMatcher
from typing import Dict, Iterable, List, Optional, Set

from bankrec.config.settings import (
    MATCH_CONFIDENCE_THRESHOLD,
    MATCH_DATE_WINDOW_DAYS,
    MATCH_DESCRIPTION_THRESHOLD,
)
from bankrec.reconciliation.states import (
    LedgerEntry,
    MatchCandidate,
    ReconciliationStatus,
    StatementLine,
)
from bankrec.utils.logger import get_logger

AMOUNT_WEIGHT = 60.0
DATE_WEIGHT = 25.0
DESCRIPTION_WEIGHT = 15.0


def normalize_text(value: str) -> str:
    """Normalize text for similarity comparison."""
    cleaned = re.sub(r"[^a-z0-9]+", " ", value.lower()).strip()
    return re.sub(r"\s+", " ", cleaned)


def score_description(a: Optional[str], b: Optional[str]) -> float:
    """Score description similarity (0-100)."""
    if not a or not b:
        return 0.0
    norm_a = normalize_text(a)
    norm_b = normalize_text(b)
    if not norm_a or not norm_b:
        return 0.0
    ratio = SequenceMatcher(None, norm_a, norm_b).ratio()
    tokens_a = set(norm_a.split())
    tokens_b = set(norm_b.split())
    token_score = len(tokens_a & tokens_b) / len(tokens_a | tokens_b)
    return round(100 * (0.6 * ratio + 0.4 * token_score), 2)


class TransactionMatcher:
    """Scores and proposes line-to-entry pairings.

    A pairing is only considered when the amounts are exactly equal and the
    entry kind agrees with the line direction (debit lines pair with
    expenses, credit lines with receipts). Confidence is 60 for the amount,
    up to 25 for date proximity and up to 15 for description similarity;
    it gates and reports a pairing but does not order the candidates.
    """

    def __init__(
        self,
        date_window_days: int = MATCH_DATE_WINDOW_DAYS,
        description_threshold: float = MATCH_DESCRIPTION_THRESHOLD,
        confidence_threshold: float = MATCH_CONFIDENCE_THRESHOLD
    ) -> None:
        """Initialize matcher.

        Args:
            date_window_days: Largest accepted date difference in days.
            description_threshold: Minimum description similarity (0-100).
            confidence_threshold: Minimum confidence for a proposal (0-100).
        """
        self.date_window_days = date_window_days
        self.description_threshold = description_threshold
        self.confidence_threshold = confidence_threshold
        self.logger = get_logger(__name__)

    def score(self, line: StatementLine, entry: LedgerEntry) -> Optional[MatchCandidate]:
        """Score one pairing.

        Args:
            line: Statement line.
            entry: Ledger entry.

        Returns:
            MatchCandidate, or None when the pair fails any hard criterion or
            the confidence threshold.
        """
        if entry.kind != line.entry_kind:
            return None
        if Decimal(entry.amount) != line.amount:
            return None

        date_difference = abs((line.transaction_date - entry.entry_date).days)
        if date_difference > self.date_window_days:
            return None

        similarity = score_description(line.description, entry.description)
        if similarity < self.description_threshold:
            return None

        date_component = DATE_WEIGHT * (1 - date_difference / (self.date_window_days + 1))
        description_component = DESCRIPTION_WEIGHT * similarity / 100
        confidence = round(AMOUNT_WEIGHT + date_component + description_component, 2)
        if confidence < self.confidence_threshold:
            return None

        return MatchCandidate(
            statement_line_id=line.id,
            ledger_entry_id=entry.id,
            confidence=confidence,
            date_difference=date_difference,
            description_similarity=similarity,
        )

    def candidates_for(
        self,
        line: StatementLine,
        entries: Iterable[LedgerEntry],
        excluded_entry_ids: Optional[Set[int]] = None
    ) -> List[MatchCandidate]:
        """All acceptable candidates for a line, best first."""
        excluded = excluded_entry_ids or set()
        candidates = []
        for entry in entries:
            if entry.id in excluded:
                continue
            candidate = self.score(line, entry)
            if candidate is not None:
                candidates.append(candidate)
        candidates.sort(key=_rank)
        return candidates

    def propose(
        self,
        lines: Iterable[StatementLine],
        entries: Iterable[LedgerEntry],
        excluded_entry_ids: Optional[Set[int]] = None
    ) -> Dict[int, MatchCandidate]:
        """Pick at most one entry per unmatched line and one line per entry.

        Candidates are ranked globally by smallest date difference, then
        highest description similarity, then line and entry id. A line whose
        best candidate was already taken by a better-ranked line is left
        unmatched.

        Args:
            lines: Statement lines; only unmatched ones are considered.
            entries: Ledger entries available for matching.
            excluded_entry_ids: Entries already linked to some line.

        Returns:
            Mapping of statement line id to its proposed candidate.
        """
        entries = list(entries)
        pool: List[MatchCandidate] = []
        for line in lines:
            if line.reconciliation_status != ReconciliationStatus.UNMATCHED:
                continue
            pool.extend(self.candidates_for(line, entries, excluded_entry_ids))
        pool.sort(key=_rank)

        proposals: Dict[int, MatchCandidate] = {}
        decided: Set[int] = set()
        claimed: Set[int] = set()
        for candidate in pool:
            if candidate.statement_line_id in decided:
                continue
            decided.add(candidate.statement_line_id)
            if candidate.ledger_entry_id in claimed:
                self.logger.debug(
                    f"Line {candidate.statement_line_id}: best entry "
                    f"{candidate.ledger_entry_id} already claimed"
                )
                continue
            claimed.add(candidate.ledger_entry_id)
            proposals[candidate.statement_line_id] = candidate

        self.logger.info(f"Proposed {len(proposals)} matches from {len(pool)} candidates")
        return proposals


def _rank(candidate: MatchCandidate):
    return (
        candidate.date_difference,
        -candidate.description_similarity,
        candidate.statement_line_id,
        candidate.ledger_entry_id,
    )

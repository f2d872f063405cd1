"""Period resolution and totals for a parsed bank statement."""

import calendar
import re
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Optional, Sequence, Tuple

from bankrec.config.settings import DEFAULT_CURRENCY
from bankrec.statement_processor.amounts import ZERO, normalize_amount
from bankrec.statement_processor.records import TransactionRecord
from bankrec.utils.exceptions import InconsistentTotals
from bankrec.utils.logger import get_logger

INDONESIAN_MONTHS = {
    "JANUARI": 1,
    "FEBRUARI": 2,
    "MARET": 3,
    "APRIL": 4,
    "MEI": 5,
    "JUNI": 6,
    "JULI": 7,
    "AGUSTUS": 8,
    "SEPTEMBER": 9,
    "OKTOBER": 10,
    "NOVEMBER": 11,
    "DESEMBER": 12,
}

_PERIOD = re.compile(
    r"PERIODE[:\s]+(" + "|".join(INDONESIAN_MONTHS) + r")\s+(\d{4})",
    re.IGNORECASE,
)
_OPENING_BALANCE = re.compile(r"SALDO\s+AWAL[:\s]*([\d,.]+)", re.IGNORECASE)
_CLOSING_BALANCE = re.compile(r"SALDO\s+AKHIR[:\s]*([\d,.]+)", re.IGNORECASE)


@dataclass(frozen=True)
class StatementSummary:
    """Aggregate view of one statement period."""

    period: str
    start_date: date
    end_date: date
    opening_balance: Decimal
    closing_balance: Decimal
    total_debits: Decimal
    total_credits: Decimal
    transactions: Tuple[TransactionRecord, ...] = field(default_factory=tuple)
    currency: str = DEFAULT_CURRENCY

    @property
    def transaction_count(self) -> int:
        return len(self.transactions)

    @property
    def net_movement(self) -> Decimal:
        return self.total_credits - self.total_debits

    def to_dict(self) -> Dict[str, Any]:
        """Convert summary to dictionary.

        Returns:
            Dictionary representation with the transactions included.
        """
        return {
            "period": self.period,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "opening_balance": self.opening_balance,
            "closing_balance": self.closing_balance,
            "total_debits": self.total_debits,
            "total_credits": self.total_credits,
            "currency": self.currency,
            "transaction_count": self.transaction_count,
            "transactions": [t.to_dict() for t in self.transactions],
        }


def resolve_period(text: str, today: Optional[date] = None) -> Tuple[int, int, str]:
    """Find the statement period header.

    Args:
        text: Extracted statement text.
        today: Reference date used when no header is present.

    Returns:
        Tuple of ``(year, month, label)``. Without a header the year is the
        current one, the month is January and the label is empty.
    """
    match = _PERIOD.search(text)
    if not match:
        return (today or date.today()).year, 1, ""

    month_name = match.group(1).upper()
    year = int(match.group(2))
    return year, INDONESIAN_MONTHS[month_name], f"{month_name} {year}"


def period_bounds(year: int, month: int) -> Tuple[date, date]:
    """First and last calendar day of a month."""
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def labelled_balance(pattern: "re.Pattern[str]", text: str) -> Decimal:
    match = pattern.search(text)
    return normalize_amount(match.group(1)) if match else ZERO


class StatementSummarizer:
    """Builds StatementSummary objects from records and statement text."""

    def __init__(self) -> None:
        """Initialize statement summarizer."""
        self.logger = get_logger(__name__)

    def aggregate(
        self,
        text: str,
        transactions: Sequence[TransactionRecord],
        currency: str = DEFAULT_CURRENCY,
        period: Optional[Tuple[int, int, str]] = None
    ) -> StatementSummary:
        """Compute the period summary for a statement.

        Args:
            text: Extracted statement text.
            transactions: Records built from the same text.
            currency: Account currency tag, passed through untouched.
            period: Previously resolved ``(year, month, label)``; resolved
                from the text when omitted.

        Returns:
            StatementSummary whose totals equal the sums over transactions.
        """
        year, month, label = period or resolve_period(text)
        start_date, end_date = period_bounds(year, month)

        total_debits = sum((t.debit_amount for t in transactions), ZERO)
        total_credits = sum((t.credit_amount for t in transactions), ZERO)

        summary = StatementSummary(
            period=label,
            start_date=start_date,
            end_date=end_date,
            opening_balance=labelled_balance(_OPENING_BALANCE, text),
            closing_balance=labelled_balance(_CLOSING_BALANCE, text),
            total_debits=total_debits,
            total_credits=total_credits,
            transactions=tuple(transactions),
            currency=currency,
        )

        self.logger.info(
            f"Summarized {summary.transaction_count} transactions for "
            f"{label or 'unlabelled period'}: debits {total_debits}, credits {total_credits}"
        )
        return summary


def verify_totals(summary: StatementSummary) -> None:
    """Assert that the summary totals match its transactions.

    Raises:
        InconsistentTotals: If either total disagrees with the transaction sums.
    """
    debits = sum((t.debit_amount for t in summary.transactions), ZERO)
    credits = sum((t.credit_amount for t in summary.transactions), ZERO)
    if debits != summary.total_debits or credits != summary.total_credits:
        raise InconsistentTotals(
            "Statement totals disagree with transaction amounts",
            {
                "expected_debits": str(debits),
                "expected_credits": str(credits),
                "total_debits": str(summary.total_debits),
                "total_credits": str(summary.total_credits),
            },
        )

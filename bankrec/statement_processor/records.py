"""Builds normalized transaction records from segmented statement blocks."""

import re
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from bankrec.config.settings import AMOUNT_UPPER_BOUND, DESCRIPTION_MAX_LENGTH, REFERENCE_MAX_LENGTH
from bankrec.statement_processor.amounts import ZERO, find_amounts
from bankrec.statement_processor.extractor import collapse_whitespace
from bankrec.statement_processor.segmenter import Block
from bankrec.utils.logger import get_logger

_CREDIT_MARKER = re.compile(r"\bCR\b", re.IGNORECASE)
_REFERENCE = re.compile(r"\d{4}/[\w/]+")

logger = get_logger(__name__)


@dataclass(frozen=True)
class TransactionRecord:
    """One statement transaction; exactly one of debit and credit is nonzero."""

    date: date
    description: str
    reference: str
    debit_amount: Decimal
    credit_amount: Decimal
    balance: Optional[Decimal] = None

    @property
    def amount(self) -> Decimal:
        return self.credit_amount if self.is_credit else self.debit_amount

    @property
    def is_credit(self) -> bool:
        return self.credit_amount > ZERO

    def to_dict(self) -> Dict[str, Any]:
        """Convert the record to its persisted field names.

        Returns:
            Dictionary with ISO date and Decimal amounts.
        """
        return {
            "transaction_date": self.date.isoformat(),
            "description": self.description,
            "reference": self.reference,
            "debit_amount": self.debit_amount,
            "credit_amount": self.credit_amount,
            "running_balance": self.balance,
        }


def resolve_date(year: int, month: int, day: int) -> Optional[date]:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def extract_reference(text: str) -> str:
    match = _REFERENCE.search(text)
    return match.group()[:REFERENCE_MAX_LENGTH] if match else ""


def build_record(
    block: Block,
    year: int,
    upper: Decimal = Decimal(AMOUNT_UPPER_BOUND)
) -> Optional[TransactionRecord]:
    """Turn one retained block into a transaction record.

    The first amount in the block is the transaction amount; a standalone
    ``CR`` marker makes it a credit. When the block holds more than one
    amount the last one is the running balance.

    Args:
        block: Segmented block.
        year: Statement year resolved from the period header.
        upper: Exclusive upper bound for a plausible amount.

    Returns:
        TransactionRecord, or None when the block has no amount or its date
        does not exist in the given year.
    """
    text = block.text
    amounts = find_amounts(text, upper=upper)
    if not amounts:
        return None

    transaction_date = resolve_date(year, block.month, block.day)
    if transaction_date is None:
        logger.debug(f"Discarding block with impossible date {block.anchor}/{year}")
        return None

    amount = amounts[0]
    is_credit = bool(_CREDIT_MARKER.search(text))

    return TransactionRecord(
        date=transaction_date,
        description=collapse_whitespace(text)[:DESCRIPTION_MAX_LENGTH],
        reference=extract_reference(text),
        debit_amount=ZERO if is_credit else amount,
        credit_amount=amount if is_credit else ZERO,
        balance=amounts[-1] if len(amounts) > 1 else None,
    )


def build_records(
    blocks: List[Block],
    year: int,
    upper: Decimal = Decimal(AMOUNT_UPPER_BOUND)
) -> List[TransactionRecord]:
    """Build records for every block, skipping blocks that yield none."""
    records = []
    for block in blocks:
        record = build_record(block, year, upper)
        if record is not None:
            records.append(record)
    return records

"""Locale-ambiguous amount parsing for bank statement text."""

import re
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from bankrec.config.settings import AMOUNT_UPPER_BOUND

ZERO = Decimal("0")

_NON_NUMERIC = re.compile(r"[^0-9,.]")
_NUMERIC_SUBSTRING = re.compile(r"[\d,.]+")
_LEADING_DECIMAL = re.compile(r"\d+(?:\.\d*)?|\.\d+")


def normalize_amount(amount_str: Optional[str]) -> Decimal:
    """Parse a numeric string whose separators follow an unknown locale.

    The first matching rule decides which separator is the decimal point:

    1. more than one ``.``: dots are thousands separators, a comma is the decimal point;
    2. more than one ``,``: commas are thousands separators;
    3. one ``.`` and one ``,``: the dot groups thousands, the comma is the decimal point;
    4. a single ``,`` and no ``.``: the comma is the decimal point;
    5. otherwise the string is parsed as is.

    A lone group such as ``"1.234"`` stays ``1.234``; the text alone cannot
    tell it apart from one thousand two hundred thirty four.

    Args:
        amount_str: String containing an amount.

    Returns:
        Parsed Decimal, or ``Decimal("0")`` when nothing numeric is left.
    """
    if not amount_str:
        return ZERO

    cleaned = _NON_NUMERIC.sub("", amount_str)
    dots = cleaned.count(".")
    commas = cleaned.count(",")

    if dots > 1:
        cleaned = cleaned.replace(".", "").replace(",", ".", 1)
    elif commas > 1:
        cleaned = cleaned.replace(",", "")
    elif dots == 1 and commas == 1:
        cleaned = cleaned.replace(".", "").replace(",", ".", 1)
    elif commas == 1 and dots == 0:
        cleaned = cleaned.replace(",", ".", 1)

    return _parse_leading_decimal(cleaned)


def _parse_leading_decimal(cleaned: str) -> Decimal:
    # Leftover separators after the rules above end the number, as a lenient float parse would
    match = _LEADING_DECIMAL.match(cleaned)
    if not match:
        return ZERO
    try:
        return Decimal(match.group())
    except InvalidOperation:
        return ZERO


def find_amounts(
    text: str,
    lower: Decimal = ZERO,
    upper: Decimal = Decimal(AMOUNT_UPPER_BOUND)
) -> List[Decimal]:
    """Find every amount-shaped substring in text.

    Args:
        text: Text to scan.
        lower: Exclusive lower bound for kept values.
        upper: Exclusive upper bound for kept values.

    Returns:
        Normalized amounts strictly inside ``(lower, upper)`` in encounter order.
    """
    amounts = []
    for match in _NUMERIC_SUBSTRING.finditer(text):
        value = normalize_amount(match.group())
        if lower < value < upper:
            amounts.append(value)
    return amounts

"""Splits extracted statement text into date-anchored transaction blocks."""

import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterator, List, Optional, Tuple

from bankrec.config.settings import AMOUNT_UPPER_BOUND, SEGMENT_LOOKAHEAD
from bankrec.statement_processor.amounts import find_amounts
from bankrec.utils.logger import get_logger

MIN_BLOCK_LENGTH = 3

# Statement section labels: date, description, branch, mutation, balance, page, continued
HEADER_KEYWORDS = [
    "TANGGAL",
    "KETERANGAN",
    "CABANG",
    "MUTASI",
    "SALDO",
    "HALAMAN",
    "BERSAMBUNG",
]

_ANCHOR = re.compile(r"^(\d{2})/(\d{2})$")
_TOKEN = re.compile(r"\S+")
_HEADER = re.compile("|".join(HEADER_KEYWORDS), re.IGNORECASE)

logger = get_logger(__name__)


@dataclass(frozen=True)
class Block:
    """Tokens following one ``DD/MM`` anchor, up to the next anchor."""

    anchor: str
    day: int
    month: int
    tokens: Tuple[str, ...]

    @property
    def text(self) -> str:
        return " ".join(self.tokens)


def parse_anchor(token: str) -> Optional[Tuple[int, int]]:
    """Return ``(day, month)`` when token is a plausible ``DD/MM`` date.

    Args:
        token: A single whitespace-free token.

    Returns:
        Day and month, or None when the token is not a valid anchor.
    """
    match = _ANCHOR.match(token)
    if not match:
        return None
    day, month = int(match.group(1)), int(match.group(2))
    if 1 <= day <= 31 and 1 <= month <= 12:
        return day, month
    return None


def tokenize(text: str) -> Iterator[str]:
    for match in _TOKEN.finditer(text):
        yield match.group()


class BlockCursor:
    """Walks a lazy token stream, one anchored block at a time.

    A block owns at most ``lookahead - 1`` tokens after its anchor. Tokens
    beyond that window are skipped until the next anchor appears, so garbled
    anchor-free noise never grows a block without bound.
    """

    def __init__(self, tokens: Iterator[str], lookahead: int = SEGMENT_LOOKAHEAD) -> None:
        self.tokens = tokens
        self.window = max(lookahead - 1, 0)
        self.pending = self._seek_anchor()

    def _seek_anchor(self) -> Optional[Tuple[str, int, int]]:
        for token in self.tokens:
            parsed = parse_anchor(token)
            if parsed:
                return (token, parsed[0], parsed[1])
        return None

    def __iter__(self) -> Iterator[Block]:
        return self

    def __next__(self) -> Block:
        if self.pending is None:
            raise StopIteration

        anchor, day, month = self.pending
        self.pending = None
        body: List[str] = []
        for token in self.tokens:
            parsed = parse_anchor(token)
            if parsed:
                self.pending = (token, parsed[0], parsed[1])
                break
            if len(body) < self.window:
                body.append(token)

        return Block(anchor=anchor, day=day, month=month, tokens=tuple(body))


def segment(text: str, lookahead: int = SEGMENT_LOOKAHEAD) -> List[Block]:
    """Split text into anchored blocks, in order, discarded ones included.

    Args:
        text: Whitespace-collapsed statement text.
        lookahead: Maximum block window, anchor included.

    Returns:
        Blocks in encounter order.
    """
    return list(BlockCursor(tokenize(text), lookahead))


def discard_reason(block: Block, upper: Decimal = Decimal(AMOUNT_UPPER_BOUND)) -> Optional[str]:
    """Explain why a block yields no transaction, or None when it is kept.

    Args:
        block: Candidate block.
        upper: Exclusive upper bound for a plausible amount.

    Returns:
        ``"header"``, ``"too_short"``, ``"no_amounts"`` or None.
    """
    text = block.text
    if _HEADER.search(text):
        return "header"
    if len(text.strip()) < MIN_BLOCK_LENGTH:
        return "too_short"
    if not find_amounts(text, upper=upper):
        return "no_amounts"
    return None


def is_discarded(block: Block) -> bool:
    return discard_reason(block) is not None


def retained_blocks(
    text: str,
    lookahead: int = SEGMENT_LOOKAHEAD,
    upper: Decimal = Decimal(AMOUNT_UPPER_BOUND)
) -> List[Block]:
    """Segment text and drop header, footer, short and amount-free blocks.

    Args:
        text: Whitespace-collapsed statement text.
        lookahead: Maximum block window, anchor included.
        upper: Exclusive upper bound for a plausible amount.

    Returns:
        Blocks that may become transactions.
    """
    kept = []
    for index, block in enumerate(segment(text, lookahead)):
        reason = discard_reason(block, upper)
        if index < 3:
            logger.debug(f"[{block.anchor}] {block.text[:150]} -> {reason or 'kept'}")
        if reason is None:
            kept.append(block)
    logger.info(f"Retained {len(kept)} transaction blocks")
    return kept

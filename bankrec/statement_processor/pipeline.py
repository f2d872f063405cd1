"""Statement parsing entry point: bytes in, StatementSummary out."""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Optional, Union

from bankrec.config.settings import Settings
from bankrec.statement_processor.extractor import Extractor, RawDocument, describe_document
from bankrec.statement_processor.records import build_records
from bankrec.statement_processor.segmenter import retained_blocks
from bankrec.statement_processor.summarizer import (
    StatementSummarizer,
    StatementSummary,
    resolve_period,
    verify_totals,
)
from bankrec.utils.exceptions import (
    ExtractionYieldedInsufficientText,
    NoTransactionsFound,
    StatementError,
)
from bankrec.utils.logger import get_logger
from bankrec.utils.validators import (
    normalize_media_type,
    validate_currency,
    validate_document_size,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class ExtractionFailure:
    """Value returned by ``try_parse_statement`` instead of raising."""

    kind: str
    message: str
    diagnostics: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_error(cls, error: StatementError) -> "ExtractionFailure":
        return cls(kind=error.kind, message=error.message, diagnostics=dict(error.diagnostics))


def parse_statement(
    document: bytes,
    media_type: str,
    account_currency: str,
    settings: Optional[Settings] = None
) -> StatementSummary:
    """Parse one statement document into a summary and its transactions.

    Parsing is pure: no I/O beyond the given bytes, safe to run in parallel.

    Args:
        document: Raw document bytes.
        media_type: Declared media type (``pdf``, ``spreadsheet`` or an alias).
        account_currency: Currency tag of the bank account.
        settings: Optional settings; environment defaults otherwise.

    Returns:
        StatementSummary with transactions in encounter order.

    Raises:
        ValidationError: If the document or currency is malformed.
        UnsupportedDocument: If the media type or format is not recognized.
        ExtractionYieldedInsufficientText: If too little text was recovered.
        NoTransactionsFound: If no transaction could be built.
        InconsistentTotals: If aggregation broke the totals invariant.
    """
    settings = settings or Settings()
    validate_document_size(document, settings.max_file_size_mb)
    currency = validate_currency(account_currency)

    raw = RawDocument(data=bytes(document), media_type=normalize_media_type(media_type))
    extractor = Extractor(
        layout_fallback=settings.pdf_layout_fallback,
        min_text_length=settings.min_text_length,
    )
    text = extractor.extract(raw)

    if len(text) < settings.min_text_length:
        diagnostics = describe_document(raw, text)
        logger.error(f"Extraction yielded {len(text)} chars: {diagnostics}")
        raise ExtractionYieldedInsufficientText(
            "Could not extract text from the document. It may be scanned, "
            "encrypted or use compressed text streams.",
            diagnostics,
        )

    period = resolve_period(text)
    upper = Decimal(str(settings.amount_upper_bound))
    blocks = retained_blocks(text, settings.segment_lookahead, upper)
    transactions = build_records(blocks, period[0], upper)

    if not transactions:
        diagnostics = describe_document(raw, text)
        diagnostics["blocks_retained"] = len(blocks)
        logger.error(f"No transactions found: {diagnostics}")
        raise NoTransactionsFound(
            "No transactions found. The document may not be a supported bank statement.",
            diagnostics,
        )

    summary = StatementSummarizer().aggregate(text, transactions, currency, period)
    verify_totals(summary)
    return summary


def try_parse_statement(
    document: bytes,
    media_type: str,
    account_currency: str,
    settings: Optional[Settings] = None
) -> Union[StatementSummary, ExtractionFailure]:
    """Like ``parse_statement`` but returns an ExtractionFailure instead of raising."""
    try:
        return parse_statement(document, media_type, account_currency, settings)
    except StatementError as e:
        return ExtractionFailure.from_error(e)

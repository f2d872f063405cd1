"""Statement document parsing: text extraction, segmentation, records and totals."""

from bankrec.statement_processor.pipeline import (
    ExtractionFailure,
    parse_statement,
    try_parse_statement,
)
from bankrec.statement_processor.records import TransactionRecord
from bankrec.statement_processor.summarizer import StatementSummary

__all__ = [
    "ExtractionFailure",
    "StatementSummary",
    "TransactionRecord",
    "parse_statement",
    "try_parse_statement",
]

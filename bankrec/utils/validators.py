"""Validation utilities for statement documents and import parameters."""

import os
import re
from typing import Optional

from bankrec.config.settings import MAX_FILE_SIZE_MB
from bankrec.utils.exceptions import UnsupportedDocument, ValidationError

MEDIA_TYPE_ALIASES = {
    "pdf": "pdf",
    "application/pdf": "pdf",
    "spreadsheet": "spreadsheet",
    "xlsx": "spreadsheet",
    "xls": "spreadsheet",
    "csv": "spreadsheet",
    "text/csv": "spreadsheet",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": "spreadsheet",
    "application/vnd.ms-excel": "spreadsheet",
}

EXTENSION_MEDIA_TYPES = {
    ".pdf": "pdf",
    ".xlsx": "spreadsheet",
    ".xls": "spreadsheet",
    ".csv": "spreadsheet",
}

_CURRENCY_PATTERN = re.compile(r"^[A-Z]{3}$")


def validate_file_path(file_path: str) -> None:
    """Validate that a file path exists and is accessible.

    Args:
        file_path: Path to the file to validate.

    Raises:
        ValidationError: If file path is invalid.
    """
    if not file_path:
        raise ValidationError("File path cannot be empty")

    if not os.path.exists(file_path):
        raise ValidationError(f"File does not exist: {file_path}")

    if not os.path.isfile(file_path):
        raise ValidationError(f"Path is not a file: {file_path}")

    if not os.access(file_path, os.R_OK):
        raise ValidationError(f"File is not readable: {file_path}")


def validate_document_size(document: bytes, max_size_mb: int = MAX_FILE_SIZE_MB) -> None:
    """Validate an in-memory document against the size limit.

    Args:
        document: Raw document bytes.
        max_size_mb: Maximum allowed size in MB.

    Raises:
        ValidationError: If the document is empty or too large.
    """
    if not isinstance(document, (bytes, bytearray, memoryview)):
        raise ValidationError(f"Document must be bytes, got {type(document).__name__}")

    size_mb = len(document) / (1024 * 1024)
    if len(document) == 0:
        raise ValidationError("Document is empty")

    if size_mb > max_size_mb:
        raise ValidationError(
            f"Document size {size_mb:.2f}MB exceeds maximum "
            f"allowed size {max_size_mb}MB"
        )


def normalize_media_type(media_type: Optional[str]) -> str:
    """Map a declared media type onto ``pdf`` or ``spreadsheet``.

    Args:
        media_type: Declared media type or short alias.

    Returns:
        Either ``"pdf"`` or ``"spreadsheet"``.

    Raises:
        UnsupportedDocument: If the media type is not recognized.
    """
    key = (media_type or "").strip().lower()
    if key not in MEDIA_TYPE_ALIASES:
        raise UnsupportedDocument(
            f"Media type '{media_type}' not supported. "
            f"Supported types: pdf, spreadsheet",
            {"media_type": media_type},
        )
    return MEDIA_TYPE_ALIASES[key]


def media_type_from_path(file_path: str) -> str:
    """Guess the media type of a file from its extension.

    Raises:
        UnsupportedDocument: If the extension is not supported.
    """
    _, ext = os.path.splitext(file_path.lower())

    if ext not in EXTENSION_MEDIA_TYPES:
        raise UnsupportedDocument(
            f"File extension '{ext}' not supported. "
            f"Supported formats: {', '.join(sorted(EXTENSION_MEDIA_TYPES))}",
            {"extension": ext},
        )
    return EXTENSION_MEDIA_TYPES[ext]


def validate_currency(currency: str) -> str:
    """Validate an ISO-4217 style currency tag and return it upper-cased.

    Raises:
        ValidationError: If the tag is not three letters.
    """
    if not isinstance(currency, str):
        raise ValidationError("Currency must be a string")

    normalized = currency.strip().upper()
    if not _CURRENCY_PATTERN.match(normalized):
        raise ValidationError(f"Currency must be a three letter code, got '{currency}'")
    return normalized


def validate_directory_path(dir_path: str) -> None:
    """Validate that a directory path exists and is writable.

    Args:
        dir_path: Path to the directory to validate.

    Raises:
        ValidationError: If directory path is invalid.
    """
    if not dir_path:
        raise ValidationError("Directory path cannot be empty")

    if not os.path.exists(dir_path):
        try:
            os.makedirs(dir_path, exist_ok=True)
        except OSError as e:
            raise ValidationError(f"Cannot create directory {dir_path}: {str(e)}")

    if not os.path.isdir(dir_path):
        raise ValidationError(f"Path is not a directory: {dir_path}")

    if not os.access(dir_path, os.W_OK):
        raise ValidationError(f"Directory is not writable: {dir_path}")


def validate_bank_account_id(bank_account_id: str) -> None:
    """Validate a bank account identifier.

    Raises:
        ValidationError: If the identifier is empty.
    """
    if not isinstance(bank_account_id, str) or not bank_account_id.strip():
        raise ValidationError("Bank account id cannot be empty")

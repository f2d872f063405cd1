"""Best-effort text extraction from raw statement document bytes."""

import io
import re
import zipfile
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, List, Optional

import pandas as pd
import pdfplumber
from openpyxl.utils.exceptions import InvalidFileException
from PyPDF2 import PdfReader

from bankrec.config.settings import MIN_TEXT_LENGTH, PDF_LAYOUT_FALLBACK
from bankrec.utils.exceptions import UnsupportedDocument
from bankrec.utils.logger import get_logger
from bankrec.utils.validators import normalize_media_type

PDF_HEADER = b"%PDF"
ZIP_HEADER = b"PK\x03\x04"
OLE_HEADER = b"\xd0\xcf\x11\xe0"

SIGNATURE_TEXT_OBJECT = "text_object"
SIGNATURE_LITERAL = "literal"
SIGNATURE_XLSX = "xlsx"
SIGNATURE_CSV = "csv"

# A parenthesised literal (escapes honoured) or a hex string that is not a << >> dictionary
_STRING_TOKEN = re.compile(
    r"\((?P<literal>(?:\\.|[^\\)])*)\)|(?<!<)<(?P<hex>[0-9A-Fa-f\s]+)>(?!>)",
    re.DOTALL,
)
_ESCAPE = re.compile(r"\\([0-7]{1,3}|\r\n|.)", re.DOTALL)
_TEXT_OBJECT = re.compile(r"\bBT\b(.*?)\bET\b", re.DOTALL)
_TEXT_OBJECT_BYTES = re.compile(rb"\bBT\b.*?\bET\b", re.DOTALL)
_WHITESPACE = re.compile(r"\s+")
_DATE_TOKEN = re.compile(r"\b\d{2}/\d{2}\b")
_FULL_DATE = re.compile(r"^(\d{1,2})[/.-](\d{1,2})[/.-]\d{2,4}$")
_ISO_DATE = re.compile(r"^\d{4}-(\d{2})-(\d{2})(?:[ T].*)?$")

_ESCAPES = {
    "n": "\n",
    "r": "\r",
    "t": "\t",
    "b": "\b",
    "f": "\f",
    "\\": "\\",
    "(": "(",
    ")": ")",
}

SECTION_KEYWORDS = ["SALDO", "PERIODE", "MUTASI", "KETERANGAN"]


@dataclass(frozen=True)
class RawDocument:
    """Opaque document bytes plus the declared media type."""

    data: bytes
    media_type: str

    @property
    def kind(self) -> str:
        return normalize_media_type(self.media_type)


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()


def unescape_literal(literal: str) -> str:
    """Resolve backslash escapes inside a PDF literal string.

    Args:
        literal: Literal body without the enclosing parentheses.

    Returns:
        Unescaped text.
    """
    def _replace(match: "re.Match[str]") -> str:
        token = match.group(1)
        if token[0] in "01234567":
            return chr(int(token, 8) & 0xFF)
        if token in ("\n", "\r", "\r\n"):
            # Line continuation
            return ""
        return _ESCAPES.get(token, token)

    return _ESCAPE.sub(_replace, literal)


def decode_hex_string(hex_body: str) -> str:
    """Decode a PDF hex string, returning an empty string for non-text payloads."""
    digits = re.sub(r"\s+", "", hex_body)
    if not digits:
        return ""
    if len(digits) % 2:
        digits += "0"

    raw = bytes.fromhex(digits)
    if raw.startswith(b"\xfe\xff"):
        text = raw[2:].decode("utf-16-be", errors="replace")
    else:
        text = raw.decode("latin-1")

    # Document IDs and glyph indices decode to control characters; keep only readable text
    return text if text.isprintable() else ""


def scan_string_fragments(content: str) -> List[str]:
    """Collect literal and hex string fragments in encounter order.

    Args:
        content: Decoded document content.

    Returns:
        Non-empty text fragments.
    """
    fragments = []
    for match in _STRING_TOKEN.finditer(content):
        literal = match.group("literal")
        if literal is not None:
            fragment = unescape_literal(literal)
        else:
            fragment = decode_hex_string(match.group("hex"))
        if fragment.strip():
            fragments.append(fragment)
    return fragments


class ExtractionStrategy:
    """Base class for text extraction strategies."""

    name = "base"

    def extract(self, data: bytes) -> str:
        raise NotImplementedError


class LiteralStringStrategy(ExtractionStrategy):
    """Recovers every string literal in the raw PDF bytes."""

    name = SIGNATURE_LITERAL

    def extract(self, data: bytes) -> str:
        content = data.decode("utf-8", errors="replace")
        return " ".join(scan_string_fragments(content))


class TextObjectStrategy(ExtractionStrategy):
    """Recovers string literals that sit inside ``BT ... ET`` text objects."""

    name = SIGNATURE_TEXT_OBJECT

    def extract(self, data: bytes) -> str:
        content = data.decode("utf-8", errors="replace")
        fragments = []
        for match in _TEXT_OBJECT.finditer(content):
            fragments.extend(scan_string_fragments(match.group(1)))
        return " ".join(fragments)


class SpreadsheetStrategy(ExtractionStrategy):
    """Flattens spreadsheet rows into text the segmenter understands."""

    name = "spreadsheet"

    def __init__(self, signature: str = SIGNATURE_XLSX) -> None:
        self.signature = signature
        self.logger = get_logger(__name__)

    def extract(self, data: bytes) -> str:
        """Read the first sheet (or the CSV body) and flatten it row by row.

        Raises:
            UnsupportedDocument: If the bytes are not a readable workbook or CSV.
        """
        buffer = io.BytesIO(data)
        try:
            if self.signature == SIGNATURE_XLSX:
                frame = pd.read_excel(buffer, sheet_name=0, header=None, engine="openpyxl")
            else:
                frame = pd.read_csv(
                    buffer,
                    header=None,
                    dtype=str,
                    keep_default_na=False,
                    encoding_errors="replace",
                    on_bad_lines="skip",
                )
        except pd.errors.EmptyDataError:
            self.logger.warning("Spreadsheet has no rows")
            return ""
        except (zipfile.BadZipFile, InvalidFileException, pd.errors.ParserError, KeyError, ValueError) as e:
            raise UnsupportedDocument(
                f"Could not read the {self.signature} document",
                {
                    "signature": self.signature,
                    "error_type": type(e).__name__,
                    "byte_length": len(data),
                },
            )

        rows = []
        for row in frame.itertuples(index=False):
            cells = [self.render_cell(value) for value in row]
            cells = [cell for cell in cells if cell]
            if cells:
                rows.append(" ".join(cells))

        self.logger.debug(f"Flattened {len(rows)} spreadsheet rows")
        return " ".join(rows)

    @staticmethod
    def render_cell(value: Any) -> str:
        """Render one cell; calendar dates become ``DD/MM`` anchors.

        Args:
            value: Cell value as read by pandas.

        Returns:
            Text for the cell, empty for blanks.
        """
        if value is None:
            return ""
        if not isinstance(value, str) and pd.isna(value):
            return ""
        if isinstance(value, (datetime, date, pd.Timestamp)):
            return value.strftime("%d/%m")
        if isinstance(value, float):
            return format(value, "f").rstrip("0").rstrip(".") if value % 1 else str(int(value))

        text = str(value).strip()
        full = _FULL_DATE.match(text)
        if full:
            return f"{int(full.group(1)):02d}/{int(full.group(2)):02d}"
        iso = _ISO_DATE.match(text)
        if iso:
            return f"{iso.group(2)}/{iso.group(1)}"
        return text


class PdfLayoutStrategy(ExtractionStrategy):
    """Page text through pdfplumber, for statements with compressed content streams."""

    name = "layout"

    def __init__(self) -> None:
        self.logger = get_logger(__name__)

    def extract(self, data: bytes) -> str:
        text_content = []
        with pdfplumber.open(io.BytesIO(data)) as pdf:
            for page_num, page in enumerate(pdf.pages, 1):
                page_text = page.extract_text()
                if page_text:
                    text_content.append(page_text)
                else:
                    self.logger.warning(f"No text found on page {page_num}")
        return " ".join(text_content)


def detect_signature(data: bytes, media_kind: str) -> str:
    """Detect which extraction strategy suits a document.

    Args:
        data: Raw document bytes.
        media_kind: Normalized media type (``pdf`` or ``spreadsheet``).

    Returns:
        One of the ``SIGNATURE_*`` constants.

    Raises:
        UnsupportedDocument: For spreadsheet formats that cannot be read.
    """
    head = data[:1024]
    if head.startswith(ZIP_HEADER):
        return SIGNATURE_XLSX
    if head.startswith(OLE_HEADER):
        raise UnsupportedDocument(
            "Legacy .xls workbooks are not supported; export the statement as .xlsx or .csv",
            {"signature": "ole"},
        )
    if media_kind == "spreadsheet":
        return SIGNATURE_CSV
    if PDF_HEADER in head and _TEXT_OBJECT_BYTES.search(data):
        return SIGNATURE_TEXT_OBJECT
    return SIGNATURE_LITERAL


class Extractor:
    """Turns a raw statement document into one whitespace-collapsed string."""

    def __init__(
        self,
        layout_fallback: bool = PDF_LAYOUT_FALLBACK,
        min_text_length: int = MIN_TEXT_LENGTH
    ) -> None:
        """Initialize extractor.

        Args:
            layout_fallback: Whether pdfplumber may be consulted when the byte
                scan recovers too little text.
            min_text_length: Text length below which the fallback is tried.
        """
        self.logger = get_logger(__name__)
        self.layout_fallback = layout_fallback
        self.min_text_length = min_text_length

    def strategies_for(self, signature: str) -> List[ExtractionStrategy]:
        if signature in (SIGNATURE_XLSX, SIGNATURE_CSV):
            return [SpreadsheetStrategy(signature)]
        if signature == SIGNATURE_TEXT_OBJECT:
            return [TextObjectStrategy(), LiteralStringStrategy()]
        return [LiteralStringStrategy()]

    def extract(self, document: RawDocument) -> str:
        """Extract text from a document.

        Args:
            document: Raw document.

        Returns:
            Extracted text; possibly empty when the text is stored compressed.

        Raises:
            UnsupportedDocument: If the media type or format is not recognized.
        """
        signature = detect_signature(document.data, document.kind)
        self.logger.debug(f"Detected document signature: {signature}")

        text = ""
        for strategy in self.strategies_for(signature):
            text = collapse_whitespace(strategy.extract(document.data))
            if text:
                self.logger.debug(f"Strategy '{strategy.name}' recovered {len(text)} chars")
                break

        if (
            self.layout_fallback
            and document.kind == "pdf"
            and len(text) < self.min_text_length
        ):
            self.logger.info("Byte scan recovered too little text, trying page layout extraction")
            layout_text = collapse_whitespace(PdfLayoutStrategy().extract(document.data))
            if len(layout_text) > len(text):
                text = layout_text

        self.logger.info(f"Extracted {len(text)} chars")
        return text


def is_encrypted_pdf(data: bytes) -> Optional[bool]:
    """Report whether PDF bytes are encrypted, or None when the file cannot be read."""
    try:
        return PdfReader(io.BytesIO(data)).is_encrypted
    except Exception as e:
        get_logger(__name__).debug(f"Could not inspect PDF structure: {str(e)}")
        return None


def describe_document(document: RawDocument, text: str) -> Dict[str, Any]:
    """Collect diagnostics that separate a wrong file from a parser bug.

    Args:
        document: The document that failed.
        text: Text recovered from it.

    Returns:
        Dictionary of counts and keyword flags; never the document content itself.
    """
    upper_text = text.upper()
    diagnostics = {
        "byte_length": len(document.data),
        "text_length": len(text),
        "sample_dates": _DATE_TOKEN.findall(text)[:10],
    }
    for keyword in SECTION_KEYWORDS:
        diagnostics[f"has_{keyword.lower()}"] = keyword in upper_text

    if document.data[:1024].find(PDF_HEADER) != -1:
        diagnostics["encrypted"] = is_encrypted_pdf(document.data)
    return diagnostics

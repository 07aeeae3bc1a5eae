"""
Format Router

Chooses a parser for an inbound attachment from, in order:

1. A ``BEGIN:VCARD`` marker in the first KiB
2. The declared content type
3. The filename extension
4. Content sniffing (PDF / OOXML / CSV-looking text)
5. Free text

A failing parser gets one retry through the free-text parser before the
attachment is given up on.
"""

import asyncio
import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from ..exceptions import ContactConverterError, FileTooLargeError, ParseError
from ..models import Contact, usable_only
from .parsers import (
    decode_text,
    parse_csv,
    parse_docx,
    parse_pdf,
    parse_spreadsheet,
    parse_text,
    parse_vcard,
)
from .parsers.spreadsheet import OLE_SIGNATURE, ZIP_SIGNATURE

logger = logging.getLogger(__name__)

MAX_ATTACHMENT_BYTES = 20 * 1024 * 1024
PARSE_TIMEOUT_SECONDS = 25.0
SNIFF_WINDOW = 1024

CSV_KEYWORDS = ("name", "phone", "mobile", "email", "number", "contact")


class ParserKind(str, Enum):
    VCARD = "vcard"
    CSV = "csv"
    SPREADSHEET = "spreadsheet"
    PDF = "pdf"
    DOCX = "docx"
    TEXT = "text"


CONTENT_TYPE_HINTS = [
    ("vcard", ParserKind.VCARD),
    ("csv", ParserKind.CSV),
    ("comma-separated", ParserKind.CSV),
    ("excel", ParserKind.SPREADSHEET),
    ("spreadsheet", ParserKind.SPREADSHEET),
    ("pdf", ParserKind.PDF),
    ("wordprocessingml", ParserKind.DOCX),
    ("msword", ParserKind.DOCX),
    ("text/plain", ParserKind.TEXT),
]

EXTENSIONS: Dict[str, ParserKind] = {
    ".vcf": ParserKind.VCARD,
    ".vcard": ParserKind.VCARD,
    ".csv": ParserKind.CSV,
    ".tsv": ParserKind.CSV,
    ".xlsx": ParserKind.SPREADSHEET,
    ".xlsm": ParserKind.SPREADSHEET,
    ".xls": ParserKind.SPREADSHEET,
    ".pdf": ParserKind.PDF,
    ".docx": ParserKind.DOCX,
    ".txt": ParserKind.TEXT,
}


@dataclass
class ParseResult:
    """Outcome of routing and parsing one attachment."""
    parser: str
    contacts: List[Contact] = field(default_factory=list)
    fell_back: bool = False
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None or bool(self.contacts)


def _sniff(data: bytes) -> Optional[ParserKind]:
    head = data[:SNIFF_WINDOW]
    if head.startswith(b"%PDF"):
        return ParserKind.PDF
    if head.startswith(ZIP_SIGNATURE):
        if b"word/document.xml" in data:
            return ParserKind.DOCX
        return ParserKind.SPREADSHEET
    if head.startswith(OLE_SIGNATURE):
        return ParserKind.SPREADSHEET
    first_line = head.split(b"\n", 1)[0].decode("utf-8", errors="ignore").lower()
    if "," in first_line and any(k in first_line for k in CSV_KEYWORDS):
        return ParserKind.CSV
    return None


def choose_parser(data: bytes, content_type: str = "", filename: Optional[str] = None) -> ParserKind:
    """
    Pick the parser for an attachment.

    Args:
        data: Raw attachment bytes
        content_type: Declared MIME type, may be empty or generic
        filename: Optional original filename

    Returns:
        The parser to use
    """
    if b"BEGIN:VCARD" in data[:SNIFF_WINDOW].upper():
        return ParserKind.VCARD

    content_type = (content_type or "").lower()
    for hint, kind in CONTENT_TYPE_HINTS:
        if hint in content_type:
            # Windows mail clients label plain CSV as application/vnd.ms-excel
            if kind == ParserKind.SPREADSHEET and not (
                data.startswith(ZIP_SIGNATURE) or data.startswith(OLE_SIGNATURE)
            ):
                return ParserKind.CSV
            return kind

    if filename:
        ext = os.path.splitext(filename.lower())[1]
        if ext in EXTENSIONS:
            return EXTENSIONS[ext]

    sniffed = _sniff(data)
    if sniffed:
        return sniffed
    return ParserKind.TEXT


def _run_parser(kind: ParserKind, data: bytes) -> List[Contact]:
    if kind == ParserKind.VCARD:
        return parse_vcard(decode_text(data))
    if kind == ParserKind.CSV:
        return parse_csv(decode_text(data))
    if kind == ParserKind.SPREADSHEET:
        return parse_spreadsheet(data)
    if kind == ParserKind.PDF:
        return parse_pdf(data)
    if kind == ParserKind.DOCX:
        return parse_docx(data)
    return parse_text(decode_text(data))


def _describe(error: Exception) -> str:
    if isinstance(error, ParseError):
        return error.reason
    return "could not read file"


def parse_bytes(data: bytes, content_type: str = "", filename: Optional[str] = None) -> ParseResult:
    """
    Route and parse one attachment, never raising.

    Returns:
        ParseResult; ``error`` is set when nothing could be extracted
        because the file was rejected or every parser failed
    """
    if not data:
        return ParseResult(parser="none", error="empty file")
    if len(data) > MAX_ATTACHMENT_BYTES:
        return ParseResult(parser="none", error="file exceeds 20 MB")

    kind = choose_parser(data, content_type, filename)
    logger.info(f"Routing {len(data)} bytes ({content_type or 'no type'}, {filename or 'no name'}) to {kind.value}")

    try:
        contacts = usable_only(_run_parser(kind, data))
        return ParseResult(parser=kind.value, contacts=contacts)
    except FileTooLargeError as e:
        logger.warning(f"{kind.value} rejected: {e.reason}")
        return ParseResult(parser=kind.value, error=e.reason)
    except (ContactConverterError, ValueError, UnicodeError) as e:
        primary_error = e
        logger.warning(f"{kind.value} parser failed: {e}")
    except Exception as e:
        # Third-party decoders raise arbitrary types on malformed input
        primary_error = e
        logger.error(f"{kind.value} parser crashed: {e}", exc_info=True)

    if kind == ParserKind.TEXT:
        return ParseResult(parser=kind.value, error=_describe(primary_error))

    try:
        contacts = usable_only(parse_text(decode_text(data)))
    except Exception as e:
        logger.error(f"Text fallback failed: {e}", exc_info=True)
        contacts = []

    if contacts:
        logger.info(f"Text fallback recovered {len(contacts)} contacts after {kind.value} failure")
        return ParseResult(parser=ParserKind.TEXT.value, contacts=contacts, fell_back=True)
    return ParseResult(parser=kind.value, fell_back=True, error=_describe(primary_error))


async def parse_attachment(
    data: bytes,
    content_type: str = "",
    filename: Optional[str] = None,
    timeout: float = PARSE_TIMEOUT_SECONDS,
) -> ParseResult:
    """
    Parse off the event loop, bounded by ``timeout`` seconds.

    Raises:
        asyncio.TimeoutError: parsing took longer than ``timeout``
    """
    return await asyncio.wait_for(
        asyncio.to_thread(parse_bytes, data, content_type, filename),
        timeout=timeout,
    )


def supported_formats() -> Dict[str, List]:
    """Formats accepted by the router, for help messages."""
    return {
        "formats": [
            {"name": "VCF", "description": "Contact cards from phones", "extensions": [".vcf"]},
            {"name": "CSV", "description": "Comma-separated values", "extensions": [".csv"]},
            {"name": "Excel", "description": "Spreadsheets", "extensions": [".xlsx"]},
            {"name": "PDF", "description": "Text extracted from documents", "extensions": [".pdf"]},
            {"name": "Text", "description": "Pasted lists of names and numbers", "extensions": [".txt"]},
        ],
        "mime_types": [
            "text/vcard",
            "text/x-vcard",
            "text/csv",
            "application/csv",
            "application/vnd.ms-excel",
            "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            "application/pdf",
            "text/plain",
        ],
    }

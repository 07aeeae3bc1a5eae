"""
Plain-text extraction from PDF (pdfplumber) and Word .docx documents.
"""

import html
import io
import logging
import re
import zipfile
from typing import List

import pdfplumber

from ...exceptions import FileTooLargeError, ParseError, UnsupportedFormatError
from ...models import Contact
from .text import parse_text

logger = logging.getLogger(__name__)

MAX_DOCUMENT_BYTES = 20 * 1024 * 1024
MAX_PDF_PAGES = 50

_DOCX_PARAGRAPH_END = re.compile(r"</w:p>|<w:br\s*/>|<w:tab\s*/>")
_XML_TAG = re.compile(r"<[^>]+>")


def extract_pdf_text(data: bytes) -> str:
    """
    Extract text from a PDF, page by page.

    Raises:
        UnsupportedFormatError: encrypted or unreadable PDF
    """
    if len(data) > MAX_DOCUMENT_BYTES:
        raise FileTooLargeError("pdf", "file exceeds 20 MB")
    try:
        with pdfplumber.open(io.BytesIO(data)) as pdf:
            pages: List[str] = []
            for page in pdf.pages[:MAX_PDF_PAGES]:
                pages.append(page.extract_text() or "")
    except Exception as e:
        # pdfminer raises a zoo of exception types for damaged or encrypted files
        raise UnsupportedFormatError("pdf", f"cannot read PDF: {type(e).__name__}") from e
    return "\n".join(pages)


def parse_pdf(data: bytes) -> List[Contact]:
    text = extract_pdf_text(data)
    logger.info(f"PDF text extracted: {len(text)} characters")
    if not text.strip():
        return []
    return parse_text(text)


def extract_docx_text(data: bytes) -> str:
    """Pull paragraph text out of ``word/document.xml``."""
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            xml = archive.read("word/document.xml").decode("utf-8", errors="replace")
    except (zipfile.BadZipFile, KeyError) as e:
        raise ParseError("docx", "not a Word document") from e
    text = _DOCX_PARAGRAPH_END.sub("\n", xml)
    text = _XML_TAG.sub("", text)
    return html.unescape(text)


def parse_docx(data: bytes) -> List[Contact]:
    text = extract_docx_text(data)
    logger.info(f"DOCX text extracted: {len(text)} characters")
    return parse_text(text)

"""
Column detection for tabular contact sources (CSV and spreadsheets).

Headers are matched case-insensitively against ``FIELD_SYNONYMS``: first
by exact match, then by containment. Each header column is claimed by at
most one field, and fields are resolved in ``FIELD_PRIORITY`` order so
that e.g. "Company Name" lands on ``company`` rather than ``name``.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from ...models import Contact
from ..phone import normalize_phone

logger = logging.getLogger(__name__)


FIELD_SYNONYMS: Dict[str, List[str]] = {
    "email": ["email", "e-mail", "mail", "@"],
    "mobile": ["phone", "mobile", "cell", "tel", "number", "whatsapp", "msisdn", "contact no", "gsm"],
    "company": ["company", "organisation", "organization", "business", "employer", "org"],
    "name": ["name", "contact", "person", "full", "fullname", "guest", "client", "customer"],
    "notes": ["note", "notes", "comment", "remarks", "description"],
    "passes": ["passes", "pass", "tickets", "seats", "qty", "quantity"],
}

FIELD_PRIORITY = ["email", "mobile", "company", "name", "notes", "passes"]


def _clean_header(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip().strip('"').strip().lower()


def detect_columns(headers: Sequence[Any]) -> Dict[str, int]:
    """
    Map canonical fields to header column indices.

    Args:
        headers: Raw header cells (first row)

    Returns:
        Dict of field -> column index for every field that was found
    """
    cleaned = [_clean_header(h) for h in headers]
    claimed: Dict[str, int] = {}
    used: set = set()

    # Pass 1: exact matches
    for field in FIELD_PRIORITY:
        for idx, header in enumerate(cleaned):
            if idx in used or not header:
                continue
            if header in FIELD_SYNONYMS[field]:
                claimed[field] = idx
                used.add(idx)
                break

    # Pass 2: containment
    for field in FIELD_PRIORITY:
        if field in claimed:
            continue
        for idx, header in enumerate(cleaned):
            if idx in used or not header:
                continue
            if any(syn in header for syn in FIELD_SYNONYMS[field]):
                claimed[field] = idx
                used.add(idx)
                break

    return claimed


def _cell(row: Sequence[Any], idx: Optional[int]) -> str:
    if idx is None or idx >= len(row):
        return ""
    value = row[idx]
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def _looks_like_header_row(row: Sequence[Any]) -> bool:
    """True when no cell of the row parses as a phone or an email address."""
    for value in row:
        text = _cell([value], 0)
        if "@" in text or normalize_phone(text):
            return False
    return True


def _infer_columns(rows: Sequence[Sequence[Any]]) -> Dict[str, int]:
    """
    Guess columns for header-less data by inspecting the first rows.

    The first column whose values mostly normalise to phones becomes
    ``mobile``, the first containing '@' becomes ``email``, and the first
    remaining column with alphabetic content becomes ``name``.
    """
    sample = [r for r in rows[:20] if r]
    if not sample:
        return {}
    width = max(len(r) for r in sample)
    columns: Dict[str, int] = {}
    for idx in range(width):
        values = [_cell(r, idx) for r in sample]
        values = [v for v in values if v]
        if not values:
            continue
        if "email" not in columns and sum("@" in v for v in values) * 2 >= len(values):
            columns["email"] = idx
        elif "mobile" not in columns and sum(bool(normalize_phone(v)) for v in values) * 2 >= len(values):
            columns["mobile"] = idx
    for idx in range(width):
        if idx in columns.values():
            continue
        values = [_cell(r, idx) for r in sample]
        if any(v and v[0].isalpha() for v in values):
            columns["name"] = idx
            break
    return columns


def rows_to_contacts(rows: Sequence[Sequence[Any]], source: str) -> List[Contact]:
    """
    Convert a header row plus data rows into contacts.

    Args:
        rows: All rows including the header row
        source: Parser name, used for logging

    Returns:
        Usable contacts in row order
    """
    if not rows:
        return []

    columns = detect_columns(rows[0])
    data_rows = rows[1:]
    if "name" not in columns and "mobile" not in columns:
        if _looks_like_header_row(rows[0]):
            columns = _infer_columns(data_rows)
        else:
            columns = _infer_columns(rows)
            data_rows = rows
    logger.debug(f"{source} column mapping: {columns}")

    contacts: List[Contact] = []
    for row in data_rows:
        if not row or not any(_cell(row, i) for i in range(len(row))):
            continue
        passes_raw = _cell(row, columns.get("passes"))
        contact = Contact(
            name=_cell(row, columns.get("name")),
            mobile=normalize_phone(_cell(row, columns.get("mobile"))),
            email=_cell(row, columns.get("email")),
            company=_cell(row, columns.get("company")) or None,
            notes=_cell(row, columns.get("notes")) or None,
            passes=passes_raw or 1,
        )
        if contact.is_usable:
            contacts.append(contact)
    return contacts

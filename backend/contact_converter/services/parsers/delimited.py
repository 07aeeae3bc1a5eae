"""
CSV / delimited-text parser.

The delimiter is guessed from the header line; quoting follows RFC 4180
(fields wrapped in double quotes, embedded quotes doubled).
"""

import csv
import io
import logging
from typing import List

from ...models import Contact
from .headers import rows_to_contacts

logger = logging.getLogger(__name__)

CANDIDATE_DELIMITERS = [",", "\t", "|", ";"]


def decode_text(data: bytes) -> str:
    """Decode bytes as UTF-8 (BOM tolerated), falling back to Latin-1."""
    if data[:2] in (b"\xff\xfe", b"\xfe\xff"):
        try:
            return data.decode("utf-16")
        except UnicodeDecodeError:
            pass
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        return data.decode("latin-1")


def _count_outside_quotes(line: str, delimiter: str) -> int:
    count = 0
    in_quotes = False
    for ch in line:
        if ch == '"':
            in_quotes = not in_quotes
        elif ch == delimiter and not in_quotes:
            count += 1
    return count


def guess_delimiter(text: str) -> str:
    """
    Pick the delimiter from ``CANDIDATE_DELIMITERS`` that occurs most often
    (outside quotes) in the first non-empty line. Ties go to the earlier
    candidate; no occurrence at all means comma.
    """
    first_line = next((ln for ln in text.splitlines() if ln.strip()), "")
    best = ","
    best_count = 0
    for delimiter in CANDIDATE_DELIMITERS:
        count = _count_outside_quotes(first_line, delimiter)
        if count > best_count:
            best, best_count = delimiter, count
    return best


def read_rows(text: str) -> List[List[str]]:
    delimiter = guess_delimiter(text)
    reader = csv.reader(io.StringIO(text), delimiter=delimiter, quotechar='"', doublequote=True)
    return [[cell.strip() for cell in row] for row in reader if any(cell.strip() for cell in row)]


def parse_csv(text: str) -> List[Contact]:
    """
    Parse delimited text whose first row holds the headers.

    Args:
        text: Decoded CSV text

    Returns:
        Usable contacts in row order
    """
    rows = read_rows(text)
    if len(rows) < 2:
        logger.info("CSV too short, no data rows found")
        return []
    contacts = rows_to_contacts(rows, "csv")
    logger.info(f"CSV parsed: {len(contacts)} contacts from {len(rows) - 1} rows")
    return contacts

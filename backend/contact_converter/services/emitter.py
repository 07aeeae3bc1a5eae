"""
Tabular output for converted contacts.

Both emitters are pure: the same contact list always yields the same
bytes (XLSX metadata timestamps aside).
"""

import io
from typing import List, Sequence, Tuple

from openpyxl import Workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE

from ..models import CSV_MIME, XLSX_MIME, Contact

HEADER = ["name", "mobile", "email", "passes"]
SHEET_TITLE = "Contacts"
UTF8_BOM = "\ufeff"


def escape_csv(value: str) -> str:
    """Quote a field containing a comma, quote or line break; double inner quotes."""
    if value is None:
        return ""
    value = str(value)
    if any(ch in value for ch in (",", '"', "\n", "\r")):
        return '"' + value.replace('"', '""') + '"'
    return value


def _row(contact: Contact) -> List:
    return [contact.name, contact.mobile, contact.email, contact.passes]


def _sheet_row(contact: Contact) -> List:
    # XML 1.0 forbids most control characters; openpyxl refuses them
    return [ILLEGAL_CHARACTERS_RE.sub("", v) if isinstance(v, str) else v for v in _row(contact)]


def to_csv(contacts: Sequence[Contact], bom: bool = False) -> bytes:
    """
    Render contacts as UTF-8 CSV.

    Args:
        contacts: Contacts in output order
        bom: Prefix a UTF-8 byte-order mark so Excel detects the encoding

    Returns:
        CSV bytes, rows separated by ``\\n`` with no trailing newline
    """
    lines = [",".join(HEADER)]
    for contact in contacts:
        name, mobile, email, passes = _row(contact)
        lines.append(",".join([escape_csv(name), escape_csv(mobile), escape_csv(email), str(passes)]))
    text = "\n".join(lines)
    if bom:
        text = UTF8_BOM + text
    return text.encode("utf-8")


def to_xlsx(contacts: Sequence[Contact]) -> bytes:
    """Render contacts as a single-sheet XLSX workbook."""
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = SHEET_TITLE
    sheet.append(HEADER)
    for contact in contacts:
        sheet.append(_sheet_row(contact))
        for cell in sheet[sheet.max_row]:
            # "=..." names are data, not formulas
            if cell.data_type == "f":
                cell.data_type = "s"

    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def emit(contacts: Sequence[Contact], output_format: str, bom: bool = False) -> Tuple[bytes, str, str]:
    """
    Render in the configured format.

    Returns:
        Tuple of (content bytes, MIME type, file extension)
    """
    if output_format == "xlsx":
        return to_xlsx(contacts), XLSX_MIME, "xlsx"
    return to_csv(contacts, bom=bom), CSV_MIME, "csv"

"""
Spreadsheet parser (XLSX / XLSM) built on openpyxl.

The workbook is opened read-only with cached values only, so formulas are
never evaluated and cell text is taken verbatim.
"""

import io
import logging
import zipfile
from typing import Any, List

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from ...exceptions import FileTooLargeError, ParseError, UnsupportedFormatError
from ...models import Contact
from .headers import rows_to_contacts

logger = logging.getLogger(__name__)

MAX_SPREADSHEET_BYTES = 20 * 1024 * 1024
MAX_WORKSHEETS = 5
MAX_DATA_ROWS = 1000

OLE_SIGNATURE = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"
ZIP_SIGNATURE = b"PK\x03\x04"


def _cell_value(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip()
    return value


def read_first_sheet(data: bytes) -> List[List[Any]]:
    """
    Read the header row plus up to ``MAX_DATA_ROWS`` data rows of the first worksheet.

    Raises:
        FileTooLargeError: file above 20 MiB or more than 5 worksheets
        UnsupportedFormatError: legacy binary .xls workbooks
        ParseError: anything openpyxl cannot open
    """
    if len(data) > MAX_SPREADSHEET_BYTES:
        raise FileTooLargeError("spreadsheet", "file exceeds 20 MB")
    if data.startswith(OLE_SIGNATURE):
        raise UnsupportedFormatError("spreadsheet", "legacy .xls workbooks are not supported, save as .xlsx")
    if not data.startswith(ZIP_SIGNATURE):
        raise ParseError("spreadsheet", "not an XLSX workbook")

    try:
        workbook = load_workbook(io.BytesIO(data), read_only=True, data_only=True, keep_links=False)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as e:
        raise ParseError("spreadsheet", f"cannot open workbook: {e}") from e

    try:
        if len(workbook.sheetnames) > MAX_WORKSHEETS:
            raise FileTooLargeError("spreadsheet", f"workbook has more than {MAX_WORKSHEETS} sheets")
        worksheet = workbook.worksheets[0]
        logger.info(f"Reading sheet: {worksheet.title}")

        rows: List[List[Any]] = []
        for row in worksheet.iter_rows(values_only=True):
            values = [_cell_value(v) for v in row]
            if not any(v not in (None, "") for v in values):
                continue
            rows.append(values)
            if len(rows) > MAX_DATA_ROWS:
                logger.warning(f"Spreadsheet truncated to {MAX_DATA_ROWS} rows")
                break
        return rows
    finally:
        workbook.close()


def parse_spreadsheet(data: bytes) -> List[Contact]:
    """
    Parse the first worksheet of an XLSX workbook.

    Args:
        data: Raw workbook bytes

    Returns:
        Usable contacts in row order
    """
    rows = read_first_sheet(data)
    if len(rows) < 2:
        logger.info("Spreadsheet too short, no data rows found")
        return []
    contacts = rows_to_contacts(rows, "spreadsheet")
    logger.info(f"Spreadsheet parsed: {len(contacts)} contacts from {len(rows) - 1} rows")
    return contacts

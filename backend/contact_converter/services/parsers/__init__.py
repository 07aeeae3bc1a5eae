"""
Contact parsers

Every parser turns one input format into a list of ``Contact`` records
with phones already normalised:

- vcard: .vcf contact cards
- delimited: CSV / TSV / pipe / semicolon separated text
- spreadsheet: XLSX workbooks (first sheet)
- documents: PDF and Word text extraction, fed to the text parser
- text: free-text cascade
- headers: column detection shared by the tabular parsers
"""

from .delimited import parse_csv, decode_text
from .documents import parse_docx, parse_pdf
from .headers import FIELD_SYNONYMS, detect_columns
from .spreadsheet import parse_spreadsheet
from .text import parse_text
from .vcard import parse_vcard

__all__ = [
    "parse_csv",
    "decode_text",
    "parse_docx",
    "parse_pdf",
    "FIELD_SYNONYMS",
    "detect_columns",
    "parse_spreadsheet",
    "parse_text",
    "parse_vcard",
]

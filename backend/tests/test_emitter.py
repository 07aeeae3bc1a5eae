"""
Unit tests for CSV and XLSX output.
"""
import csv
import io

from openpyxl import load_workbook

from contact_converter.models import CSV_MIME, XLSX_MIME, Contact
from contact_converter.services.emitter import HEADER, emit, escape_csv, to_csv, to_xlsx


class TestEscapeCsv:
    """Test escape_csv() function."""

    def test_plain(self):
        assert escape_csv("Jane") == "Jane"

    def test_comma(self):
        assert escape_csv("Doe, Jane") == '"Doe, Jane"'

    def test_quote_doubled(self):
        assert escape_csv('Jane "JD" Doe') == '"Jane ""JD"" Doe"'

    def test_newline(self):
        assert escape_csv("a\nb") == '"a\nb"'

    def test_none(self):
        assert escape_csv(None) == ""


class TestToCsv:
    """Test to_csv() function."""

    def test_exact_bytes(self):
        data = to_csv([Contact(name="John Doe", mobile="+2348123456789")])
        assert data == b"name,mobile,email,passes\nJohn Doe,+2348123456789,,1"

    def test_header_only(self):
        assert to_csv([]) == b"name,mobile,email,passes"

    def test_bom(self):
        assert to_csv([], bom=True).startswith(b"\xef\xbb\xbf")

    def test_passes_written(self):
        assert to_csv([Contact(name="A", passes=3)]).endswith(b",3")

    def test_standard_reader_round_trip(self):
        contacts = [
            Contact(name='Doe, "Jane"', mobile="+2348033445566", email="jane@example.com"),
            Contact(name="Line\nBreak", mobile="+2348123456789"),
        ]
        rows = list(csv.reader(io.StringIO(to_csv(contacts).decode("utf-8"))))
        assert rows[0] == HEADER
        assert rows[1] == ['Doe, "Jane"', "+2348033445566", "jane@example.com", "1"]
        assert rows[2][0] == "Line\nBreak"


class TestToXlsx:
    """Test to_xlsx() function."""

    def _rows(self, data):
        workbook = load_workbook(io.BytesIO(data))
        sheet = workbook.active
        return sheet.title, [list(row) for row in sheet.iter_rows(values_only=True)]

    def test_header_and_rows(self):
        title, rows = self._rows(to_xlsx([Contact(name="Jane", mobile="+2348033445566", passes=2)]))
        assert title == "Contacts"
        assert rows[0] == HEADER
        assert rows[1][:2] == ["Jane", "+2348033445566"]
        assert rows[1][2] in (None, "")
        assert rows[1][3] == 2

    def test_formula_like_name_kept_as_text(self):
        data = to_xlsx([Contact(name="=SUM(A1:A2)", mobile="+2348033445566")])
        workbook = load_workbook(io.BytesIO(data))
        cell = workbook.active["A2"]
        assert cell.data_type == "s"
        assert cell.value == "=SUM(A1:A2)"

    def test_phone_stays_text(self):
        _, rows = self._rows(to_xlsx([Contact(name="A", mobile="+2348033445566")]))
        assert isinstance(rows[1][1], str)

    def test_control_characters_removed(self):
        contacts = [Contact(name="Ada\x0bLovelace", mobile="+2348031234567", email="ada\x01@example.com")]
        _, rows = self._rows(to_xlsx(contacts))
        assert rows[1][:3] == ["AdaLovelace", "+2348031234567", "ada@example.com"]

    def test_control_characters_kept_in_csv(self):
        data = to_csv([Contact(name="Ada\x0bLovelace", mobile="+2348031234567")])
        assert "Ada\x0bLovelace" in data.decode("utf-8")


class TestEmit:
    """Test emit() format selection."""

    def test_csv(self):
        data, mime, ext = emit([Contact(name="A")], "csv")
        assert (mime, ext) == (CSV_MIME, "csv")
        assert data.startswith(b"name,")

    def test_xlsx(self):
        data, mime, ext = emit([Contact(name="A")], "xlsx")
        assert (mime, ext) == (XLSX_MIME, "xlsx")
        assert data.startswith(b"PK")

"""
Unit tests for CSV parsing and column detection.
"""
from contact_converter.services.parsers.delimited import (
    decode_text,
    guess_delimiter,
    parse_csv,
)
from contact_converter.services.parsers.headers import detect_columns


class TestDetectColumns:
    """Test detect_columns() function."""

    def test_exact_headers(self):
        columns = detect_columns(["Name", "Mobile", "Email"])
        assert columns == {"name": 0, "mobile": 1, "email": 2}

    def test_containment_match(self):
        columns = detect_columns(["Full Name", "Phone Number", "Email Address"])
        assert columns == {"name": 0, "mobile": 1, "email": 2}

    def test_company_name_not_taken_as_name(self):
        columns = detect_columns(["Company Name", "Guest", "Phone"])
        assert columns["company"] == 0
        assert columns["name"] == 1

    def test_each_column_claimed_once(self):
        columns = detect_columns(["Phone", "Phone"])
        assert columns == {"mobile": 0}

    def test_unknown_headers(self):
        assert detect_columns(["foo", "bar"]) == {}


class TestGuessDelimiter:
    """Test guess_delimiter() function."""

    def test_comma(self):
        assert guess_delimiter("name,phone\nA,1") == ","

    def test_semicolon(self):
        assert guess_delimiter("name;phone;email\n") == ";"

    def test_tab(self):
        assert guess_delimiter("name\tphone\n") == "\t"

    def test_quoted_commas_ignored(self):
        assert guess_delimiter('"a,b,c";x;y\n') == ";"

    def test_no_delimiter_defaults_to_comma(self):
        assert guess_delimiter("name\n") == ","


class TestParseCsv:
    """Test parse_csv() function."""

    def test_basic_rows(self):
        text = "name,phone,email\nJane Doe,08033445566,jane@example.com\nJohn,08123456789,"
        contacts = parse_csv(text)
        assert len(contacts) == 2
        assert contacts[0].mobile == "+2348033445566"
        assert contacts[0].email == "jane@example.com"

    def test_passes_column(self):
        contacts = parse_csv("name,mobile,passes\nJane,08033445566,3")
        assert contacts[0].passes == 3

    def test_invalid_passes_defaults_to_one(self):
        contacts = parse_csv("name,mobile,passes\nJane,08033445566,lots")
        assert contacts[0].passes == 1

    def test_quoted_field_with_comma(self):
        contacts = parse_csv('name,phone\n"Doe, Jane",08033445566')
        assert contacts[0].name == "Doe, Jane"

    def test_rows_without_name_or_phone_dropped(self):
        contacts = parse_csv("name,phone,email\n,,x@example.com\nJane,,")
        assert [c.name for c in contacts] == ["Jane"]

    def test_headerless_file(self):
        contacts = parse_csv("Jane Doe,08033445566\nJohn Roe,08123456789")
        assert [c.name for c in contacts] == ["Jane Doe", "John Roe"]
        assert contacts[1].mobile == "+2348123456789"

    def test_header_only(self):
        assert parse_csv("name,phone\n") == []

    def test_blank_lines_skipped(self):
        contacts = parse_csv("name,phone\n\nJane,08033445566\n\n")
        assert len(contacts) == 1


class TestDecodeText:
    """Test decode_text() function."""

    def test_utf8_bom_removed(self):
        assert decode_text("\ufeffname".encode("utf-8")) == "name"

    def test_latin1_fallback(self):
        assert decode_text("Renée".encode("latin-1")) == "Renée"

    def test_utf16(self):
        assert decode_text("name,phone".encode("utf-16")) == "name,phone"

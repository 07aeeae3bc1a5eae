"""
Unit tests for the vCard parser.
"""
from contact_converter.services.parsers.vcard import (
    parse_vcard,
    strip_pictographs,
)


class TestParseVcard:
    """Test parse_vcard() function."""

    # Basic cards
    def test_single_card(self):
        raw = "BEGIN:VCARD\nVERSION:3.0\nFN:John Doe\nTEL;TYPE=CELL:08123456789\nEND:VCARD"
        contacts = parse_vcard(raw)
        assert len(contacts) == 1
        assert contacts[0].name == "John Doe"
        assert contacts[0].mobile == "+2348123456789"

    def test_multiple_cards_keep_order(self):
        raw = (
            "BEGIN:VCARD\nFN:Alpha\nTEL:+2348123456789\nEND:VCARD\n"
            "BEGIN:VCARD\nFN:Beta\nTEL:+2347012345678\nEND:VCARD\n"
        )
        assert [c.name for c in parse_vcard(raw)] == ["Alpha", "Beta"]

    def test_crlf_line_endings(self):
        raw = "BEGIN:VCARD\r\nFN:Jane\r\nTEL:08033445566\r\nEND:VCARD\r\n"
        assert parse_vcard(raw)[0].mobile == "+2348033445566"

    def test_email_captured(self):
        raw = "BEGIN:VCARD\nFN:Jane\nEMAIL;TYPE=INTERNET:jane@example.com\nEND:VCARD"
        assert parse_vcard(raw)[0].email == "jane@example.com"

    def test_first_tel_wins(self):
        raw = "BEGIN:VCARD\nFN:Jane\nTEL:08033445566\nTEL:08123456789\nEND:VCARD"
        assert parse_vcard(raw)[0].mobile == "+2348033445566"

    # Name fallbacks
    def test_n_used_when_fn_missing(self):
        raw = "BEGIN:VCARD\nN:Doe;John;;;\nTEL:08123456789\nEND:VCARD"
        assert parse_vcard(raw)[0].name == "John Doe"

    def test_grouped_properties(self):
        raw = "BEGIN:VCARD\nFN:Ada\nitem1.TEL:08123456789\nitem1.X-ABLabel:_$!<Mobile>!$_\nEND:VCARD"
        contact = parse_vcard(raw)[0]
        assert contact.name == "Ada"
        assert contact.mobile == "+2348123456789"

    def test_name_only_card_is_usable(self):
        assert parse_vcard("BEGIN:VCARD\nFN:Just A Name\nEND:VCARD")[0].mobile == ""

    # Encodings
    def test_folded_line(self):
        raw = "BEGIN:VCARD\nFN:Jonathan\n  Smith\nTEL:08123456789\nEND:VCARD"
        assert parse_vcard(raw)[0].name == "Jonathan Smith"

    def test_quoted_printable_name(self):
        raw = (
            "BEGIN:VCARD\nVERSION:2.1\n"
            "FN;CHARSET=UTF-8;ENCODING=QUOTED-PRINTABLE:Ren=C3=A9e\n"
            "TEL;CELL:08123456789\nEND:VCARD"
        )
        assert parse_vcard(raw)[0].name == "Renée"

    def test_escaped_comma(self):
        raw = "BEGIN:VCARD\nFN:Doe\\, John\nTEL:08123456789\nEND:VCARD"
        assert parse_vcard(raw)[0].name == "Doe, John"

    def test_emoji_stripped_from_name(self):
        raw = "BEGIN:VCARD\nFN:Mama \U0001F496\U0001F496\nTEL:08123456789\nEND:VCARD"
        assert parse_vcard(raw)[0].name == "Mama"

    # Damaged input
    def test_missing_end_on_last_card(self):
        raw = "BEGIN:VCARD\nFN:Jane\nTEL:08033445566"
        assert len(parse_vcard(raw)) == 1

    def test_card_without_name_or_phone_dropped(self):
        raw = "BEGIN:VCARD\nEMAIL:x@example.com\nEND:VCARD"
        assert parse_vcard(raw) == []

    def test_empty_input(self):
        assert parse_vcard("") == []


class TestStripPictographs:
    """Test strip_pictographs() function."""

    def test_plain_text_unchanged(self):
        assert strip_pictographs("Jane Doe") == "Jane Doe"

    def test_inner_emoji_collapses_spaces(self):
        assert strip_pictographs("Jane ❤️ Doe") == "Jane Doe"

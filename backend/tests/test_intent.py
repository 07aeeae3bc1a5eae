"""
Unit tests for command parsing.
"""
import pytest

from contact_converter.services.whatsapp.intent import CommandType, parse_command


class TestParseCommand:
    """Test parse_command() function."""

    # Text commands
    @pytest.mark.parametrize("text", ["1", "export", "Convert", "done!"])
    def test_export(self, text):
        assert parse_command(text).type == CommandType.EXPORT

    @pytest.mark.parametrize("text", ["2", "more", "add more", "Add  More"])
    def test_add_more(self, text):
        assert parse_command(text).type == CommandType.ADD_MORE

    @pytest.mark.parametrize("text", ["help", "?", "menu"])
    def test_help(self, text):
        assert parse_command(text).type == CommandType.HELP

    @pytest.mark.parametrize("text", ["reset", "cancel", "start over"])
    def test_reset(self, text):
        assert parse_command(text).type == CommandType.RESET

    def test_status(self):
        assert parse_command("STATUS").type == CommandType.STATUS

    @pytest.mark.parametrize("text", ["hi", "Hello!", "hey"])
    def test_greeting(self, text):
        assert parse_command(text).type == CommandType.GREETING

    # Everything else goes to the contact parser
    def test_contact_text_is_unknown(self):
        command = parse_command("John Doe +2348123456789")
        assert command.type == CommandType.UNKNOWN
        assert command.raw_text == "John Doe +2348123456789"

    def test_number_inside_sentence_is_not_a_command(self):
        assert parse_command("1 more thing").type == CommandType.UNKNOWN

    def test_empty(self):
        assert parse_command("").type == CommandType.UNKNOWN

    def test_none(self):
        assert parse_command(None).type == CommandType.UNKNOWN

    # Buttons
    def test_button_payload_wins(self):
        command = parse_command("whatever", button_payload="export")
        assert command.type == CommandType.EXPORT
        assert command.from_button

    def test_unknown_button(self):
        assert parse_command("", button_payload="mystery").type == CommandType.UNKNOWN

    # Choice digits
    def test_choice(self):
        assert parse_command(" 2 ").choice == "2"
        assert parse_command("status").choice is None

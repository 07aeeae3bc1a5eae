"""
Command Parser for WhatsApp Messages

Maps a text body or a quick-reply button to one of a handful of commands.
Anything that is not a command is handed to the free-text contact parser
by the controller.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class CommandType(str, Enum):
    """Possible user commands"""
    EXPORT = "export"
    ADD_MORE = "add_more"
    HELP = "help"
    RESET = "reset"
    STATUS = "status"
    GREETING = "greeting"
    UNKNOWN = "unknown"


@dataclass
class Command:
    """Parsed command from a user message"""
    type: CommandType
    raw_text: str = ""
    from_button: bool = False

    @property
    def choice(self) -> Optional[str]:
        """'1' / '2' when the user replied with a bare digit."""
        text = self.raw_text.strip()
        return text if text in ("1", "2") else None


# Quick-reply button payloads
BUTTON_COMMANDS = {
    "export": CommandType.EXPORT,
    "convert": CommandType.EXPORT,
    "add_more": CommandType.ADD_MORE,
    "more": CommandType.ADD_MORE,
    "help": CommandType.HELP,
    "reset": CommandType.RESET,
}

TEXT_PATTERNS = [
    (re.compile(r"^(1|export|convert|done)$"), CommandType.EXPORT),
    (re.compile(r"^(2|more|add|add more)$"), CommandType.ADD_MORE),
    (re.compile(r"^(help|\?|menu|commands)$"), CommandType.HELP),
    (re.compile(r"^(reset|cancel|clear|start over)$"), CommandType.RESET),
    (re.compile(r"^status$"), CommandType.STATUS),
    (re.compile(r"^(hi|hello|hey|start)$"), CommandType.GREETING),
]


def parse_command(text: Optional[str], button_payload: Optional[str] = None) -> Command:
    """
    Parse a message into a command.

    Args:
        text: Message body
        button_payload: Quick-reply payload, takes precedence over the body

    Returns:
        Command (type UNKNOWN when the text is not a command)
    """
    if button_payload:
        payload = button_payload.strip().lower()
        command_type = BUTTON_COMMANDS.get(payload, CommandType.UNKNOWN)
        return Command(type=command_type, raw_text=payload, from_button=True)

    raw = (text or "").strip()
    normalized = re.sub(r"[\s!.]+$", "", raw.lower())
    normalized = re.sub(r"\s+", " ", normalized)
    for pattern, command_type in TEXT_PATTERNS:
        if pattern.match(normalized):
            return Command(type=command_type, raw_text=raw)
    return Command(type=CommandType.UNKNOWN, raw_text=raw)

"""
WhatsApp Conversation Services

This package turns Twilio WhatsApp webhooks into staged contacts and,
on request, a downloadable spreadsheet.

Modules:
- session: Staging list, duplicate state and command history per sender
- client: Twilio REST client, TwiML rendering, media fetching
- intent: Command parsing for text bodies and buttons
- duplicates: Duplicate-number grouping and the 1/2 dialogue
- handlers: Conversation controller
- messages: WhatsApp message formatters
"""

from .session import ConversationStore, SessionState, normalize_user_id
from .client import (
    InboundMessage,
    MediaFetcher,
    TwilioMessagingClient,
    build_twiml,
    parse_webhook_form,
)
from .intent import Command, CommandType, parse_command
from .duplicates import apply_choice, partition
from .handlers import ConversationController
from .messages import MessageBuilder

__all__ = [
    # Session
    "ConversationStore",
    "SessionState",
    "normalize_user_id",
    # Client
    "InboundMessage",
    "MediaFetcher",
    "TwilioMessagingClient",
    "build_twiml",
    "parse_webhook_form",
    # Commands
    "Command",
    "CommandType",
    "parse_command",
    # Duplicates
    "apply_choice",
    "partition",
    # Handlers
    "ConversationController",
    # Messages
    "MessageBuilder",
]

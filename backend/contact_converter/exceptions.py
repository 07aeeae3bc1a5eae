"""
Error types shared across the converter.

Parser errors are recovered per attachment by the conversation layer,
transport errors surface from the messaging client, and store errors are
absorbed by the artifact store when it demotes to the in-process backend.
"""

from typing import Optional


class ContactConverterError(Exception):
    """Base class for all converter errors"""


class ParseError(ContactConverterError):
    """Raised when a parser cannot decode its input"""
    def __init__(self, parser: str, reason: str):
        super().__init__(f"{parser}: {reason}")
        self.parser = parser
        self.reason = reason


class UnsupportedFormatError(ParseError):
    """Raised for inputs no parser can decode (legacy .xls, encrypted PDF)"""


class FileTooLargeError(ParseError):
    """Raised when an input exceeds the size or worksheet caps"""


class MediaFetchError(ContactConverterError):
    """Exception raised when inbound media cannot be downloaded"""
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ForbiddenMediaHostError(MediaFetchError):
    """Raised for media URLs outside the provider's domain set"""


class MessagingError(ContactConverterError):
    """Exception raised for messaging provider API errors"""
    def __init__(self, message: str, status_code: Optional[int] = None, code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
        self.code = code


class MalformedWebhookError(ContactConverterError):
    """Raised when an inbound webhook payload cannot be interpreted"""


class StoreUnavailableError(ContactConverterError):
    """Raised by the remote backend when the key-value service is unreachable"""

"""
Twilio WhatsApp Client

Outbound messages go through Twilio's REST API (freeform text, text with
one media URL, or a pre-approved Content template). Inbound webhooks are
form-encoded; replies to them are TwiML.

Inbound media is fetched with httpx from Twilio's own hosts only. Every
redirect hop is checked against the allow-list before it is followed,
and the account credentials are only ever sent to ``*.twilio.com``.
"""

import asyncio
import functools
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import urljoin, urlparse

import httpx
from twilio.base.exceptions import TwilioRestException
from twilio.request_validator import RequestValidator
from twilio.rest import Client
from twilio.twiml.messaging_response import MessagingResponse

from ...exceptions import (
    ForbiddenMediaHostError,
    MalformedWebhookError,
    MediaFetchError,
    MessagingError,
)
from .session import CHANNEL_PREFIX, normalize_user_id

logger = logging.getLogger(__name__)

MAX_MEDIA_BYTES = 20 * 1024 * 1024
MEDIA_TIMEOUT_SECONDS = 15.0
MAX_REDIRECTS = 5
CREDENTIAL_HOST_SUFFIX = "twilio.com"

_FILENAME_PATTERN = re.compile(r"filename\*?=(?:UTF-8'')?\"?([^\";]+)\"?", re.IGNORECASE)


# =========================================================================
# Inbound webhook
# =========================================================================

@dataclass
class MediaItem:
    url: str
    content_type: str = ""


@dataclass
class InboundMessage:
    """One webhook delivery, reduced to what the converter needs."""
    sender: str
    body: str = ""
    media: List[MediaItem] = field(default_factory=list)
    button_payload: Optional[str] = None
    button_text: Optional[str] = None
    message_sid: Optional[str] = None

    @property
    def user(self) -> str:
        return normalize_user_id(self.sender)

    @property
    def has_media(self) -> bool:
        return bool(self.media)


def parse_webhook_form(form: Mapping[str, Any]) -> InboundMessage:
    """
    Parse Twilio's form-encoded webhook body.

    Args:
        form: Form fields (From, Body, NumMedia, MediaUrl0, ...)

    Returns:
        InboundMessage

    Raises:
        MalformedWebhookError: missing sender or unreadable media count
    """
    sender = (form.get("From") or "").strip()
    if not sender:
        raise MalformedWebhookError("webhook has no From field")

    raw_count = str(form.get("NumMedia") or "0").strip()
    try:
        num_media = int(raw_count)
    except ValueError as e:
        raise MalformedWebhookError(f"invalid NumMedia: {raw_count!r}") from e
    if num_media < 0:
        raise MalformedWebhookError(f"invalid NumMedia: {num_media}")

    media = []
    for i in range(num_media):
        url = (form.get(f"MediaUrl{i}") or "").strip()
        if not url:
            logger.warning(f"MediaUrl{i} missing, skipping attachment")
            continue
        media.append(MediaItem(url=url, content_type=(form.get(f"MediaContentType{i}") or "").strip()))

    return InboundMessage(
        sender=sender,
        body=form.get("Body") or "",
        media=media,
        button_payload=(form.get("ButtonPayload") or None),
        button_text=(form.get("ButtonText") or None),
        message_sid=form.get("MessageSid") or None,
    )


def verify_signature(auth_token: str, url: str, params: Mapping[str, Any], signature: Optional[str]) -> bool:
    """
    Check X-Twilio-Signature for a webhook request.

    Args:
        auth_token: Twilio auth token
        url: Full public URL Twilio posted to
        params: Form fields as received
        signature: X-Twilio-Signature header value
    """
    if not signature:
        return False
    validator = RequestValidator(auth_token)
    return validator.validate(url, dict(params), signature)


def build_twiml(replies: List[Dict[str, Any]]) -> str:
    """Render reply dicts from MessageBuilder as a TwiML document."""
    response = MessagingResponse()
    for reply in replies:
        if reply.get("type") not in ("text", "media") or not reply.get("body"):
            continue
        message = response.message(reply["body"])
        if reply.get("media_url"):
            message.media(reply["media_url"])
    return str(response)


def empty_twiml() -> str:
    return str(MessagingResponse())


# =========================================================================
# Outbound messages
# =========================================================================

def _channel_address(number: str) -> str:
    number = number.strip()
    if number.lower().startswith(CHANNEL_PREFIX):
        return number
    return f"{CHANNEL_PREFIX}{number}"


class TwilioMessagingClient:
    """
    Sends WhatsApp messages through Twilio's REST API.

    The twilio library is synchronous, so every call runs in the default
    executor.

    Usage:
        client = TwilioMessagingClient(sid, token, "whatsapp:+14155238886")
        await client.send_text("+2348123456789", "Hello!")
    """

    def __init__(self, account_sid: str, auth_token: str, from_number: str, client: Optional[Client] = None):
        self.from_number = _channel_address(from_number) if from_number else ""
        self._client = client
        if client is None and account_sid and auth_token:
            self._client = Client(account_sid, auth_token)
        if self._client is None:
            logger.warning("Twilio credentials not configured. Set TWILIO_ACCOUNT_SID and TWILIO_AUTH_TOKEN")

    async def _create(self, **kwargs) -> str:
        """
        Create a message and return its SID.

        Raises:
            MessagingError: credentials missing or Twilio rejected the request
        """
        if self._client is None or not self.from_number:
            raise MessagingError("Twilio credentials not configured")

        loop = asyncio.get_running_loop()
        create = functools.partial(self._client.messages.create, from_=self.from_number, **kwargs)
        try:
            message = await loop.run_in_executor(None, create)
        except TwilioRestException as e:
            logger.error(f"Twilio API error {e.code}: {e.msg}")
            raise MessagingError(str(e.msg), status_code=e.status, code=e.code) from e
        return message.sid

    async def send_text(self, to: str, body: str) -> str:
        return await self._create(to=_channel_address(to), body=body)

    async def send_media(self, to: str, body: str, media_url: str) -> str:
        return await self._create(to=_channel_address(to), body=body, media_url=[media_url])

    async def send_template(self, to: str, template_sid: str, variables: Dict[str, str]) -> str:
        """
        Send a pre-approved Content template.

        Args:
            to: Recipient number
            template_sid: Content SID (HX...)
            variables: Positional variables, e.g. {"1": "12", "2": "<artifact id>"}
        """
        return await self._create(
            to=_channel_address(to),
            content_sid=template_sid,
            content_variables=json.dumps(variables),
        )


# =========================================================================
# Inbound media
# =========================================================================

@dataclass
class FetchedMedia:
    data: bytes
    content_type: str = ""
    filename: Optional[str] = None


def filename_from_disposition(header: Optional[str]) -> Optional[str]:
    if not header:
        return None
    match = _FILENAME_PATTERN.search(header)
    return match.group(1).strip() if match else None


class MediaFetcher:
    """
    Downloads inbound attachments from Twilio.

    Args:
        account_sid: Twilio account SID (basic-auth user)
        auth_token: Twilio auth token (basic-auth password)
        allowed_hosts: Hostnames (and their subdomains) media may be fetched from
        client: Optional pre-built httpx.AsyncClient
    """

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        allowed_hosts: List[str],
        client: Optional[httpx.AsyncClient] = None,
        max_bytes: int = MAX_MEDIA_BYTES,
    ):
        self._auth = (account_sid, auth_token) if account_sid and auth_token else None
        self.allowed_hosts = [h.lower().strip() for h in allowed_hosts if h.strip()]
        self.max_bytes = max_bytes
        self._client = client or httpx.AsyncClient(timeout=MEDIA_TIMEOUT_SECONDS, follow_redirects=False)

    def is_allowed(self, url: str) -> bool:
        parsed = urlparse(url)
        if parsed.scheme != "https" or not parsed.hostname:
            return False
        host = parsed.hostname.lower()
        return any(host == allowed or host.endswith(f".{allowed}") for allowed in self.allowed_hosts)

    def _auth_for(self, url: str) -> Optional[httpx.BasicAuth]:
        host = (urlparse(url).hostname or "").lower()
        if self._auth and (host == CREDENTIAL_HOST_SUFFIX or host.endswith(f".{CREDENTIAL_HOST_SUFFIX}")):
            return httpx.BasicAuth(*self._auth)
        return None

    async def fetch(self, url: str) -> FetchedMedia:
        """
        Fetch one attachment.

        Raises:
            ForbiddenMediaHostError: URL (or a redirect target) outside the allow-list
            MediaFetchError: HTTP error, timeout, too many redirects or body over the cap
        """
        for _ in range(MAX_REDIRECTS + 1):
            if not self.is_allowed(url):
                raise ForbiddenMediaHostError(f"media host not allowed: {urlparse(url).hostname}")
            try:
                async with self._client.stream("GET", url, auth=self._auth_for(url)) as response:
                    if response.is_redirect:
                        location = response.headers.get("location")
                        if not location:
                            raise MediaFetchError("redirect without location", status_code=response.status_code)
                        url = urljoin(url, location)
                        continue
                    if response.status_code >= 400:
                        raise MediaFetchError(f"media download failed ({response.status_code})", status_code=response.status_code)

                    declared = response.headers.get("content-length")
                    if declared and declared.isdigit() and int(declared) > self.max_bytes:
                        raise MediaFetchError("file exceeds 20 MB")

                    buffer = bytearray()
                    async for chunk in response.aiter_bytes():
                        buffer.extend(chunk)
                        if len(buffer) > self.max_bytes:
                            raise MediaFetchError("file exceeds 20 MB")

                    return FetchedMedia(
                        data=bytes(buffer),
                        content_type=response.headers.get("content-type", "").split(";")[0].strip(),
                        filename=filename_from_disposition(response.headers.get("content-disposition")),
                    )
            except httpx.TimeoutException as e:
                raise MediaFetchError("media download timed out") from e
            except httpx.HTTPError as e:
                raise MediaFetchError(f"media download failed: {type(e).__name__}") from e

        raise MediaFetchError("too many redirects")

    async def aclose(self) -> None:
        await self._client.aclose()

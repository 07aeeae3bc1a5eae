"""
Shared fixtures: an in-memory store on a fake clock, fake Twilio services
and an application context wired around them.
"""
import re
from typing import Dict, List, Optional, Union

import pytest
from fastapi.testclient import TestClient

from contact_converter.config import Settings
from contact_converter.context import AppContext
from contact_converter.exceptions import MessagingError
from contact_converter.main import create_app
from contact_converter.services.store import ArtifactStore, MemoryBackend
from contact_converter.services.whatsapp.client import FetchedMedia, InboundMessage, MediaItem

SENDER = "whatsapp:+2348000000001"

_DOWNLOAD_ID = re.compile(r"/(?:download|files)/([0-9a-f-]{36})")


class FakeClock:
    """Monotonic clock the tests move by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeMessagingClient:
    """Records outbound messages instead of calling Twilio."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: List[Dict] = []

    async def _record(self, **kwargs) -> str:
        if self.fail:
            raise MessagingError("template not approved", status_code=400, code=63016)
        self.sent.append(kwargs)
        return f"SM{len(self.sent):032d}"

    async def send_text(self, to: str, body: str) -> str:
        return await self._record(kind="text", to=to, body=body)

    async def send_media(self, to: str, body: str, media_url: str) -> str:
        return await self._record(kind="media", to=to, body=body, media_url=media_url)

    async def send_template(self, to: str, template_sid: str, variables: Dict[str, str]) -> str:
        return await self._record(kind="template", to=to, template_sid=template_sid, variables=variables)


class FakeMediaFetcher:
    """Serves attachments from a url -> FetchedMedia (or exception) map."""

    def __init__(self, files: Optional[Dict[str, Union[FetchedMedia, Exception]]] = None):
        self.files = files or {}
        self.requested: List[str] = []

    async def fetch(self, url: str) -> FetchedMedia:
        self.requested.append(url)
        result = self.files[url]
        if isinstance(result, Exception):
            raise result
        return result


def make_message(body: str = "", media: Optional[List[str]] = None, sender: str = SENDER, **kwargs) -> InboundMessage:
    return InboundMessage(
        sender=sender,
        body=body,
        media=[MediaItem(url=url) for url in (media or [])],
        **kwargs,
    )


def artifact_id_from(reply: Dict) -> str:
    """Pull the artifact id out of a download-link or media reply."""
    text = reply.get("media_url") or reply["body"]
    match = _DOWNLOAD_ID.search(text)
    assert match, f"no artifact id in {text!r}"
    return match.group(1)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return ArtifactStore(memory=MemoryBackend(clock=clock))


@pytest.fixture
def settings():
    return Settings(
        public_base_url="https://bot.example.com/",
        output_format="csv",
        csv_bom=False,
    )


@pytest.fixture
def messaging():
    return FakeMessagingClient()


@pytest.fixture
def fetcher():
    return FakeMediaFetcher()


@pytest.fixture
def make_context(store, messaging, fetcher):
    def _make(settings: Settings) -> AppContext:
        return AppContext.build(settings, store, messaging, fetcher)
    return _make


@pytest.fixture
def ctx(make_context, settings):
    return make_context(settings)


@pytest.fixture
def client(ctx):
    return TestClient(create_app(context=ctx))

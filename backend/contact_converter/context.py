"""
Application context: every long-lived resource the routers need.

Built once in the FastAPI lifespan and kept on ``app.state.ctx``. Tests
build their own with an in-memory store and fake messaging.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Optional

from fastapi import Request

from .config import Settings
from .services.artifacts import ArtifactService
from .services.store import ArtifactStore, run_sweeper
from .services.whatsapp.client import MediaFetcher, TwilioMessagingClient
from .services.whatsapp.handlers import ConversationController
from .services.whatsapp.session import ConversationStore

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    settings: Settings
    store: ArtifactStore
    conversations: ConversationStore
    artifacts: ArtifactService
    messaging: Any
    fetcher: Any
    controller: ConversationController
    started_at: float = field(default_factory=time.monotonic)
    sweeper: Optional[asyncio.Task] = None

    @classmethod
    def build(cls, settings: Settings, store: ArtifactStore, messaging, fetcher) -> "AppContext":
        """Wire the services around an already-created store."""
        conversations = ConversationStore(store)
        artifacts = ArtifactService(store, settings)
        controller = ConversationController(settings, conversations, artifacts, messaging, fetcher)
        return cls(
            settings=settings,
            store=store,
            conversations=conversations,
            artifacts=artifacts,
            messaging=messaging,
            fetcher=fetcher,
            controller=controller,
        )

    @classmethod
    async def create(cls, settings: Settings) -> "AppContext":
        """Connect the store and build the Twilio-backed services."""
        store = await ArtifactStore.create(settings.redis_url)
        messaging = TwilioMessagingClient(
            settings.twilio_account_sid,
            settings.twilio_auth_token,
            settings.twilio_whatsapp_from,
        )
        fetcher = MediaFetcher(
            settings.twilio_account_sid,
            settings.twilio_auth_token,
            settings.media_allowed_hosts,
        )
        ctx = cls.build(settings, store, messaging, fetcher)
        ctx.sweeper = asyncio.create_task(run_sweeper(store))
        logger.info(f"Application context ready (store={store.backend_name}, format={settings.output_format})")
        return ctx

    @property
    def uptime_seconds(self) -> float:
        return time.monotonic() - self.started_at

    async def aclose(self) -> None:
        if self.sweeper is not None:
            self.sweeper.cancel()
            try:
                await self.sweeper
            except asyncio.CancelledError:
                pass
            self.sweeper = None
        if hasattr(self.fetcher, "aclose"):
            await self.fetcher.aclose()
        await self.store.close()
        logger.info("Application context closed")


def get_context(request: Request) -> AppContext:
    """FastAPI dependency returning the running AppContext."""
    return request.app.state.ctx

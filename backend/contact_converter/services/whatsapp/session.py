"""
Per-user conversation state for the WhatsApp converter.

Manages, per sender:
- The staging list of contacts awaiting conversion (``contacts:<user>``)
- The live duplicate-resolution dialogue (``dup:<user>``)
- A short command history (``history:<user>``)
- Delivered message SIDs (``seen:<sid>``) so redeliveries are ignored

Webhook deliveries for one sender arrive one after another (a user cannot
type faster than the replies come back), so the read-modify-write cycles
below take no lock. Running several workers behind a load balancer that
may redeliver concurrently would need a ``lock:<user>`` mutex around each
handler.
"""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from ...models import Contact, DuplicateState
from ..store import ArtifactStore

logger = logging.getLogger(__name__)

# Configuration
STAGING_TTL_SECONDS = 2 * 60 * 60
DUP_TTL_SECONDS = 60
HISTORY_TTL_SECONDS = 2 * 60 * 60
HISTORY_LIMIT = 10
MAX_STAGED_CONTACTS = 250
SEEN_TTL_SECONDS = 10 * 60
SEEN_PREFIX = "seen:"

CHANNEL_PREFIX = "whatsapp:"


class SessionState(str, Enum):
    """Possible conversation states"""
    IDLE = "idle"
    STAGING = "staging"
    RESOLVING = "resolving"


def normalize_user_id(user: str) -> str:
    """Strip the channel marker: 'whatsapp:+234...' -> '+234...'"""
    user = (user or "").strip()
    if user.lower().startswith(CHANNEL_PREFIX):
        user = user[len(CHANNEL_PREFIX):]
    return user.strip()


def _contacts_key(user: str) -> str:
    return f"contacts:{normalize_user_id(user)}"


def _dup_key(user: str) -> str:
    return f"dup:{normalize_user_id(user)}"


def _history_key(user: str) -> str:
    return f"history:{normalize_user_id(user)}"


class ConversationStore:
    """
    Session operations on top of the shared ArtifactStore.
    """

    def __init__(self, store: ArtifactStore):
        self.store = store

    # =========================================================================
    # Staging list
    # =========================================================================

    async def get_contacts(self, user: str) -> List[Contact]:
        data = await self.store.get(_contacts_key(user)) or []
        return [Contact.from_dict(c) for c in data]

    async def append_contacts(self, user: str, contacts: List[Contact]) -> Tuple[int, int]:
        """
        Append contacts to the user's staging list and refresh its TTL.

        Args:
            user: Sender identifier
            contacts: Usable contacts to stage

        Returns:
            Tuple of (new staging total, contacts actually kept). The total
            never exceeds MAX_STAGED_CONTACTS; anything past it is dropped.
        """
        current = await self.get_contacts(user)
        merged = current + list(contacts)
        if len(merged) > MAX_STAGED_CONTACTS:
            logger.warning(f"Staging list truncated from {len(merged)} to {MAX_STAGED_CONTACTS}")
            merged = merged[:MAX_STAGED_CONTACTS]
        await self.store.set(_contacts_key(user), [c.to_dict() for c in merged], STAGING_TTL_SECONDS)
        return len(merged), len(merged) - len(current)

    async def pop_contacts(self, user: str) -> List[Contact]:
        """Read and delete the staging list."""
        contacts = await self.get_contacts(user)
        await self.store.delete(_contacts_key(user))
        return contacts

    async def count_contacts(self, user: str) -> int:
        return len(await self.get_contacts(user))

    # =========================================================================
    # Duplicate resolution
    # =========================================================================

    async def set_dup_state(self, user: str, state: DuplicateState, ttl_seconds: int = DUP_TTL_SECONDS) -> None:
        await self.store.set(_dup_key(user), state.to_dict(), ttl_seconds)

    async def get_dup_state(self, user: str) -> Optional[DuplicateState]:
        data = await self.store.get(_dup_key(user))
        if not data:
            return None
        try:
            return DuplicateState.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Discarding corrupt duplicate state: {e}")
            await self.clear_dup_state(user)
            return None

    async def clear_dup_state(self, user: str) -> None:
        await self.store.delete(_dup_key(user))

    # =========================================================================
    # State and history
    # =========================================================================

    async def get_state(self, user: str) -> SessionState:
        """Derive the conversation state from what is stored."""
        if await self.get_dup_state(user) is not None:
            return SessionState.RESOLVING
        if await self.count_contacts(user) > 0:
            return SessionState.STAGING
        return SessionState.IDLE

    async def record_command(self, user: str, command: str) -> None:
        """Keep the last HISTORY_LIMIT commands for the user."""
        history = await self.get_history(user)
        history.append({
            "command": command,
            "at": datetime.now(timezone.utc).isoformat(),
        })
        await self.store.set(_history_key(user), history[-HISTORY_LIMIT:], HISTORY_TTL_SECONDS)

    async def get_history(self, user: str) -> List[Dict[str, Any]]:
        return await self.store.get(_history_key(user)) or []

    async def mark_seen(self, message_sid: str) -> bool:
        """
        Remember a delivered message SID.

        Returns:
            False when the SID was already seen (a webhook redelivery)
        """
        key = f"{SEEN_PREFIX}{message_sid}"
        if await self.store.get(key):
            return False
        await self.store.set(key, 1, SEEN_TTL_SECONDS)
        return True

    async def clear_all(self, user: str) -> None:
        """Drop staging and duplicate state (the ``reset`` command)."""
        await self.store.delete(_contacts_key(user))
        await self.clear_dup_state(user)
        logger.info("Cleared conversation state")

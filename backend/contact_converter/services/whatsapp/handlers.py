"""
WhatsApp Conversation Controller

Turns one inbound webhook delivery into zero or more replies.

Per sender the conversation is in one of three states, derived from
what is stored:

- IDLE: nothing staged
- STAGING: contacts staged, waiting for "1" (convert) or "2" (add more)
- RESOLVING: a duplicate-number dialogue is live

Every handler commits its storage changes before returning, so the reply
never describes state that was not saved.
"""

import asyncio
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from ...config import Settings
from ...exceptions import ForbiddenMediaHostError, MediaFetchError, MessagingError
from ...logging_config import log_action, user_id_var
from ...models import Contact, DuplicateState
from ..artifacts import ArtifactService
from ..format_router import PARSE_TIMEOUT_SECONDS, parse_attachment
from ..parsers import parse_text
from .client import InboundMessage, MediaItem
from .duplicates import apply_choice, parse_choice, partition
from .intent import Command, CommandType, parse_command
from .messages import MessageBuilder
from .session import ConversationStore, SessionState, normalize_user_id

logger = logging.getLogger(__name__)

MAX_PARALLEL_ATTACHMENTS = 4
TRUNCATION_THRESHOLD = 1500
CONTACT_HINT = re.compile(r"\+234\d{10}|\b(?:Mr|Mrs|Miss|Dr|Prof)\b", re.IGNORECASE)

Reply = Dict[str, Any]


class ConversationController:
    """
    Handle inbound WhatsApp events for the contact converter.

    Orchestrates:
    - Access control
    - Attachment fetching and parsing
    - Staging and duplicate resolution
    - Artifact delivery (template, media or link)
    """

    def __init__(
        self,
        settings: Settings,
        conversations: ConversationStore,
        artifacts: ArtifactService,
        messaging,
        fetcher,
        attachment_timeout: float = PARSE_TIMEOUT_SECONDS,
    ):
        self.settings = settings
        self.conversations = conversations
        self.artifacts = artifacts
        self.messaging = messaging
        self.fetcher = fetcher
        self.attachment_timeout = attachment_timeout
        self._allowed = {normalize_user_id(n) for n in settings.allowed_numbers}

    def is_allowed(self, user: str) -> bool:
        """An empty allow-list lets everyone in."""
        return not self._allowed or normalize_user_id(user) in self._allowed

    async def handle(self, message: InboundMessage) -> List[Reply]:
        """
        Main entry point for one webhook delivery.

        Args:
            message: Parsed inbound message

        Returns:
            Replies for the synchronous TwiML response (possibly empty)
        """
        user = message.user
        user_id_var.set(user)

        if not self.is_allowed(user):
            log_action(logger, "warning", "unauthorised_sender", "Ignoring message from sender outside allow-list")
            return []

        try:
            if message.message_sid and not await self.conversations.mark_seen(message.message_sid):
                logger.info(f"Skipping redelivered message {message.message_sid}")
                return []

            dup_state = await self.conversations.get_dup_state(user)
            if dup_state is not None:
                return await self._handle_resolving(user, message, dup_state)

            if message.has_media:
                return await self._handle_media(user, message.media)

            command = parse_command(message.body, message.button_payload)
            await self.conversations.record_command(user, command.type.value)
            return await self._route_command(user, command, message.body)

        except Exception as e:
            logger.error(f"Error handling message: {e}", exc_info=True)
            return [MessageBuilder.error(None if self.settings.is_production else type(e).__name__)]

    async def _route_command(self, user: str, command: Command, body: str) -> List[Reply]:
        """Route a command to its handler."""
        handlers = {
            CommandType.EXPORT: lambda: self._handle_export(user),
            CommandType.ADD_MORE: lambda: self._handle_add_more(user),
            CommandType.HELP: lambda: self._handle_help(),
            CommandType.RESET: lambda: self._handle_reset(user),
            CommandType.STATUS: lambda: self._handle_status(user),
            CommandType.GREETING: lambda: self._handle_greeting(),
        }
        handler = handlers.get(command.type, lambda: self._handle_text(user, body))
        return await handler()

    # =========================================================================
    # Staging
    # =========================================================================

    async def _handle_media(self, user: str, media: List[MediaItem]) -> List[Reply]:
        """Fetch and parse every attachment concurrently, then stage the results."""
        semaphore = asyncio.Semaphore(MAX_PARALLEL_ATTACHMENTS)

        async def bounded(index: int, item: MediaItem):
            async with semaphore:
                return await self._process_attachment(index, item)

        results = await asyncio.gather(*(bounded(i, item) for i, item in enumerate(media)))

        contacts: List[Contact] = []
        failures: List[str] = []
        for found, failure in results:
            contacts.extend(found)
            if failure:
                failures.append(failure)

        await self.conversations.record_command(user, "media")
        if contacts:
            total, kept = await self.conversations.append_contacts(user, contacts)
            log_action(
                logger, "info", "contacts_staged",
                f"Staged {kept} contacts from {len(media)} attachments",
                added=kept, dropped=len(contacts) - kept, total=total, failed=len(failures),
            )
        else:
            total, kept = await self.conversations.count_contacts(user), 0

        if total == 0:
            return [MessageBuilder.nothing_found(failures)]
        return [MessageBuilder.staged(total, added=kept, failures=failures, dropped=len(contacts) - kept)]

    async def _process_attachment(self, index: int, item: MediaItem) -> Tuple[List[Contact], Optional[str]]:
        """
        Fetch and parse one attachment, never raising.

        Returns:
            Tuple of (usable contacts, failure reason or None)
        """
        label = f"file {index + 1}"
        try:
            result = await asyncio.wait_for(self._fetch_and_parse(item), timeout=self.attachment_timeout)
        except asyncio.TimeoutError:
            return [], self._failure(label, "took too long to read", index)
        except ForbiddenMediaHostError as e:
            return [], self._failure(label, "not downloadable", index, e)
        except MediaFetchError as e:
            return [], self._failure(label, str(e), index, e)

        if result.error:
            return [], self._failure(label, result.error, index)
        if not result.contacts:
            return [], self._failure(label, "no contacts found", index)
        logger.info(f"{label}: {len(result.contacts)} contacts via {result.parser}")
        return result.contacts, None

    async def _fetch_and_parse(self, item: MediaItem):
        fetched = await self.fetcher.fetch(item.url)
        content_type = item.content_type or fetched.content_type
        return await parse_attachment(fetched.data, content_type, fetched.filename, timeout=self.attachment_timeout)

    def _failure(self, label: str, reason: str, index: int, error: Optional[Exception] = None) -> str:
        log_action(
            logger, "warning", "attachment_failed",
            f"Attachment {index + 1} failed: {reason}",
            index=index, error_type=type(error).__name__ if error else None,
        )
        if self.settings.is_production:
            reason = "could not be downloaded" if error is not None else "could not be read"
        return f"{label}: {reason}"

    async def _handle_text(self, user: str, body: str) -> List[Reply]:
        """Free text that is not a command: try to read contacts out of it."""
        contacts = await asyncio.to_thread(parse_text, body)
        if not contacts:
            state = await self.conversations.get_state(user)
            if state == SessionState.STAGING:
                return [MessageBuilder.status(await self.conversations.count_contacts(user))]
            return [MessageBuilder.welcome()]

        total, kept = await self.conversations.append_contacts(user, contacts)
        log_action(
            logger, "info", "contacts_staged",
            f"Staged {kept} contacts from text",
            added=kept, dropped=len(contacts) - kept, total=total, source="text",
        )
        replies = [MessageBuilder.staged(total, added=kept, dropped=len(contacts) - kept)]
        if len(body) >= TRUNCATION_THRESHOLD and CONTACT_HINT.search(body):
            replies.append(MessageBuilder.truncation_advice(len(contacts)))
        return replies

    async def _handle_add_more(self, user: str) -> List[Reply]:
        if await self.conversations.count_contacts(user) == 0:
            return [MessageBuilder.welcome()]
        return [MessageBuilder.send_more()]

    async def _handle_status(self, user: str) -> List[Reply]:
        return [MessageBuilder.status(await self.conversations.count_contacts(user))]

    async def _handle_reset(self, user: str) -> List[Reply]:
        await self.conversations.clear_all(user)
        return [MessageBuilder.reset_done()]

    async def _handle_help(self) -> List[Reply]:
        return [MessageBuilder.help()]

    async def _handle_greeting(self) -> List[Reply]:
        return [MessageBuilder.welcome()]

    # =========================================================================
    # Conversion and duplicate resolution
    # =========================================================================

    async def _handle_export(self, user: str) -> List[Reply]:
        staged = await self.conversations.pop_contacts(user)
        if not staged:
            return [MessageBuilder.welcome()]

        state = partition(staged)
        if not state.duplicates:
            return await self._deliver(user, state.uniques)

        await self.conversations.set_dup_state(user, state)
        log_action(
            logger, "info", "duplicates_detected",
            f"{len(state.duplicates)} duplicate groups need a decision",
            groups=len(state.duplicates), uniques=len(state.uniques),
        )
        return [self._prompt(state)]

    async def _handle_resolving(self, user: str, message: InboundMessage, state: DuplicateState) -> List[Reply]:
        command = parse_command(message.body, message.button_payload)
        await self.conversations.record_command(user, command.type.value)

        if command.type == CommandType.RESET:
            return await self._handle_reset(user)

        choice = parse_choice(message.body) if not message.has_media else None
        if choice is None:
            return [self._prompt(state)]

        apply_choice(state, choice)
        if not state.is_complete:
            await self.conversations.set_dup_state(user, state)
            return [self._prompt(state)]

        await self.conversations.clear_dup_state(user)
        return await self._deliver(user, state.final_contacts())

    def _prompt(self, state: DuplicateState) -> Reply:
        return MessageBuilder.duplicate_prompt(state.current_group, state.cursor, len(state.duplicates))

    # =========================================================================
    # Delivery
    # =========================================================================

    async def _deliver(self, user: str, contacts: List[Contact]) -> List[Reply]:
        """
        Emit the artifact and pick how to hand it over.

        Order: template (when configured), then media for XLSX, then a
        download link. A failed template send falls back to the link. If
        the artifact cannot be built or stored, the contacts go back on the
        staging list so "1" can be sent again.
        """
        try:
            return await self._deliver_artifact(user, contacts)
        except Exception:
            await self.conversations.append_contacts(user, contacts)
            logger.warning(f"Delivery failed, restored {len(contacts)} contacts to staging")
            raise

    async def _deliver_artifact(self, user: str, contacts: List[Contact]) -> List[Reply]:
        settings = self.settings

        if settings.template_enabled:
            artifact_id, artifact = await self.artifacts.create(user, contacts, with_password=False)
            try:
                await self.messaging.send_template(
                    user,
                    settings.template_sid,
                    {"1": str(artifact.contact_count), "2": artifact_id},
                )
                return [MessageBuilder.template_sent(artifact.contact_count)]
            except MessagingError as e:
                log_action(
                    logger, "warning", "template_fallback",
                    f"Template send failed, replying with link: {e}",
                    code=e.code, status_code=e.status_code,
                )
                return [self._link_reply(artifact_id, artifact.contact_count, None, artifact.extension)]

        if settings.output_format == "xlsx":
            artifact_id, artifact = await self.artifacts.create(user, contacts, with_password=False)
            return [MessageBuilder.file_attached(self.artifacts.media_url(artifact_id), artifact.contact_count)]

        artifact_id, artifact = await self.artifacts.create(user, contacts)
        return [self._link_reply(artifact_id, artifact.contact_count, artifact.password, artifact.extension)]

    def _link_reply(self, artifact_id: str, count: int, password: Optional[str], extension: str) -> Reply:
        url = self.artifacts.download_url(artifact_id)
        logger.info(f"Download link issued ({extension})")
        return MessageBuilder.download_link(url, count, self.settings.file_ttl_seconds // 60, password)

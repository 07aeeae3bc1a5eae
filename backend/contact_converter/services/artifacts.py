"""
Emitted spreadsheets, stored for download under fresh identifiers.
"""

import logging
import secrets
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from ..config import Settings
from ..logging_config import log_action
from ..models import Artifact, Contact
from .emitter import emit
from .store import ArtifactStore

logger = logging.getLogger(__name__)

FILE_PREFIX = "file:"


def artifact_key(artifact_id: str) -> str:
    return f"{FILE_PREFIX}{artifact_id}"


def new_artifact_id() -> str:
    return str(uuid.uuid4())


def new_password() -> str:
    """Six random digits."""
    return f"{secrets.randbelow(10 ** 6):06d}"


def is_artifact_id(value: str) -> bool:
    """True for a canonical version-4 UUID string."""
    try:
        parsed = uuid.UUID(value)
    except (ValueError, AttributeError, TypeError):
        return False
    return parsed.version == 4 and str(parsed) == value.lower()


class ArtifactService:
    """
    Builds, stores and loads download artifacts.

    Args:
        store: Shared key-value store
        settings: Output format, TTL and password policy
    """

    def __init__(self, store: ArtifactStore, settings: Settings):
        self.store = store
        self.settings = settings

    async def create(
        self,
        owner: str,
        contacts: List[Contact],
        output_format: Optional[str] = None,
        with_password: Optional[bool] = None,
    ):
        """
        Emit and store an artifact.

        Args:
            owner: Sender the file belongs to
            contacts: Final contact list
            output_format: "csv" or "xlsx"; defaults to the configured format
            with_password: Override the configured password policy

        Returns:
            Tuple of (artifact id, Artifact)
        """
        output_format = output_format or self.settings.output_format
        if with_password is None:
            with_password = self.settings.file_password

        content, content_type, extension = emit(contacts, output_format, bom=self.settings.csv_bom)
        stamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
        artifact = Artifact(
            content=content,
            filename=f"contacts_{stamp}.{extension}",
            content_type=content_type,
            owner=owner,
            contact_count=len(contacts),
            password=new_password() if with_password else None,
        )

        artifact_id = new_artifact_id()
        await self.store.set(artifact_key(artifact_id), artifact.to_dict(), self.settings.file_ttl_seconds)
        log_action(
            logger, "info", "artifact_emitted",
            f"Stored {extension} artifact with {len(contacts)} contacts",
            artifact_id=artifact_id,
            contact_count=len(contacts),
            size=len(content),
            format=extension,
        )
        return artifact_id, artifact

    async def load(self, artifact_id: str) -> Optional[Artifact]:
        if not is_artifact_id(artifact_id):
            return None
        data = await self.store.get(artifact_key(artifact_id))
        if not data:
            return None
        return Artifact.from_dict(data)

    def download_url(self, artifact_id: str, password: Optional[str] = None) -> str:
        url = f"{self.settings.public_base_url}/download/{artifact_id}"
        if password:
            url += f"?p={password}"
        return url

    def media_url(self, artifact_id: str, extension: str = "xlsx") -> str:
        # Twilio only accepts media URLs ending in a known extension
        return f"{self.settings.public_base_url}/files/{artifact_id}.{extension}"

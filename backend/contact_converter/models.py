"""
Core records: Contact, duplicate-resolution state and stored artifacts.

All three round-trip through plain dicts so they can be kept as JSON in
the artifact store.
"""

import base64
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


CSV_MIME = "text/csv; charset=utf-8"
XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@dataclass
class Contact:
    """A single extracted contact."""
    name: str = ""
    mobile: str = ""
    email: str = ""
    company: Optional[str] = None
    notes: Optional[str] = None
    passes: int = 1

    def __post_init__(self):
        self.name = (self.name or "").strip()
        self.mobile = (self.mobile or "").strip()
        self.email = (self.email or "").strip()
        try:
            self.passes = int(self.passes)
        except (TypeError, ValueError):
            self.passes = 1
        if self.passes < 1:
            self.passes = 1

    @property
    def is_usable(self) -> bool:
        """A contact is usable when it has a name or a phone number."""
        return bool(self.name or self.mobile)

    @property
    def dedupe_key(self) -> str:
        return self.mobile or self.email or self.name

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "name": self.name,
            "mobile": self.mobile,
            "email": self.email,
            "passes": self.passes,
        }
        if self.company is not None:
            data["company"] = self.company
        if self.notes is not None:
            data["notes"] = self.notes
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Contact":
        return cls(
            name=data.get("name") or "",
            mobile=data.get("mobile") or "",
            email=data.get("email") or "",
            company=data.get("company"),
            notes=data.get("notes"),
            passes=data.get("passes", 1),
        )


def usable_only(contacts: List[Contact]) -> List[Contact]:
    return [c for c in contacts if c.is_usable]


@dataclass
class DuplicateState:
    """
    Progress of a duplicate-resolution dialogue.

    ``duplicates`` holds groups of two or more contacts sharing a phone,
    in discovery order. ``chosen`` always has exactly ``cursor`` entries.
    """
    uniques: List[Contact] = field(default_factory=list)
    duplicates: List[List[Contact]] = field(default_factory=list)
    cursor: int = 0
    chosen: List[Contact] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return self.cursor >= len(self.duplicates)

    @property
    def current_group(self) -> Optional[List[Contact]]:
        if self.is_complete:
            return None
        return self.duplicates[self.cursor]

    def final_contacts(self) -> List[Contact]:
        return list(self.uniques) + list(self.chosen)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "uniques": [c.to_dict() for c in self.uniques],
            "duplicates": [[c.to_dict() for c in group] for group in self.duplicates],
            "cursor": self.cursor,
            "chosen": [c.to_dict() for c in self.chosen],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DuplicateState":
        state = cls(
            uniques=[Contact.from_dict(c) for c in data.get("uniques", [])],
            duplicates=[[Contact.from_dict(c) for c in group] for group in data.get("duplicates", [])],
            cursor=int(data.get("cursor", 0)),
            chosen=[Contact.from_dict(c) for c in data.get("chosen", [])],
        )
        if not 0 <= state.cursor <= len(state.duplicates) or len(state.chosen) != state.cursor:
            raise ValueError("inconsistent duplicate-resolution state")
        return state


@dataclass
class Artifact:
    """An emitted spreadsheet kept for download."""
    content: bytes
    filename: str
    content_type: str
    owner: str
    contact_count: int
    password: Optional[str] = None
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def extension(self) -> str:
        return "xlsx" if self.content_type == XLSX_MIME else "csv"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content": base64.b64encode(self.content).decode("ascii"),
            "filename": self.filename,
            "content_type": self.content_type,
            "owner": self.owner,
            "contact_count": self.contact_count,
            "password": self.password,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Artifact":
        return cls(
            content=base64.b64decode(data["content"]),
            filename=data["filename"],
            content_type=data["content_type"],
            owner=data.get("owner", ""),
            contact_count=int(data.get("contact_count", 0)),
            password=data.get("password"),
            created_at=data.get("created_at") or datetime.now(timezone.utc).isoformat(),
        )

"""
vCard parser.

Handles the exports produced by WhatsApp mobile and web, iOS and Android
address books: folded lines, grouped properties (``item1.TEL``),
quoted-printable names and vCard escape sequences.
"""

import logging
import quopri
import re
from typing import Dict, List, Optional, Tuple

from ...models import Contact
from ..phone import normalize_phone

logger = logging.getLogger(__name__)

# Pictographs, dingbats, regional indicators, variation selectors and ZWJ
PICTOGRAPHIC = re.compile(
    "["
    "\U0001F000-\U0001FAFF"
    "\U0001F1E6-\U0001F1FF"
    "\u2300-\u23FF"
    "\u2600-\u27BF"
    "\u2B00-\u2BFF"
    "\u3030\u303D\u3297\u3299"
    "\uFE0E\uFE0F\u200D\u20E3"
    "]+"
)

_CARD_SPLIT = re.compile(r"BEGIN:VCARD", re.IGNORECASE)
_CARD_END = re.compile(r"END:VCARD", re.IGNORECASE)


def strip_pictographs(text: str) -> str:
    return re.sub(r"\s{2,}", " ", PICTOGRAPHIC.sub("", text)).strip()


def _unescape(value: str) -> str:
    return (
        value.replace("\\n", " ")
        .replace("\\N", " ")
        .replace("\\,", ",")
        .replace("\\;", ";")
        .replace("\\\\", "\\")
    )


def _unfold(raw: str) -> List[str]:
    """Normalise line endings and join RFC 6350 and quoted-printable continuations."""
    text = raw.replace("\r\n", "\n").replace("\r", "\n")
    text = re.sub(r"\n[ \t]", "", text)

    lines: List[str] = []
    pending = ""
    for line in text.split("\n"):
        if pending:
            line = pending + line
            pending = ""
        # Quoted-printable soft line break
        if line.endswith("=") and "QUOTED-PRINTABLE" in line.split(":", 1)[0].upper():
            pending = line[:-1]
            continue
        lines.append(line)
    if pending:
        lines.append(pending)
    return lines


def _split_property(line: str) -> Optional[Tuple[str, Dict[str, str], str]]:
    """
    Split a content line into (name, params, value).

    The group prefix (``item1.``) is dropped from the name.
    """
    if ":" not in line:
        return None
    head, value = line.split(":", 1)
    parts = head.split(";")
    name = parts[0].strip().upper()
    if "." in name:
        name = name.rsplit(".", 1)[1]
    params: Dict[str, str] = {}
    for param in parts[1:]:
        if "=" in param:
            key, val = param.split("=", 1)
            params[key.strip().upper()] = val.strip()
        else:
            # vCard 2.1 bare parameters, e.g. TEL;CELL;QUOTED-PRINTABLE
            params.setdefault(param.strip().upper(), "")
    return name, params, value


def _decode(value: str, params: Dict[str, str]) -> str:
    encoding = params.get("ENCODING", "").upper()
    if encoding == "QUOTED-PRINTABLE" or "QUOTED-PRINTABLE" in params:
        charset = params.get("CHARSET", "utf-8") or "utf-8"
        try:
            decoded = quopri.decodestring(value.encode("latin-1", errors="ignore"))
            return decoded.decode(charset, errors="replace")
        except LookupError:
            return quopri.decodestring(value.encode("latin-1", errors="ignore")).decode("utf-8", errors="replace")
    return value


def _name_from_n(value: str) -> str:
    """Reorder ``N:family;given;additional;prefix;suffix`` as given + family."""
    parts = [_unescape(p).strip() for p in value.split(";")]
    while len(parts) < 5:
        parts.append("")
    family, given, additional = parts[0], parts[1], parts[2]
    return " ".join(p for p in (given, additional, family) if p)


def parse_card(lines: List[str]) -> Optional[Contact]:
    """Parse one card's content lines; returns None when nothing useful is found."""
    fn = ""
    n_name = ""
    label_name = ""
    mobile = ""
    email = ""
    company: Optional[str] = None
    notes: Optional[str] = None

    for line in lines:
        prop = _split_property(line.strip())
        if not prop:
            continue
        name, params, raw_value = prop
        value = _decode(raw_value, params)

        if name == "FN" and not fn:
            fn = _unescape(value).strip()
        elif name == "N" and not n_name:
            n_name = _name_from_n(value)
        elif name == "TEL" and not mobile:
            mobile = normalize_phone(value)
        elif name == "EMAIL" and not email:
            email = _unescape(value).strip()
        elif name == "ORG" and company is None:
            company = _unescape(value).replace(";", " ").strip() or None
        elif name == "NOTE" and notes is None:
            notes = _unescape(value).strip() or None
        elif name == "X-ABLABEL" and not label_name:
            label_name = _unescape(value).strip()

    name = strip_pictographs(fn or n_name)
    if not name and label_name and not label_name.startswith("_$!<"):
        name = strip_pictographs(label_name)

    contact = Contact(name=name, mobile=mobile, email=email, company=company, notes=notes)
    if not contact.is_usable:
        return None
    return contact


def parse_vcard(raw: str) -> List[Contact]:
    """
    Parse vCard text into contacts.

    Args:
        raw: vCard text, possibly holding many cards

    Returns:
        One contact per usable card, in file order
    """
    if not raw:
        return []

    lines = _unfold(raw)
    cards: List[List[str]] = []
    current: Optional[List[str]] = None
    for line in lines:
        stripped = line.strip()
        if _CARD_SPLIT.fullmatch(stripped):
            current = []
            continue
        if _CARD_END.fullmatch(stripped):
            if current is not None:
                cards.append(current)
            current = None
            continue
        if current is not None:
            current.append(line)
    # Tolerate a missing END:VCARD on the last card
    if current:
        cards.append(current)

    contacts = [c for c in (parse_card(card) for card in cards) if c is not None]
    logger.info(f"vCard parsed: {len(contacts)} contacts from {len(cards)} cards")
    return contacts

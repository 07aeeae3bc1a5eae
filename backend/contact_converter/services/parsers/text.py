"""
Free-text contact extraction.

Pasted guest lists, exported chats and PDF text rarely follow a format, so
four methods are tried in order and the first one that finds anything wins:

1. Labelled blocks (``Name: ...`` / ``Phone: ...`` / ``Email: ...``)
2. Name followed by a +234 number, when those pairs make up the whole message
3. Line scan: any line with a phone or email, remaining words form the name
4. Global patterns: i-th email + i-th phone + i-th name-like line
"""

import logging
import re
from typing import Callable, Dict, List, Optional

from ...models import Contact
from ..phone import normalize_phone

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")
# Digits possibly broken up by single spaces or hyphens ("+44 20 7946 0958")
PHONE_CANDIDATE = re.compile(r"(?<![\w+])\+?\d(?:[ \-]?\d){6,18}(?![\w])")
NAME_PHONE_PAIR = re.compile(r"([A-Za-z][A-Za-z .'&]*?)[\s:,\-]+(\+234\d{10})(?!\d)")
NAME_LINE = re.compile(r"^[A-Z][a-zA-Z ]{2,40}$", re.MULTILINE)

LABELLED_LINE = re.compile(
    r"^\s*(?:[-*\u2022]\s*)?"
    r"(full\s*name|contact\s*name|name|contact|phone(?:\s*number)?|mobile(?:\s*number)?|"
    r"telephone|tel|cell|whatsapp|number|e-?mail(?:\s*address)?|mail)"
    r"\s*[:=\-]\s*(.+?)\s*$",
    re.IGNORECASE,
)

STOP_WORDS = {"phone", "email", "contact", "mobile", "tel", "call", "mail"}
HONORIFICS = {
    "mr", "mrs", "miss", "ms", "dr", "prof", "chief", "engr", "sir", "madam",
    "alhaji", "alhaja", "pastor", "rev", "hon", "barr",
}
MAX_NAME_WORDS = 3
MAX_TEXT_CONTACTS = 1000


def find_emails(text: str) -> List[str]:
    return EMAIL_PATTERN.findall(text)


def find_phones(text: str) -> List[str]:
    """
    Find phone numbers in running text, normalised.

    A spaced candidate like "0803 344 5566" is joined into one number; a
    candidate containing a run of 8+ digits ("08033445566 2023") is split
    and only the long runs are kept.
    """
    phones: List[str] = []
    for match in PHONE_CANDIDATE.finditer(text):
        candidate = match.group(0)
        tokens = re.split(r"[ \-]", candidate)
        long_tokens = [t for t in tokens if len(t.lstrip("+")) >= 8]
        if long_tokens and len(long_tokens) < len(tokens):
            pieces = long_tokens
        else:
            pieces = [candidate]
        for piece in pieces:
            phone = normalize_phone(piece)
            if phone:
                phones.append(phone)
    return phones


def strip_honorifics(name: str) -> str:
    words = name.split()
    while words and words[0].lower().rstrip(".") in HONORIFICS:
        words.pop(0)
    return " ".join(words)


def name_from_email(email: str) -> str:
    """'jane.smith@x.org' -> 'Jane Smith'"""
    local = email.split("@", 1)[0]
    words = [w for w in re.split(r"[._\-+]+", local) if w and not w.isdigit()]
    return " ".join(w.capitalize() for w in words)


def _clean_name(text: str) -> str:
    text = re.sub(r"[^\w\s@.'&-]", " ", text)
    return re.sub(r"\s+", " ", text).strip(" .-")


# =========================================================================
# Method 1: labelled blocks
# =========================================================================

def _label_field(label: str) -> str:
    label = label.lower()
    if "mail" in label:
        return "email"
    if label.startswith(("full", "name", "contact")):
        return "name"
    return "mobile"


def parse_labelled_blocks(text: str) -> List[Contact]:
    contacts: List[Contact] = []
    current: Dict[str, str] = {}

    def flush():
        if current:
            contact = Contact(
                name=current.get("name", ""),
                mobile=current.get("mobile", ""),
                email=current.get("email", ""),
            )
            if contact.is_usable:
                contacts.append(contact)
            current.clear()

    for line in text.splitlines():
        match = LABELLED_LINE.match(line)
        if not match:
            continue
        field = _label_field(match.group(1))
        value = match.group(2)

        if field == "name" and not re.search(r"[A-Za-z]", value):
            # "Contact: 0803..." carries a number, not a name
            field = "mobile"

        if field == "mobile":
            phones = find_phones(value)
            value = phones[0] if phones else normalize_phone(value)
        elif field == "email":
            emails = find_emails(value)
            value = emails[0] if emails else ""
        else:
            value = _clean_name(value)

        if not value:
            continue
        if field in current:
            flush()
        current[field] = value
    flush()
    return contacts


# =========================================================================
# Method 2: name +234 pairs
# =========================================================================

def parse_name_phone_pairs(text: str) -> List[Contact]:
    """
    Carve a message made of ``Name +234XXXXXXXXXX`` pairs.

    Only applies when the pairs account for the whole message: if any
    other phone number or email remains once the pairs are removed, the
    message is left to the later methods.
    """
    matches = list(NAME_PHONE_PAIR.finditer(text))
    if not matches:
        return []

    residue = NAME_PHONE_PAIR.sub(" ", text)
    if find_phones(residue) or find_emails(residue):
        return []

    contacts = []
    for match in matches:
        name = strip_honorifics(_clean_name(match.group(1)))
        contact = Contact(name=name, mobile=normalize_phone(match.group(2)))
        if contact.is_usable:
            contacts.append(contact)
    return contacts


# =========================================================================
# Method 3: line scan
# =========================================================================

def _name_from_line(line: str) -> str:
    remainder = EMAIL_PATTERN.sub(" ", line)
    remainder = PHONE_CANDIDATE.sub(" ", remainder)
    remainder = re.sub(r"[^\w\s]", " ", remainder)
    words = [
        w for w in remainder.split()
        if len(w) > 1 and w[0].isalpha() and w.lower() not in STOP_WORDS
    ]
    return " ".join(words[:MAX_NAME_WORDS])


def parse_lines(text: str) -> List[Contact]:
    contacts = []
    for line in re.split(r"[\r\n]+", text):
        if len(line.strip()) <= 3:
            continue
        emails = find_emails(line)
        phones = find_phones(line)
        if not emails and not phones:
            continue
        email = emails[0] if emails else ""
        name = _name_from_line(line) or (name_from_email(email) if email else "")
        contact = Contact(name=name, mobile=phones[0] if phones else "", email=email)
        if contact.is_usable:
            contacts.append(contact)
    return contacts


# =========================================================================
# Method 4: global pattern pairing
# =========================================================================

def parse_global_patterns(text: str) -> List[Contact]:
    emails = find_emails(text)
    phones = find_phones(text)
    names = [n.strip() for n in NAME_LINE.findall(text)]

    contacts = []
    for i in range(max(len(emails), len(phones), len(names))):
        email = emails[i] if i < len(emails) else ""
        mobile = phones[i] if i < len(phones) else ""
        if not email and not mobile:
            continue
        name = names[i] if i < len(names) else (name_from_email(email) if email else "")
        contact = Contact(name=name, mobile=mobile, email=email)
        if contact.is_usable:
            contacts.append(contact)
    return contacts


METHODS: List[Callable[[str], List[Contact]]] = [
    parse_labelled_blocks,
    parse_name_phone_pairs,
    parse_lines,
    parse_global_patterns,
]


def dedupe(contacts: List[Contact]) -> List[Contact]:
    """Drop repeats by mobile, else email, else name (first one wins)."""
    seen = set()
    unique = []
    for contact in contacts:
        key = contact.dedupe_key
        if key and key not in seen:
            seen.add(key)
            unique.append(contact)
    return unique


def parse_text(text: Optional[str]) -> List[Contact]:
    """
    Extract contacts from unstructured text.

    Args:
        text: Message body or extracted document text

    Returns:
        Unique, usable contacts
    """
    if not text or not text.strip():
        return []

    contacts: List[Contact] = []
    for method in METHODS:
        contacts = method(text)
        logger.debug(f"Text method {method.__name__} found {len(contacts)} contacts")
        if contacts:
            break

    unique = dedupe(contacts)[:MAX_TEXT_CONTACTS]
    logger.info(f"Text parsing complete: {len(unique)} unique contacts extracted")
    return unique

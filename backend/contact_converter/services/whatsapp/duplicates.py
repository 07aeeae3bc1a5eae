"""
Duplicate number detection and the 1/2 choice dialogue.

Contacts sharing a mobile number are grouped in the order the numbers were
first seen. The user is shown the first two entries of each group and
picks one; any further entries in a group are dropped.
"""

import logging
from typing import Dict, List, Optional

from ...models import Contact, DuplicateState

logger = logging.getLogger(__name__)

CHOICES = ("1", "2")


def partition(contacts: List[Contact]) -> DuplicateState:
    """
    Split a staged list into unique contacts and duplicate groups.

    Contacts without a mobile number are always unique.

    Args:
        contacts: Staged contacts in arrival order

    Returns:
        DuplicateState with cursor 0 and nothing chosen
    """
    # dicts keep insertion order, so groups come out in discovery order
    groups: Dict[str, List[Contact]] = {}
    for contact in contacts:
        if contact.mobile:
            groups.setdefault(contact.mobile, []).append(contact)

    uniques = [c for c in contacts if not c.mobile or len(groups[c.mobile]) == 1]
    duplicates = [group for group in groups.values() if len(group) > 1]

    if duplicates:
        logger.info(f"Found {len(duplicates)} duplicate groups among {len(contacts)} contacts")
    return DuplicateState(uniques=uniques, duplicates=duplicates)


def parse_choice(text: Optional[str]) -> Optional[int]:
    """'1' -> 0, '2' -> 1, anything else -> None"""
    text = (text or "").strip()
    if text in CHOICES:
        return CHOICES.index(text)
    return None


def apply_choice(state: DuplicateState, choice: int) -> DuplicateState:
    """
    Record the user's pick for the current group and advance the cursor.

    Args:
        state: Live, incomplete state
        choice: 0 or 1, index into the current group's first two entries

    Returns:
        The same state object, advanced by one group
    """
    group = state.current_group
    if group is None:
        raise ValueError("duplicate resolution already complete")
    if choice not in (0, 1):
        raise ValueError(f"invalid choice: {choice}")
    state.chosen.append(group[min(choice, len(group) - 1)])
    state.cursor += 1
    return state

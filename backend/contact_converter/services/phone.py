"""
Phone number normalisation.

Numbers are canonicalised to an E.164-like form. Local Nigerian numbers
(the bot's home locale) get the +234 country code; anything else with ten
or more digits is assumed to already carry its country code.

The rules are applied in a fixed order and the output is a fixed point:
``normalize_phone(normalize_phone(x)) == normalize_phone(x)``.
"""

import re

MIN_DIGITS = 8
MAX_DIGITS = 15

_NG_LOCAL = re.compile(r"^0[789]\d{9}$")
_NG_INTL_NO_PLUS = re.compile(r"^234[789]\d{9}$")
_NG_NATIONAL = re.compile(r"^[789]\d{9}$")

CANONICAL_PATTERN = re.compile(r"^\+?\d{8,15}$")


def _strip(raw: str) -> str:
    """Keep digits, plus a single leading '+' when the number starts with one."""
    leading_plus = False
    for ch in raw:
        if ch == "+":
            leading_plus = True
            break
        if ch.isdigit():
            break
    digits = "".join(ch for ch in raw if ch.isdigit())
    return f"+{digits}" if leading_plus and digits else digits


def normalize_phone(raw) -> str:
    """
    Canonicalise a phone string.

    Args:
        raw: Any value; non-strings are converted with ``str()``

    Returns:
        Canonical phone, or "" when the input has fewer than 8 or more
        than 15 digits
    """
    if raw is None:
        return ""
    if isinstance(raw, float) and raw.is_integer():
        # Spreadsheet cells hand numbers back as floats
        raw = int(raw)
    clean = _strip(str(raw))
    digit_count = len(clean.lstrip("+"))
    if digit_count < MIN_DIGITS or digit_count > MAX_DIGITS:
        return ""

    if _NG_LOCAL.match(clean):
        return "+234" + clean[1:]
    if _NG_INTL_NO_PLUS.match(clean):
        return "+" + clean
    if _NG_NATIONAL.match(clean):
        return "+234" + clean
    if not clean.startswith("+") and digit_count >= 10:
        return "+" + clean
    return clean


def is_canonical(phone: str) -> bool:
    return phone == "" or bool(CANONICAL_PATTERN.match(phone))

"""Phone number helpers for the SMS verification channel."""

from __future__ import annotations

import re

_NON_DIGITS = re.compile(r"\D")
_E164 = re.compile(r"^\+\d{10,15}$")


def normalize_phone_to_e164(raw: str) -> str:
    """Normalise a user-entered phone number to E.164.

    Local formats (``8 912 ...``, ``912 ...``, ``7 912 ...``) are mapped to the
    ``+7`` country code. Returns an empty string when no digits are present.
    """
    trimmed = (raw or "").strip()
    if not trimmed:
        return ""
    if trimmed.startswith("+"):
        return trimmed

    digits = _NON_DIGITS.sub("", trimmed)
    if not digits:
        return ""
    if len(digits) == 11 and digits.startswith("8"):
        return f"+7{digits[1:]}"
    if len(digits) == 10 and digits.startswith("9"):
        return f"+7{digits}"
    return f"+{digits}"


def is_valid_phone(raw: str) -> bool:
    return bool(_E164.match(normalize_phone_to_e164(raw)))


__all__ = ["is_valid_phone", "normalize_phone_to_e164"]

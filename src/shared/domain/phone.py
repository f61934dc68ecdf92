"""
Phone Numbers
=============

Normalization of US phone numbers to E.164 and the alternate spellings
older rows may have been stored under.
"""

import re
from typing import List, Optional

E164_PATTERN = re.compile(r"^\+\d{8,15}$")
_NON_DIGITS = re.compile(r"\D")


def digits_only(value: Optional[str]) -> str:
    """Strip everything but 0-9."""
    return _NON_DIGITS.sub("", value or "")


def normalize_us_phone(raw: Optional[str]) -> Optional[str]:
    """
    Normalize a phone number to E.164.

    Values already in E.164 form are returned unchanged (any country).
    Otherwise 10 digit numbers get +1, and 11 digit numbers starting
    with 1 get a leading +.

    Args:
        raw: Phone number as typed or as delivered by the carrier

    Returns:
        E.164 string, or None when the input cannot be normalized
    """
    if raw is None:
        return None

    value = raw.strip()
    if E164_PATTERN.match(value):
        return value

    digits = digits_only(value)
    if len(digits) == 11 and digits.startswith("1"):
        return f"+{digits}"
    if len(digits) == 10:
        return f"+1{digits}"
    return None


def alt_forms_for_lookup(e164: str) -> List[str]:
    """
    Spellings under which a number may have been stored.

    For +1XXXXXXXXXX this is the number itself, 1XXXXXXXXXX and XXXXXXXXXX.
    """
    forms = [e164]
    digits = digits_only(e164)
    if len(digits) == 11 and digits.startswith("1"):
        forms.append(digits)
        forms.append(digits[1:])

    # dedupe, keep order
    return list(dict.fromkeys(forms))


def mask_phone(phone: Optional[str]) -> str:
    """Mask a phone number for logs, keeping the last 4 digits."""
    digits = digits_only(phone)
    if len(digits) <= 4:
        return "***"
    return f"***{digits[-4:]}"

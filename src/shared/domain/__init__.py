"""
Shared Domain Helpers
=====================

Value helpers used by more than one bounded context.
"""

from src.shared.domain import messages
from src.shared.domain.phone import (
    normalize_us_phone,
    alt_forms_for_lookup,
    digits_only,
    mask_phone,
)

__all__ = [
    "messages",
    "normalize_us_phone",
    "alt_forms_for_lookup",
    "digits_only",
    "mask_phone",
]

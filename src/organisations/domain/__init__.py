"""
Organisation Domain Layer
=========================

Pure rules for organisations, invites and access requests.
"""

from src.organisations.domain.entities import (
    SLUG_PATTERN,
    ACCESS_REQUEST_STATUS_FILTERS,
    normalize_slug,
    new_invite_token,
    invite_expiry,
    as_utc,
    is_expired,
    is_public_base_url,
)

__all__ = [
    "SLUG_PATTERN",
    "ACCESS_REQUEST_STATUS_FILTERS",
    "normalize_slug",
    "new_invite_token",
    "invite_expiry",
    "as_utc",
    "is_expired",
    "is_public_base_url",
]

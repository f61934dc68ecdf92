"""
Organisation Domain
===================

Rules for organisation slugs, invites, access requests and the public
URLs numbers are provisioned against.
"""

import re
import uuid
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional
from urllib.parse import urlparse

from src.config import AccessRequestStatus

SLUG_PATTERN = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")

# Query aliases accepted by the access request listing
ACCESS_REQUEST_STATUS_FILTERS: Dict[str, Optional[AccessRequestStatus]] = {
    "pending": AccessRequestStatus.OPEN,
    "open": AccessRequestStatus.OPEN,
    "approved": AccessRequestStatus.INVITED,
    "invited": AccessRequestStatus.INVITED,
    "denied": AccessRequestStatus.DISMISSED,
    "dismissed": AccessRequestStatus.DISMISSED,
    "all": None,
}

_LOCAL_HOSTS = {"localhost", "127.0.0.1", "0.0.0.0", "::1"}


def normalize_slug(slug: str) -> str:
    """Lowercase and trim a slug. Raises ValueError if it is not kebab-case."""
    value = (slug or "").strip().lower()
    if not SLUG_PATTERN.match(value):
        raise ValueError("Slug must be kebab-case (a-z, 0-9, hyphen)")
    return value


def new_invite_token() -> str:
    return uuid.uuid4().hex


def invite_expiry(days: int, now: Optional[datetime] = None) -> datetime:
    return (now or datetime.now(timezone.utc)) + timedelta(days=days)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (as returned by SQLite) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_expired(expires_at: datetime, now: Optional[datetime] = None) -> bool:
    return as_utc(expires_at) < (now or datetime.now(timezone.utc))


def is_public_base_url(url: Optional[str]) -> bool:
    """Whether Twilio can reach url; localhost and bare hosts cannot."""
    if not url:
        return False
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        return False
    return parsed.hostname not in _LOCAL_HOSTS

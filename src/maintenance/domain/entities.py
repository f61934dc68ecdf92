"""
Maintenance Domain
==================

Domain rules for properties, tenants and tickets.

Contains pure Python helpers: synthetic phone identifiers, ticket
references and the tolerant header mapping used by tenant imports.
"""

import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from src.config import UNASSIGNED_PROPERTY_NAME

_HEADER_JUNK = re.compile(r"[^a-z0-9]")
_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"

PHONE_HEADERS = ("phone", "phonenumber", "tel", "mobile")
NAME_HEADERS = ("name", "tenant")
UNIT_HEADERS = ("unit", "unitnumber", "apartment", "apt")
MIN_IMPORT_PHONE_LENGTH = 7


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def _epoch_ms(now: Optional[datetime]) -> int:
    return int((now or datetime.now(timezone.utc)).timestamp() * 1000)


def synthetic_property_phone(org_id: Any, now: Optional[datetime] = None) -> str:
    """
    Placeholder for properties created without a dedicated number.

    properties.phone_number is unique, so every property needs a value.
    """
    org_part = str(org_id).replace("-", "")[:4]
    ts_part = _to_base36(_epoch_ms(now))[-5:]
    return f"P-{org_part}-{ts_part}-{uuid.uuid4().hex[:4]}"


def unassigned_inbox_phone(org_id: Any, now: Optional[datetime] = None) -> str:
    org_part = str(org_id).replace("-", "")[:8]
    return f"UNASSIGNED-{org_part}-{_epoch_ms(now)}"


def is_unassigned_inbox(property_model: Any) -> bool:
    return getattr(property_model, "name", None) == UNASSIGNED_PROPERTY_NAME


def ticket_reference(ticket_id: Any) -> str:
    """Short reference shown to tenants: last 6 characters of the id."""
    return str(ticket_id)[-6:]


# ========== Tenant Import ==========

def normalize_header(key: Any) -> str:
    return _HEADER_JUNK.sub("", str(key).lower())


def _first(mapped: Mapping[str, Any], keys: tuple) -> Optional[str]:
    for key in keys:
        value = mapped.get(key)
        if value is None:
            continue
        text = str(value).strip()
        if text and text.lower() != "nan":
            return text
    return None


@dataclass(frozen=True)
class ImportRow:
    """One spreadsheet row mapped onto tenant fields."""
    phone: Optional[str]
    name: Optional[str]
    unit: Optional[str]

    @classmethod
    def from_record(cls, record: Mapping[Any, Any]) -> "ImportRow":
        mapped = {normalize_header(k): v for k, v in record.items()}
        return cls(
            phone=_first(mapped, PHONE_HEADERS),
            name=_first(mapped, NAME_HEADERS),
            unit=_first(mapped, UNIT_HEADERS),
        )


@dataclass
class ImportReport:
    """Outcome of a tenant import."""
    total: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)
    dry_run: bool = False

    def skip(self, row_number: int, message: str) -> None:
        self.skipped += 1
        self.errors.append({"row": row_number, "message": message})

"""
Maintenance Domain Layer
========================

Pure rules for properties, tenants and tickets.
"""

from src.maintenance.domain.entities import (
    ImportRow,
    ImportReport,
    MIN_IMPORT_PHONE_LENGTH,
    synthetic_property_phone,
    unassigned_inbox_phone,
    is_unassigned_inbox,
    ticket_reference,
    normalize_header,
)

__all__ = [
    "ImportRow",
    "ImportReport",
    "MIN_IMPORT_PHONE_LENGTH",
    "synthetic_property_phone",
    "unassigned_inbox_phone",
    "is_unassigned_inbox",
    "ticket_reference",
    "normalize_header",
]

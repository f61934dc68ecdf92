"""
Tenant SMS Messages
===================

Text of every SMS sent to tenants.
"""

from typing import Any, Optional

from src.config import TicketPriority

PRIORITY_LINES = {
    TicketPriority.EMERGENCY.value: "🚨 EMERGENCY – we’ll contact you ASAP",
    TicketPriority.HIGH.value: "⚠️ High priority – response within 4 h",
    TicketPriority.MEDIUM.value: "📋 Response within 24 h",
    TicketPriority.LOW.value: "📝 Response in 2–3 business days",
}

ADDRESS_PROMPT = (
    "Thanks! To route this correctly, reply with your address & unit "
    "(e.g., “123 Main St #5B”).\n"
    "You don’t need to resend photos."
)


def _ref(ticket_id: Any) -> str:
    return str(ticket_id)[-6:]


def _value(priority: Any) -> str:
    return getattr(priority, "value", priority) or TicketPriority.MEDIUM.value


def confirmation(ticket_id: Any, priority: Any) -> str:
    line = PRIORITY_LINES.get(_value(priority), PRIORITY_LINES[TicketPriority.LOW.value])
    return f"✅ Maintenance request received! Ticket #{_ref(ticket_id)}\n{line}"


def address_prompt() -> str:
    return ADDRESS_PROMPT


def maintenance_update(ticket_id: Any, status: Any, note: Optional[str] = None) -> str:
    status_text = getattr(status, "value", status)
    message = f"🔧 Ticket #{_ref(ticket_id)} update: {status_text}"
    if note:
        message += f"\n{note}"
    return message


def completion(ticket_id: Any, notes: Optional[str] = None) -> str:
    message = f"✅ Ticket #{_ref(ticket_id)} has been completed!"
    if notes:
        message += f"\n\nNotes: {notes}"
    return message + '\n\nReply "OK" if everything looks good, or send photos if there are still issues.'


def assignment(property_name: str) -> str:
    return f"Thanks! We’ve assigned your request to {property_name}."

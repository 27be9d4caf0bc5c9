"""Status Transition - Field effects and audit wording for ticket status changes"""
from datetime import datetime
from typing import Any, Dict, Optional

from ..domain.enums import TicketStatus
from ..domain.models import UserSnapshot


def build_status_updates(
    new_status: TicketStatus,
    actor: UserSnapshot,
    now: datetime
) -> Dict[str, Any]:
    """
    Fields to $set when a ticket moves to `new_status`

    Each status stamps its own timestamp (and who did it, where tracked).
    """
    updates: Dict[str, Any] = {"status": new_status.value}

    if new_status == TicketStatus.RESOLVED:
        updates["resolved_at"] = now
    elif new_status == TicketStatus.CLOSED:
        updates["closed_at"] = now
        updates["closed_by"] = actor.model_dump()
    elif new_status == TicketStatus.ON_HOLD:
        updates["hold_at"] = now
        updates["hold_by"] = actor.model_dump()
    elif new_status == TicketStatus.DELETED:
        updates["is_deleted"] = True
        updates["deleted_at"] = now

    return updates


def compose_status_note(
    old_status: TicketStatus,
    new_status: TicketStatus,
    reason: Optional[str] = None,
    remarks: Optional[str] = None
) -> str:
    """
    Audit note for a status change

    >>> compose_status_note(TicketStatus.OPEN, TicketStatus.RESOLVED, "Fixed", None)
    'Status changed from open to resolved. Reason: Fixed'
    """
    note = f"Status changed from {old_status.value} to {new_status.value}"
    if reason:
        note += f". Reason: {reason}"
    if remarks:
        note += f". Remarks: {remarks}"
    return note

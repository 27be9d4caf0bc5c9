"""Audit Writer - Append-only ticket audit log"""
from typing import Dict, List, Optional, Tuple

from ..domain.models import AuditLogEntry, UserSnapshot
from ..domain.enums import AuditActionType, TicketStatus
from ..repositories.audit_repo import AuditRepository
from ..utils.idgen import generate_audit_id
from ..utils.time import utc_now
from ..utils.logger import get_logger, get_correlation_id

logger = get_logger(__name__)

UNKNOWN_GROUP = "Unknown Group"
UNKNOWN_SPOC = "Unknown SPOC"


class AuditWriter:
    """
    Write audit log entries (append-only)

    Every ticket state change produces an entry. A missing actor is recorded
    as "System".
    """

    def __init__(self, repo: Optional[AuditRepository] = None):
        self.repo = repo or AuditRepository()

    def write_entry(
        self,
        ticket_id: str,
        action_type: AuditActionType,
        performed_by: Optional[UserSnapshot],
        old_value: Optional[str] = None,
        new_value: Optional[str] = None,
        notes: Optional[str] = None
    ) -> AuditLogEntry:
        """Write a single audit entry"""
        entry = AuditLogEntry(
            audit_id=generate_audit_id(),
            ticket_id=ticket_id,
            action_type=action_type,
            old_value=old_value,
            new_value=new_value,
            performed_by=performed_by,
            performed_by_name=performed_by.display_name if performed_by else "System",
            notes=notes,
            created_at=utc_now(),
            correlation_id=get_correlation_id()
        )

        return self.repo.create_entry(entry)

    def write_created(self, ticket_id: str, ticket_number: int, actor: UserSnapshot) -> AuditLogEntry:
        return self.write_entry(
            ticket_id=ticket_id,
            action_type=AuditActionType.CREATED,
            performed_by=actor,
            new_value=f"Ticket #{ticket_number} created"
        )

    def write_status_change(
        self,
        ticket_id: str,
        actor: Optional[UserSnapshot],
        old_status: TicketStatus,
        new_status: TicketStatus,
        notes: str
    ) -> AuditLogEntry:
        return self.write_entry(
            ticket_id=ticket_id,
            action_type=AuditActionType.STATUS_CHANGE,
            performed_by=actor,
            old_value=old_status.value,
            new_value=new_status.value,
            notes=notes
        )

    def write_assignment_change(
        self,
        ticket_id: str,
        actor: UserSnapshot,
        old_assignee: Optional[UserSnapshot],
        new_assignee: Optional[UserSnapshot]
    ) -> AuditLogEntry:
        old_name = old_assignee.display_name if old_assignee else "Unassigned"
        new_name = new_assignee.display_name if new_assignee else "Unassigned"
        return self.write_entry(
            ticket_id=ticket_id,
            action_type=AuditActionType.ASSIGNMENT_CHANGE,
            performed_by=actor,
            old_value=old_name,
            new_value=new_name,
            notes=f"Assignee changed from {old_name} to {new_name}"
        )

    def write_project_change(
        self,
        ticket_id: str,
        actor: UserSnapshot,
        old_project: Optional[str],
        new_project: Optional[str]
    ) -> AuditLogEntry:
        old_name = old_project or "None"
        new_name = new_project or "None"
        return self.write_entry(
            ticket_id=ticket_id,
            action_type=AuditActionType.PROJECT_CHANGE,
            performed_by=actor,
            old_value=old_name,
            new_value=new_name,
            notes=f"Project changed from {old_name} to {new_name}"
        )

    def write_redirection(
        self,
        ticket_id: str,
        actor: UserSnapshot,
        old_route: Tuple[Optional[str], Optional[str]],
        new_route: Tuple[Optional[str], Optional[str]],
        remarks: str
    ) -> AuditLogEntry:
        """Routes are (group name, SPOC name) pairs"""
        return self.write_entry(
            ticket_id=ticket_id,
            action_type=AuditActionType.REDIRECTION,
            performed_by=actor,
            old_value=self._format_route(*old_route),
            new_value=self._format_route(*new_route),
            notes=f"Redirected: {remarks}"
        )

    def write_details_change(
        self,
        ticket_id: str,
        actor: UserSnapshot,
        changes: Dict[str, Tuple[Optional[str], Optional[str]]]
    ) -> AuditLogEntry:
        """`changes` maps field name to (old, new) display values"""
        fields: List[str] = sorted(changes)
        return self.write_entry(
            ticket_id=ticket_id,
            action_type=AuditActionType.DETAILS_CHANGE,
            performed_by=actor,
            old_value="; ".join(f"{f}: {changes[f][0] or '-'}" for f in fields),
            new_value="; ".join(f"{f}: {changes[f][1] or '-'}" for f in fields),
            notes=f"Updated {', '.join(fields)}"
        )

    @staticmethod
    def _format_route(group_name: Optional[str], spoc_name: Optional[str]) -> str:
        return f"{group_name or UNKNOWN_GROUP} ({spoc_name or UNKNOWN_SPOC})"

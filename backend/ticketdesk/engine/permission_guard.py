"""Permission Guard - Authorization enforcement for ticket actions"""
from typing import Iterable, Optional
from pydantic import BaseModel

from ..domain.models import Ticket, User, UserSnapshot, Comment, Attachment
from ..domain.enums import TicketStatus
from ..domain.errors import PermissionDeniedError
from ..utils.logger import get_logger

logger = get_logger(__name__)

# Statuses a ticket is "reopened" from, which narrows who may move it back to open
REOPEN_FROM = (TicketStatus.RESOLVED, TicketStatus.CLOSED)

# Classification and effort fields only an admin may edit; the rest are initiator fields
ADMIN_EDIT_FIELDS = frozenset({"priority", "category_id", "subcategory_id", "estimated_duration"})


class TicketRoles(BaseModel):
    """How the acting user relates to a ticket"""
    is_admin: bool = False
    is_initiator: bool = False
    is_assignee: bool = False
    is_spoc: bool = False


class PermissionGuard:
    """
    Permission enforcement for ticket operations

    Status change matrix (admins bypass all of it):
    - closed / deleted: initiator
    - on-hold: SPOC
    - resolved / returned: assignee
    - open from resolved or closed: initiator or assignee
    - open otherwise: initiator, assignee or SPOC

    Other actions:
    - delete: initiator
    - restore: admin only
    - redirect: SPOC
    - reassign: SPOC or current assignee
    - edit details: initiator; priority, classification and estimate admin only;
      resolved or closed tickets admin only (initiator or assignee may still
      touch a resolved one)
    - change project: initiator or SPOC
    """

    def is_same_user(self, user: User, snapshot: Optional[UserSnapshot]) -> bool:
        """
        Check if the directory user is the user in the snapshot.

        Matches by user_id, falling back to email (case-insensitive) for
        snapshots written before the user record was linked.
        """
        if not snapshot:
            return False

        if snapshot.user_id == user.user_id:
            return True

        return snapshot.email.lower() == user.email.lower()

    def roles_for(self, user: User, ticket: Ticket, is_admin: bool = False) -> TicketRoles:
        """Work out how the user relates to the ticket"""
        return TicketRoles(
            is_admin=is_admin,
            is_initiator=self.is_same_user(user, ticket.created_by),
            is_assignee=self.is_same_user(user, ticket.assigned_to),
            is_spoc=self.is_same_user(user, ticket.spoc)
        )

    def _deny(self, message: str, ticket: Ticket, action: str) -> None:
        logger.warning(
            f"Permission denied: {message}",
            extra={"ticket_id": ticket.ticket_id, "action": action}
        )
        raise PermissionDeniedError(message, details={"ticket_id": ticket.ticket_id, "action": action})

    def check_status_change(self, roles: TicketRoles, ticket: Ticket, new_status: TicketStatus) -> None:
        """Raise PermissionDeniedError unless the status change is allowed"""
        if roles.is_admin:
            return

        action = f"status:{new_status.value}"

        if new_status in (TicketStatus.CLOSED, TicketStatus.DELETED):
            if not roles.is_initiator:
                self._deny("Only the ticket initiator can close or delete tickets", ticket, action)
        elif new_status == TicketStatus.ON_HOLD:
            if not roles.is_spoc:
                self._deny("Only the SPOC can put tickets on hold", ticket, action)
        elif new_status == TicketStatus.RESOLVED:
            if not roles.is_assignee:
                self._deny("Only the assignee can mark tickets as resolved", ticket, action)
        elif new_status == TicketStatus.RETURNED:
            if not roles.is_assignee:
                self._deny("Only the assignee can return tickets", ticket, action)
        elif new_status == TicketStatus.OPEN:
            if ticket.status in REOPEN_FROM:
                if not (roles.is_initiator or roles.is_assignee):
                    self._deny("Only the initiator or assignee can reopen tickets", ticket, action)
            elif not (roles.is_initiator or roles.is_assignee or roles.is_spoc):
                self._deny("Only the initiator, assignee, or SPOC can change ticket status", ticket, action)

    def check_can_delete(self, roles: TicketRoles, ticket: Ticket) -> None:
        if not (roles.is_admin or roles.is_initiator):
            self._deny("Only admin or ticket creator can delete tickets", ticket, "delete")

    def check_can_restore(self, roles: TicketRoles, ticket: Ticket) -> None:
        if not roles.is_admin:
            self._deny("Only admin can restore deleted tickets", ticket, "restore")

    def check_can_redirect(self, roles: TicketRoles, ticket: Ticket) -> None:
        if not (roles.is_admin or roles.is_spoc):
            self._deny("Only SPOC can redirect tickets", ticket, "redirect")

    def check_can_assign(self, roles: TicketRoles, ticket: Ticket) -> None:
        if not (roles.is_admin or roles.is_spoc or roles.is_assignee):
            self._deny("Only the SPOC or current assignee can reassign tickets", ticket, "assign")

    def check_can_edit_fields(self, roles: TicketRoles, ticket: Ticket, fields: Iterable[str]) -> None:
        """
        Raise PermissionDeniedError unless the user may change every field

        Resolved and closed tickets are admin only, except that the
        initiator or assignee still gets through on a resolved ticket.
        """
        if roles.is_admin:
            return

        if ticket.status == TicketStatus.CLOSED or (
            ticket.status == TicketStatus.RESOLVED and not (roles.is_initiator or roles.is_assignee)
        ):
            self._deny("Only admin can edit resolved or closed tickets", ticket, "edit")

        admin_only = sorted(set(fields) & ADMIN_EDIT_FIELDS)
        if admin_only:
            self._deny(f"Only admin can change {', '.join(admin_only)}", ticket, "edit")

        if not roles.is_initiator:
            self._deny("Only the ticket initiator can edit ticket details", ticket, "edit")

    def check_can_change_project(self, roles: TicketRoles, ticket: Ticket) -> None:
        if not (roles.is_admin or roles.is_initiator or roles.is_spoc):
            self._deny("Only the initiator or SPOC can change the ticket project", ticket, "project")

    def can_delete_comment(self, user: User, comment: Comment, is_admin: bool = False) -> bool:
        return is_admin or self.is_same_user(user, comment.author)

    def can_delete_attachment(self, user: User, attachment: Attachment, is_admin: bool = False) -> bool:
        return is_admin or self.is_same_user(user, attachment.uploaded_by)

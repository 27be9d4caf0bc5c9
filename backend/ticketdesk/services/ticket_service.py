"""Ticket Service - Ticket management business logic"""
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..domain.models import Ticket, User, UserSnapshot, NamedRef, Comment, AuditLogEntry
from ..domain.enums import TicketStatus, TicketType, TicketPriority, AuditActionType
from ..domain.errors import (
    ValidationError, InvalidStateError, PermissionDeniedError
)
from ..repositories.ticket_repo import TicketRepository, TicketFilters
from ..repositories.audit_repo import AuditRepository
from ..repositories.attachment_repo import AttachmentRepository
from ..engine.permission_guard import PermissionGuard
from ..engine.status_transition import build_status_updates, compose_status_note
from ..engine.audit_writer import AuditWriter
from .directory_service import DirectoryService
from .master_data_service import MasterDataService
from .notification_service import NotificationService
from ..utils.idgen import format_ticket_id, generate_comment_id
from ..utils.time import utc_now, parse_iso, format_duration
from ..utils.logger import get_logger

logger = get_logger(__name__)

MAX_TITLE_LENGTH = 500
MAX_COMMENT_LENGTH = 5000

# Fields update_ticket may change
EDITABLE_FIELDS = {
    "title", "description", "priority", "ticket_type", "category_id", "subcategory_id",
    "estimated_duration", "product_release_name", "estimated_release_date", "project_name",
}

# Fields that have their own operation and are refused by update_ticket
DEDICATED_FIELDS = {
    "status": "update_ticket_status",
    "assigned_to": "update_ticket_assignee",
    "assignee_user_id": "update_ticket_assignee",
    "project_id": "update_ticket_project",
    "target_business_group_id": "redirect_ticket",
    "spoc_user_id": "redirect_ticket",
}


def _ref_id(ref: Optional[NamedRef]) -> Optional[str]:
    return ref.id if ref else None


def _ref_name(ref: Optional[NamedRef]) -> Optional[str]:
    return ref.name if ref else None


def _validate_release_date(value: Optional[str]) -> Optional[str]:
    """Normalise a release date (date or datetime text) to YYYY-MM-DD"""
    if not value:
        return None
    try:
        return parse_iso(value).date().isoformat()
    except ValueError:
        raise ValidationError(
            "estimated_release_date must be an ISO date (YYYY-MM-DD)",
            details={"estimated_release_date": value}
        )


class TicketService:
    """Service for ticket operations"""

    def __init__(self):
        self.ticket_repo = TicketRepository()
        self.audit_repo = AuditRepository()
        self.attachment_repo = AttachmentRepository()
        self.directory = DirectoryService()
        self.master_data = MasterDataService()
        self.notifications = NotificationService()
        self.permission_guard = PermissionGuard()
        self.audit_writer = AuditWriter(self.audit_repo)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _notify(self, enqueue: Callable[..., Any], **kwargs: Any) -> None:
        """Queue a notification; a failure is logged and never fails the ticket operation"""
        try:
            enqueue(**kwargs)
        except Exception as e:
            logger.error(
                f"Failed to queue notification via {enqueue.__name__}: {e}",
                extra={"ticket_id": kwargs.get("ticket_id")}
            )

    def _group_ref(self, group_id: Optional[str]) -> Optional[NamedRef]:
        group = self.directory.repo.get_group(group_id)
        return NamedRef(id=group.group_id, name=group.name) if group else None

    def _resolve_classification(
        self,
        category_id: Optional[str],
        subcategory_id: Optional[str]
    ) -> Tuple[Optional[NamedRef], Optional[NamedRef]]:
        """Validate category and subcategory and return their refs"""
        category_ref = None
        subcategory_ref = None

        if subcategory_id and not category_id:
            raise ValidationError("A subcategory requires a category")

        if category_id:
            category = self.master_data.repo.get_category_or_raise(category_id)
            category_ref = NamedRef(id=category.category_id, name=category.name)

        if subcategory_id:
            subcategory = self.master_data.repo.get_subcategory_or_raise(subcategory_id)
            if subcategory.category_id != category_id:
                raise ValidationError(
                    "Subcategory does not belong to the selected category",
                    details={"subcategory_id": subcategory_id, "category_id": category_id}
                )
            subcategory_ref = NamedRef(id=subcategory.subcategory_id, name=subcategory.name)

        return category_ref, subcategory_ref

    def _estimated_duration_for(
        self,
        target_business_group_id: Optional[str],
        category_id: Optional[str],
        subcategory_id: Optional[str]
    ) -> Optional[str]:
        """Estimate text from the matching classification mapping, if any"""
        mapping = self.master_data.find_mapping_for_ticket(target_business_group_id, category_id, subcategory_id)
        if mapping and mapping.estimated_duration_minutes > 0:
            return format_duration(mapping.estimated_duration_minutes)
        return None

    def _is_same(self, user: User, snapshot: Optional[UserSnapshot]) -> bool:
        return self.permission_guard.is_same_user(user, snapshot)

    def ticket_to_dict(
        self,
        ticket: Ticket,
        attachment_count: int = 0,
        child_ticket_count: int = 0
    ) -> Dict[str, Any]:
        data = ticket.model_dump(mode="json")
        data["attachment_count"] = attachment_count
        data["child_ticket_count"] = child_ticket_count
        return data

    def _summaries(self, tickets: List[Ticket]) -> List[Dict[str, Any]]:
        """Ticket dicts with attachment and child counts, two queries for the whole page"""
        ticket_ids = [t.ticket_id for t in tickets]
        attachment_counts = self.attachment_repo.count_by_ticket(ticket_ids)
        child_counts = self.ticket_repo.count_children_by_parent(ticket_ids)
        return [
            self.ticket_to_dict(
                t,
                attachment_count=attachment_counts.get(t.ticket_id, 0),
                child_ticket_count=child_counts.get(t.ticket_id, 0)
            )
            for t in tickets
        ]

    # =========================================================================
    # Create
    # =========================================================================

    def create_ticket(
        self,
        title: str,
        user: User,
        description: Optional[str] = None,
        ticket_type: TicketType = TicketType.SUPPORT,
        priority: TicketPriority = TicketPriority.MEDIUM,
        target_business_group_id: Optional[str] = None,
        spoc_user_id: Optional[str] = None,
        assignee_user_id: Optional[str] = None,
        category_id: Optional[str] = None,
        subcategory_id: Optional[str] = None,
        project_id: Optional[str] = None,
        project_name: Optional[str] = None,
        estimated_duration: Optional[str] = None,
        product_release_name: Optional[str] = None,
        estimated_release_date: Optional[str] = None,
        parent_ticket_id: Optional[str] = None
    ) -> Ticket:
        """Create a ticket and route it to the SPOC of its target business group"""
        title = (title or "").strip()
        if not title:
            raise ValidationError("Title is required")
        if len(title) > MAX_TITLE_LENGTH:
            raise ValidationError(f"Title cannot exceed {MAX_TITLE_LENGTH} characters")

        target_group_ref = None
        if target_business_group_id:
            group = self.master_data.repo.get_target_group_or_raise(target_business_group_id)
            target_group_ref = NamedRef(id=group.group_id, name=group.name)

        if spoc_user_id:
            spoc_user = self.directory.get_user(spoc_user_id)
        elif target_business_group_id:
            spoc_user = self.master_data.get_spoc_for_target_business_group(target_business_group_id)
        else:
            spoc_user = None

        category_ref, subcategory_ref = self._resolve_classification(category_id, subcategory_id)

        project_ref = None
        if project_id:
            project = self.master_data.repo.get_project_or_raise(project_id)
            project_ref = NamedRef(id=project.project_id, name=project.name)

        assignee = self.directory.get_user(assignee_user_id) if assignee_user_id else None

        if parent_ticket_id:
            parent = self.ticket_repo.get_ticket_or_raise(parent_ticket_id)
            if parent.is_deleted:
                raise ValidationError(
                    "Parent ticket has been deleted",
                    details={"parent_ticket_id": parent_ticket_id}
                )

        if not estimated_duration:
            estimated_duration = self._estimated_duration_for(target_business_group_id, category_id, subcategory_id)

        creator = self.directory.snapshot_for(user)
        assignee_snapshot = self.directory.snapshot_for(assignee) if assignee else None

        now = utc_now()
        ticket_number = self.ticket_repo.next_ticket_number()

        ticket = Ticket(
            ticket_id=format_ticket_id(ticket_number, now),
            ticket_number=ticket_number,
            title=title,
            description=description,
            ticket_type=ticket_type,
            priority=priority,
            status=TicketStatus.OPEN,
            created_by=creator,
            assigned_to=assignee_snapshot,
            spoc=self.directory.snapshot_for(spoc_user) if spoc_user else None,
            initiator_group=self._group_ref(user.business_unit_group_id),
            target_business_group=target_group_ref,
            assignee_group=self._group_ref(assignee.business_unit_group_id) if assignee else None,
            category=category_ref,
            subcategory=subcategory_ref,
            project=project_ref,
            project_name=project_name or (project_ref.name if project_ref else None),
            estimated_duration=estimated_duration,
            product_release_name=product_release_name,
            estimated_release_date=_validate_release_date(estimated_release_date),
            is_internal=bool(user.business_unit_group_id),
            parent_ticket_id=parent_ticket_id,
            created_at=now,
            updated_at=now
        )

        ticket = self.ticket_repo.create_ticket(ticket)
        self.audit_writer.write_created(ticket.ticket_id, ticket_number, creator)

        if spoc_user:
            self._notify(
                self.notifications.enqueue_spoc_ticket_created,
                ticket_id=ticket.ticket_id,
                ticket_number=ticket_number,
                spoc_email=spoc_user.email,
                spoc_name=spoc_user.full_name,
                ticket_title=title,
                description=description,
                creator_name=creator.display_name,
                creator_group=creator.business_unit_group_name
            )

        if assignee:
            self._notify(
                self.notifications.enqueue_ticket_assigned,
                ticket_id=ticket.ticket_id,
                ticket_number=ticket_number,
                assignee_email=assignee.email,
                assignee_name=assignee.full_name,
                ticket_title=title,
                description=description,
                priority=priority.value,
                assigned_by_name=creator.display_name
            )

        logger.info(
            f"Ticket {ticket.ticket_id} created by {user.email}",
            extra={"ticket_id": ticket.ticket_id, "actor_email": user.email}
        )
        return ticket

    # =========================================================================
    # Read
    # =========================================================================

    def list_tickets(
        self,
        filters: TicketFilters,
        user: User,
        is_admin: bool = False,
        my_team: bool = False,
        page: int = 1,
        page_size: int = 50
    ) -> Dict[str, Any]:
        """Paged ticket list, newest first"""
        if filters.include_deleted and not is_admin:
            raise PermissionDeniedError("Only admin can view deleted tickets")
        if page < 1 or page_size < 1:
            raise ValidationError("page and page_size must be positive")

        if my_team:
            filters = filters.model_copy(update={
                "team_member_ids": self.directory.get_team_member_ids(user.user_id)
            })

        tickets, total = self.ticket_repo.list_tickets(
            filters,
            skip=(page - 1) * page_size,
            limit=page_size
        )

        return {
            "items": self._summaries(tickets),
            "page": page,
            "page_size": page_size,
            "total": total
        }

    def get_ticket_detail(self, ticket_id: str) -> Dict[str, Any]:
        """Ticket with comments, attachments and child tickets"""
        ticket = self.ticket_repo.get_ticket_or_raise(ticket_id)

        comments = self.ticket_repo.get_comments_for_ticket(ticket_id)
        attachments = self.attachment_repo.get_attachments_for_ticket(ticket_id)
        children = self.ticket_repo.get_child_tickets(ticket_id)

        return {
            "ticket": self.ticket_to_dict(
                ticket,
                attachment_count=len(attachments),
                child_ticket_count=len(children)
            ),
            "comments": [c.model_dump(mode="json") for c in comments],
            "attachments": [a.model_dump(mode="json") for a in attachments],
            "child_tickets": self._summaries(children)
        }

    def list_child_tickets(self, ticket_id: str) -> List[Dict[str, Any]]:
        self.ticket_repo.get_ticket_or_raise(ticket_id)
        return self._summaries(self.ticket_repo.get_child_tickets(ticket_id))

    def get_ticket_audit_log(self, ticket_id: str) -> List[AuditLogEntry]:
        """Audit trail, newest first"""
        self.ticket_repo.get_ticket_or_raise(ticket_id)
        return self.audit_repo.get_entries_for_ticket(ticket_id)

    # =========================================================================
    # General edit
    # =========================================================================

    def update_ticket(
        self,
        ticket_id: str,
        changes: Dict[str, Any],
        user: User,
        is_admin: bool = False,
        expected_version: Optional[int] = None
    ) -> Ticket:
        """
        Edit ticket details

        Status, assignee, project and routing have their own operations and
        are refused here. One details_change audit entry covers all changed
        fields.
        """
        dedicated = sorted(set(changes) & set(DEDICATED_FIELDS))
        if dedicated:
            raise ValidationError(
                f"Fields cannot be changed here: {', '.join(dedicated)}",
                details={"fields": {f: DEDICATED_FIELDS[f] for f in dedicated}}
            )
        unknown = sorted(set(changes) - set(EDITABLE_FIELDS))
        if unknown:
            raise ValidationError(
                f"Unknown fields: {', '.join(unknown)}",
                details={"fields": unknown}
            )

        ticket = self.ticket_repo.get_ticket_or_raise(ticket_id)
        roles = self.permission_guard.roles_for(user, ticket, is_admin)
        self.permission_guard.check_can_edit_fields(roles, ticket, changes)

        if ticket.is_deleted:
            raise InvalidStateError("Cannot edit a deleted ticket", details={"ticket_id": ticket_id})

        updates: Dict[str, Any] = {}
        audit_changes: Dict[str, Tuple[Optional[str], Optional[str]]] = {}

        if "title" in changes:
            title = (changes["title"] or "").strip()
            if not title:
                raise ValidationError("Title is required")
            if len(title) > MAX_TITLE_LENGTH:
                raise ValidationError(f"Title cannot exceed {MAX_TITLE_LENGTH} characters")
            if title != ticket.title:
                updates["title"] = title
                audit_changes["title"] = (ticket.title, title)

        for field in ("description", "estimated_duration", "product_release_name", "project_name"):
            if field in changes and changes[field] != getattr(ticket, field):
                updates[field] = changes[field]
                audit_changes[field] = (getattr(ticket, field), changes[field])

        if "estimated_release_date" in changes:
            release_date = _validate_release_date(changes["estimated_release_date"])
            if release_date != ticket.estimated_release_date:
                updates["estimated_release_date"] = release_date
                audit_changes["estimated_release_date"] = (ticket.estimated_release_date, release_date)

        if "priority" in changes and changes["priority"] is not None:
            priority = TicketPriority(changes["priority"])
            if priority != ticket.priority:
                updates["priority"] = priority.value
                audit_changes["priority"] = (ticket.priority.value, priority.value)

        if "ticket_type" in changes and changes["ticket_type"] is not None:
            ticket_type = TicketType(changes["ticket_type"])
            if ticket_type != ticket.ticket_type:
                updates["ticket_type"] = ticket_type.value
                audit_changes["ticket_type"] = (ticket.ticket_type.value, ticket_type.value)

        if "category_id" in changes or "subcategory_id" in changes:
            category_id = changes.get("category_id", _ref_id(ticket.category))
            if "subcategory_id" in changes:
                subcategory_id = changes["subcategory_id"]
            elif category_id == _ref_id(ticket.category):
                subcategory_id = _ref_id(ticket.subcategory)
            else:
                # New category invalidates the old subcategory
                subcategory_id = None

            category_ref, subcategory_ref = self._resolve_classification(category_id, subcategory_id)

            if _ref_id(category_ref) != _ref_id(ticket.category):
                updates["category"] = category_ref.model_dump() if category_ref else None
                audit_changes["category"] = (_ref_name(ticket.category), _ref_name(category_ref))
            if _ref_id(subcategory_ref) != _ref_id(ticket.subcategory):
                updates["subcategory"] = subcategory_ref.model_dump() if subcategory_ref else None
                audit_changes["subcategory"] = (_ref_name(ticket.subcategory), _ref_name(subcategory_ref))

        if not updates:
            return ticket

        updated = self.ticket_repo.update_ticket(
            ticket_id,
            updates,
            expected_version=expected_version if expected_version is not None else ticket.version
        )

        self.audit_writer.write_details_change(
            ticket_id,
            self.directory.snapshot_for(user),
            {field: (str(old) if old is not None else None, str(new) if new is not None else None)
             for field, (old, new) in audit_changes.items()}
        )
        return updated

    # =========================================================================
    # Status
    # =========================================================================

    def update_ticket_status(
        self,
        ticket_id: str,
        new_status: TicketStatus,
        user: User,
        is_admin: bool = False,
        reason: Optional[str] = None,
        remarks: Optional[str] = None
    ) -> Ticket:
        """Change ticket status subject to the permission matrix"""
        ticket = self.ticket_repo.get_ticket_or_raise(ticket_id)
        roles = self.permission_guard.roles_for(user, ticket, is_admin)
        self.permission_guard.check_status_change(roles, ticket, new_status)

        if ticket.is_deleted:
            raise InvalidStateError(
                "Cannot change status of a deleted ticket",
                details={"ticket_id": ticket_id}
            )

        old_status = ticket.status
        if new_status == old_status:
            return ticket

        reason = (reason or "").strip()
        remarks = (remarks or "").strip() or None
        if not reason:
            raise ValidationError("A reason is required to change the ticket status")

        actor = self.directory.snapshot_for(user)
        updates = build_status_updates(new_status, actor, utc_now())
        updated = self.ticket_repo.update_ticket(ticket_id, updates, expected_version=ticket.version)

        self.audit_writer.write_status_change(
            ticket_id,
            actor,
            old_status,
            new_status,
            compose_status_note(old_status, new_status, reason, remarks)
        )

        recipients: List[UserSnapshot] = []
        if not self._is_same(user, ticket.created_by):
            recipients.append(ticket.created_by)
        if (
            ticket.assigned_to
            and ticket.assigned_to.user_id != ticket.created_by.user_id
            and not self._is_same(user, ticket.assigned_to)
        ):
            recipients.append(ticket.assigned_to)

        for recipient in recipients:
            self._notify(
                self.notifications.enqueue_status_changed,
                ticket_id=ticket_id,
                ticket_number=ticket.ticket_number,
                recipient_email=recipient.email,
                recipient_name=recipient.display_name,
                ticket_title=ticket.title,
                old_status=old_status.value,
                new_status=new_status.value,
                changed_by_name=actor.display_name
            )

        logger.info(
            f"Ticket {ticket_id} status {old_status.value} -> {new_status.value}",
            extra={"ticket_id": ticket_id, "actor_email": user.email, "status": new_status.value}
        )
        return updated

    # =========================================================================
    # Soft delete and restore
    # =========================================================================

    def delete_ticket(self, ticket_id: str, user: User, is_admin: bool = False) -> Ticket:
        """Soft delete: the ticket is hidden from lists but kept"""
        ticket = self.ticket_repo.get_ticket_or_raise(ticket_id)
        roles = self.permission_guard.roles_for(user, ticket, is_admin)
        self.permission_guard.check_can_delete(roles, ticket)

        if ticket.is_deleted:
            raise InvalidStateError("Ticket is already deleted", details={"ticket_id": ticket_id})

        actor = self.directory.snapshot_for(user)
        updates = build_status_updates(TicketStatus.DELETED, actor, utc_now())
        updated = self.ticket_repo.update_ticket(ticket_id, updates, expected_version=ticket.version)

        self.audit_writer.write_status_change(
            ticket_id,
            actor,
            ticket.status,
            TicketStatus.DELETED,
            "Ticket deleted by admin" if is_admin else "Ticket deleted by initiator"
        )

        logger.info(
            f"Ticket {ticket_id} deleted",
            extra={"ticket_id": ticket_id, "actor_email": user.email, "action": "delete"}
        )
        return updated

    def _status_before_delete(self, ticket_id: str) -> TicketStatus:
        entry = self.audit_repo.get_latest_entry(
            ticket_id, AuditActionType.STATUS_CHANGE, new_value=TicketStatus.DELETED.value
        )
        if entry and entry.old_value:
            try:
                status = TicketStatus(entry.old_value)
            except ValueError:
                return TicketStatus.OPEN
            if status != TicketStatus.DELETED:
                return status
        return TicketStatus.OPEN

    def restore_ticket(self, ticket_id: str, user: User, is_admin: bool = False) -> Ticket:
        """Undo a soft delete, putting back the status the ticket had before"""
        ticket = self.ticket_repo.get_ticket_or_raise(ticket_id)
        roles = self.permission_guard.roles_for(user, ticket, is_admin)
        self.permission_guard.check_can_restore(roles, ticket)

        if not ticket.is_deleted:
            raise InvalidStateError("Ticket is not deleted", details={"ticket_id": ticket_id})

        restored_status = self._status_before_delete(ticket_id)
        updated = self.ticket_repo.update_ticket(
            ticket_id,
            {"status": restored_status.value, "is_deleted": False, "deleted_at": None},
            expected_version=ticket.version
        )

        self.audit_writer.write_status_change(
            ticket_id,
            self.directory.snapshot_for(user),
            TicketStatus.DELETED,
            restored_status,
            "Ticket restored by admin"
        )

        logger.info(
            f"Ticket {ticket_id} restored to {restored_status.value}",
            extra={"ticket_id": ticket_id, "actor_email": user.email, "action": "restore"}
        )
        return updated

    # =========================================================================
    # Routing, assignment, project
    # =========================================================================

    def redirect_ticket(
        self,
        ticket_id: str,
        target_business_group_id: str,
        spoc_user_id: str,
        remarks: str,
        user: User,
        is_admin: bool = False
    ) -> Ticket:
        """Move a ticket to another target business group and SPOC"""
        ticket = self.ticket_repo.get_ticket_or_raise(ticket_id)
        roles = self.permission_guard.roles_for(user, ticket, is_admin)
        self.permission_guard.check_can_redirect(roles, ticket)

        if ticket.is_deleted:
            raise InvalidStateError("Cannot redirect a deleted ticket", details={"ticket_id": ticket_id})

        remarks = (remarks or "").strip()
        if not remarks:
            raise ValidationError("Remarks are required to redirect a ticket")

        group = self.master_data.repo.get_target_group_or_raise(target_business_group_id)
        new_spoc = self.directory.get_user(spoc_user_id)
        new_spoc_snapshot = self.directory.snapshot_for(new_spoc)
        new_group_ref = NamedRef(id=group.group_id, name=group.name)

        updates = {
            "target_business_group": new_group_ref.model_dump(),
            "spoc": new_spoc_snapshot.model_dump(),
            "redirected_from_group": ticket.target_business_group.model_dump() if ticket.target_business_group else None,
            "redirected_from_spoc": ticket.spoc.model_dump() if ticket.spoc else None,
            "redirection_remarks": remarks,
            "redirected_at": utc_now()
        }
        updated = self.ticket_repo.update_ticket(ticket_id, updates, expected_version=ticket.version)

        actor = self.directory.snapshot_for(user)
        self.audit_writer.write_redirection(
            ticket_id,
            actor,
            old_route=(_ref_name(ticket.target_business_group), ticket.spoc.display_name if ticket.spoc else None),
            new_route=(group.name, new_spoc.full_name),
            remarks=remarks
        )

        self._notify(
            self.notifications.enqueue_ticket_redirected,
            ticket_id=ticket_id,
            ticket_number=ticket.ticket_number,
            spoc_email=new_spoc.email,
            spoc_name=new_spoc.full_name,
            ticket_title=ticket.title,
            from_group=_ref_name(ticket.target_business_group),
            to_group=group.name,
            redirected_by_name=actor.display_name,
            remarks=remarks
        )

        logger.info(
            f"Ticket {ticket_id} redirected to {group.name}",
            extra={"ticket_id": ticket_id, "actor_email": user.email, "action": "redirect"}
        )
        return updated

    def update_ticket_assignee(
        self,
        ticket_id: str,
        assignee_user_id: Optional[str],
        user: User,
        is_admin: bool = False
    ) -> Ticket:
        """Assign, reassign or unassign a ticket"""
        ticket = self.ticket_repo.get_ticket_or_raise(ticket_id)
        roles = self.permission_guard.roles_for(user, ticket, is_admin)
        self.permission_guard.check_can_assign(roles, ticket)

        if ticket.is_deleted:
            raise InvalidStateError("Cannot reassign a deleted ticket", details={"ticket_id": ticket_id})

        old_assignee = ticket.assigned_to
        if (old_assignee.user_id if old_assignee else None) == assignee_user_id:
            return ticket

        assignee = self.directory.get_user(assignee_user_id) if assignee_user_id else None
        new_assignee = self.directory.snapshot_for(assignee) if assignee else None
        assignee_group = self._group_ref(assignee.business_unit_group_id) if assignee else None

        updated = self.ticket_repo.update_ticket(
            ticket_id,
            {
                "assigned_to": new_assignee.model_dump() if new_assignee else None,
                "assignee_group": assignee_group.model_dump() if assignee_group else None
            },
            expected_version=ticket.version
        )

        actor = self.directory.snapshot_for(user)
        self.audit_writer.write_assignment_change(ticket_id, actor, old_assignee, new_assignee)

        if assignee:
            self._notify(
                self.notifications.enqueue_ticket_assigned,
                ticket_id=ticket_id,
                ticket_number=ticket.ticket_number,
                assignee_email=assignee.email,
                assignee_name=assignee.full_name,
                ticket_title=ticket.title,
                description=ticket.description,
                priority=ticket.priority.value,
                assigned_by_name=actor.display_name
            )

        logger.info(
            f"Ticket {ticket_id} assigned to {assignee.email if assignee else 'nobody'}",
            extra={"ticket_id": ticket_id, "actor_email": user.email, "action": "assign"}
        )
        return updated

    def update_ticket_project(
        self,
        ticket_id: str,
        project_id: Optional[str],
        user: User,
        is_admin: bool = False
    ) -> Ticket:
        ticket = self.ticket_repo.get_ticket_or_raise(ticket_id)
        roles = self.permission_guard.roles_for(user, ticket, is_admin)
        self.permission_guard.check_can_change_project(roles, ticket)

        if ticket.is_deleted:
            raise InvalidStateError("Cannot change the project of a deleted ticket", details={"ticket_id": ticket_id})

        if _ref_id(ticket.project) == project_id:
            return ticket

        project_ref = None
        if project_id:
            project = self.master_data.repo.get_project_or_raise(project_id)
            project_ref = NamedRef(id=project.project_id, name=project.name)

        updated = self.ticket_repo.update_ticket(
            ticket_id,
            {
                "project": project_ref.model_dump() if project_ref else None,
                "project_name": project_ref.name if project_ref else None
            },
            expected_version=ticket.version
        )

        self.audit_writer.write_project_change(
            ticket_id,
            self.directory.snapshot_for(user),
            _ref_name(ticket.project),
            _ref_name(project_ref)
        )
        return updated

    # =========================================================================
    # Comments
    # =========================================================================

    def add_comment(self, ticket_id: str, content: str, user: User) -> Comment:
        ticket = self.ticket_repo.get_ticket_or_raise(ticket_id)
        if ticket.is_deleted:
            raise InvalidStateError("Cannot comment on a deleted ticket", details={"ticket_id": ticket_id})

        content = (content or "").strip()
        if not content:
            raise ValidationError("Comment cannot be empty")
        if len(content) > MAX_COMMENT_LENGTH:
            raise ValidationError(f"Comment cannot exceed {MAX_COMMENT_LENGTH} characters")

        comment = Comment(
            comment_id=generate_comment_id(),
            ticket_id=ticket_id,
            author=self.directory.snapshot_for(user),
            content=content,
            created_at=utc_now()
        )
        comment = self.ticket_repo.create_comment(comment)
        self.ticket_repo.touch_ticket(ticket_id)
        return comment

    def list_comments(self, ticket_id: str) -> List[Comment]:
        self.ticket_repo.get_ticket_or_raise(ticket_id)
        return self.ticket_repo.get_comments_for_ticket(ticket_id)

    def delete_comment(self, comment_id: str, user: User, is_admin: bool = False) -> None:
        comment = self.ticket_repo.get_comment_or_raise(comment_id)
        if not self.permission_guard.can_delete_comment(user, comment, is_admin):
            raise PermissionDeniedError(
                "Only the comment author or admin can delete comments",
                details={"comment_id": comment_id}
            )
        self.ticket_repo.delete_comment(comment_id)

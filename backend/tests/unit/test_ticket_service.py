"""Ticket service: creation, lifecycle, routing and comments"""
import pytest

from ticketdesk.domain.enums import (
    TicketStatus, TicketPriority, AuditActionType, NotificationTemplateKey
)
from ticketdesk.domain.errors import (
    ValidationError, PermissionDeniedError, InvalidStateError, ConcurrencyError, NotFoundError
)
from ticketdesk.domain.models import Category
from ticketdesk.repositories.notification_repo import NotificationRepository
from ticketdesk.repositories.ticket_repo import TicketFilters, TOP_LEVEL
from ticketdesk.services.ticket_service import TicketService
from ticketdesk.utils.time import utc_now


@pytest.fixture
def service(seeded):
    return TicketService()


@pytest.fixture
def laptop_ticket(service, seeded):
    return service.create_ticket(
        "Laptop broken",
        seeded.initiator,
        description="Screen flickers",
        target_business_group_id=seeded.it_support.group_id,
        category_id=seeded.hardware.category_id,
        subcategory_id=seeded.laptop.subcategory_id
    )


def outbox(ticket_id):
    return NotificationRepository().get_notifications_for_ticket(ticket_id)


def audit_actions(service, ticket_id):
    return [e.action_type for e in service.get_ticket_audit_log(ticket_id)]


class TestCreate:
    def test_routes_to_mapped_spoc(self, service, seeded, laptop_ticket):
        assert laptop_ticket.ticket_id.startswith("TKT-")
        assert laptop_ticket.ticket_id.endswith("-00001")
        assert laptop_ticket.ticket_number == 1
        assert laptop_ticket.status == TicketStatus.OPEN
        assert laptop_ticket.spoc.user_id == seeded.spoc.user_id
        assert laptop_ticket.target_business_group.name == "IT Support"
        assert laptop_ticket.category.name == "Hardware"
        assert laptop_ticket.subcategory.name == "Laptop"
        assert laptop_ticket.estimated_duration == "8 hr"

    def test_initiator_group_marks_ticket_internal(self, service, seeded, laptop_ticket):
        assert laptop_ticket.is_internal is True
        assert laptop_ticket.initiator_group.name == "Finance"
        assert laptop_ticket.created_by.business_unit_group_name == "Finance"

        external = service.create_ticket("Printer jam", seeded.outsider)
        assert external.is_internal is False
        assert external.initiator_group is None
        assert external.spoc is None

    def test_numbers_increase(self, service, seeded, laptop_ticket):
        second = service.create_ticket("Second", seeded.initiator)
        assert second.ticket_number == laptop_ticket.ticket_number + 1

    def test_explicit_duration_wins_over_mapping(self, service, seeded):
        ticket = service.create_ticket(
            "Laptop slow",
            seeded.initiator,
            target_business_group_id=seeded.it_support.group_id,
            category_id=seeded.hardware.category_id,
            subcategory_id=seeded.laptop.subcategory_id,
            estimated_duration="2 days"
        )
        assert ticket.estimated_duration == "2 days"

    def test_writes_created_audit_and_spoc_notification(self, service, seeded, laptop_ticket):
        entries = service.get_ticket_audit_log(laptop_ticket.ticket_id)
        assert [e.action_type for e in entries] == [AuditActionType.CREATED]
        assert entries[0].new_value == "Ticket #1 created"
        assert entries[0].performed_by_name == "Ivy Initiator"

        notifications = outbox(laptop_ticket.ticket_id)
        assert len(notifications) == 1
        assert notifications[0].template_key == NotificationTemplateKey.SPOC_TICKET_CREATED
        assert notifications[0].recipients == [seeded.spoc.email]
        assert notifications[0].payload["creator_group"] == "Finance"

    def test_assignee_on_create_is_notified(self, service, seeded):
        ticket = service.create_ticket("VPN", seeded.initiator, assignee_user_id=seeded.assignee.user_id)
        keys = [n.template_key for n in outbox(ticket.ticket_id)]
        assert keys == [NotificationTemplateKey.TICKET_ASSIGNED]

    @pytest.mark.parametrize("title", ["", "   "])
    def test_blank_title_rejected(self, service, seeded, title):
        with pytest.raises(ValidationError):
            service.create_ticket(title, seeded.initiator)

    def test_subcategory_must_match_category(self, service, seeded):
        service.master_data.repo.create_category(Category(
            category_id="CAT-software", name="Software", created_at=utc_now()
        ))
        with pytest.raises(ValidationError):
            service.create_ticket(
                "Mismatch", seeded.initiator,
                category_id="CAT-software", subcategory_id=seeded.laptop.subcategory_id
            )
        with pytest.raises(ValidationError):
            service.create_ticket("No category", seeded.initiator, subcategory_id=seeded.laptop.subcategory_id)

    def test_unknown_target_group(self, service, seeded):
        with pytest.raises(NotFoundError):
            service.create_ticket("Lost", seeded.initiator, target_business_group_id="TBG-missing")

    def test_bad_release_date(self, service, seeded):
        with pytest.raises(ValidationError):
            service.create_ticket("Release", seeded.initiator, estimated_release_date="next week")

    def test_release_date_is_normalised(self, service, seeded):
        ticket = service.create_ticket(
            "Release", seeded.initiator, estimated_release_date="2024-06-30T09:00:00Z"
        )
        assert ticket.estimated_release_date == "2024-06-30"

    def test_child_ticket(self, service, seeded, laptop_ticket):
        child = service.create_ticket("Replace screen", seeded.spoc, parent_ticket_id=laptop_ticket.ticket_id)

        children = service.list_child_tickets(laptop_ticket.ticket_id)
        assert [c["ticket_id"] for c in children] == [child.ticket_id]

        detail = service.get_ticket_detail(laptop_ticket.ticket_id)
        assert detail["ticket"]["child_ticket_count"] == 1
        assert detail["child_tickets"][0]["title"] == "Replace screen"

        top_level = service.list_tickets(
            TicketFilters(parent_ticket_id=TOP_LEVEL), seeded.admin, is_admin=True
        )
        assert [t["ticket_id"] for t in top_level["items"]] == [laptop_ticket.ticket_id]


class TestStatus:
    def test_reason_required(self, service, seeded, laptop_ticket):
        with pytest.raises(ValidationError):
            service.update_ticket_status(
                laptop_ticket.ticket_id, TicketStatus.CLOSED, seeded.initiator, reason="  "
            )

    def test_initiator_closes_and_is_not_notified(self, service, seeded, laptop_ticket):
        updated = service.update_ticket_status(
            laptop_ticket.ticket_id, TicketStatus.CLOSED, seeded.initiator, reason="Fixed itself"
        )
        assert updated.status == TicketStatus.CLOSED
        assert updated.closed_by.user_id == seeded.initiator.user_id
        assert updated.closed_at is not None
        assert updated.version == laptop_ticket.version + 1

        keys = [n.template_key for n in outbox(laptop_ticket.ticket_id)]
        assert NotificationTemplateKey.TICKET_STATUS_CHANGED not in keys

        entry = service.audit_repo.get_latest_entry(laptop_ticket.ticket_id, AuditActionType.STATUS_CHANGE)
        assert (entry.old_value, entry.new_value) == ("open", "closed")
        assert "Reason: Fixed itself" in entry.notes

    def test_spoc_hold_notifies_creator(self, service, seeded, laptop_ticket):
        service.update_ticket_status(
            laptop_ticket.ticket_id, TicketStatus.ON_HOLD, seeded.spoc,
            reason="Waiting on vendor", remarks="ETA Friday"
        )
        changed = [
            n for n in outbox(laptop_ticket.ticket_id)
            if n.template_key == NotificationTemplateKey.TICKET_STATUS_CHANGED
        ]
        assert [n.recipients for n in changed] == [[seeded.initiator.email]]
        assert changed[0].payload["new_status"] == "on-hold"

    def test_outsider_denied(self, service, seeded, laptop_ticket):
        with pytest.raises(PermissionDeniedError):
            service.update_ticket_status(
                laptop_ticket.ticket_id, TicketStatus.CLOSED, seeded.outsider, reason="x"
            )

    def test_same_status_is_a_no_op(self, service, seeded, laptop_ticket):
        unchanged = service.update_ticket_status(
            laptop_ticket.ticket_id, TicketStatus.OPEN, seeded.admin, is_admin=True
        )
        assert unchanged.version == laptop_ticket.version


class TestDeleteRestore:
    def test_delete_hides_ticket(self, service, seeded, laptop_ticket):
        deleted = service.delete_ticket(laptop_ticket.ticket_id, seeded.initiator)
        assert deleted.is_deleted is True
        assert deleted.status == TicketStatus.DELETED

        listed = service.list_tickets(TicketFilters(), seeded.initiator)
        assert listed["total"] == 0

        with_deleted = service.list_tickets(
            TicketFilters(include_deleted=True), seeded.admin, is_admin=True
        )
        assert with_deleted["total"] == 1

    def test_only_admin_sees_deleted(self, service, seeded):
        with pytest.raises(PermissionDeniedError):
            service.list_tickets(TicketFilters(include_deleted=True), seeded.initiator)

    def test_spoc_cannot_delete(self, service, seeded, laptop_ticket):
        with pytest.raises(PermissionDeniedError):
            service.delete_ticket(laptop_ticket.ticket_id, seeded.spoc)

    def test_delete_twice(self, service, seeded, laptop_ticket):
        service.delete_ticket(laptop_ticket.ticket_id, seeded.initiator)
        with pytest.raises(InvalidStateError):
            service.delete_ticket(laptop_ticket.ticket_id, seeded.admin, is_admin=True)

    def test_restore_puts_back_previous_status(self, service, seeded, laptop_ticket):
        service.update_ticket_status(
            laptop_ticket.ticket_id, TicketStatus.ON_HOLD, seeded.spoc, reason="Parts"
        )
        service.delete_ticket(laptop_ticket.ticket_id, seeded.initiator)

        restored = service.restore_ticket(laptop_ticket.ticket_id, seeded.admin, is_admin=True)
        assert restored.is_deleted is False
        assert restored.status == TicketStatus.ON_HOLD

    def test_restore_requires_admin(self, service, seeded, laptop_ticket):
        service.delete_ticket(laptop_ticket.ticket_id, seeded.initiator)
        with pytest.raises(PermissionDeniedError):
            service.restore_ticket(laptop_ticket.ticket_id, seeded.initiator)

    def test_restore_live_ticket(self, service, seeded, laptop_ticket):
        with pytest.raises(InvalidStateError):
            service.restore_ticket(laptop_ticket.ticket_id, seeded.admin, is_admin=True)

    def test_deleted_ticket_is_frozen(self, service, seeded, laptop_ticket):
        service.delete_ticket(laptop_ticket.ticket_id, seeded.initiator)
        with pytest.raises(InvalidStateError):
            service.add_comment(laptop_ticket.ticket_id, "hello", seeded.initiator)
        with pytest.raises(InvalidStateError):
            service.update_ticket(laptop_ticket.ticket_id, {"title": "New"}, seeded.admin, is_admin=True)


class TestRedirect:
    def test_redirect_moves_route(self, service, seeded, laptop_ticket):
        updated = service.redirect_ticket(
            laptop_ticket.ticket_id,
            seeded.apps.group_id,
            seeded.second_spoc.user_id,
            "Belongs to applications",
            seeded.spoc
        )
        assert updated.target_business_group.name == "Business Applications"
        assert updated.spoc.user_id == seeded.second_spoc.user_id
        assert updated.redirected_from_group.name == "IT Support"
        assert updated.redirected_from_spoc.user_id == seeded.spoc.user_id
        assert updated.redirection_remarks == "Belongs to applications"

        entry = service.audit_repo.get_latest_entry(laptop_ticket.ticket_id, AuditActionType.REDIRECTION)
        assert entry.old_value == "IT Support (Sam Spoc)"
        assert entry.new_value == "Business Applications (Nina Spoc)"

        redirected = [
            n for n in outbox(laptop_ticket.ticket_id)
            if n.template_key == NotificationTemplateKey.TICKET_REDIRECTED
        ]
        assert redirected[0].recipients == [seeded.second_spoc.email]
        assert redirected[0].payload["from_group"] == "IT Support"

    def test_unrouted_ticket_logs_unknown_route(self, service, seeded):
        ticket = service.create_ticket("Where does this go", seeded.initiator)
        assert ticket.target_business_group is None
        assert ticket.spoc is None

        service.redirect_ticket(
            ticket.ticket_id, seeded.it_support.group_id, seeded.spoc.user_id,
            "Sending to IT", seeded.admin, is_admin=True
        )

        entry = service.audit_repo.get_latest_entry(ticket.ticket_id, AuditActionType.REDIRECTION)
        assert entry.old_value == "Unknown Group (Unknown SPOC)"
        assert entry.new_value == "IT Support (Sam Spoc)"
        assert entry.notes == "Redirected: Sending to IT"

    def test_remarks_required(self, service, seeded, laptop_ticket):
        with pytest.raises(ValidationError):
            service.redirect_ticket(
                laptop_ticket.ticket_id, seeded.apps.group_id, seeded.second_spoc.user_id, " ", seeded.spoc
            )

    def test_initiator_cannot_redirect(self, service, seeded, laptop_ticket):
        with pytest.raises(PermissionDeniedError):
            service.redirect_ticket(
                laptop_ticket.ticket_id, seeded.apps.group_id, seeded.second_spoc.user_id,
                "Wrong team", seeded.initiator
            )


class TestAssignmentAndProject:
    def test_spoc_assigns(self, service, seeded, laptop_ticket):
        updated = service.update_ticket_assignee(
            laptop_ticket.ticket_id, seeded.assignee.user_id, seeded.spoc
        )
        assert updated.assigned_to.user_id == seeded.assignee.user_id

        entry = service.audit_repo.get_latest_entry(laptop_ticket.ticket_id, AuditActionType.ASSIGNMENT_CHANGE)
        assert entry.notes == "Assignee changed from Unassigned to Alex Assignee"

        assigned = [
            n for n in outbox(laptop_ticket.ticket_id)
            if n.template_key == NotificationTemplateKey.TICKET_ASSIGNED
        ]
        assert assigned[0].recipients == [seeded.assignee.email]

    def test_assignee_can_unassign(self, service, seeded, laptop_ticket):
        service.update_ticket_assignee(laptop_ticket.ticket_id, seeded.assignee.user_id, seeded.spoc)
        updated = service.update_ticket_assignee(laptop_ticket.ticket_id, None, seeded.assignee)
        assert updated.assigned_to is None

    def test_initiator_cannot_assign(self, service, seeded, laptop_ticket):
        with pytest.raises(PermissionDeniedError):
            service.update_ticket_assignee(laptop_ticket.ticket_id, seeded.assignee.user_id, seeded.initiator)

    def test_project_change(self, service, seeded, laptop_ticket):
        updated = service.update_ticket_project(laptop_ticket.ticket_id, seeded.project.project_id, seeded.initiator)
        assert updated.project.name == "Office Migration"
        assert updated.project_name == "Office Migration"

        cleared = service.update_ticket_project(laptop_ticket.ticket_id, None, seeded.spoc)
        assert cleared.project is None

        entry = service.audit_repo.get_latest_entry(
            laptop_ticket.ticket_id, AuditActionType.PROJECT_CHANGE, new_value="None"
        )
        assert entry.old_value == "Office Migration"

    def test_outsider_cannot_change_project(self, service, seeded, laptop_ticket):
        with pytest.raises(PermissionDeniedError):
            service.update_ticket_project(laptop_ticket.ticket_id, seeded.project.project_id, seeded.outsider)


class TestEdit:
    def test_edit_details(self, service, seeded, laptop_ticket):
        updated = service.update_ticket(
            laptop_ticket.ticket_id,
            {"title": "Laptop screen broken", "description": "Flickers after boot"},
            seeded.initiator
        )
        assert updated.title == "Laptop screen broken"
        assert updated.description == "Flickers after boot"

        entry = service.audit_repo.get_latest_entry(laptop_ticket.ticket_id, AuditActionType.DETAILS_CHANGE)
        assert entry.notes == "Updated description, title"
        assert "title: Laptop broken" in entry.old_value

    def test_admin_changes_priority(self, service, seeded, laptop_ticket):
        updated = service.update_ticket(
            laptop_ticket.ticket_id, {"priority": "high"}, seeded.admin, is_admin=True
        )
        assert updated.priority == TicketPriority.HIGH

    def test_spoc_cannot_edit_title(self, service, seeded, laptop_ticket):
        with pytest.raises(PermissionDeniedError):
            service.update_ticket(laptop_ticket.ticket_id, {"title": "Hijacked"}, seeded.spoc)

    @pytest.mark.parametrize("changes", [{"priority": "urgent"}, {"category_id": None}])
    def test_initiator_cannot_reclassify(self, service, seeded, laptop_ticket, changes):
        with pytest.raises(PermissionDeniedError):
            service.update_ticket(laptop_ticket.ticket_id, changes, seeded.initiator)
        assert service.get_ticket_detail(laptop_ticket.ticket_id)["ticket"]["priority"] == "medium"

    def test_closed_ticket_is_admin_only(self, service, seeded, laptop_ticket):
        service.update_ticket_status(laptop_ticket.ticket_id, TicketStatus.CLOSED, seeded.initiator, reason="Done")
        with pytest.raises(PermissionDeniedError):
            service.update_ticket(laptop_ticket.ticket_id, {"title": "Reworded"}, seeded.initiator)

        updated = service.update_ticket(laptop_ticket.ticket_id, {"title": "Reworded"}, seeded.admin, is_admin=True)
        assert updated.title == "Reworded"

    @pytest.mark.parametrize("field", ["status", "assignee_user_id", "project_id", "spoc_user_id"])
    def test_dedicated_fields_refused(self, service, seeded, laptop_ticket, field):
        with pytest.raises(ValidationError):
            service.update_ticket(laptop_ticket.ticket_id, {field: "x"}, seeded.admin, is_admin=True)

    def test_unknown_field_refused(self, service, seeded, laptop_ticket):
        with pytest.raises(ValidationError):
            service.update_ticket(laptop_ticket.ticket_id, {"colour": "red"}, seeded.initiator)

    def test_assignee_cannot_edit(self, service, seeded, laptop_ticket):
        service.update_ticket_assignee(laptop_ticket.ticket_id, seeded.assignee.user_id, seeded.spoc)
        with pytest.raises(PermissionDeniedError):
            service.update_ticket(laptop_ticket.ticket_id, {"title": "Mine now"}, seeded.assignee)

    def test_stale_version(self, service, seeded, laptop_ticket):
        service.update_ticket(laptop_ticket.ticket_id, {"title": "First"}, seeded.initiator)
        with pytest.raises(ConcurrencyError):
            service.update_ticket(
                laptop_ticket.ticket_id, {"title": "Second"}, seeded.initiator,
                expected_version=laptop_ticket.version
            )

    def test_no_change_writes_nothing(self, service, seeded, laptop_ticket):
        same = service.update_ticket(laptop_ticket.ticket_id, {"title": "Laptop broken"}, seeded.initiator)
        assert same.version == laptop_ticket.version
        assert audit_actions(service, laptop_ticket.ticket_id) == [AuditActionType.CREATED]


class TestComments:
    def test_add_and_list(self, service, seeded, laptop_ticket):
        comment = service.add_comment(laptop_ticket.ticket_id, "  Any update?  ", seeded.initiator)
        assert comment.content == "Any update?"
        assert comment.author.user_id == seeded.initiator.user_id
        assert [c.comment_id for c in service.list_comments(laptop_ticket.ticket_id)] == [comment.comment_id]

    def test_empty_comment(self, service, seeded, laptop_ticket):
        with pytest.raises(ValidationError):
            service.add_comment(laptop_ticket.ticket_id, "   ", seeded.initiator)

    def test_only_author_or_admin_deletes(self, service, seeded, laptop_ticket):
        first = service.add_comment(laptop_ticket.ticket_id, "First", seeded.initiator)
        second = service.add_comment(laptop_ticket.ticket_id, "Second", seeded.spoc)

        with pytest.raises(PermissionDeniedError):
            service.delete_comment(first.comment_id, seeded.spoc)

        service.delete_comment(first.comment_id, seeded.initiator)
        service.delete_comment(second.comment_id, seeded.admin, is_admin=True)
        assert service.list_comments(laptop_ticket.ticket_id) == []


class TestList:
    def test_my_team(self, service, seeded):
        assigned = service.create_ticket("Assigned to Alex", seeded.initiator, assignee_user_id=seeded.assignee.user_id)
        service.create_ticket("Nobody", seeded.initiator)
        raised = service.create_ticket("Raised by Sam", seeded.spoc)

        result = service.list_tickets(TicketFilters(), seeded.spoc, my_team=True)
        assert {t["ticket_id"] for t in result["items"]} == {assigned.ticket_id, raised.ticket_id}

    def test_not_in_a_team_sees_nothing(self, service, seeded):
        service.create_ticket("Anything", seeded.outsider)
        result = service.list_tickets(TicketFilters(), seeded.outsider, my_team=True)
        assert result["total"] == 0

    def test_filters(self, service, seeded, laptop_ticket):
        external = service.create_ticket("Printer jam", seeded.outsider, priority=TicketPriority.URGENT)

        def ids(**kwargs):
            result = service.list_tickets(TicketFilters(**kwargs), seeded.admin, is_admin=True)
            return {t["ticket_id"] for t in result["items"]}

        assert ids(is_internal=True) == {laptop_ticket.ticket_id}
        assert ids(is_internal=False) == {external.ticket_id}
        assert ids(priority=TicketPriority.URGENT) == {external.ticket_id}
        assert ids(search="printer") == {external.ticket_id}
        assert ids(search=laptop_ticket.ticket_id) == {laptop_ticket.ticket_id}
        assert ids(spoc=seeded.spoc.user_id) == {laptop_ticket.ticket_id}
        assert ids(target_business_group="IT Support") == {laptop_ticket.ticket_id}
        assert ids(initiator_group="Finance") == {laptop_ticket.ticket_id}
        assert ids(created_by=seeded.outsider.user_id) == {external.ticket_id}

    def test_paging(self, service, seeded):
        for i in range(3):
            service.create_ticket(f"Ticket {i}", seeded.initiator)

        page = service.list_tickets(TicketFilters(), seeded.initiator, page=2, page_size=2)
        assert page["total"] == 3
        assert len(page["items"]) == 1

        with pytest.raises(ValidationError):
            service.list_tickets(TicketFilters(), seeded.initiator, page=0)

"""Permission matrix for ticket actions"""
import pytest

from ticketdesk.domain.enums import TicketStatus
from ticketdesk.domain.errors import PermissionDeniedError
from ticketdesk.domain.models import Ticket, User, UserSnapshot
from ticketdesk.engine.permission_guard import PermissionGuard
from ticketdesk.utils.time import utc_now


def make_user(user_id: str, email: str) -> User:
    return User(user_id=user_id, email=email, full_name=user_id, created_at=utc_now())


INITIATOR = make_user("u-init", "init@company.com")
ASSIGNEE = make_user("u-assignee", "assignee@company.com")
SPOC = make_user("u-spoc", "spoc@company.com")
OTHER = make_user("u-other", "other@company.com")


def make_ticket(status: TicketStatus = TicketStatus.OPEN) -> Ticket:
    now = utc_now()
    return Ticket(
        ticket_id="TKT-202401-00001",
        ticket_number=1,
        title="Laptop broken",
        status=status,
        created_by=INITIATOR.snapshot(),
        assigned_to=ASSIGNEE.snapshot(),
        spoc=SPOC.snapshot(),
        created_at=now,
        updated_at=now
    )


@pytest.fixture
def guard():
    return PermissionGuard()


def check(guard, user, ticket, new_status, is_admin=False):
    roles = guard.roles_for(user, ticket, is_admin)
    guard.check_status_change(roles, ticket, new_status)


@pytest.mark.parametrize("user,new_status", [
    (INITIATOR, TicketStatus.CLOSED),
    (INITIATOR, TicketStatus.DELETED),
    (SPOC, TicketStatus.ON_HOLD),
    (ASSIGNEE, TicketStatus.RESOLVED),
    (ASSIGNEE, TicketStatus.RETURNED),
])
def test_allowed_status_changes(guard, user, new_status):
    check(guard, user, make_ticket(), new_status)


@pytest.mark.parametrize("user,new_status", [
    (SPOC, TicketStatus.CLOSED),
    (ASSIGNEE, TicketStatus.CLOSED),
    (INITIATOR, TicketStatus.ON_HOLD),
    (SPOC, TicketStatus.RESOLVED),
    (INITIATOR, TicketStatus.RETURNED),
    (OTHER, TicketStatus.OPEN),
])
def test_denied_status_changes(guard, user, new_status):
    with pytest.raises(PermissionDeniedError):
        check(guard, user, make_ticket(TicketStatus.ON_HOLD), new_status)


def test_admin_bypasses_matrix(guard):
    for status in TicketStatus:
        check(guard, OTHER, make_ticket(), status, is_admin=True)


def test_reopen_from_resolved_excludes_spoc(guard):
    ticket = make_ticket(TicketStatus.RESOLVED)
    check(guard, INITIATOR, ticket, TicketStatus.OPEN)
    check(guard, ASSIGNEE, ticket, TicketStatus.OPEN)
    with pytest.raises(PermissionDeniedError):
        check(guard, SPOC, ticket, TicketStatus.OPEN)


def test_spoc_can_reopen_from_hold(guard):
    check(guard, SPOC, make_ticket(TicketStatus.ON_HOLD), TicketStatus.OPEN)


def test_same_user_falls_back_to_email(guard):
    snapshot = UserSnapshot(user_id="legacy-id", email="INIT@company.com", display_name="Init")
    assert guard.is_same_user(INITIATOR, snapshot)
    assert not guard.is_same_user(OTHER, snapshot)
    assert not guard.is_same_user(INITIATOR, None)


def test_action_permissions(guard):
    ticket = make_ticket()

    initiator = guard.roles_for(INITIATOR, ticket)
    spoc = guard.roles_for(SPOC, ticket)
    assignee = guard.roles_for(ASSIGNEE, ticket)
    other = guard.roles_for(OTHER, ticket)
    admin = guard.roles_for(OTHER, ticket, is_admin=True)

    guard.check_can_delete(initiator, ticket)
    guard.check_can_redirect(spoc, ticket)
    guard.check_can_assign(spoc, ticket)
    guard.check_can_assign(assignee, ticket)
    guard.check_can_change_project(spoc, ticket)
    guard.check_can_restore(admin, ticket)

    with pytest.raises(PermissionDeniedError):
        guard.check_can_delete(spoc, ticket)
    with pytest.raises(PermissionDeniedError):
        guard.check_can_redirect(assignee, ticket)
    with pytest.raises(PermissionDeniedError):
        guard.check_can_assign(initiator, ticket)
    with pytest.raises(PermissionDeniedError):
        guard.check_can_restore(initiator, ticket)
    with pytest.raises(PermissionDeniedError):
        guard.check_can_change_project(other, ticket)


def edit(guard, user, ticket, fields, is_admin=False):
    roles = guard.roles_for(user, ticket, is_admin)
    guard.check_can_edit_fields(roles, ticket, fields)


def test_initiator_edits_own_fields(guard):
    edit(guard, INITIATOR, make_ticket(), {"title", "description", "product_release_name"})


@pytest.mark.parametrize("user,fields", [
    (SPOC, {"title"}),
    (ASSIGNEE, {"description"}),
    (INITIATOR, {"priority"}),
    (INITIATOR, {"category_id", "title"}),
    (INITIATOR, {"estimated_duration"}),
])
def test_denied_field_edits(guard, user, fields):
    with pytest.raises(PermissionDeniedError):
        edit(guard, user, make_ticket(), fields)


def test_admin_edits_any_field_in_any_status(guard):
    for status in (TicketStatus.OPEN, TicketStatus.RESOLVED, TicketStatus.CLOSED):
        edit(guard, OTHER, make_ticket(status), {"priority", "subcategory_id", "title"}, is_admin=True)


def test_closed_ticket_is_locked(guard):
    with pytest.raises(PermissionDeniedError, match="resolved or closed"):
        edit(guard, INITIATOR, make_ticket(TicketStatus.CLOSED), {"title"})


def test_resolved_ticket_open_to_initiator_only(guard):
    ticket = make_ticket(TicketStatus.RESOLVED)
    edit(guard, INITIATOR, ticket, {"title"})
    with pytest.raises(PermissionDeniedError, match="resolved or closed"):
        edit(guard, SPOC, ticket, {"title"})

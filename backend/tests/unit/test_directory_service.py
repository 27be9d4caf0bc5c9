"""Directory users, actor resolution and teams"""
import pytest

from ticketdesk.domain.enums import UserRole
from ticketdesk.domain.errors import PermissionDeniedError, ValidationError, UserNotFoundError
from ticketdesk.domain.models import ActorContext
from ticketdesk.services.directory_service import DirectoryService


@pytest.fixture
def service(seeded):
    return DirectoryService()


def actor(email, aad_id="aad-new", name="New Person", roles=None):
    return ActorContext(aad_id=aad_id, email=email, display_name=name, roles=roles or [])


def test_resolve_by_aad_id(service, seeded):
    user = service.resolve_actor(actor("changed@company.com", aad_id=seeded.spoc.aad_id))
    assert user.user_id == seeded.spoc.user_id


def test_resolve_links_aad_id_by_email(service, seeded, mongo_db):
    mongo_db.users.update_one({"user_id": seeded.outsider.user_id}, {"$set": {"aad_id": None}})

    user = service.resolve_actor(actor("Olly.Outsider@company.com", aad_id="aad-fresh"))
    assert user.user_id == seeded.outsider.user_id
    assert user.aad_id == "aad-fresh"


def test_unknown_actor_is_created(service):
    user = service.resolve_actor(actor("newcomer@company.com", name="New Comer"))
    assert user.user_id.startswith("USR-")
    assert user.full_name == "New Comer"
    assert user.role == UserRole.USER
    assert service.resolve_actor(actor("newcomer@company.com")).user_id == user.user_id


def test_bootstrap_admin_email(service):
    user = service.resolve_actor(actor("Bootstrap.Admin@company.com", aad_id="aad-boot"))
    assert user.role == UserRole.ADMIN


def test_token_role_grants_admin(service, seeded):
    assert service.is_admin(seeded.admin)
    assert not service.is_admin(seeded.outsider)
    assert service.is_admin(seeded.outsider, actor(seeded.outsider.email, roles=["Admin"]))
    assert not service.is_admin(seeded.outsider, actor(seeded.outsider.email, roles=["Reader"]))


def test_snapshot_carries_group_name(service, seeded):
    snapshot = service.snapshot_for(seeded.initiator)
    assert snapshot.business_unit_group_id == "BUG-finance"
    assert snapshot.business_unit_group_name == "Finance"
    assert service.snapshot_for(seeded.outsider).business_unit_group_name is None


def test_list_users(service, seeded):
    users = service.list_users()
    assert len(users) == 6
    by_email = {u["email"]: u for u in users}
    assert by_email[seeded.initiator.email]["business_unit_group_name"] == "Finance"
    assert by_email[seeded.admin.email]["is_admin"] is True


def test_update_user(service, seeded):
    updated = service.update_user(
        seeded.outsider.user_id, seeded.admin, is_admin=True,
        role=UserRole.ADMIN, business_unit_group_id="BUG-finance"
    )
    assert updated.role == UserRole.ADMIN
    assert updated.business_unit_group_id == "BUG-finance"

    with pytest.raises(PermissionDeniedError):
        service.update_user(seeded.outsider.user_id, seeded.initiator, is_admin=False, is_active=False)
    with pytest.raises(UserNotFoundError):
        service.update_user("USR-ghost", seeded.admin, is_admin=True, is_active=False)


def test_team_members(service, seeded):
    assert set(service.get_team_member_ids(seeded.assignee.user_id)) == {
        seeded.spoc.user_id, seeded.assignee.user_id
    }
    assert service.get_team_member_ids(seeded.outsider.user_id) == []


def test_create_team(service, seeded):
    team = service.create_team(
        " Desk ", [seeded.outsider.user_id, seeded.outsider.user_id, seeded.initiator.user_id], is_admin=True
    )
    assert team.name == "Desk"
    assert team.member_ids == [seeded.outsider.user_id, seeded.initiator.user_id]

    with pytest.raises(UserNotFoundError):
        service.create_team("Ghosts", ["USR-ghost"], is_admin=True)
    with pytest.raises(ValidationError):
        service.create_team(" ", [], is_admin=True)
    with pytest.raises(PermissionDeniedError):
        service.create_team("Desk", [], is_admin=False)


def test_create_business_unit_group(service):
    group = service.create_business_unit_group("Legal", None, is_admin=True)
    assert group.name in [g.name for g in service.list_business_unit_groups()]
    with pytest.raises(PermissionDeniedError):
        service.create_business_unit_group("Legal 2", None, is_admin=False)

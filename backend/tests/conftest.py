"""
Pytest Configuration and Fixtures

Shared fixtures for all tests. MongoDB is replaced with mongomock and the
application settings are pointed at temporary directories before the
application package is imported.
"""

import os
import tempfile

_TEST_ROOT = tempfile.mkdtemp(prefix="ticketdesk-tests-")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("EMAILS_ENABLED", "false")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("LOGS_PATH", os.path.join(_TEST_ROOT, "logs"))
os.environ.setdefault("ATTACHMENTS_BASE_PATH", os.path.join(_TEST_ROOT, "attachments"))
os.environ.setdefault("ADMIN_EMAILS", "bootstrap.admin@company.com")

from types import SimpleNamespace
from typing import Callable, Optional

import jwt
import mongomock
import pytest
from fastapi.testclient import TestClient

from ticketdesk.config.settings import settings
from ticketdesk.domain.enums import UserRole
from ticketdesk.domain.models import (
    User, BusinessUnitGroup, Team, TargetBusinessGroup, Category, Subcategory,
    Project, ClassificationMapping
)
from ticketdesk.repositories import mongo_client
from ticketdesk.repositories.directory_repo import DirectoryRepository
from ticketdesk.repositories.master_data_repo import MasterDataRepository
from ticketdesk.utils.time import utc_now


@pytest.fixture(autouse=True)
def mongo_db(monkeypatch):
    """Fresh in-memory database for every test"""
    database = mongomock.MongoClient()["ticketdesk_test"]
    monkeypatch.setattr(mongo_client, "_database", database)
    return database


@pytest.fixture(autouse=True)
def attachments_dir(tmp_path, monkeypatch):
    path = tmp_path / "attachments"
    path.mkdir()
    monkeypatch.setattr(settings, "attachments_base_path", str(path))
    return path


def _user(directory: DirectoryRepository, email: str, name: str,
          group_id: Optional[str] = None, role: UserRole = UserRole.USER) -> User:
    return directory.create_user(User(
        user_id=f"USR-{email.split('@')[0].replace('.', '-')}",
        email=email,
        full_name=name,
        role=role,
        business_unit_group_id=group_id,
        aad_id=f"aad-{email.split('@')[0]}",
        created_at=utc_now()
    ))


@pytest.fixture
def seeded(mongo_db):
    """
    A small helpdesk: one business unit group, an admin, an initiator, a SPOC,
    an assignee and an outsider, one target group with a laptop mapping.
    """
    directory = DirectoryRepository()
    master_data = MasterDataRepository()
    now = utc_now()

    finance = directory.create_group(BusinessUnitGroup(
        group_id="BUG-finance", name="Finance", created_at=now
    ))

    admin = _user(directory, "admin@company.com", "Ada Admin", role=UserRole.ADMIN)
    initiator = _user(directory, "ivy.initiator@company.com", "Ivy Initiator", finance.group_id)
    spoc = _user(directory, "sam.spoc@company.com", "Sam Spoc")
    assignee = _user(directory, "alex.assignee@company.com", "Alex Assignee")
    outsider = _user(directory, "olly.outsider@company.com", "Olly Outsider")
    second_spoc = _user(directory, "nina.spoc@company.com", "Nina Spoc")

    directory.create_team(Team(
        team_id="TEAM-support",
        name="Support",
        member_ids=[spoc.user_id, assignee.user_id],
        created_at=now
    ))

    it_support = master_data.create_target_group(TargetBusinessGroup(
        group_id="TBG-it", name="IT Support", created_at=now
    ))
    apps = master_data.create_target_group(TargetBusinessGroup(
        group_id="TBG-apps", name="Business Applications", created_at=now
    ))
    hardware = master_data.create_category(Category(
        category_id="CAT-hardware", name="Hardware", created_at=now
    ))
    laptop = master_data.create_subcategory(Subcategory(
        subcategory_id="SUB-laptop", category_id=hardware.category_id, name="Laptop", created_at=now
    ))
    project = master_data.create_project(Project(
        project_id="PRJ-migration", name="Office Migration", created_at=now
    ))
    mapping = master_data.create_mapping(ClassificationMapping(
        mapping_id="MAP-laptop",
        target_business_group_id=it_support.group_id,
        category_id=hardware.category_id,
        subcategory_id=laptop.subcategory_id,
        estimated_duration_minutes=480,
        spoc_user_id=spoc.user_id,
        created_at=now
    ))

    return SimpleNamespace(
        finance=finance,
        admin=admin,
        initiator=initiator,
        spoc=spoc,
        assignee=assignee,
        outsider=outsider,
        second_spoc=second_spoc,
        it_support=it_support,
        apps=apps,
        hardware=hardware,
        laptop=laptop,
        project=project,
        mapping=mapping,
    )


@pytest.fixture
def make_token() -> Callable[..., str]:
    """Unsigned-verification dev token for a directory user or raw claims"""
    def _make(user: Optional[User] = None, roles=None, **claims) -> str:
        payload = {}
        if user is not None:
            payload.update({
                "oid": user.aad_id,
                "email": user.email,
                "name": user.full_name,
            })
        payload.update(claims)
        payload["roles"] = roles or []
        return jwt.encode(payload, "secret", algorithm="HS256")
    return _make


@pytest.fixture
def client() -> TestClient:
    """Client without lifespan, so no scheduler or index creation runs"""
    from ticketdesk.main import app
    return TestClient(app)


@pytest.fixture
def auth(make_token) -> Callable[..., dict]:
    def _headers(user: Optional[User] = None, roles=None, **claims) -> dict:
        return {"Authorization": f"Bearer {make_token(user, roles=roles, **claims)}"}
    return _headers

"""
Seed Data Script - Creates sample helpdesk directory and master data
Run: python -m scripts.seed_data [--clear]

Safe to run repeatedly: records are looked up by name or email first.
"""
import argparse
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from typing import Dict, Optional

from ticketdesk.repositories.mongo_client import get_collection, create_indexes
from ticketdesk.repositories.directory_repo import DirectoryRepository
from ticketdesk.repositories.master_data_repo import MasterDataRepository
from ticketdesk.domain.models import (
    User, BusinessUnitGroup, Team, TargetBusinessGroup, Category, Subcategory,
    Project, ClassificationMapping
)
from ticketdesk.domain.enums import UserRole
from ticketdesk.utils.idgen import (
    generate_user_id, generate_group_id, generate_team_id, generate_category_id,
    generate_subcategory_id, generate_project_id, generate_mapping_id
)
from ticketdesk.utils.time import utc_now

HELPDESK_COLLECTIONS = [
    "users", "business_unit_groups", "teams",
    "target_business_groups", "categories", "subcategories", "projects",
    "classification_mappings", "tickets", "comments", "counters",
    "audit_log", "attachments", "notification_outbox",
]

BUSINESS_UNIT_GROUPS = ["Finance", "Sales", "Human Resources"]

USERS = [
    # email, full name, business unit group, role
    ("admin@company.com", "System Admin", None, UserRole.ADMIN),
    ("priya.nair@company.com", "Priya Nair", "Finance", UserRole.USER),
    ("david.chen@company.com", "David Chen", "Sales", UserRole.USER),
    ("maria.garcia@company.com", "Maria Garcia", "Human Resources", UserRole.USER),
    ("it.spoc@company.com", "Alex Morgan", None, UserRole.USER),
    ("apps.spoc@company.com", "Sam Patel", None, UserRole.USER),
    ("support.engineer@company.com", "Jordan Lee", None, UserRole.USER),
]

TEAMS = {
    "IT Operations": ["it.spoc@company.com", "support.engineer@company.com"],
    "Business Applications": ["apps.spoc@company.com", "support.engineer@company.com"],
}

TARGET_GROUPS = {
    "IT Support": "Hardware, network and account issues",
    "Business Applications": "ERP, CRM and reporting tools",
}

CATEGORIES = {
    "Hardware": [("Laptop", 480), ("Printer", 240)],
    "Access": [("VPN", 120), ("Shared Drive", 60)],
    "ERP": [("Report Error", 1440), ("New Feature", 4320)],
}

PROJECTS = ["Office Migration", "ERP Upgrade"]

MAPPINGS = [
    # target group, category, subcategory, minutes, spoc email
    ("IT Support", "Hardware", None, 480, "it.spoc@company.com"),
    ("IT Support", "Hardware", "Laptop", 480, "it.spoc@company.com"),
    ("IT Support", "Access", "VPN", 120, "it.spoc@company.com"),
    ("IT Support", "Access", "Shared Drive", 60, "it.spoc@company.com"),
    ("Business Applications", "ERP", "Report Error", 1440, "apps.spoc@company.com"),
    ("Business Applications", "ERP", "New Feature", 4320, "apps.spoc@company.com"),
]


def clear_collections():
    """Remove all helpdesk data"""
    for name in HELPDESK_COLLECTIONS:
        deleted = get_collection(name).delete_many({}).deleted_count
        print(f"Cleared {name}: {deleted} documents")


def seed_directory(directory: DirectoryRepository) -> Dict[str, User]:
    now = utc_now()

    groups: Dict[str, BusinessUnitGroup] = {}
    for name in BUSINESS_UNIT_GROUPS:
        group = directory.get_group_by_name(name)
        if group is None:
            group = directory.create_group(BusinessUnitGroup(
                group_id=generate_group_id(), name=name, created_at=now
            ))
            print(f"Created business unit group: {name}")
        groups[name] = group

    users: Dict[str, User] = {}
    for email, full_name, group_name, role in USERS:
        user = directory.get_user_by_email(email)
        if user is None:
            user = directory.create_user(User(
                user_id=generate_user_id(),
                email=email,
                full_name=full_name,
                role=role,
                business_unit_group_id=groups[group_name].group_id if group_name else None,
                created_at=now
            ))
            print(f"Created user: {email} ({role.value})")
        users[email] = user

    teams_col = get_collection("teams")
    for team_name, member_emails in TEAMS.items():
        if teams_col.find_one({"name": team_name}):
            continue
        directory.create_team(Team(
            team_id=generate_team_id(),
            name=team_name,
            member_ids=[users[email].user_id for email in member_emails],
            created_at=now
        ))
        print(f"Created team: {team_name}")

    return users


def seed_master_data(master_data: MasterDataRepository, users: Dict[str, User]) -> None:
    now = utc_now()

    target_groups: Dict[str, TargetBusinessGroup] = {}
    for name, description in TARGET_GROUPS.items():
        group = master_data.get_target_group_by_name(name)
        if group is None:
            group = master_data.create_target_group(TargetBusinessGroup(
                group_id=generate_group_id(), name=name, description=description, created_at=now
            ))
            print(f"Created target business group: {name}")
        target_groups[name] = group

    categories: Dict[str, Category] = {}
    subcategories: Dict[tuple, Subcategory] = {}
    for category_name, subs in CATEGORIES.items():
        category = master_data.get_category_by_name(category_name)
        if category is None:
            category = master_data.create_category(Category(
                category_id=generate_category_id(), name=category_name, created_at=now
            ))
            print(f"Created category: {category_name}")
        categories[category_name] = category

        for sub_name, minutes in subs:
            subcategory = master_data.get_subcategory_by_name(category.category_id, sub_name)
            if subcategory is None:
                subcategory = master_data.create_subcategory(Subcategory(
                    subcategory_id=generate_subcategory_id(),
                    category_id=category.category_id,
                    name=sub_name,
                    estimated_duration_minutes=minutes,
                    created_at=now
                ))
                print(f"Created subcategory: {category_name} / {sub_name}")
            subcategories[(category_name, sub_name)] = subcategory

    for name in PROJECTS:
        if master_data.get_project_by_name(name) is None:
            master_data.create_project(Project(
                project_id=generate_project_id(), name=name, created_at=now
            ))
            print(f"Created project: {name}")

    for group_name, category_name, sub_name, minutes, spoc_email in MAPPINGS:
        group_id = target_groups[group_name].group_id
        category_id = categories[category_name].category_id
        subcategory_id: Optional[str] = (
            subcategories[(category_name, sub_name)].subcategory_id if sub_name else None
        )
        if master_data.find_mapping(group_id, category_id, subcategory_id):
            continue
        master_data.create_mapping(ClassificationMapping(
            mapping_id=generate_mapping_id(),
            target_business_group_id=group_id,
            category_id=category_id,
            subcategory_id=subcategory_id,
            estimated_duration_minutes=minutes,
            spoc_user_id=users[spoc_email].user_id,
            created_at=now
        ))
        print(f"Created mapping: {group_name} / {category_name} / {sub_name or '*'}")


def main():
    parser = argparse.ArgumentParser(description="Seed helpdesk sample data")
    parser.add_argument(
        "--clear",
        action="store_true",
        help="Delete all helpdesk collections before seeding"
    )
    args = parser.parse_args()

    print("=== Seeding database ===")
    print("-" * 40)

    if args.clear:
        clear_collections()

    create_indexes()

    users = seed_directory(DirectoryRepository())
    seed_master_data(MasterDataRepository(), users)

    print("-" * 40)
    print("Done!")


if __name__ == "__main__":
    main()

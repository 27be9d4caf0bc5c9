"""Directory Repository - Data access for users, business unit groups and teams"""
import re
from typing import Any, Dict, List, Optional
from pymongo.collection import Collection
from pymongo import ASCENDING
from pymongo.errors import DuplicateKeyError

from .mongo_client import get_collection
from ..domain.models import User, BusinessUnitGroup, Team
from ..domain.errors import UserNotFoundError, AlreadyExistsError, MasterDataNotFoundError
from ..utils.logger import get_logger
from ..utils.time import utc_now

logger = get_logger(__name__)


class DirectoryRepository:
    """Repository for directory users, business unit groups and teams"""

    def __init__(self):
        self._users: Collection = get_collection("users")
        self._groups: Collection = get_collection("business_unit_groups")
        self._teams: Collection = get_collection("teams")

    # =========================================================================
    # Users
    # =========================================================================

    def create_user(self, user: User) -> User:
        """Create a directory user (email stored lowercased)"""
        doc = user.model_dump()
        doc["email"] = doc["email"].lower()
        doc["_id"] = user.user_id

        if self._users.find_one({"email": doc["email"]}):
            raise AlreadyExistsError(f"User {doc['email']} already exists")

        try:
            self._users.insert_one(doc)
        except DuplicateKeyError:
            raise AlreadyExistsError(f"User {doc['email']} already exists")

        logger.info(f"Created user: {user.user_id}", extra={"user_id": user.user_id})
        return User.model_validate({k: v for k, v in doc.items() if k != "_id"})

    def get_user(self, user_id: str) -> Optional[User]:
        """Get user by ID"""
        doc = self._users.find_one({"user_id": user_id})
        if doc:
            doc.pop("_id", None)
            return User.model_validate(doc)
        return None

    def get_user_or_raise(self, user_id: str) -> User:
        """Get user by ID or raise error"""
        user = self.get_user(user_id)
        if not user:
            raise UserNotFoundError(f"User {user_id} not found", details={"user_id": user_id})
        return user

    def get_user_by_email(self, email: str) -> Optional[User]:
        """Get user by email (case-insensitive)"""
        doc = self._users.find_one({"email": {"$regex": f"^{re.escape(email)}$", "$options": "i"}})
        if doc:
            doc.pop("_id", None)
            return User.model_validate(doc)
        return None

    def get_user_by_aad_id(self, aad_id: str) -> Optional[User]:
        """Get user by Azure AD object ID"""
        if not aad_id:
            return None
        doc = self._users.find_one({"aad_id": aad_id})
        if doc:
            doc.pop("_id", None)
            return User.model_validate(doc)
        return None

    def get_users_by_ids(self, user_ids: List[str]) -> List[User]:
        """Get multiple users ordered by name"""
        cursor = self._users.find({"user_id": {"$in": user_ids}}).sort("full_name", ASCENDING)

        users = []
        for doc in cursor:
            doc.pop("_id", None)
            users.append(User.model_validate(doc))
        return users

    def list_users(self, include_inactive: bool = False) -> List[User]:
        """List users ordered by full name"""
        query: Dict[str, Any] = {} if include_inactive else {"is_active": True}
        cursor = self._users.find(query).sort("full_name", ASCENDING)

        users = []
        for doc in cursor:
            doc.pop("_id", None)
            users.append(User.model_validate(doc))
        return users

    def update_user(self, user_id: str, updates: Dict[str, Any]) -> User:
        """Update user fields"""
        updates["updated_at"] = utc_now()

        result = self._users.find_one_and_update(
            {"user_id": user_id},
            {"$set": updates},
            return_document=True
        )

        if result is None:
            raise UserNotFoundError(f"User {user_id} not found", details={"user_id": user_id})

        result.pop("_id", None)
        logger.info(f"Updated user: {user_id}", extra={"user_id": user_id})
        return User.model_validate(result)

    # =========================================================================
    # Business Unit Groups
    # =========================================================================

    def create_group(self, group: BusinessUnitGroup) -> BusinessUnitGroup:
        """Create business unit group"""
        if self.get_group_by_name(group.name):
            raise AlreadyExistsError(f"Business unit group '{group.name}' already exists")

        doc = group.model_dump()
        doc["_id"] = group.group_id
        self._groups.insert_one(doc)
        logger.info(f"Created business unit group: {group.group_id}")
        return group

    def get_group(self, group_id: Optional[str]) -> Optional[BusinessUnitGroup]:
        """Get business unit group by ID"""
        if not group_id:
            return None
        doc = self._groups.find_one({"group_id": group_id})
        if doc:
            doc.pop("_id", None)
            return BusinessUnitGroup.model_validate(doc)
        return None

    def get_group_or_raise(self, group_id: str) -> BusinessUnitGroup:
        group = self.get_group(group_id)
        if not group:
            raise MasterDataNotFoundError(
                f"Business unit group {group_id} not found",
                details={"business_unit_group_id": group_id}
            )
        return group

    def get_group_by_name(self, name: str) -> Optional[BusinessUnitGroup]:
        """Get business unit group by name (case-insensitive)"""
        doc = self._groups.find_one({"name": {"$regex": f"^{re.escape(name)}$", "$options": "i"}})
        if doc:
            doc.pop("_id", None)
            return BusinessUnitGroup.model_validate(doc)
        return None

    def list_groups(self) -> List[BusinessUnitGroup]:
        cursor = self._groups.find({}).sort("name", ASCENDING)

        groups = []
        for doc in cursor:
            doc.pop("_id", None)
            groups.append(BusinessUnitGroup.model_validate(doc))
        return groups

    # =========================================================================
    # Teams
    # =========================================================================

    def create_team(self, team: Team) -> Team:
        doc = team.model_dump()
        doc["_id"] = team.team_id
        self._teams.insert_one(doc)
        logger.info(f"Created team: {team.team_id}")
        return team

    def get_teams_for_user(self, user_id: str) -> List[Team]:
        """Get all teams the user is a member of"""
        cursor = self._teams.find({"member_ids": user_id}).sort("name", ASCENDING)

        teams = []
        for doc in cursor:
            doc.pop("_id", None)
            teams.append(Team.model_validate(doc))
        return teams

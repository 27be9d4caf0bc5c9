"""Directory Service - Users, business unit groups, teams and actor resolution"""
from typing import Any, Dict, List, Optional

from ..domain.models import ActorContext, User, UserSnapshot, BusinessUnitGroup, Team
from ..domain.enums import UserRole
from ..domain.errors import PermissionDeniedError, ValidationError, AlreadyExistsError
from ..repositories.directory_repo import DirectoryRepository
from ..config.settings import settings
from ..utils.idgen import generate_user_id, generate_group_id, generate_team_id
from ..utils.time import utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)

ADMIN_ROLE = "admin"


class DirectoryService:
    """
    Service for the helpdesk user directory

    Users are kept in MongoDB and linked to their Azure AD identity on first
    sight, so the rest of the system always works with a directory User.
    """

    def __init__(self):
        self.repo = DirectoryRepository()

    # =========================================================================
    # Actor resolution
    # =========================================================================

    def resolve_actor(self, actor: ActorContext) -> User:
        """
        Map token claims to a directory user

        Lookup order is aad_id, then email. A user found by email gets the
        aad_id linked; an unknown actor is created.
        """
        user = self.repo.get_user_by_aad_id(actor.aad_id)
        if user:
            return user

        user = self.repo.get_user_by_email(actor.email)
        if user:
            if not user.aad_id and actor.aad_id:
                user = self.repo.update_user(user.user_id, {"aad_id": actor.aad_id})
                logger.info(
                    f"Linked Azure AD identity to user {user.user_id}",
                    extra={"user_id": user.user_id, "actor_email": actor.email}
                )
            return user

        is_listed_admin = actor.email.lower() in settings.admin_emails_list
        user = User(
            user_id=generate_user_id(),
            email=actor.email,
            full_name=actor.display_name,
            role=UserRole.ADMIN if is_listed_admin else UserRole.USER,
            aad_id=actor.aad_id,
            created_at=utc_now()
        )
        try:
            user = self.repo.create_user(user)
        except AlreadyExistsError:
            # Created concurrently by another request
            existing = self.repo.get_user_by_email(actor.email)
            if not existing:
                raise
            return existing

        logger.info(
            f"Created directory user on first sign-in: {actor.email}",
            extra={"user_id": user.user_id, "actor_email": actor.email}
        )
        return user

    def is_admin(self, user: User, actor: Optional[ActorContext] = None) -> bool:
        """Directory role admin, or an admin role in the token"""
        if user.is_admin:
            return True
        if actor:
            return any(role.lower() == ADMIN_ROLE for role in actor.roles)
        return False

    # =========================================================================
    # Snapshots
    # =========================================================================

    def group_name(self, group_id: Optional[str]) -> Optional[str]:
        group = self.repo.get_group(group_id)
        return group.name if group else None

    def snapshot_for(self, user: User) -> UserSnapshot:
        """Snapshot with the user's business unit group name filled in"""
        return user.snapshot(self.group_name(user.business_unit_group_id))

    # =========================================================================
    # Users
    # =========================================================================

    def user_to_dict(self, user: User, group_names: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        data = user.model_dump(mode="json")
        if group_names is not None:
            data["business_unit_group_name"] = group_names.get(user.business_unit_group_id or "")
        else:
            data["business_unit_group_name"] = self.group_name(user.business_unit_group_id)
        data["is_admin"] = user.is_admin
        return data

    def list_users(self) -> List[Dict[str, Any]]:
        """Active users ordered by name, with their group name"""
        group_names = {g.group_id: g.name for g in self.repo.list_groups()}
        return [self.user_to_dict(u, group_names) for u in self.repo.list_users()]

    def get_user(self, user_id: str) -> User:
        return self.repo.get_user_or_raise(user_id)

    def get_user_by_email(self, email: str) -> Optional[User]:
        return self.repo.get_user_by_email(email)

    def update_user(
        self,
        user_id: str,
        acting_user: User,
        is_admin: bool,
        role: Optional[UserRole] = None,
        business_unit_group_id: Optional[str] = None,
        is_active: Optional[bool] = None
    ) -> User:
        """Admin-only update of role, group or active flag"""
        if not is_admin:
            raise PermissionDeniedError("Only admin can update users", details={"user_id": user_id})

        self.repo.get_user_or_raise(user_id)

        updates: Dict[str, Any] = {}
        if role is not None:
            updates["role"] = role.value
        if business_unit_group_id is not None:
            self.repo.get_group_or_raise(business_unit_group_id)
            updates["business_unit_group_id"] = business_unit_group_id
        if is_active is not None:
            updates["is_active"] = is_active

        if not updates:
            return self.repo.get_user_or_raise(user_id)

        user = self.repo.update_user(user_id, updates)
        logger.info(
            f"User {user_id} updated by {acting_user.email}: {sorted(updates)}",
            extra={"user_id": user_id, "actor_email": acting_user.email}
        )
        return user

    def get_team_members(self, user_id: str) -> List[User]:
        """
        Users sharing at least one team with the given user

        The user is included. Someone in no team gets an empty list.
        """
        member_ids = set()
        for team in self.repo.get_teams_for_user(user_id):
            member_ids.update(team.member_ids)

        if not member_ids:
            return []
        return self.repo.get_users_by_ids(sorted(member_ids))

    def get_team_member_ids(self, user_id: str) -> List[str]:
        return [u.user_id for u in self.get_team_members(user_id)]

    # =========================================================================
    # Business unit groups and teams
    # =========================================================================

    def list_business_unit_groups(self) -> List[BusinessUnitGroup]:
        return self.repo.list_groups()

    def create_business_unit_group(
        self,
        name: str,
        description: Optional[str],
        is_admin: bool
    ) -> BusinessUnitGroup:
        if not is_admin:
            raise PermissionDeniedError("Only admin can create business unit groups")
        if not name or not name.strip():
            raise ValidationError("Group name is required")

        group = BusinessUnitGroup(
            group_id=generate_group_id(),
            name=name.strip(),
            description=description,
            created_at=utc_now()
        )
        return self.repo.create_group(group)

    def create_team(self, name: str, member_ids: List[str], is_admin: bool) -> Team:
        if not is_admin:
            raise PermissionDeniedError("Only admin can create teams")
        if not name or not name.strip():
            raise ValidationError("Team name is required")

        for member_id in member_ids:
            self.repo.get_user_or_raise(member_id)

        team = Team(
            team_id=generate_team_id(),
            name=name.strip(),
            member_ids=list(dict.fromkeys(member_ids)),
            created_at=utc_now()
        )
        return self.repo.create_team(team)

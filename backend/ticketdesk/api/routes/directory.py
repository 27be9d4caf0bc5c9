"""Directory API Routes - Users, teams and business unit groups"""
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from ..deps import CurrentUser, get_current_user_context, get_correlation_id_dep
from ...domain.enums import UserRole
from ...domain.errors import DomainError
from ...services.directory_service import DirectoryService
from ...utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter()


# ============================================================================
# Request Models
# ============================================================================

class UpdateUserRequest(BaseModel):
    """Admin update of a directory user"""
    role: Optional[UserRole] = None
    business_unit_group_id: Optional[str] = None
    is_active: Optional[bool] = None


class CreateGroupRequest(BaseModel):
    """Request to create a business unit group"""
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)


class CreateTeamRequest(BaseModel):
    """Request to create a team"""
    name: str = Field(..., min_length=1, max_length=200)
    member_ids: List[str] = Field(default_factory=list)


# ============================================================================
# Routes
# ============================================================================

@router.get("/me")
async def get_me(
    current: CurrentUser = Depends(get_current_user_context),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """
    Get current user info

    The directory record of the signed-in user. Token admin roles are
    reflected in is_admin.
    """
    data = DirectoryService().user_to_dict(current.user)
    data["is_admin"] = current.is_admin
    return data


@router.get("/users")
async def list_users(
    current: CurrentUser = Depends(get_current_user_context)
):
    """Active directory users, ordered by name"""
    try:
        return {"items": DirectoryService().list_users()}

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.get("/users/{user_id}")
async def get_user(
    user_id: str,
    current: CurrentUser = Depends(get_current_user_context)
):
    try:
        service = DirectoryService()
        return service.user_to_dict(service.get_user(user_id))

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.patch("/users/{user_id}")
async def update_user(
    user_id: str,
    request: UpdateUserRequest,
    current: CurrentUser = Depends(get_current_user_context),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Change role, group or active flag of a user (admin)"""
    try:
        service = DirectoryService()
        user = service.update_user(
            user_id,
            current.user,
            current.is_admin,
            role=request.role,
            business_unit_group_id=request.business_unit_group_id,
            is_active=request.is_active
        )
        return service.user_to_dict(user)

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.get("/team-members")
async def get_team_members(
    current: CurrentUser = Depends(get_current_user_context)
):
    """Users sharing a team with the current user"""
    try:
        service = DirectoryService()
        members = service.get_team_members(current.user.user_id)
        return {"items": [service.user_to_dict(m) for m in members]}

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.get("/business-unit-groups")
async def list_business_unit_groups(
    current: CurrentUser = Depends(get_current_user_context)
):
    groups = DirectoryService().list_business_unit_groups()
    return {"items": [g.model_dump(mode="json") for g in groups]}


@router.post("/business-unit-groups", status_code=status.HTTP_201_CREATED)
async def create_business_unit_group(
    request: CreateGroupRequest,
    current: CurrentUser = Depends(get_current_user_context),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    try:
        group = DirectoryService().create_business_unit_group(
            request.name, request.description, current.is_admin
        )
        return group.model_dump(mode="json")

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.post("/teams", status_code=status.HTTP_201_CREATED)
async def create_team(
    request: CreateTeamRequest,
    current: CurrentUser = Depends(get_current_user_context),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Create a team of directory users (admin)"""
    try:
        team = DirectoryService().create_team(request.name, request.member_ids, current.is_admin)
        return team.model_dump(mode="json")

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())

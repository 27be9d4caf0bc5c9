"""API Dependencies - Common dependencies for routes"""
from typing import Optional
from fastapi import Depends, Header, HTTPException, status
from pydantic import BaseModel

from ..domain.models import ActorContext, User
from ..domain.errors import AuthenticationError
from ..services.directory_service import DirectoryService
from ..utils.jwt import get_current_user as _jwt_get_current_user  # Internal use only
from ..utils.logger import set_correlation_id
from ..utils.idgen import generate_correlation_id


class CurrentUser(BaseModel):
    """Directory user behind the request, with the resolved admin flag"""

    actor: ActorContext
    user: User
    is_admin: bool = False


async def get_correlation_id_dep(
    x_correlation_id: Optional[str] = Header(None, alias="X-Correlation-Id")
) -> str:
    """
    Get or generate correlation ID for request tracing

    If client provides X-Correlation-Id, use it.
    Otherwise generate a new one.
    """
    correlation_id = x_correlation_id or generate_correlation_id()
    set_correlation_id(correlation_id)
    return correlation_id


async def get_current_user_dep(
    authorization: Optional[str] = Header(None)
) -> ActorContext:
    """
    Dependency to get current actor from Authorization header

    Validates JWT token and extracts user information.

    Raises:
        HTTPException: 401 if token is invalid or missing
    """
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": {"code": "AUTHENTICATION_ERROR", "message": "Authorization header is missing"}},
            headers={"WWW-Authenticate": "Bearer"}
        )

    try:
        return _jwt_get_current_user(authorization)
    except AuthenticationError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=e.to_dict(),
            headers={"WWW-Authenticate": "Bearer"}
        )


def get_current_user_context(
    actor: ActorContext = Depends(get_current_user_dep)
) -> CurrentUser:
    """
    Resolve the token actor to a directory user

    First sign-in creates the directory record.
    """
    directory = DirectoryService()
    user = directory.resolve_actor(actor)
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"error": {"code": "USER_INACTIVE", "message": "User account is deactivated"}}
        )
    return CurrentUser(actor=actor, user=user, is_admin=directory.is_admin(user, actor))


def require_admin_context(
    current: CurrentUser = Depends(get_current_user_context)
) -> CurrentUser:
    """Current user, rejected with 403 unless admin"""
    if not current.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"error": {"code": "PERMISSION_DENIED", "message": "Admin access required"}}
        )
    return current

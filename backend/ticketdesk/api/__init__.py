"""API module"""
from .deps import (
    CurrentUser,
    get_current_user_dep,
    get_current_user_context,
    get_correlation_id_dep,
    require_admin_context
)

__all__ = [
    "CurrentUser",
    "get_current_user_dep",
    "get_current_user_context",
    "get_correlation_id_dep",
    "require_admin_context"
]

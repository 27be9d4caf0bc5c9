"""
Ticket Routes Module

Ticket API endpoints organized by functionality:

- crud.py: Create, list, get, edit tickets; children and audit log
- lifecycle.py: Status change, delete, restore, redirect
- assignment.py: Assignee and project
- comments.py: Ticket comments

All routes are combined into a single router for inclusion in the API.
"""

from fastapi import APIRouter

from .schemas import (
    CreateTicketRequest, CreateTicketResponse, TicketListResponse,
    UpdateTicketRequest, StatusChangeRequest, RedirectRequest,
    AssigneeRequest, ProjectRequest, AddCommentRequest, ActionResponse
)
from .crud import router as crud_router
from .lifecycle import router as lifecycle_router
from .assignment import router as assignment_router
from .comments import router as comments_router

router = APIRouter()

# Order matters for route matching!
# /comments/{comment_id} must come BEFORE the {ticket_id} routes
router.include_router(comments_router)
router.include_router(crud_router)
router.include_router(lifecycle_router)
router.include_router(assignment_router)

__all__ = [
    "router",
    # Schemas
    "CreateTicketRequest", "CreateTicketResponse", "TicketListResponse",
    "UpdateTicketRequest", "StatusChangeRequest", "RedirectRequest",
    "AssigneeRequest", "ProjectRequest", "AddCommentRequest", "ActionResponse"
]

"""
Comment Routes

Ticket comment endpoints.
"""

from fastapi import APIRouter, Depends, HTTPException, status

from ...deps import CurrentUser, get_current_user_context, get_correlation_id_dep
from ....domain.errors import DomainError
from ....services.ticket_service import TicketService
from ....utils.logger import get_logger
from .schemas import AddCommentRequest, ActionResponse

logger = get_logger(__name__)
router = APIRouter()


# Must be registered before /{ticket_id} routes
@router.delete("/comments/{comment_id}", response_model=ActionResponse)
async def delete_comment(
    comment_id: str,
    current: CurrentUser = Depends(get_current_user_context),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Delete a comment. Author or admin only."""
    try:
        service = TicketService()
        service.delete_comment(comment_id, current.user, is_admin=current.is_admin)
        return ActionResponse(message="Comment deleted")

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.get("/{ticket_id}/comments")
async def list_comments(
    ticket_id: str,
    current: CurrentUser = Depends(get_current_user_context)
):
    """Comments of a ticket, oldest first"""
    try:
        service = TicketService()
        comments = service.list_comments(ticket_id)
        return {"items": [c.model_dump(mode="json") for c in comments]}

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.post("/{ticket_id}/comments", status_code=status.HTTP_201_CREATED)
async def add_comment(
    ticket_id: str,
    request: AddCommentRequest,
    current: CurrentUser = Depends(get_current_user_context),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Add a comment to a ticket"""
    try:
        service = TicketService()
        comment = service.add_comment(ticket_id, request.content, current.user)
        return comment.model_dump(mode="json")

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())

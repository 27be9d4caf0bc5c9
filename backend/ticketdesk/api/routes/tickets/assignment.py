"""
Assignment Routes

Endpoints for ticket ownership:
- Set or clear assignee
- Set or clear project
"""

from fastapi import APIRouter, Depends, HTTPException

from ...deps import CurrentUser, get_current_user_context, get_correlation_id_dep
from ....domain.errors import DomainError
from ....services.ticket_service import TicketService
from ....utils.logger import get_logger
from .schemas import AssigneeRequest, ProjectRequest, ActionResponse

logger = get_logger(__name__)
router = APIRouter()


@router.put("/{ticket_id}/assignee", response_model=ActionResponse)
async def update_assignee(
    ticket_id: str,
    request: AssigneeRequest,
    current: CurrentUser = Depends(get_current_user_context),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """
    Assign or unassign a ticket.

    Admin, SPOC or the current assignee. A new assignee is notified by email.
    """
    try:
        service = TicketService()
        ticket = service.update_ticket_assignee(
            ticket_id,
            request.assignee_user_id,
            current.user,
            is_admin=current.is_admin
        )

        message = (
            f"Assigned to {ticket.assigned_to.display_name}" if ticket.assigned_to
            else "Ticket unassigned"
        )
        return ActionResponse(
            message=message,
            ticket_id=ticket.ticket_id,
            ticket=service.ticket_to_dict(ticket)
        )

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.put("/{ticket_id}/project", response_model=ActionResponse)
async def update_project(
    ticket_id: str,
    request: ProjectRequest,
    current: CurrentUser = Depends(get_current_user_context),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Link the ticket to a project, or clear it with null"""
    try:
        service = TicketService()
        ticket = service.update_ticket_project(
            ticket_id,
            request.project_id,
            current.user,
            is_admin=current.is_admin
        )
        return ActionResponse(
            message="Project updated",
            ticket_id=ticket.ticket_id,
            ticket=service.ticket_to_dict(ticket)
        )

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())

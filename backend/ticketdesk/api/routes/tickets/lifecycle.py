"""
Ticket Lifecycle Routes

Endpoints for the ticket lifecycle:
- Status change
- Soft delete and restore
- Redirect to another target group
"""

from fastapi import APIRouter, Depends, HTTPException

from ...deps import CurrentUser, get_current_user_context, get_correlation_id_dep
from ....domain.errors import DomainError
from ....services.ticket_service import TicketService
from ....utils.logger import get_logger
from .schemas import StatusChangeRequest, RedirectRequest, ActionResponse

logger = get_logger(__name__)
router = APIRouter()


# =============================================================================
# Status
# =============================================================================

@router.post("/{ticket_id}/status", response_model=ActionResponse)
async def change_status(
    ticket_id: str,
    request: StatusChangeRequest,
    current: CurrentUser = Depends(get_current_user_context),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """
    Change ticket status.

    A reason is required. Only the initiator (or an admin) can close or delete.
    Setting status to deleted is a soft delete.
    """
    try:
        service = TicketService()
        ticket = service.update_ticket_status(
            ticket_id,
            request.status,
            current.user,
            is_admin=current.is_admin,
            reason=request.reason,
            remarks=request.remarks
        )

        return ActionResponse(
            message=f"Status changed to {ticket.status.value}",
            ticket_id=ticket.ticket_id,
            ticket=service.ticket_to_dict(ticket)
        )

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


# =============================================================================
# Delete / Restore
# =============================================================================

@router.delete("/{ticket_id}", response_model=ActionResponse)
async def delete_ticket(
    ticket_id: str,
    current: CurrentUser = Depends(get_current_user_context),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """
    Soft delete a ticket.

    Admin or creator only. The record stays readable.
    """
    try:
        service = TicketService()
        ticket = service.delete_ticket(ticket_id, current.user, is_admin=current.is_admin)
        return ActionResponse(message="Ticket deleted", ticket_id=ticket.ticket_id)

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.post("/{ticket_id}/restore", response_model=ActionResponse)
async def restore_ticket(
    ticket_id: str,
    current: CurrentUser = Depends(get_current_user_context),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Restore a soft-deleted ticket to its status before deletion (admin)"""
    try:
        service = TicketService()
        ticket = service.restore_ticket(ticket_id, current.user, is_admin=current.is_admin)
        return ActionResponse(
            message=f"Ticket restored as {ticket.status.value}",
            ticket_id=ticket.ticket_id,
            ticket=service.ticket_to_dict(ticket)
        )

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


# =============================================================================
# Redirect
# =============================================================================

@router.post("/{ticket_id}/redirect", response_model=ActionResponse)
async def redirect_ticket(
    ticket_id: str,
    request: RedirectRequest,
    current: CurrentUser = Depends(get_current_user_context),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """
    Redirect a ticket to another target group and SPOC.

    Admin or current SPOC only. Remarks are required and the new SPOC is
    notified.
    """
    try:
        service = TicketService()
        ticket = service.redirect_ticket(
            ticket_id,
            request.target_business_group_id,
            request.spoc_user_id,
            request.remarks,
            current.user,
            is_admin=current.is_admin
        )

        logger.info(
            f"Redirected ticket {ticket_id}",
            extra={"ticket_id": ticket_id, "actor_email": current.user.email}
        )

        return ActionResponse(
            message="Ticket redirected",
            ticket_id=ticket.ticket_id,
            ticket=service.ticket_to_dict(ticket)
        )

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())

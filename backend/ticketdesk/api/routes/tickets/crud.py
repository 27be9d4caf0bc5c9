"""
Ticket CRUD Routes

Create, read, list and edit ticket endpoints.
"""

from typing import Optional
from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException, Query, status

from ...deps import CurrentUser, get_current_user_context, get_correlation_id_dep
from ....domain.enums import TicketStatus, TicketType, TicketPriority
from ....domain.errors import DomainError, ValidationError
from ....repositories.ticket_repo import TicketFilters
from ....services.ticket_service import TicketService
from ....utils.logger import get_logger
from .schemas import (
    CreateTicketRequest, CreateTicketResponse, TicketListResponse,
    UpdateTicketRequest
)

logger = get_logger(__name__)
router = APIRouter()

ALL = "all"


def _optional_enum(enum_cls, value: Optional[str], name: str):
    """'all' or empty means no filter"""
    if not value or value.lower() == ALL:
        return None
    try:
        return enum_cls(value.lower())
    except ValueError:
        raise ValidationError(
            f"Invalid {name}: {value}",
            details={"allowed": [e.value for e in enum_cls]}
        )


@router.post("/", response_model=CreateTicketResponse, status_code=status.HTTP_201_CREATED)
async def create_ticket(
    request: CreateTicketRequest,
    current: CurrentUser = Depends(get_current_user_context),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """
    Create a new ticket

    The SPOC defaults to the target group's mapping SPOC and the estimated
    duration to the classification mapping's estimate.
    """
    try:
        service = TicketService()
        ticket = service.create_ticket(
            title=request.title,
            user=current.user,
            description=request.description,
            ticket_type=request.ticket_type,
            priority=request.priority,
            target_business_group_id=request.target_business_group_id,
            spoc_user_id=request.spoc_user_id,
            assignee_user_id=request.assignee_user_id,
            category_id=request.category_id,
            subcategory_id=request.subcategory_id,
            project_id=request.project_id,
            project_name=request.project_name,
            estimated_duration=request.estimated_duration,
            product_release_name=request.product_release_name,
            estimated_release_date=request.estimated_release_date,
            parent_ticket_id=request.parent_ticket_id
        )

        logger.info(
            f"Created ticket: {ticket.ticket_id}",
            extra={"ticket_id": ticket.ticket_id, "actor_email": current.user.email}
        )

        return CreateTicketResponse(ticket_id=ticket.ticket_id, ticket_number=ticket.ticket_number)

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.get("/", response_model=TicketListResponse)
async def list_tickets(
    status: Optional[str] = Query(None, description="Status, or 'all'"),
    ticket_type: Optional[str] = Query(None, description="Ticket type, or 'all'"),
    priority: Optional[TicketPriority] = Query(None),
    assigned_to: Optional[str] = Query(None, description="Assignee user ID"),
    created_by: Optional[str] = Query(None, description="Creator user ID"),
    spoc: Optional[str] = Query(None, description="SPOC user ID"),
    q: Optional[str] = Query(None, description="Search in title, ID, description, people and category"),
    date_from: Optional[datetime] = Query(None, description="Created at or after"),
    date_to: Optional[datetime] = Query(None, description="Created at or before"),
    is_internal: Optional[bool] = Query(None),
    parent_ticket_id: Optional[str] = Query(None, description="Parent ticket ID, or 'none' for top-level"),
    has_children: Optional[bool] = Query(None),
    target_business_group: Optional[str] = Query(None, description="Target business group name"),
    initiator: Optional[str] = Query(None, description="Creator name"),
    initiator_group: Optional[str] = Query(None, description="Creator business unit group name"),
    project: Optional[str] = Query(None, description="Project name"),
    my_team: bool = Query(False, description="Created by or assigned to my team"),
    include_deleted: bool = Query(False, description="Admin only"),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    current: CurrentUser = Depends(get_current_user_context),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """
    List tickets with search and filtering

    Newest first. Deleted tickets are only listed for admins who ask.
    """
    try:
        filters = TicketFilters(
            status=_optional_enum(TicketStatus, status, "status"),
            ticket_type=_optional_enum(TicketType, ticket_type, "ticket_type"),
            priority=priority,
            assigned_to=assigned_to,
            created_by=created_by,
            spoc=spoc,
            search=q,
            date_from=date_from,
            date_to=date_to,
            is_internal=is_internal,
            parent_ticket_id=parent_ticket_id,
            has_children=has_children,
            target_business_group=target_business_group,
            initiator=initiator,
            initiator_group=initiator_group,
            project=project,
            include_deleted=include_deleted
        )

        service = TicketService()
        result = service.list_tickets(
            filters,
            current.user,
            is_admin=current.is_admin,
            my_team=my_team,
            page=page,
            page_size=page_size
        )
        return TicketListResponse(**result)

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.get("/{ticket_id}")
async def get_ticket(
    ticket_id: str,
    current: CurrentUser = Depends(get_current_user_context),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Ticket with comments, attachments and child tickets"""
    try:
        service = TicketService()
        return service.get_ticket_detail(ticket_id)

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.patch("/{ticket_id}")
async def update_ticket(
    ticket_id: str,
    request: UpdateTicketRequest,
    current: CurrentUser = Depends(get_current_user_context),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """
    Edit ticket details

    Creator edits the details; priority, classification and estimate are
    admin only, as are resolved and closed tickets. Status, assignee,
    project and routing go through their own endpoints.
    """
    try:
        service = TicketService()
        ticket = service.update_ticket(
            ticket_id,
            request.changes(),
            current.user,
            is_admin=current.is_admin,
            expected_version=request.expected_version
        )
        return service.ticket_to_dict(ticket)

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.get("/{ticket_id}/children")
async def list_child_tickets(
    ticket_id: str,
    current: CurrentUser = Depends(get_current_user_context)
):
    """Direct children of a ticket"""
    try:
        service = TicketService()
        return {"items": service.list_child_tickets(ticket_id)}

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.get("/{ticket_id}/audit-log")
async def get_audit_log(
    ticket_id: str,
    current: CurrentUser = Depends(get_current_user_context)
):
    """Audit trail of a ticket, newest first"""
    try:
        service = TicketService()
        entries = service.get_ticket_audit_log(ticket_id)
        return {"items": [e.model_dump(mode="json") for e in entries]}

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())

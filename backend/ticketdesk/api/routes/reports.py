"""Report API Routes - Delayed tickets and statistics"""
from fastapi import APIRouter, Depends, HTTPException

from ..deps import CurrentUser, get_current_user_context, require_admin_context
from ...domain.errors import DomainError
from ...services.report_service import ReportService
from ...utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter()


@router.get("/delayed-tickets")
async def get_delayed_tickets(
    current: CurrentUser = Depends(get_current_user_context)
):
    """
    Unfinished tickets past their mapping's estimated duration (admin)

    Worst delay first.
    """
    try:
        rows = ReportService().get_delayed_tickets(current.is_admin)
        return {"items": rows, "total": len(rows)}

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.get("/stats")
async def get_ticket_stats(
    current: CurrentUser = Depends(require_admin_context)
):
    """Ticket counts by status and priority (admin)"""
    return ReportService().get_ticket_stats()

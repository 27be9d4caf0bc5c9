"""API Routes module"""
from fastapi import APIRouter

from .tickets import router as tickets_router
from .attachments import router as attachments_router
from .directory import router as directory_router
from .master_data import router as master_data_router
from .reports import router as reports_router
from .notifications import router as notifications_router

# Main API router
api_router = APIRouter()

# Include all route modules
api_router.include_router(tickets_router, prefix="/tickets", tags=["Tickets"])
api_router.include_router(attachments_router, prefix="/attachments", tags=["Attachments"])
api_router.include_router(directory_router, prefix="/directory", tags=["Directory"])
api_router.include_router(master_data_router, prefix="/master-data", tags=["Master Data"])
api_router.include_router(reports_router, prefix="/reports", tags=["Reports"])
api_router.include_router(notifications_router, prefix="/notifications", tags=["Notifications"])

__all__ = ["api_router"]

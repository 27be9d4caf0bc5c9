"""Service modules - Business logic layer"""
from .directory_service import DirectoryService
from .master_data_service import MasterDataService
from .ticket_service import TicketService
from .attachment_service import AttachmentService
from .notification_service import NotificationService
from .report_service import ReportService

__all__ = [
    "DirectoryService",
    "MasterDataService",
    "TicketService",
    "AttachmentService",
    "NotificationService",
    "ReportService",
]

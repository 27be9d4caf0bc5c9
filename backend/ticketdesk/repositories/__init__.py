"""Repository modules - Data access layer"""
from .mongo_client import get_database, get_collection
from .directory_repo import DirectoryRepository
from .master_data_repo import MasterDataRepository
from .ticket_repo import TicketRepository, TicketFilters
from .audit_repo import AuditRepository
from .notification_repo import NotificationRepository
from .attachment_repo import AttachmentRepository

__all__ = [
    "get_database",
    "get_collection",
    "DirectoryRepository",
    "MasterDataRepository",
    "TicketRepository",
    "TicketFilters",
    "AuditRepository",
    "NotificationRepository",
    "AttachmentRepository",
]

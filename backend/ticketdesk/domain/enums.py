"""Domain Enumerations - All status and type definitions"""
from enum import Enum


class TicketType(str, Enum):
    """Kind of ticket raised by the initiator"""
    SUPPORT = "support"
    REQUIREMENT = "requirement"


class TicketStatus(str, Enum):
    """Ticket lifecycle status"""
    OPEN = "open"
    ON_HOLD = "on-hold"
    RESOLVED = "resolved"
    CLOSED = "closed"
    RETURNED = "returned"
    DELETED = "deleted"


class TicketPriority(str, Enum):
    """Ticket priority"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class UserRole(str, Enum):
    """Directory role"""
    ADMIN = "admin"
    USER = "user"


class AuditActionType(str, Enum):
    """Types of audit log entries"""
    CREATED = "created"
    STATUS_CHANGE = "status_change"
    ASSIGNMENT_CHANGE = "assignment_change"
    PROJECT_CHANGE = "project_change"
    REDIRECTION = "redirection"
    DETAILS_CHANGE = "details_change"


class NotificationStatus(str, Enum):
    """Notification outbox status"""
    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"


class NotificationType(str, Enum):
    """Types of notifications"""
    EMAIL = "EMAIL"


class NotificationTemplateKey(str, Enum):
    """Email template keys"""
    SPOC_TICKET_CREATED = "SPOC_TICKET_CREATED"
    TICKET_ASSIGNED = "TICKET_ASSIGNED"
    TICKET_STATUS_CHANGED = "TICKET_STATUS_CHANGED"
    TICKET_REDIRECTED = "TICKET_REDIRECTED"

"""Domain Models - Pydantic schemas for all entities"""
from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, EmailStr, ConfigDict

from .enums import (
    TicketType, TicketStatus, TicketPriority, UserRole, AuditActionType,
    NotificationStatus, NotificationType, NotificationTemplateKey
)


# ============================================================================
# User & Identity Snapshots
# ============================================================================

class UserSnapshot(BaseModel):
    """Snapshot of a directory user at a point in time"""
    model_config = ConfigDict(extra="forbid")

    user_id: str = Field(..., description="Directory user ID")
    email: EmailStr = Field(..., description="User email")
    display_name: str = Field(..., description="User display name")
    business_unit_group_id: Optional[str] = Field(None, description="Business unit group of the user")
    business_unit_group_name: Optional[str] = None


class ActorContext(BaseModel):
    """Current actor context from JWT token"""
    model_config = ConfigDict(extra="forbid")

    aad_id: str = Field(..., description="Azure AD object ID")
    email: EmailStr = Field(..., description="User email")
    display_name: str = Field(..., description="User display name")
    roles: List[str] = Field(default_factory=list, description="Assigned roles")


class NamedRef(BaseModel):
    """Reference to a master data record with its name at the time of writing"""
    model_config = ConfigDict(extra="ignore")

    id: str
    name: str


# ============================================================================
# Directory
# ============================================================================

class User(BaseModel):
    """Directory user"""
    model_config = ConfigDict(extra="ignore")

    user_id: str
    email: EmailStr
    full_name: str
    role: UserRole = Field(default=UserRole.USER)
    business_unit_group_id: Optional[str] = None
    aad_id: Optional[str] = None
    avatar_url: Optional[str] = None
    is_active: bool = True
    created_at: datetime
    updated_at: Optional[datetime] = None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def snapshot(self, group_name: Optional[str] = None) -> UserSnapshot:
        """Freeze this user into a snapshot for embedding in tickets and audit entries"""
        return UserSnapshot(
            user_id=self.user_id,
            email=self.email,
            display_name=self.full_name,
            business_unit_group_id=self.business_unit_group_id,
            business_unit_group_name=group_name
        )


class BusinessUnitGroup(BaseModel):
    """Organizational group a user belongs to (the initiator side)"""
    model_config = ConfigDict(extra="ignore")

    group_id: str
    name: str
    description: Optional[str] = None
    created_at: datetime


class Team(BaseModel):
    """Team of users, used for the "my team" ticket view"""
    model_config = ConfigDict(extra="ignore")

    team_id: str
    name: str
    member_ids: List[str] = Field(default_factory=list)
    created_at: datetime


# ============================================================================
# Master Data
# ============================================================================

class TargetBusinessGroup(BaseModel):
    """Group a ticket is routed to"""
    model_config = ConfigDict(extra="ignore")

    group_id: str
    name: str
    description: Optional[str] = None
    created_at: datetime


class Category(BaseModel):
    """Ticket category"""
    model_config = ConfigDict(extra="ignore")

    category_id: str
    name: str
    description: Optional[str] = None
    created_at: datetime


class Subcategory(BaseModel):
    """Ticket subcategory within a category"""
    model_config = ConfigDict(extra="ignore")

    subcategory_id: str
    category_id: str
    name: str
    description: Optional[str] = None
    estimated_duration_minutes: Optional[int] = None
    input_template: Optional[str] = None
    closure_steps: Optional[str] = None
    created_at: datetime


class Project(BaseModel):
    """Project a ticket can be filed under"""
    model_config = ConfigDict(extra="ignore")

    project_id: str
    name: str
    description: Optional[str] = None
    created_at: datetime


class ClassificationMapping(BaseModel):
    """
    Routing rule: target group + category (+ subcategory) -> SPOC and estimate

    The (target_business_group_id, category_id, subcategory_id) triple is unique.
    """
    model_config = ConfigDict(extra="ignore")

    mapping_id: str
    target_business_group_id: str
    category_id: str
    subcategory_id: Optional[str] = None
    estimated_duration_minutes: int = Field(default=0, ge=0)
    spoc_user_id: Optional[str] = None
    auto_title_template: Optional[str] = None
    description: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


# ============================================================================
# Ticket
# ============================================================================

class Ticket(BaseModel):
    """Helpdesk ticket"""
    model_config = ConfigDict(extra="ignore")

    ticket_id: str = Field(..., description="Public ID, e.g. TKT-202403-00042")
    ticket_number: int
    title: str
    description: Optional[str] = None
    ticket_type: TicketType = Field(default=TicketType.SUPPORT)
    priority: TicketPriority = Field(default=TicketPriority.MEDIUM)
    status: TicketStatus = Field(default=TicketStatus.OPEN)

    # People
    created_by: UserSnapshot
    assigned_to: Optional[UserSnapshot] = None
    spoc: Optional[UserSnapshot] = None

    # Routing and classification
    initiator_group: Optional[NamedRef] = None
    target_business_group: Optional[NamedRef] = None
    assignee_group: Optional[NamedRef] = None
    category: Optional[NamedRef] = None
    subcategory: Optional[NamedRef] = None
    project: Optional[NamedRef] = None
    project_name: Optional[str] = None

    estimated_duration: Optional[str] = None
    product_release_name: Optional[str] = None
    estimated_release_date: Optional[str] = Field(None, description="ISO date (YYYY-MM-DD)")
    is_internal: bool = False
    parent_ticket_id: Optional[str] = None

    # Lifecycle
    created_at: datetime
    updated_at: datetime
    resolved_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    closed_by: Optional[UserSnapshot] = None
    hold_at: Optional[datetime] = None
    hold_by: Optional[UserSnapshot] = None
    is_deleted: bool = False
    deleted_at: Optional[datetime] = None

    # Redirection
    redirected_from_group: Optional[NamedRef] = None
    redirected_from_spoc: Optional[UserSnapshot] = None
    redirection_remarks: Optional[str] = None
    redirected_at: Optional[datetime] = None

    version: int = Field(default=1)


class Comment(BaseModel):
    """Comment on a ticket"""
    model_config = ConfigDict(extra="ignore")

    comment_id: str
    ticket_id: str
    author: UserSnapshot
    content: str
    created_at: datetime


class Attachment(BaseModel):
    """File attachment"""
    model_config = ConfigDict(extra="ignore")

    attachment_id: str
    ticket_id: str
    original_filename: str
    stored_filename: str
    mime_type: str
    size_bytes: int
    uploaded_by: UserSnapshot
    uploaded_at: datetime
    storage_path: str
    description: Optional[str] = Field(None, description="User-provided description for the attachment")


# ============================================================================
# Notification Outbox
# ============================================================================

class NotificationOutbox(BaseModel):
    """Notification in outbox"""
    model_config = ConfigDict(extra="ignore")

    notification_id: str
    ticket_id: Optional[str] = None
    notification_type: NotificationType = Field(default=NotificationType.EMAIL)
    template_key: NotificationTemplateKey
    recipients: List[EmailStr]
    payload: Dict[str, Any] = Field(default_factory=dict)
    status: NotificationStatus = Field(default=NotificationStatus.PENDING)
    retry_count: int = Field(default=0)
    last_error: Optional[str] = None
    next_retry_at: Optional[datetime] = None
    locked_until: Optional[datetime] = None
    locked_by: Optional[str] = None
    created_at: datetime
    sent_at: Optional[datetime] = None


# ============================================================================
# Audit Log
# ============================================================================

class AuditLogEntry(BaseModel):
    """Append-only record of a ticket change"""
    model_config = ConfigDict(extra="ignore")

    audit_id: str
    ticket_id: str
    action_type: AuditActionType
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    performed_by: Optional[UserSnapshot] = None
    performed_by_name: str = "System"
    notes: Optional[str] = None
    created_at: datetime
    correlation_id: Optional[str] = None

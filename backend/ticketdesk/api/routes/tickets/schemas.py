"""
Ticket Schemas

Request and response models for ticket API endpoints.
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ....domain.enums import TicketType, TicketPriority, TicketStatus


# =============================================================================
# Ticket CRUD Schemas
# =============================================================================

class CreateTicketRequest(BaseModel):
    """Request to create a new ticket"""
    title: str = Field(..., min_length=1, max_length=500)
    description: Optional[str] = None
    ticket_type: TicketType = TicketType.SUPPORT
    priority: TicketPriority = TicketPriority.MEDIUM
    target_business_group_id: Optional[str] = None
    spoc_user_id: Optional[str] = None
    assignee_user_id: Optional[str] = None
    category_id: Optional[str] = None
    subcategory_id: Optional[str] = None
    project_id: Optional[str] = None
    project_name: Optional[str] = Field(None, max_length=200)
    estimated_duration: Optional[str] = Field(None, max_length=100)
    product_release_name: Optional[str] = Field(None, max_length=200)
    estimated_release_date: Optional[str] = Field(None, description="YYYY-MM-DD")
    parent_ticket_id: Optional[str] = None

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Title cannot be blank")
        return v.strip()


class CreateTicketResponse(BaseModel):
    """Response after creating ticket"""
    ticket_id: str
    ticket_number: int


class TicketListResponse(BaseModel):
    """Response for ticket list"""
    items: List[Dict[str, Any]]
    page: int
    page_size: int
    total: int


class UpdateTicketRequest(BaseModel):
    """
    Partial ticket edit

    Only fields present in the body are applied. Status, assignee, project
    and routing have their own endpoints.
    """
    model_config = ConfigDict(extra="allow")

    title: Optional[str] = Field(None, max_length=500)
    description: Optional[str] = None
    ticket_type: Optional[TicketType] = None
    priority: Optional[TicketPriority] = None
    category_id: Optional[str] = None
    subcategory_id: Optional[str] = None
    estimated_duration: Optional[str] = Field(None, max_length=100)
    product_release_name: Optional[str] = Field(None, max_length=200)
    estimated_release_date: Optional[str] = None
    project_name: Optional[str] = Field(None, max_length=200)
    expected_version: Optional[int] = Field(None, description="Reject if the ticket version moved on")

    def changes(self) -> Dict[str, Any]:
        """Fields sent in the body, unknown ones included so they can be refused"""
        data = self.model_dump(exclude_unset=True, exclude={"expected_version"})
        data.update(self.model_extra or {})
        return data


# =============================================================================
# Action Schemas
# =============================================================================

class StatusChangeRequest(BaseModel):
    """Request to change ticket status"""
    status: TicketStatus
    reason: Optional[str] = Field(None, max_length=2000)
    remarks: Optional[str] = Field(None, max_length=2000)


class RedirectRequest(BaseModel):
    """Request to route a ticket to another target group and SPOC"""
    target_business_group_id: str
    spoc_user_id: str
    remarks: str = Field(..., max_length=2000)


class AssigneeRequest(BaseModel):
    """Set or clear (null) the assignee"""
    assignee_user_id: Optional[str] = None


class ProjectRequest(BaseModel):
    """Set or clear (null) the project"""
    project_id: Optional[str] = None


class AddCommentRequest(BaseModel):
    """Request to add a comment"""
    content: str = Field(..., min_length=1, max_length=5000)


class ActionResponse(BaseModel):
    """Generic action response"""
    message: str
    ticket_id: Optional[str] = None
    ticket: Optional[Dict[str, Any]] = None

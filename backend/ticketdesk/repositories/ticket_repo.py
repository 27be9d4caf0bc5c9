"""Ticket Repository - Data access for tickets and comments"""
import re
from typing import Any, Dict, List, Optional, Tuple
from datetime import datetime
from pydantic import BaseModel, Field
from pymongo.collection import Collection
from pymongo import DESCENDING, ASCENDING

from .mongo_client import get_collection
from ..domain.models import Ticket, Comment
from ..domain.enums import TicketStatus, TicketType, TicketPriority
from ..domain.errors import TicketNotFoundError, ConcurrencyError, CommentNotFoundError
from ..utils.logger import get_logger
from ..utils.time import utc_now, as_utc

logger = get_logger(__name__)

# Sentinel for parent_ticket_id meaning "top-level tickets only"
TOP_LEVEL = "none"


class TicketFilters(BaseModel):
    """Ticket list filters. A None field is not filtered on."""
    status: Optional[TicketStatus] = None
    ticket_type: Optional[TicketType] = None
    priority: Optional[TicketPriority] = None
    assigned_to: Optional[str] = Field(None, description="Assignee user ID")
    created_by: Optional[str] = Field(None, description="Creator user ID")
    spoc: Optional[str] = Field(None, description="SPOC user ID")
    search: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    is_internal: Optional[bool] = None
    parent_ticket_id: Optional[str] = None
    has_children: Optional[bool] = None
    target_business_group: Optional[str] = Field(None, description="Target business group name")
    initiator: Optional[str] = Field(None, description="Creator display name")
    initiator_group: Optional[str] = Field(None, description="Initiator business unit group name")
    project: Optional[str] = Field(None, description="Project name")
    team_member_ids: Optional[List[str]] = None
    include_deleted: bool = False


def _mongo_datetime(dt: datetime) -> datetime:
    """Naive UTC, as pymongo stores and returns it"""
    return as_utc(dt).replace(tzinfo=None)


class TicketRepository:
    """Repository for ticket operations"""

    def __init__(self):
        self._tickets: Collection = get_collection("tickets")
        self._comments: Collection = get_collection("comments")
        self._counters: Collection = get_collection("counters")

    # =========================================================================
    # Ticket CRUD
    # =========================================================================

    def next_ticket_number(self) -> int:
        """Atomically allocate the next ticket number"""
        result = self._counters.find_one_and_update(
            {"_id": "ticket_number"},
            {"$inc": {"seq": 1}},
            upsert=True,
            return_document=True
        )
        return int(result["seq"])

    def create_ticket(self, ticket: Ticket) -> Ticket:
        """Create a new ticket"""
        # Don't use mode="json" - it converts datetime to strings, breaking MongoDB sorting
        doc = ticket.model_dump()
        doc["_id"] = ticket.ticket_id

        self._tickets.insert_one(doc)
        logger.info(f"Created ticket: {ticket.ticket_id}", extra={"ticket_id": ticket.ticket_id})
        return ticket

    def get_ticket(self, ticket_id: str) -> Optional[Ticket]:
        """Get ticket by ID"""
        doc = self._tickets.find_one({"ticket_id": ticket_id})
        if doc:
            doc.pop("_id", None)
            return Ticket.model_validate(doc)
        return None

    def get_ticket_or_raise(self, ticket_id: str) -> Ticket:
        """Get ticket by ID or raise error"""
        ticket = self.get_ticket(ticket_id)
        if not ticket:
            raise TicketNotFoundError(f"Ticket {ticket_id} not found", details={"ticket_id": ticket_id})
        return ticket

    def update_ticket(
        self,
        ticket_id: str,
        updates: Dict[str, Any],
        expected_version: Optional[int] = None
    ) -> Ticket:
        """Update ticket with optimistic concurrency"""
        updates["updated_at"] = utc_now()

        filter_query: Dict[str, Any] = {"ticket_id": ticket_id}
        if expected_version is not None:
            filter_query["version"] = expected_version
            updates["version"] = expected_version + 1

        result = self._tickets.find_one_and_update(
            filter_query,
            {"$set": updates},
            return_document=True
        )

        if result is None:
            if expected_version is not None and self._tickets.find_one({"ticket_id": ticket_id}):
                raise ConcurrencyError(
                    f"Ticket {ticket_id} was modified. Please refresh and try again.",
                    details={"expected_version": expected_version}
                )
            raise TicketNotFoundError(f"Ticket {ticket_id} not found", details={"ticket_id": ticket_id})

        result.pop("_id", None)
        logger.info(f"Updated ticket: {ticket_id}", extra={"ticket_id": ticket_id})
        return Ticket.model_validate(result)

    def touch_ticket(self, ticket_id: str) -> None:
        """Bump updated_at without a version check"""
        self._tickets.update_one({"ticket_id": ticket_id}, {"$set": {"updated_at": utc_now()}})

    # =========================================================================
    # Listing
    # =========================================================================

    def _parent_ids(self) -> List[str]:
        """IDs of tickets that have at least one non-deleted child"""
        return [
            parent_id for parent_id in self._tickets.distinct(
                "parent_ticket_id", {"is_deleted": {"$ne": True}}
            )
            if parent_id
        ]

    def _build_query(self, filters: TicketFilters) -> Dict[str, Any]:
        and_conditions: List[Dict[str, Any]] = []

        if not filters.include_deleted:
            and_conditions.append({"is_deleted": {"$ne": True}})

        if filters.status:
            and_conditions.append({"status": filters.status.value})
        if filters.ticket_type:
            and_conditions.append({"ticket_type": filters.ticket_type.value})
        if filters.priority:
            and_conditions.append({"priority": filters.priority.value})
        if filters.assigned_to:
            and_conditions.append({"assigned_to.user_id": filters.assigned_to})
        if filters.created_by:
            and_conditions.append({"created_by.user_id": filters.created_by})
        if filters.spoc:
            and_conditions.append({"spoc.user_id": filters.spoc})

        if filters.search:
            pattern = re.escape(filters.search.strip())
            and_conditions.append({"$or": [
                {"title": {"$regex": pattern, "$options": "i"}},
                {"ticket_id": {"$regex": pattern, "$options": "i"}},
                {"description": {"$regex": pattern, "$options": "i"}},
                {"created_by.display_name": {"$regex": pattern, "$options": "i"}},
                {"assigned_to.display_name": {"$regex": pattern, "$options": "i"}},
                {"category.name": {"$regex": pattern, "$options": "i"}}
            ]})

        if filters.date_from or filters.date_to:
            date_query: Dict[str, Any] = {}
            if filters.date_from:
                date_query["$gte"] = _mongo_datetime(filters.date_from)
            if filters.date_to:
                date_query["$lte"] = _mongo_datetime(filters.date_to)
            and_conditions.append({"created_at": date_query})

        # Internal tickets are those raised by someone inside a business unit group
        if filters.is_internal is True:
            and_conditions.append({"created_by.business_unit_group_id": {"$ne": None}})
        elif filters.is_internal is False:
            and_conditions.append({"created_by.business_unit_group_id": None})

        if filters.parent_ticket_id == TOP_LEVEL:
            and_conditions.append({"parent_ticket_id": None})
        elif filters.parent_ticket_id:
            and_conditions.append({"parent_ticket_id": filters.parent_ticket_id})

        if filters.has_children is not None:
            operator = "$in" if filters.has_children else "$nin"
            and_conditions.append({"ticket_id": {operator: self._parent_ids()}})

        if filters.target_business_group:
            and_conditions.append({"target_business_group.name": filters.target_business_group})
        if filters.initiator:
            and_conditions.append({"created_by.display_name": filters.initiator})
        if filters.initiator_group:
            and_conditions.append({"initiator_group.name": filters.initiator_group})
        if filters.project:
            and_conditions.append({"$or": [
                {"project.name": filters.project},
                {"project_name": filters.project}
            ]})

        if filters.team_member_ids is not None:
            and_conditions.append({"$or": [
                {"created_by.user_id": {"$in": filters.team_member_ids}},
                {"assigned_to.user_id": {"$in": filters.team_member_ids}}
            ]})

        if not and_conditions:
            return {}
        if len(and_conditions) == 1:
            return and_conditions[0]
        return {"$and": and_conditions}

    def list_tickets(
        self,
        filters: TicketFilters,
        skip: int = 0,
        limit: int = 50
    ) -> Tuple[List[Ticket], int]:
        """List tickets newest first; returns the page and the total match count"""
        query = self._build_query(filters)

        total = self._tickets.count_documents(query)
        cursor = self._tickets.find(query).sort(
            [("created_at", DESCENDING), ("ticket_number", DESCENDING)]
        ).skip(skip).limit(limit)

        tickets = []
        for doc in cursor:
            doc.pop("_id", None)
            tickets.append(Ticket.model_validate(doc))

        return tickets, total

    def list_open_tickets(self) -> List[Ticket]:
        """Tickets still being worked on (not resolved, closed or deleted)"""
        cursor = self._tickets.find({
            "is_deleted": {"$ne": True},
            "status": {"$nin": [
                TicketStatus.RESOLVED.value, TicketStatus.CLOSED.value, TicketStatus.DELETED.value
            ]}
        }).sort("created_at", ASCENDING)

        tickets = []
        for doc in cursor:
            doc.pop("_id", None)
            tickets.append(Ticket.model_validate(doc))
        return tickets

    def get_child_tickets(self, parent_ticket_id: str) -> List[Ticket]:
        """Non-deleted children of a ticket, oldest first"""
        cursor = self._tickets.find({
            "parent_ticket_id": parent_ticket_id,
            "is_deleted": {"$ne": True}
        }).sort("ticket_number", ASCENDING)

        tickets = []
        for doc in cursor:
            doc.pop("_id", None)
            tickets.append(Ticket.model_validate(doc))
        return tickets

    def count_children_by_parent(self, parent_ticket_ids: List[str]) -> Dict[str, int]:
        """Number of non-deleted children per parent ticket"""
        if not parent_ticket_ids:
            return {}
        pipeline = [
            {"$match": {"parent_ticket_id": {"$in": parent_ticket_ids}, "is_deleted": {"$ne": True}}},
            {"$group": {"_id": "$parent_ticket_id", "count": {"$sum": 1}}}
        ]
        return {row["_id"]: row["count"] for row in self._tickets.aggregate(pipeline)}

    def count_by_field(self, field: str) -> Dict[str, int]:
        """Count non-deleted tickets grouped by a top-level field"""
        pipeline = [
            {"$match": {"is_deleted": {"$ne": True}}},
            {"$group": {"_id": f"${field}", "count": {"$sum": 1}}}
        ]
        counts: Dict[str, int] = {}
        for row in self._tickets.aggregate(pipeline):
            key = getattr(row["_id"], "value", row["_id"])
            counts[str(key)] = row["count"]
        return counts

    def count_unassigned_open(self) -> int:
        return self._tickets.count_documents({
            "is_deleted": {"$ne": True},
            "status": TicketStatus.OPEN.value,
            "assigned_to": None
        })

    # =========================================================================
    # Comments
    # =========================================================================

    def create_comment(self, comment: Comment) -> Comment:
        doc = comment.model_dump()
        doc["_id"] = comment.comment_id
        self._comments.insert_one(doc)
        logger.info(
            f"Created comment: {comment.comment_id}",
            extra={"ticket_id": comment.ticket_id}
        )
        return comment

    def get_comment_or_raise(self, comment_id: str) -> Comment:
        doc = self._comments.find_one({"comment_id": comment_id})
        if not doc:
            raise CommentNotFoundError(f"Comment {comment_id} not found", details={"comment_id": comment_id})
        doc.pop("_id", None)
        return Comment.model_validate(doc)

    def get_comments_for_ticket(self, ticket_id: str) -> List[Comment]:
        """Comments oldest first"""
        cursor = self._comments.find({"ticket_id": ticket_id}).sort("created_at", ASCENDING)

        comments = []
        for doc in cursor:
            doc.pop("_id", None)
            comments.append(Comment.model_validate(doc))
        return comments

    def delete_comment(self, comment_id: str) -> None:
        self._comments.delete_one({"comment_id": comment_id})
        logger.info(f"Deleted comment: {comment_id}")

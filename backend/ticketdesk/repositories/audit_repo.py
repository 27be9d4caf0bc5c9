"""Audit Repository - Data access for the ticket audit log"""
from typing import Any, Dict, List, Optional
from pymongo.collection import Collection
from pymongo import DESCENDING

from .mongo_client import get_collection
from ..domain.models import AuditLogEntry
from ..domain.enums import AuditActionType
from ..utils.logger import get_logger

logger = get_logger(__name__)


class AuditRepository:
    """Repository for audit log operations (append-only)"""

    def __init__(self):
        self._audit_log: Collection = get_collection("audit_log")

    def create_entry(self, entry: AuditLogEntry) -> AuditLogEntry:
        """Append an audit entry"""
        doc = entry.model_dump()
        doc["_id"] = entry.audit_id

        self._audit_log.insert_one(doc)
        logger.info(
            f"Created audit entry: {entry.action_type.value}",
            extra={
                "ticket_id": entry.ticket_id,
                "action": entry.action_type.value,
                "actor_email": entry.performed_by.email if entry.performed_by else None
            }
        )
        return entry

    def get_entries_for_ticket(
        self,
        ticket_id: str,
        action_types: Optional[List[AuditActionType]] = None,
        skip: int = 0,
        limit: int = 200
    ) -> List[AuditLogEntry]:
        """Audit entries for a ticket, newest first"""
        query: Dict[str, Any] = {"ticket_id": ticket_id}

        if action_types:
            query["action_type"] = {"$in": [at.value for at in action_types]}

        cursor = self._audit_log.find(query).sort("created_at", DESCENDING).skip(skip).limit(limit)

        entries = []
        for doc in cursor:
            doc.pop("_id", None)
            entries.append(AuditLogEntry.model_validate(doc))

        return entries

    def get_latest_entry(
        self,
        ticket_id: str,
        action_type: AuditActionType,
        new_value: Optional[str] = None
    ) -> Optional[AuditLogEntry]:
        """Most recent entry of a given type, optionally with a specific new_value"""
        query: Dict[str, Any] = {"ticket_id": ticket_id, "action_type": action_type.value}
        if new_value is not None:
            query["new_value"] = new_value

        docs = list(self._audit_log.find(query).sort("created_at", DESCENDING).limit(1))
        if not docs:
            return None
        docs[0].pop("_id", None)
        return AuditLogEntry.model_validate(docs[0])

"""Report Service - Delayed tickets and ticket statistics"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..domain.models import ClassificationMapping
from ..domain.errors import PermissionDeniedError
from ..repositories.ticket_repo import TicketRepository
from ..repositories.master_data_repo import MasterDataRepository
from ..utils.time import utc_now, minutes_since, format_duration
from ..utils.logger import get_logger

logger = get_logger(__name__)

MINUTES_PER_DAY = 1440


class ReportService:
    """Service for admin reports"""

    def __init__(self):
        self.ticket_repo = TicketRepository()
        self.master_data_repo = MasterDataRepository()

    def _mapping_for(
        self,
        mappings: Dict[tuple, ClassificationMapping],
        group_id: Optional[str],
        category_id: Optional[str],
        subcategory_id: Optional[str]
    ) -> Optional[ClassificationMapping]:
        """Exact classification mapping, else the category-wide one"""
        if not group_id or not category_id:
            return None
        if subcategory_id and (group_id, category_id, subcategory_id) in mappings:
            return mappings[(group_id, category_id, subcategory_id)]
        return mappings.get((group_id, category_id, None))

    def get_delayed_tickets(self, is_admin: bool, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """
        Unfinished tickets that have run past their mapping's estimate

        Rows are sorted by days_delayed, worst first.
        """
        if not is_admin:
            raise PermissionDeniedError("Only admin can view the delayed tickets report")

        now = now or utc_now()
        mappings = {
            (m.target_business_group_id, m.category_id, m.subcategory_id): m
            for m in self.master_data_repo.list_mappings()
        }

        rows: List[Dict[str, Any]] = []
        for ticket in self.ticket_repo.list_open_tickets():
            mapping = self._mapping_for(
                mappings,
                ticket.target_business_group.id if ticket.target_business_group else None,
                ticket.category.id if ticket.category else None,
                ticket.subcategory.id if ticket.subcategory else None
            )
            if not mapping or mapping.estimated_duration_minutes <= 0:
                continue

            estimate = mapping.estimated_duration_minutes
            actual = minutes_since(ticket.created_at, now)
            if actual <= estimate:
                continue

            rows.append({
                "ticket_id": ticket.ticket_id,
                "ticket_number": ticket.ticket_number,
                "title": ticket.title,
                "status": ticket.status.value,
                "created_at": ticket.created_at.isoformat(),
                "ticket_estimated_duration": ticket.estimated_duration,
                "mapping_estimated_duration_minutes": estimate,
                "actual_duration_minutes": actual,
                "days_delayed": round((actual - estimate) / MINUTES_PER_DAY, 2),
                "estimated_duration_text": format_duration(estimate),
                "actual_duration_text": format_duration(actual),
                "assignee_name": ticket.assigned_to.display_name if ticket.assigned_to else None,
                "assignee_email": ticket.assigned_to.email if ticket.assigned_to else None,
                "target_group_name": ticket.target_business_group.name if ticket.target_business_group else None,
                "category_name": ticket.category.name if ticket.category else None,
                "subcategory_name": ticket.subcategory.name if ticket.subcategory else None
            })

        rows.sort(key=lambda row: row["days_delayed"], reverse=True)
        logger.info(f"Delayed tickets report: {len(rows)} tickets")
        return rows

    def get_ticket_stats(self) -> Dict[str, Any]:
        """Counts of non-deleted tickets by status and priority"""
        by_status = self.ticket_repo.count_by_field("status")
        by_priority = self.ticket_repo.count_by_field("priority")
        return {
            "total": sum(by_status.values()),
            "by_status": by_status,
            "by_priority": by_priority,
            "open_unassigned": self.ticket_repo.count_unassigned_open()
        }

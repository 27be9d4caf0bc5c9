"""Ticket rules - permissions, status transitions and the audit trail"""
from .permission_guard import PermissionGuard, TicketRoles
from .status_transition import build_status_updates, compose_status_note
from .audit_writer import AuditWriter

__all__ = [
    "PermissionGuard",
    "TicketRoles",
    "build_status_updates",
    "compose_status_note",
    "AuditWriter",
]

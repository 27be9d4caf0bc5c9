"""ID Generation Utilities"""
import uuid
from datetime import datetime
from typing import Optional

from .time import utc_now


def generate_id(prefix: Optional[str] = None) -> str:
    """
    Generate a unique ID with optional prefix

    Examples:
        >>> generate_id('USR')
        'USR-a1b2c3d4e5f6'
        >>> generate_id()
        'a1b2c3d4e5f6'
    """
    unique_part = uuid.uuid4().hex[:12]

    if prefix:
        return f"{prefix}-{unique_part}"
    return unique_part


def format_ticket_id(ticket_number: int, created_at: Optional[datetime] = None) -> str:
    """
    Build the public ticket ID from its sequence number

    Examples:
        >>> format_ticket_id(42, datetime(2024, 3, 1))
        'TKT-202403-00042'
    """
    created_at = created_at or utc_now()
    return f"TKT-{created_at.strftime('%Y%m')}-{ticket_number:05d}"


def generate_user_id() -> str:
    return generate_id("USR")


def generate_group_id() -> str:
    return generate_id("GRP")


def generate_team_id() -> str:
    return generate_id("TEAM")


def generate_category_id() -> str:
    return generate_id("CAT")


def generate_subcategory_id() -> str:
    return generate_id("SUB")


def generate_project_id() -> str:
    return generate_id("PRJ")


def generate_mapping_id() -> str:
    return generate_id("MAP")


def generate_comment_id() -> str:
    return generate_id("CMT")


def generate_attachment_id() -> str:
    return generate_id("ATT")


def generate_notification_id() -> str:
    return generate_id("NTF")


def generate_audit_id() -> str:
    return generate_id("AUD")


def generate_correlation_id() -> str:
    """
    Generate a correlation ID for request tracing

    Returns:
        Correlation ID string with timestamp prefix
    """
    timestamp = utc_now().strftime("%Y%m%d%H%M%S")
    unique_part = uuid.uuid4().hex[:8]
    return f"COR-{timestamp}-{unique_part}"

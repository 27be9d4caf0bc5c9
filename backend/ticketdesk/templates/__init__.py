"""
Email Templates Package

HTML email templates for helpdesk notifications.
"""
from .email_templates import (
    get_email_template,
    get_base_template,
    get_info_card,
    EmailTemplateKey,
    TEMPLATE_REGISTRY
)

__all__ = [
    "get_email_template",
    "get_base_template",
    "get_info_card",
    "EmailTemplateKey",
    "TEMPLATE_REGISTRY"
]

"""
Email Templates - HTML email templates for helpdesk notifications

Table-based layout so the mails render the same in Outlook, Gmail and
Apple Mail.
"""
from html import escape
from typing import Dict, Any, Optional
from enum import Enum


class EmailTemplateKey(str, Enum):
    """All available email template types"""
    SPOC_TICKET_CREATED = "SPOC_TICKET_CREATED"
    TICKET_ASSIGNED = "TICKET_ASSIGNED"
    TICKET_STATUS_CHANGED = "TICKET_STATUS_CHANGED"
    TICKET_REDIRECTED = "TICKET_REDIRECTED"


PRIORITY_COLORS = {
    "low": "#6B7280",
    "medium": "#3B82F6",
    "high": "#F59E0B",
    "urgent": "#EF4444",
}

STATUS_COLORS = {
    "open": "#3B82F6",
    "on-hold": "#F59E0B",
    "resolved": "#10B981",
    "closed": "#6B7280",
    "returned": "#8B5CF6",
    "deleted": "#EF4444",
}


def _text(payload: Dict[str, Any], key: str, default: str = "") -> str:
    """Payload value, HTML-escaped"""
    value = payload.get(key)
    if value is None or value == "":
        return escape(default)
    return escape(str(value))


def _ticket_url(app_url: str, payload: Dict[str, Any]) -> str:
    return f"{app_url}/tickets/{payload.get('ticket_id', '')}"


# =============================================================================
# Base Template Wrapper
# =============================================================================

def get_base_template(
    content: str,
    action_button_text: Optional[str] = None,
    action_button_url: Optional[str] = None,
    footer_note: Optional[str] = None,
    accent_color: str = "#3B82F6"
) -> str:
    """Email page with header, accent bar, content card, button and footer"""

    button_html = ""
    if action_button_text and action_button_url:
        button_html = f'''
        <table role="presentation" cellspacing="0" cellpadding="0" border="0" width="100%" style="margin: 32px 0;">
            <tr>
                <td align="center">
                    <a href="{action_button_url}"
                       style="display: inline-block;
                              background-color: {accent_color};
                              color: #ffffff;
                              text-decoration: none;
                              padding: 14px 32px;
                              border-radius: 8px;
                              font-weight: 600;
                              font-size: 14px;
                              font-family: Arial, sans-serif;">
                        {action_button_text}
                    </a>
                </td>
            </tr>
        </table>
        '''

    footer_note_html = ""
    if footer_note:
        footer_note_html = f'''
        <table role="presentation" cellspacing="0" cellpadding="0" border="0" width="100%" style="margin-top: 16px;">
            <tr>
                <td style="padding: 16px; background-color: #FEF3C7; font-size: 13px; color: #92400E; font-family: Arial, sans-serif;">
                    {footer_note}
                </td>
            </tr>
        </table>
        '''

    return f'''
<!DOCTYPE html PUBLIC "-//W3C//DTD XHTML 1.0 Transitional//EN" "http://www.w3.org/TR/xhtml1/DTD/xhtml1-transitional.dtd">
<html xmlns="http://www.w3.org/1999/xhtml">
<head>
    <meta http-equiv="Content-Type" content="text/html; charset=UTF-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1.0" />
    <title>TicketDesk</title>
    <style type="text/css">
        body {{margin: 0; padding: 0; -webkit-text-size-adjust: 100%; -ms-text-size-adjust: 100%;}}
        table {{border-collapse: collapse;}}
    </style>
</head>
<body style="margin: 0; padding: 0; background-color: #F8FAFC; font-family: Arial, Helvetica, sans-serif;">
    <table role="presentation" cellspacing="0" cellpadding="0" border="0" width="100%" style="background-color: #F8FAFC;">
        <tr>
            <td style="padding: 32px 20px;">
                <table role="presentation" cellspacing="0" cellpadding="0" border="0" width="600" align="center" style="margin: 0 auto; max-width: 600px;">
                    <tr>
                        <td style="padding-bottom: 24px;">
                            <table role="presentation" cellspacing="0" cellpadding="0" border="0" width="100%" style="background-color: #ffffff; border-radius: 8px 8px 0 0; border-bottom: 3px solid {accent_color};">
                                <tr>
                                    <td style="padding: 20px 24px;">
                                        <span style="color: #1F2937; font-size: 20px; font-weight: bold; font-family: Arial, sans-serif;">TicketDesk</span>
                                        <span style="color: #6B7280; font-size: 12px; font-family: Arial, sans-serif; margin-left: 4px;">Helpdesk</span>
                                    </td>
                                </tr>
                            </table>
                        </td>
                    </tr>
                    <tr>
                        <td>
                            <table role="presentation" cellspacing="0" cellpadding="0" border="0" width="100%" style="background-color: #ffffff; border-radius: 8px;">
                                <tr>
                                    <td style="height: 4px; background-color: {accent_color}; border-radius: 8px 8px 0 0;"></td>
                                </tr>
                                <tr>
                                    <td style="padding: 32px 40px 40px 40px;">
                                        {content}
                                        {button_html}
                                        {footer_note_html}
                                    </td>
                                </tr>
                            </table>
                        </td>
                    </tr>
                    <tr>
                        <td style="padding-top: 24px; text-align: center;">
                            <p style="margin: 0; color: #6B7280; font-size: 12px; font-family: Arial, sans-serif;">
                                This is an automated message from TicketDesk. Please do not reply.
                            </p>
                        </td>
                    </tr>
                </table>
            </td>
        </tr>
    </table>
</body>
</html>
'''


# =============================================================================
# Info Card Component
# =============================================================================

def get_info_card(
    ticket_ref: str,
    ticket_title: str,
    additional_fields: Optional[Dict[str, str]] = None
) -> str:
    """Ticket details table. Values must already be escaped."""

    fields_html = ""
    if additional_fields:
        for label, value in additional_fields.items():
            fields_html += f'''
            <tr>
                <td style="padding: 8px 16px; color: #6B7280; font-size: 13px; border-bottom: 1px solid #E5E7EB; font-family: Arial, sans-serif;">{label}</td>
                <td style="padding: 8px 16px; color: #111827; font-size: 13px; font-weight: bold; border-bottom: 1px solid #E5E7EB; font-family: Arial, sans-serif;">{value}</td>
            </tr>
            '''

    return f'''
    <table role="presentation" cellspacing="0" cellpadding="0" border="0" width="100%" style="margin: 24px 0; border: 1px solid #E5E7EB; background-color: #F9FAFB;">
        <tr>
            <td style="padding: 12px 16px; color: #6B7280; font-size: 13px; border-bottom: 1px solid #E5E7EB; width: 140px; font-family: Arial, sans-serif;">Ticket</td>
            <td style="padding: 12px 16px; font-size: 13px; border-bottom: 1px solid #E5E7EB; font-family: Consolas, monospace;">{ticket_ref}</td>
        </tr>
        <tr>
            <td style="padding: 12px 16px; color: #6B7280; font-size: 13px; border-bottom: 1px solid #E5E7EB; font-family: Arial, sans-serif;">Title</td>
            <td style="padding: 12px 16px; color: #111827; font-size: 13px; font-weight: bold; border-bottom: 1px solid #E5E7EB; font-family: Arial, sans-serif;">{ticket_title}</td>
        </tr>
        {fields_html}
    </table>
    '''


def _heading(title: str, subtitle: str) -> str:
    return f'''
    <h1 style="margin: 0 0 8px 0; font-size: 22px; font-weight: bold; color: #111827; font-family: Arial, sans-serif;">
        {title}
    </h1>
    <p style="margin: 0 0 16px 0; color: #6B7280; font-size: 15px; font-family: Arial, sans-serif;">
        {subtitle}
    </p>
    '''


def _paragraph(text: str) -> str:
    return f'''
    <p style="margin: 16px 0 0 0; color: #4B5563; font-size: 14px; line-height: 1.6; font-family: Arial, sans-serif;">
        {text}
    </p>
    '''


# =============================================================================
# Individual Templates
# =============================================================================

def get_spoc_ticket_created_template(payload: Dict[str, Any], app_url: str = "") -> Dict[str, str]:
    """Template: new ticket routed to the SPOC of a target business group"""

    ticket_ref = _text(payload, "ticket_ref")
    ticket_title = _text(payload, "ticket_title")
    spoc_name = _text(payload, "spoc_name", "there")
    creator_name = _text(payload, "creator_name")
    creator_group = _text(payload, "creator_group", "Unknown Group")
    description = _text(payload, "description")

    info_card = get_info_card(
        ticket_ref=ticket_ref,
        ticket_title=ticket_title,
        additional_fields={"Raised by": creator_name, "Group": creator_group}
    )

    content = _heading("New Ticket Assigned to Your Group", f"Hi {spoc_name}, a new ticket needs your attention.")
    content += info_card
    if description:
        content += _paragraph(f"<strong>Description:</strong><br/>{description}")
    content += _paragraph("As the SPOC you can assign this ticket, put it on hold or redirect it to another group.")

    body = get_base_template(
        content=content,
        action_button_text="Open Ticket",
        action_button_url=_ticket_url(app_url, payload),
        accent_color="#3B82F6"
    )

    return {
        "subject": f"New Ticket {payload.get('ticket_ref', '')}: {payload.get('ticket_title', '')}",
        "body": body
    }


def get_ticket_assigned_template(payload: Dict[str, Any], app_url: str = "") -> Dict[str, str]:
    """Template: ticket assigned to a user"""

    ticket_ref = _text(payload, "ticket_ref")
    ticket_title = _text(payload, "ticket_title")
    assignee_name = _text(payload, "assignee_name", "there")
    assigned_by = _text(payload, "assigned_by_name", "System")
    priority = str(payload.get("priority") or "medium").lower()
    description = _text(payload, "description")

    priority_badge = (
        f'<span style="color: {PRIORITY_COLORS.get(priority, "#3B82F6")};">{escape(priority.upper())}</span>'
    )

    info_card = get_info_card(
        ticket_ref=ticket_ref,
        ticket_title=ticket_title,
        additional_fields={"Priority": priority_badge, "Assigned by": assigned_by}
    )

    content = _heading("Ticket Assigned to You", f"Hi {assignee_name}, {assigned_by} assigned you a ticket.")
    content += info_card
    if description:
        content += _paragraph(f"<strong>Description:</strong><br/>{description}")

    body = get_base_template(
        content=content,
        action_button_text="View Ticket",
        action_button_url=_ticket_url(app_url, payload),
        accent_color=PRIORITY_COLORS.get(priority, "#3B82F6"),
        footer_note="Urgent tickets should be picked up immediately." if priority == "urgent" else None
    )

    return {
        "subject": f"Ticket Assigned {payload.get('ticket_ref', '')}: {payload.get('ticket_title', '')}",
        "body": body
    }


def get_ticket_status_changed_template(payload: Dict[str, Any], app_url: str = "") -> Dict[str, str]:
    """Template: ticket status changed"""

    ticket_ref = _text(payload, "ticket_ref")
    ticket_title = _text(payload, "ticket_title")
    recipient_name = _text(payload, "recipient_name", "there")
    old_status = _text(payload, "old_status")
    new_status_raw = str(payload.get("new_status") or "")
    new_status = escape(new_status_raw)
    changed_by = _text(payload, "changed_by_name", "System")

    info_card = get_info_card(
        ticket_ref=ticket_ref,
        ticket_title=ticket_title,
        additional_fields={
            "Previous status": old_status,
            "New status": new_status,
            "Changed by": changed_by
        }
    )

    content = _heading(
        "Ticket Status Updated",
        f"Hi {recipient_name}, the status of your ticket changed from {old_status} to {new_status}."
    )
    content += info_card

    body = get_base_template(
        content=content,
        action_button_text="View Ticket",
        action_button_url=_ticket_url(app_url, payload),
        accent_color=STATUS_COLORS.get(new_status_raw, "#3B82F6")
    )

    return {
        "subject": f"Ticket {payload.get('ticket_ref', '')} is now {new_status_raw}: {payload.get('ticket_title', '')}",
        "body": body
    }


def get_ticket_redirected_template(payload: Dict[str, Any], app_url: str = "") -> Dict[str, str]:
    """Template: ticket redirected to another group and SPOC"""

    ticket_ref = _text(payload, "ticket_ref")
    ticket_title = _text(payload, "ticket_title")
    spoc_name = _text(payload, "spoc_name", "there")
    from_group = _text(payload, "from_group", "Unknown Group")
    to_group = _text(payload, "to_group")
    redirected_by = _text(payload, "redirected_by_name", "System")
    remarks = _text(payload, "remarks")

    info_card = get_info_card(
        ticket_ref=ticket_ref,
        ticket_title=ticket_title,
        additional_fields={
            "From group": from_group,
            "To group": to_group,
            "Redirected by": redirected_by
        }
    )

    content = _heading("Ticket Redirected to Your Group", f"Hi {spoc_name}, a ticket was redirected to you.")
    content += info_card
    if remarks:
        content += _paragraph(f"<strong>Remarks:</strong><br/>{remarks}")

    body = get_base_template(
        content=content,
        action_button_text="Open Ticket",
        action_button_url=_ticket_url(app_url, payload),
        accent_color="#8B5CF6"
    )

    return {
        "subject": f"Ticket Redirected {payload.get('ticket_ref', '')}: {payload.get('ticket_title', '')}",
        "body": body
    }


TEMPLATE_REGISTRY = {
    EmailTemplateKey.SPOC_TICKET_CREATED: get_spoc_ticket_created_template,
    EmailTemplateKey.TICKET_ASSIGNED: get_ticket_assigned_template,
    EmailTemplateKey.TICKET_STATUS_CHANGED: get_ticket_status_changed_template,
    EmailTemplateKey.TICKET_REDIRECTED: get_ticket_redirected_template,
}


def get_email_template(
    template_key: str,
    payload: Dict[str, Any],
    app_url: str = ""
) -> Dict[str, str]:
    """
    Get rendered email template by key

    Args:
        template_key: Template identifier (from NotificationTemplateKey)
        payload: Data to populate the template
        app_url: Base URL for action buttons

    Returns:
        Dict with 'subject' and 'body' keys
    """
    try:
        key = EmailTemplateKey(template_key)
    except ValueError:
        key = None

    template_func = TEMPLATE_REGISTRY.get(key) if key else None
    if template_func:
        return template_func(payload, app_url)

    # Fallback for unknown templates
    ticket_id = payload.get("ticket_id", "")
    fallback_url = f"{app_url}/tickets/{ticket_id}" if ticket_id else f"{app_url}/tickets"

    return {
        "subject": f"[TicketDesk] {payload.get('ticket_title', 'Update')}",
        "body": get_base_template(
            content="<p style='font-family: Arial, sans-serif;'>There is an update on a ticket you follow.</p>",
            action_button_text="View Details",
            action_button_url=fallback_url
        )
    }

"""Notification Service - Email sending via Graph API

Notifications are written to the outbox by ticket operations and sent later
by the scheduler, so a mail outage never blocks a ticket change.
"""
from typing import Any, Dict, List, Optional
from datetime import datetime, timedelta
import httpx

from ..domain.models import NotificationOutbox
from ..domain.enums import NotificationStatus, NotificationType, NotificationTemplateKey
from ..domain.errors import EmailSendError
from ..repositories.notification_repo import NotificationRepository
from ..templates import get_email_template
from ..config.settings import settings
from ..utils.idgen import generate_notification_id
from ..utils.time import utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)


def ticket_ref(ticket_number: int) -> str:
    """Human ticket reference used in emails, e.g. #42"""
    return f"#{ticket_number}"


class NotificationService:
    """Service for queueing and sending ticket notifications"""

    GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"

    def __init__(self):
        self.repo = NotificationRepository()
        self._access_token: Optional[str] = None
        self._token_expiry: Optional[datetime] = None

    # =========================================================================
    # Outbox Creation
    # =========================================================================

    def enqueue_notification(
        self,
        template_key: NotificationTemplateKey,
        recipients: List[str],
        payload: Dict[str, Any],
        ticket_id: Optional[str] = None
    ) -> NotificationOutbox:
        """
        Enqueue a notification for sending

        Notifications are stored in outbox and sent asynchronously.
        """
        notification = NotificationOutbox(
            notification_id=generate_notification_id(),
            ticket_id=ticket_id,
            notification_type=NotificationType.EMAIL,
            template_key=template_key,
            recipients=recipients,
            payload=payload,
            status=NotificationStatus.PENDING,
            created_at=utc_now()
        )

        return self.repo.create_notification(notification)

    def enqueue_spoc_ticket_created(
        self,
        ticket_id: str,
        ticket_number: int,
        spoc_email: str,
        spoc_name: str,
        ticket_title: str,
        description: Optional[str],
        creator_name: str,
        creator_group: Optional[str]
    ) -> NotificationOutbox:
        """Tell the SPOC a ticket was routed to them"""
        return self.enqueue_notification(
            template_key=NotificationTemplateKey.SPOC_TICKET_CREATED,
            recipients=[spoc_email],
            payload={
                "ticket_id": ticket_id,
                "ticket_ref": ticket_ref(ticket_number),
                "spoc_name": spoc_name,
                "ticket_title": ticket_title,
                "description": description or "",
                "creator_name": creator_name,
                "creator_group": creator_group or "Unknown Group"
            },
            ticket_id=ticket_id
        )

    def enqueue_ticket_assigned(
        self,
        ticket_id: str,
        ticket_number: int,
        assignee_email: str,
        assignee_name: str,
        ticket_title: str,
        description: Optional[str],
        priority: str,
        assigned_by_name: Optional[str]
    ) -> NotificationOutbox:
        """Tell the new assignee about the ticket"""
        return self.enqueue_notification(
            template_key=NotificationTemplateKey.TICKET_ASSIGNED,
            recipients=[assignee_email],
            payload={
                "ticket_id": ticket_id,
                "ticket_ref": ticket_ref(ticket_number),
                "assignee_name": assignee_name,
                "ticket_title": ticket_title,
                "description": description or "",
                "priority": priority,
                "assigned_by_name": assigned_by_name or "System"
            },
            ticket_id=ticket_id
        )

    def enqueue_status_changed(
        self,
        ticket_id: str,
        ticket_number: int,
        recipient_email: str,
        recipient_name: str,
        ticket_title: str,
        old_status: str,
        new_status: str,
        changed_by_name: Optional[str]
    ) -> NotificationOutbox:
        return self.enqueue_notification(
            template_key=NotificationTemplateKey.TICKET_STATUS_CHANGED,
            recipients=[recipient_email],
            payload={
                "ticket_id": ticket_id,
                "ticket_ref": ticket_ref(ticket_number),
                "recipient_name": recipient_name,
                "ticket_title": ticket_title,
                "old_status": old_status,
                "new_status": new_status,
                "changed_by_name": changed_by_name or "System"
            },
            ticket_id=ticket_id
        )

    def enqueue_ticket_redirected(
        self,
        ticket_id: str,
        ticket_number: int,
        spoc_email: str,
        spoc_name: str,
        ticket_title: str,
        from_group: Optional[str],
        to_group: str,
        redirected_by_name: str,
        remarks: str
    ) -> NotificationOutbox:
        """Tell the new SPOC a ticket was redirected to their group"""
        return self.enqueue_notification(
            template_key=NotificationTemplateKey.TICKET_REDIRECTED,
            recipients=[spoc_email],
            payload={
                "ticket_id": ticket_id,
                "ticket_ref": ticket_ref(ticket_number),
                "spoc_name": spoc_name,
                "ticket_title": ticket_title,
                "from_group": from_group or "Unknown Group",
                "to_group": to_group,
                "redirected_by_name": redirected_by_name,
                "remarks": remarks
            },
            ticket_id=ticket_id
        )

    # =========================================================================
    # Admin
    # =========================================================================

    def list_failed(self, skip: int = 0, limit: int = 50) -> List[NotificationOutbox]:
        return self.repo.get_failed_notifications(skip=skip, limit=limit)

    def retry_notification(self, notification_id: str) -> NotificationOutbox:
        """Put a failed notification back in the queue"""
        return self.repo.reset_for_retry(notification_id)

    # =========================================================================
    # Email Sending
    # =========================================================================

    async def send_notification(self, notification: NotificationOutbox) -> bool:
        """
        Send a single notification via email.

        Locking is handled by the scheduler before calling this method.
        Returns True if sent successfully, False otherwise.
        """
        start_time = utc_now()

        try:
            email_content = self._build_email_content(notification)

            if settings.emails_enabled:
                await self._send_email_via_graph(
                    recipients=notification.recipients,
                    subject=email_content["subject"],
                    body=email_content["body"]
                )
            else:
                logger.info(
                    f"Emails disabled, not sending: {email_content['subject']}",
                    extra={"notification_id": notification.notification_id}
                )

            self.repo.mark_sent(notification.notification_id)

            processing_time_ms = (utc_now() - start_time).total_seconds() * 1000
            logger.info(
                f"Sent notification {notification.notification_id} "
                f"({notification.template_key.value}) in {processing_time_ms:.0f} ms",
                extra={
                    "notification_id": notification.notification_id,
                    "ticket_id": notification.ticket_id
                }
            )
            return True

        except Exception as e:
            # Exponential backoff is handled in repo
            self.repo.mark_failed(notification.notification_id, str(e))

            logger.error(
                f"Failed to send notification {notification.notification_id}: {type(e).__name__}: {e}",
                extra={
                    "notification_id": notification.notification_id,
                    "ticket_id": notification.ticket_id
                }
            )
            return False

    def _build_email_content(self, notification: NotificationOutbox) -> Dict[str, str]:
        """Build email subject and body from the HTML template"""
        return get_email_template(
            template_key=notification.template_key.value,
            payload=notification.payload,
            app_url=settings.frontend_url
        )

    async def _send_email_via_graph(
        self,
        recipients: List[str],
        subject: str,
        body: str
    ) -> None:
        """Send email using Microsoft Graph API with service mailbox (ROPC)"""
        access_token = await self._get_access_token()

        message = {
            "message": {
                "subject": subject,
                "body": {
                    "contentType": "HTML",
                    "content": body
                },
                "toRecipients": [
                    {"emailAddress": {"address": email}}
                    for email in recipients
                ]
            },
            "saveToSentItems": False
        }

        async with httpx.AsyncClient(timeout=30.0) as client:
            response = await client.post(
                f"{self.GRAPH_BASE_URL}/me/sendMail",
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "Content-Type": "application/json"
                },
                json=message
            )

            if response.status_code not in [200, 202]:
                raise EmailSendError(
                    f"Graph API error: {response.status_code}",
                    details={"response": response.text}
                )

    async def _get_access_token(self) -> str:
        """
        Get access token for service mailbox using ROPC

        Token is cached until five minutes before it expires.
        """
        if self._access_token and self._token_expiry:
            if utc_now() < self._token_expiry:
                return self._access_token

        token_url = f"https://login.microsoftonline.com/{settings.aad_tenant_id}/oauth2/v2.0/token"

        async with httpx.AsyncClient(timeout=30.0) as client:
            response = await client.post(
                token_url,
                data={
                    "client_id": settings.aad_client_id,
                    "client_secret": settings.aad_client_secret,
                    "scope": "https://graph.microsoft.com/.default",
                    "username": settings.service_mailbox_email,
                    "password": settings.service_mailbox_password,
                    "grant_type": "password"
                }
            )

            if response.status_code != 200:
                raise EmailSendError(
                    f"Failed to get access token: {response.status_code}",
                    details={"response": response.text}
                )

            token_data = response.json()
            self._access_token = token_data["access_token"]

            expires_in = token_data.get("expires_in", 3600)
            self._token_expiry = utc_now() + timedelta(seconds=expires_in - 300)

            return self._access_token

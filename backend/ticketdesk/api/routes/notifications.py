"""Notification Outbox API - Failed email review and retry (admin)"""
from fastapi import APIRouter, Depends, Query, HTTPException

from ..deps import CurrentUser, require_admin_context, get_correlation_id_dep
from ...domain.errors import DomainError
from ...services.notification_service import NotificationService
from ...utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()


@router.get("/failed")
async def list_failed_notifications(
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    current: CurrentUser = Depends(require_admin_context)
):
    """Notifications that ran out of retries, oldest first"""
    notifications = NotificationService().list_failed(skip=skip, limit=limit)
    return {"items": [n.model_dump(mode="json") for n in notifications]}


@router.post("/{notification_id}/retry")
async def retry_notification(
    notification_id: str,
    current: CurrentUser = Depends(require_admin_context),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Re-queue a failed notification with a fresh retry budget"""
    try:
        notification = NotificationService().retry_notification(notification_id)

        logger.info(
            f"Notification {notification_id} re-queued by {current.user.email}",
            extra={"notification_id": notification_id}
        )
        return {
            "message": "Notification queued for retry",
            "notification_id": notification.notification_id,
            "status": notification.status.value
        }

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())

"""Notification Repository - Data access for notification outbox

Locking uses atomic find-and-modify so several app servers can drain the
same outbox without sending a notification twice.
"""
from typing import List, Optional
from datetime import datetime, timedelta
from pymongo.collection import Collection
from pymongo import ASCENDING
from pymongo.errors import PyMongoError

from .mongo_client import get_collection
from ..domain.models import NotificationOutbox
from ..domain.enums import NotificationStatus
from ..domain.errors import NotFoundError
from ..config.settings import settings
from ..utils.logger import get_logger
from ..utils.time import utc_now

logger = get_logger(__name__)


class NotificationRepository:
    """Repository for notification outbox operations"""

    def __init__(self):
        self._outbox: Collection = get_collection("notification_outbox")

    def _validate(self, doc: dict) -> NotificationOutbox:
        doc.pop("_id", None)
        return NotificationOutbox.model_validate(doc)

    def create_notification(self, notification: NotificationOutbox) -> NotificationOutbox:
        """Create a notification in outbox"""
        # Keep datetimes native so the retry/lock range queries compare correctly
        doc = notification.model_dump()
        doc["_id"] = notification.notification_id

        self._outbox.insert_one(doc)
        logger.info(
            f"Created notification: {notification.template_key.value}",
            extra={
                "notification_id": notification.notification_id,
                "ticket_id": notification.ticket_id
            }
        )
        return notification

    def get_notification(self, notification_id: str) -> Optional[NotificationOutbox]:
        """Get notification by ID"""
        doc = self._outbox.find_one({"notification_id": notification_id})
        if doc:
            return self._validate(doc)
        return None

    def get_notifications_for_ticket(self, ticket_id: str) -> List[NotificationOutbox]:
        cursor = self._outbox.find({"ticket_id": ticket_id}).sort("created_at", ASCENDING)
        return [self._validate(doc) for doc in cursor]

    def get_pending_notifications(self, limit: int = 100) -> List[NotificationOutbox]:
        """
        Get pending notifications ready for sending.

        Only returns notifications that are PENDING, not locked (or whose lock
        expired) and due for their first attempt or their next retry.
        """
        now = utc_now()

        try:
            cursor = self._outbox.find({
                "status": NotificationStatus.PENDING.value,
                "$and": [
                    {"$or": [
                        {"next_retry_at": {"$lte": now}},
                        {"next_retry_at": None}
                    ]},
                    {"$or": [
                        {"locked_until": {"$lte": now}},
                        {"locked_until": None}
                    ]}
                ]
            }).sort("created_at", ASCENDING).limit(limit)

            return [self._validate(doc) for doc in cursor]

        except PyMongoError as e:
            logger.error(f"Database error fetching pending notifications: {e}")
            return []

    def acquire_lock(
        self,
        notification_id: str,
        lock_by: str,
        lock_duration_seconds: int = 60
    ) -> bool:
        """
        Try to acquire the processing lock on a notification.

        Args:
            notification_id: The notification to lock
            lock_by: Unique identifier for this locker (e.g., "host-pid-uuid")
            lock_duration_seconds: How long to hold the lock

        Returns:
            True if lock acquired, False otherwise
        """
        now = utc_now()
        lock_until = now + timedelta(seconds=lock_duration_seconds)

        try:
            result = self._outbox.find_one_and_update(
                {
                    "notification_id": notification_id,
                    "status": NotificationStatus.PENDING.value,
                    "$or": [
                        {"locked_until": {"$lte": now}},
                        {"locked_until": None}
                    ]
                },
                {"$set": {"locked_until": lock_until, "locked_by": lock_by}}
            )
        except PyMongoError as e:
            logger.error(
                f"Database error acquiring lock on notification {notification_id}: {e}",
                extra={"notification_id": notification_id}
            )
            return False

        if result:
            logger.debug(f"Lock acquired on notification {notification_id}", extra={"notification_id": notification_id})
            return True
        return False

    def release_lock(self, notification_id: str, lock_by: Optional[str] = None) -> bool:
        """Release lock on notification, optionally only if held by `lock_by`"""
        query = {"notification_id": notification_id}
        if lock_by:
            query["locked_by"] = lock_by

        try:
            result = self._outbox.update_one(
                query,
                {"$set": {"locked_until": None, "locked_by": None}}
            )
        except PyMongoError as e:
            logger.error(
                f"Database error releasing lock on notification {notification_id}: {e}",
                extra={"notification_id": notification_id}
            )
            return False

        return result.modified_count > 0

    def cleanup_stale_locks(self, max_lock_age_minutes: int = 10) -> int:
        """
        Clear locks left behind by crashed processes.

        Returns:
            Number of stale locks cleaned up
        """
        cutoff = utc_now() - timedelta(minutes=max_lock_age_minutes)

        try:
            result = self._outbox.update_many(
                {
                    "locked_until": {"$lte": cutoff},
                    "locked_by": {"$ne": None}
                },
                {"$set": {"locked_until": None, "locked_by": None}}
            )
        except PyMongoError as e:
            logger.error(f"Error cleaning up stale locks: {e}")
            return 0

        if result.modified_count > 0:
            logger.warning(f"Cleaned up {result.modified_count} stale notification locks")
        return result.modified_count

    def mark_sent(self, notification_id: str) -> NotificationOutbox:
        """Mark notification as sent"""
        result = self._outbox.find_one_and_update(
            {"notification_id": notification_id},
            {
                "$set": {
                    "status": NotificationStatus.SENT.value,
                    "sent_at": utc_now(),
                    "locked_until": None,
                    "locked_by": None
                }
            },
            return_document=True
        )

        if result is None:
            raise NotFoundError(f"Notification {notification_id} not found")

        logger.info(f"Notification sent: {notification_id}", extra={"notification_id": notification_id})
        return self._validate(result)

    def mark_failed(
        self,
        notification_id: str,
        error: str,
        retry_at: Optional[datetime] = None
    ) -> NotificationOutbox:
        """Record a failed attempt; retries with exponential backoff until the retry limit"""
        notification = self.get_notification(notification_id)
        if not notification:
            raise NotFoundError(f"Notification {notification_id} not found")

        new_retry_count = notification.retry_count + 1

        if new_retry_count >= settings.notification_max_retries:
            new_status = NotificationStatus.FAILED.value
            next_retry = None
        else:
            new_status = NotificationStatus.PENDING.value
            # Exponential backoff: 1, 2, 4, 8, 16 minutes
            next_retry = retry_at or utc_now() + timedelta(minutes=2 ** notification.retry_count)

        result = self._outbox.find_one_and_update(
            {"notification_id": notification_id},
            {
                "$set": {
                    "status": new_status,
                    "retry_count": new_retry_count,
                    "last_error": error,
                    "next_retry_at": next_retry,
                    "locked_until": None,
                    "locked_by": None
                }
            },
            return_document=True
        )

        logger.warning(
            f"Notification failed: {notification_id} (attempt {new_retry_count})",
            extra={"notification_id": notification_id, "status": new_status}
        )
        return self._validate(result)

    def reset_for_retry(self, notification_id: str) -> NotificationOutbox:
        """Put a FAILED notification back in the queue with a fresh retry budget"""
        result = self._outbox.find_one_and_update(
            {"notification_id": notification_id},
            {
                "$set": {
                    "status": NotificationStatus.PENDING.value,
                    "retry_count": 0,
                    "next_retry_at": None,
                    "locked_until": None,
                    "locked_by": None
                }
            },
            return_document=True
        )

        if result is None:
            raise NotFoundError(f"Notification {notification_id} not found")

        logger.info(f"Notification re-queued: {notification_id}", extra={"notification_id": notification_id})
        return self._validate(result)

    def get_failed_notifications(self, skip: int = 0, limit: int = 50) -> List[NotificationOutbox]:
        """Get failed notifications for admin review"""
        cursor = self._outbox.find({
            "status": NotificationStatus.FAILED.value
        }).sort("created_at", ASCENDING).skip(skip).limit(limit)

        return [self._validate(doc) for doc in cursor]

    def get_failed_notifications_for_retry(self, limit: int = 50) -> List[NotificationOutbox]:
        """Pending notifications that failed before and whose backoff has elapsed"""
        now = utc_now()

        cursor = self._outbox.find({
            "status": NotificationStatus.PENDING.value,
            "retry_count": {"$gt": 0},
            "next_retry_at": {"$lte": now},
            "$or": [
                {"locked_until": {"$lte": now}},
                {"locked_until": None}
            ]
        }).sort("next_retry_at", ASCENDING).limit(limit)

        return [self._validate(doc) for doc in cursor]

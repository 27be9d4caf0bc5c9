"""Notification Scheduler - Background delivery of the email outbox

Supports multi-server deployment with distributed locking via MongoDB.
Handles:
- Sending pending notifications under a per-notification lock
- Retrying failed sends whose backoff has elapsed
- Stale lock cleanup for crash recovery
"""
import os
import socket
from typing import List, Optional, Tuple
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..config.settings import settings
from ..domain.models import NotificationOutbox
from ..repositories.notification_repo import NotificationRepository
from ..services.notification_service import NotificationService
from ..utils.logger import get_logger, set_correlation_id
from ..utils.idgen import generate_correlation_id, generate_id
from ..utils.time import utc_now

logger = get_logger(__name__)


class NotificationScheduler:
    """
    APScheduler jobs that drain the notification outbox.

    Every server runs its own instance. A notification is locked before it
    is sent, so only one server delivers it. Locks left behind by a crashed
    process are cleared periodically.
    """

    def __init__(self):
        self.scheduler: Optional[AsyncIOScheduler] = None
        self.notification_repo = NotificationRepository()
        self.notification_service = NotificationService()
        self._is_running = False
        self._server_id = self._generate_server_id()
        self._process_count = 0

    def _generate_server_id(self) -> str:
        """Unique identifier of this process for lock ownership"""
        return f"{socket.gethostname()}-{os.getpid()}-{generate_id()[:8]}"

    @property
    def server_id(self) -> str:
        return self._server_id

    def start(self) -> None:
        """Start the scheduler"""
        if self._is_running:
            logger.warning("Scheduler already running")
            return

        self.scheduler = AsyncIOScheduler()

        self.scheduler.add_job(
            self.process_pending_notifications,
            trigger=IntervalTrigger(seconds=settings.scheduler_interval_seconds),
            id="process_notifications",
            name="Process pending notifications",
            replace_existing=True
        )

        self.scheduler.add_job(
            self.retry_failed_notifications,
            trigger=IntervalTrigger(minutes=2),
            id="retry_failed_notifications",
            name="Retry failed notifications",
            replace_existing=True
        )

        self.scheduler.add_job(
            self.cleanup_stale_locks,
            trigger=IntervalTrigger(minutes=5),
            id="cleanup_stale_locks",
            name="Cleanup stale notification locks",
            replace_existing=True
        )

        self.scheduler.start()
        self._is_running = True
        logger.info(
            "Notification scheduler started",
            extra={
                "server_id": self._server_id,
                "notification_interval": settings.scheduler_interval_seconds,
                "lock_duration": settings.notification_lock_duration_seconds
            }
        )

    def stop(self) -> None:
        """Stop the scheduler"""
        if self.scheduler:
            self.scheduler.shutdown(wait=False)
            self._is_running = False
            logger.info("Notification scheduler stopped")

    async def _send_batch(self, notifications: List[NotificationOutbox]) -> Tuple[int, int, int]:
        """
        Lock, send and release each notification.

        Returns (sent, failed, skipped). Skipped ones were locked elsewhere.
        """
        sent = failed = skipped = 0

        for notification in notifications:
            lock_id = f"{self._server_id}-{generate_id()[:8]}"

            if not self.notification_repo.acquire_lock(
                notification.notification_id,
                lock_id,
                lock_duration_seconds=settings.notification_lock_duration_seconds
            ):
                skipped += 1
                continue

            try:
                if await self.notification_service.send_notification(notification):
                    sent += 1
                    self._process_count += 1
                else:
                    failed += 1
            except Exception as e:
                failed += 1
                logger.error(
                    f"Error processing notification {notification.notification_id}: {e}",
                    extra={
                        "notification_id": notification.notification_id,
                        "error_type": type(e).__name__
                    }
                )
            finally:
                self.notification_repo.release_lock(notification.notification_id, lock_id)

        return sent, failed, skipped

    async def process_pending_notifications(self) -> None:
        """Send notifications that are due, oldest first"""
        set_correlation_id(generate_correlation_id())
        start_time = utc_now()

        try:
            notifications = self.notification_repo.get_pending_notifications(limit=50)
            if not notifications:
                return

            sent, failed, skipped = await self._send_batch(notifications)

            duration_ms = (utc_now() - start_time).total_seconds() * 1000
            if sent or failed:
                logger.info(
                    f"Notification cycle complete: {sent} sent, {failed} failed, {skipped} skipped",
                    extra={
                        "processed": sent,
                        "failed": failed,
                        "skipped": skipped,
                        "duration_ms": round(duration_ms, 2),
                        "server_id": self._server_id,
                        "total_processed": self._process_count
                    }
                )

        except Exception as e:
            logger.error(
                f"Error in notification processing job: {e}",
                extra={"error_type": type(e).__name__}
            )

    async def retry_failed_notifications(self) -> None:
        """Resend notifications whose retry backoff has elapsed"""
        set_correlation_id(generate_correlation_id())

        try:
            notifications = self.notification_repo.get_failed_notifications_for_retry(limit=20)
            if not notifications:
                return

            logger.info(f"Found {len(notifications)} notifications to retry")
            sent, failed, _ = await self._send_batch(notifications)
            if sent or failed:
                logger.info(f"Retry cycle complete: {sent} sent, {failed} failed")

        except Exception as e:
            logger.error(f"Error in retry failed notifications job: {e}")

    async def cleanup_stale_locks(self) -> None:
        """Clear locks held past their age limit by crashed processes"""
        try:
            cleaned = self.notification_repo.cleanup_stale_locks(
                max_lock_age_minutes=settings.stale_lock_cleanup_minutes
            )
            if cleaned > 0:
                logger.info(
                    f"Cleaned up {cleaned} stale notification locks",
                    extra={"cleaned_count": cleaned, "server_id": self._server_id}
                )

        except Exception as e:
            logger.error(f"Error cleaning up stale locks: {e}")


# Global scheduler instance
_scheduler: Optional[NotificationScheduler] = None


def get_scheduler() -> NotificationScheduler:
    """Get or create scheduler instance"""
    global _scheduler
    if _scheduler is None:
        _scheduler = NotificationScheduler()
    return _scheduler


def start_scheduler() -> None:
    """Start the global scheduler"""
    get_scheduler().start()


def stop_scheduler() -> None:
    """Stop the global scheduler"""
    global _scheduler
    if _scheduler:
        _scheduler.stop()
        _scheduler = None

"""Notification outbox, sending and the scheduler batch"""
import asyncio
from datetime import timedelta

import pytest

from ticketdesk.config.settings import settings
from ticketdesk.domain.enums import NotificationStatus, NotificationTemplateKey
from ticketdesk.domain.errors import EmailSendError, NotFoundError
from ticketdesk.scheduler.notification_scheduler import NotificationScheduler
from ticketdesk.services.notification_service import NotificationService
from ticketdesk.utils.time import utc_now


@pytest.fixture
def service(mongo_db):
    return NotificationService()


def enqueue(service, ticket_id="TKT-202401-00001"):
    return service.enqueue_spoc_ticket_created(
        ticket_id=ticket_id,
        ticket_number=1,
        spoc_email="sam.spoc@company.com",
        spoc_name="Sam Spoc",
        ticket_title="Laptop broken",
        description=None,
        creator_name="Ivy Initiator",
        creator_group=None
    )


def fail_sending(monkeypatch, service):
    async def _fail(recipients, subject, body):
        raise EmailSendError("Graph API error: 503")

    monkeypatch.setattr(settings, "emails_enabled", True)
    monkeypatch.setattr(service, "_send_email_via_graph", _fail)


def test_enqueue_writes_pending_entry(service):
    notification = enqueue(service)
    assert notification.status == NotificationStatus.PENDING
    assert notification.template_key == NotificationTemplateKey.SPOC_TICKET_CREATED
    assert notification.payload["ticket_ref"] == "#1"
    assert notification.payload["creator_group"] == "Unknown Group"
    assert notification.payload["description"] == ""


def test_disabled_emails_are_marked_sent(service):
    notification = enqueue(service)

    assert asyncio.run(service.send_notification(notification)) is True

    stored = service.repo.get_notification(notification.notification_id)
    assert stored.status == NotificationStatus.SENT
    assert stored.sent_at is not None


def test_failure_backs_off(service, monkeypatch):
    fail_sending(monkeypatch, service)
    notification = enqueue(service)

    assert asyncio.run(service.send_notification(notification)) is False

    stored = service.repo.get_notification(notification.notification_id)
    assert stored.status == NotificationStatus.PENDING
    assert stored.retry_count == 1
    assert stored.last_error == "Graph API error: 503"
    assert stored.next_retry_at is not None


def test_retry_limit_then_manual_retry(service, monkeypatch):
    fail_sending(monkeypatch, service)
    monkeypatch.setattr(settings, "notification_max_retries", 1)
    notification = enqueue(service)

    asyncio.run(service.send_notification(notification))

    failed = service.list_failed()
    assert [n.notification_id for n in failed] == [notification.notification_id]
    assert failed[0].status == NotificationStatus.FAILED

    retried = service.retry_notification(notification.notification_id)
    assert retried.status == NotificationStatus.PENDING
    assert retried.retry_count == 0
    assert service.list_failed() == []


def test_retry_unknown_notification(service):
    with pytest.raises(NotFoundError):
        service.retry_notification("NTF-missing")


def test_cached_graph_token_is_reused(service):
    service._access_token = "cached-token"
    service._token_expiry = utc_now() + timedelta(minutes=10)
    assert asyncio.run(service._get_access_token()) == "cached-token"


def test_scheduler_batch_sends_and_skips_locked(mongo_db, monkeypatch):
    scheduler = NotificationScheduler()
    service = scheduler.notification_service
    first = enqueue(service, "TKT-202401-00001")
    second = enqueue(service, "TKT-202401-00002")

    acquire_lock = scheduler.notification_repo.acquire_lock

    def held_elsewhere(notification_id, lock_by, lock_duration_seconds=60):
        if notification_id == second.notification_id:
            return False
        return acquire_lock(notification_id, lock_by, lock_duration_seconds)

    monkeypatch.setattr(scheduler.notification_repo, "acquire_lock", held_elsewhere)

    sent, failed, skipped = asyncio.run(scheduler._send_batch([first, second]))

    assert (sent, failed, skipped) == (1, 0, 1)
    assert service.repo.get_notification(first.notification_id).status == NotificationStatus.SENT
    assert service.repo.get_notification(second.notification_id).status == NotificationStatus.PENDING
    assert service.repo.get_notification(first.notification_id).locked_by is None


def test_scheduler_processes_pending(mongo_db):
    scheduler = NotificationScheduler()
    notification = enqueue(scheduler.notification_service)

    asyncio.run(scheduler.process_pending_notifications())

    stored = scheduler.notification_repo.get_notification(notification.notification_id)
    assert stored.status == NotificationStatus.SENT


def test_unexpected_error_still_counts_as_attempt(mongo_db, monkeypatch):
    scheduler = NotificationScheduler()
    service = scheduler.notification_service
    notification = enqueue(service)

    async def _broken(recipients, subject, body):
        raise KeyError("access_token")

    monkeypatch.setattr(settings, "emails_enabled", True)
    monkeypatch.setattr(service, "_send_email_via_graph", _broken)

    asyncio.run(scheduler.process_pending_notifications())

    stored = service.repo.get_notification(notification.notification_id)
    assert stored.status == NotificationStatus.PENDING
    assert stored.retry_count == 1
    assert "access_token" in stored.last_error
    assert stored.next_retry_at is not None
    assert stored.locked_by is None

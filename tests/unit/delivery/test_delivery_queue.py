from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from app.core.exceptions import APIClientError, InvalidStateTransitionError, QueueItemNotFoundError
from app.database.models import DeliveryEvent, DeliveryQueueItem
from app.services.delivery.delivery_queue_service import DeliveryQueueService, retry_delay_seconds

T0 = datetime(2025, 3, 10, 15, tzinfo=timezone.utc)


def naive(value):
    return value.replace(tzinfo=None)


@pytest.fixture
def sender():
    mock = MagicMock()
    mock.send = AsyncMock(return_value="email-123")
    return mock


@pytest.fixture
def service(db_session, sender):
    return DeliveryQueueService(db_session, sender=sender, audit=MagicMock())


async def queued_document(seed, service, **client_kwargs):
    client = await seed.client(**client_kwargs)
    obligation = await seed.obligation()
    document = await seed.document(client, obligation, delivery_state="sent")
    item = await service.enqueue(document.id, now=T0)
    return document, item


@pytest.mark.parametrize("attempts,delay", [(0, 60), (1, 60), (2, 300), (3, 900), (7, 900)])
def test_retry_delay_seconds(attempts, delay):
    assert retry_delay_seconds(attempts, [60, 300, 900]) == delay


@pytest.mark.asyncio
async def test_successful_send_marks_delivered(service, seed, sender):
    document, item = await queued_document(seed, service)

    result = await service.process_pending(now=T0)

    assert result == {"processed": 1, "sent": 1, "failed": 0}
    assert item.status == "sent"
    assert item.attempts == 1
    assert item.email_id == "email-123"
    assert document.delivery_state == "delivered"
    to, subject, html = sender.send.call_args.args
    assert to == "ana@example.com"
    assert "Carnê Leão" in subject


@pytest.mark.asyncio
async def test_failures_back_off_then_give_up(service, seed, sender):
    sender.send.side_effect = APIClientError("Email provider error 500", status_code=500)
    _, item = await queued_document(seed, service)

    await service.process_pending(now=T0)
    assert (item.status, item.attempts) == ("pending", 1)
    assert naive(item.next_retry_at) == naive(T0 + timedelta(seconds=60))

    not_due = await service.process_pending(now=T0 + timedelta(seconds=30))
    assert not_due["processed"] == 0

    second = T0 + timedelta(seconds=60)
    await service.process_pending(now=second)
    assert (item.status, item.attempts) == ("pending", 2)
    assert naive(item.next_retry_at) == naive(second + timedelta(seconds=300))

    await service.process_pending(now=second + timedelta(seconds=300))
    assert (item.status, item.attempts) == ("failed", 3)
    assert "500" in item.error_message


@pytest.mark.asyncio
async def test_client_without_email_fails_attempt(service, seed, sender):
    _, item = await queued_document(seed, service, email=None)

    result = await service.process_pending(now=T0)

    assert result["failed"] == 1
    assert item.error_message == "Client has no email address"
    sender.send.assert_not_called()


@pytest.mark.asyncio
async def test_reprocess_only_failed_items(service, seed, org_id, sender):
    sender.send.side_effect = APIClientError("rejected", status_code=422)
    _, item = await queued_document(seed, service)

    with pytest.raises(InvalidStateTransitionError):
        await service.reprocess(org_id, item.id, now=T0)

    item.max_attempts = 1
    await service.process_pending(now=T0)
    assert item.status == "failed"

    reprocessed = await service.reprocess(org_id, item.id, now=T0)

    assert reprocessed.status == "pending"
    assert reprocessed.attempts == 0
    assert reprocessed.error_message is None


@pytest.mark.asyncio
async def test_cancel_only_pending_items(service, db_session, seed, org_id, sender):
    _, item = await queued_document(seed, service)

    await service.cancel(org_id, item.id)

    count = (await db_session.execute(select(func.count()).select_from(DeliveryQueueItem))).scalar_one()
    assert count == 0

    _, sent = await queued_document(seed, service, name="Bruno", tax_id=None)
    await service.process_pending(now=T0)
    with pytest.raises(InvalidStateTransitionError):
        await service.cancel(org_id, sent.id)


@pytest.mark.asyncio
async def test_queue_is_scoped_to_organization(service, seed, org_id):
    _, item = await queued_document(seed, service)

    with pytest.raises(QueueItemNotFoundError):
        await service.cancel(uuid4(), item.id)
    assert await service.list_items(uuid4()) == []
    assert [i.id for i in await service.list_items(org_id, status="pending")] == [item.id]
    assert await service.stats(org_id) == {"pending": 1, "processing": 0, "sent": 0, "failed": 0}


@pytest.mark.asyncio
async def test_webhook_events_update_document(service, db_session, seed):
    document, _ = await queued_document(seed, service)
    await service.process_pending(now=T0)
    opened_at = T0 + timedelta(hours=1)

    opened = await service.record_delivery_event("email.opened", "email-123", now=opened_at)
    await service.record_delivery_event("email.opened", "email-123", now=opened_at + timedelta(hours=1))
    bounced = await service.record_delivery_event("email.bounced", "email-123", now=opened_at)
    late_delivered = await service.record_delivery_event("email.delivered", "email-123", now=opened_at)

    assert opened["document_id"] == str(document.id)
    assert naive(document.viewed_at) == naive(opened_at)
    assert bounced["delivery_state"] == "bounced"
    assert late_delivered["delivery_state"] == "bounced"
    events = (await db_session.execute(select(func.count()).select_from(DeliveryEvent))).scalar_one()
    assert events == 4


@pytest.mark.asyncio
async def test_webhook_for_unknown_email_is_stored_only(service):
    result = await service.record_delivery_event("email.delivered", "unknown-id", recipient="x@example.com")

    assert result == {
        "event_type": "delivered",
        "email_id": "unknown-id",
        "document_id": None,
        "delivery_state": None,
    }


async def queue_rows(db_session):
    result = await db_session.execute(
        select(DeliveryQueueItem.status, DeliveryQueueItem.attempts, DeliveryQueueItem.error_message).order_by(
            DeliveryQueueItem.created_at
        )
    )
    return result.all()


@pytest.mark.asyncio
async def test_unexpected_sender_error_schedules_retry(service, db_session, seed, sender):
    sender.send.side_effect = ValueError("Expecting value: line 1 column 1 (char 0)")
    client = await seed.client()
    obligation = await seed.obligation()
    for competence in ("02/2025", "03/2025"):
        document = await seed.document(client, obligation, competence=competence, delivery_state="sent")
        await service.enqueue(document.id, now=T0)

    result = await service.process_pending(now=T0)

    assert result == {"processed": 2, "sent": 0, "failed": 2}
    rows = await queue_rows(db_session)
    assert [(status, attempts) for status, attempts, _ in rows] == [("pending", 1), ("pending", 1)]
    assert all(message.startswith("Unexpected error") for _, _, message in rows)


@pytest.mark.asyncio
async def test_database_error_while_loading_document_is_a_failed_attempt(service, db_session, seed, sender):
    await queued_document(seed, service)
    service.documents.get_with_relations = AsyncMock(side_effect=SQLAlchemyError("connection reset"))

    result = await service.process_pending(now=T0)

    assert result["failed"] == 1
    [(status, attempts, message)] = await queue_rows(db_session)
    assert (status, attempts) == ("pending", 1)
    assert "connection reset" in message
    sender.send.assert_not_awaited()

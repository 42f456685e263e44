"""Work queue for "new document available" notifications."""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import AppError, InvalidStateTransitionError, QueueItemNotFoundError, ValidationError
from app.database.models import DeliveryQueueItem
from app.repositories.delivery_repository import DeliveryEventRepository, DeliveryQueueRepository
from app.repositories.document_repository import DocumentRepository
from app.services.audit import AuditLog, audit_log
from app.services.delivery.email_sender import EmailSender, render_document_email
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

QUEUE_STATUSES = ("pending", "processing", "sent", "failed")

# Provider event -> document delivery_state
EVENT_STATES = {
    "delivered": "delivered",
    "bounced": "bounced",
    "failed": "failed",
}
_STATE_ORDER = ["sent", "delivered", "bounced", "failed"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def retry_delay_seconds(attempts: int, delays: Optional[List[int]] = None) -> int:
    """Backoff for the retry that follows failure number ``attempts``.

    The last delay repeats once the table runs out.
    """
    delays = delays or settings.delivery.retry_delays
    return delays[min(max(attempts, 1) - 1, len(delays) - 1)]


class DeliveryQueueService:
    """Enqueue, dispatch, retry and inspect notification items."""

    def __init__(
        self,
        session: AsyncSession,
        sender: Optional[EmailSender] = None,
        audit: Optional[AuditLog] = None,
    ):
        self.session = session
        self.repository = DeliveryQueueRepository(session)
        self.events = DeliveryEventRepository(session)
        self.documents = DocumentRepository(session)
        self.sender = sender or EmailSender()
        self.audit = audit or audit_log

    async def enqueue(self, document_id: UUID, now: Optional[datetime] = None) -> DeliveryQueueItem:
        """Queue a notification for a document. Runs in its own transaction."""
        item = await self.repository.create(
            document_id=document_id,
            status="pending",
            attempts=0,
            max_attempts=settings.delivery.max_attempts,
            next_retry_at=now or _utcnow(),
        )
        await self.session.commit()
        LOGGER.info(f"Queued notification for document {document_id}", extra={"queue_item_id": str(item.id)})
        return item

    async def process_pending(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """Send every due item, up to the configured batch size.

        Items are claimed (``processing``) and committed before sending so a
        concurrent run skips them.

        Returns:
            Counts of ``processed``, ``sent`` and ``failed`` (retry scheduled or final).
        """
        now = now or _utcnow()
        items = await self.repository.get_due(now, settings.delivery.batch_size)
        if not items:
            return {"processed": 0, "sent": 0, "failed": 0}

        item_ids = []
        for item in items:
            item.status = "processing"
            item_ids.append(item.id)
        await self.session.commit()

        sent = failed = 0
        for index, item_id in enumerate(item_ids):
            # Reloads the row if an earlier rollback expired it
            item = await self.repository.get_by_id(item_id)
            if await self._dispatch(item, now):
                sent += 1
            else:
                failed += 1
            if index < len(item_ids) - 1 and settings.delivery.send_interval_seconds > 0:
                await asyncio.sleep(settings.delivery.send_interval_seconds)

        LOGGER.info(f"Delivery run finished: {sent} sent, {failed} failed")
        return {"processed": len(items), "sent": sent, "failed": failed}

    async def _dispatch(self, item: DeliveryQueueItem, now: datetime) -> bool:
        item_id, document_id = item.id, item.document_id
        try:
            document = await self.documents.get_with_relations(item.document_id)
            if document is None:
                raise ValidationError(f"Document {item.document_id} no longer exists")
            if not document.client or not document.client.email:
                raise ValidationError("Client has no email address")

            message = render_document_email(document)
            email_id = await self.sender.send(document.client.email, message["subject"], message["html"])
        except AppError as e:
            await self._record_failure(item, str(e), now)
            return False
        except Exception as e:
            LOGGER.error(
                f"Unexpected error sending notification for document {document_id}: {str(e)}",
                exc_info=True,
                extra={"queue_item_id": str(item_id)},
            )
            await self.session.rollback()
            item = await self.repository.get_by_id(item_id)
            await self._record_failure(item, f"Unexpected error: {str(e)}", now)
            return False

        item.status = "sent"
        item.attempts += 1
        item.email_id = email_id
        item.error_message = None
        item.processed_at = now
        document.delivery_state = "delivered"
        await self.session.commit()

        self.audit.record("delivery.sent", queue_item_id=item.id, document_id=item.document_id, email_id=email_id)
        return True

    async def _record_failure(self, item: DeliveryQueueItem, message: str, now: datetime) -> None:
        item.attempts += 1
        item.error_message = message
        item.processed_at = now
        if item.attempts >= item.max_attempts:
            item.status = "failed"
        else:
            item.status = "pending"
            item.next_retry_at = now + timedelta(seconds=retry_delay_seconds(item.attempts))
        await self.session.commit()

        LOGGER.warning(
            f"Notification for document {item.document_id} failed (attempt {item.attempts}): {message}",
            extra={"queue_item_id": str(item.id), "status": item.status},
        )
        self.audit.record(
            "delivery.failed",
            queue_item_id=item.id,
            document_id=item.document_id,
            attempts=item.attempts,
            final=item.status == "failed",
            reason=message,
        )

    async def _get(self, org_id: UUID, item_id: UUID) -> DeliveryQueueItem:
        item = await self.repository.get_in_org(org_id, item_id)
        if item is None:
            raise QueueItemNotFoundError(f"Queue item {item_id} not found")
        return item

    async def reprocess(self, org_id: UUID, item_id: UUID, now: Optional[datetime] = None) -> DeliveryQueueItem:
        """Give a failed item a fresh cycle of attempts."""
        item = await self._get(org_id, item_id)
        if item.status != "failed":
            raise InvalidStateTransitionError(f"Only failed items can be reprocessed, item is {item.status}")
        await self.repository.update(
            item, status="pending", attempts=0, error_message=None, next_retry_at=now or _utcnow()
        )
        await self.session.commit()
        return item

    async def cancel(self, org_id: UUID, item_id: UUID) -> None:
        """Drop an item that has not been picked up yet."""
        item = await self._get(org_id, item_id)
        if item.status != "pending":
            raise InvalidStateTransitionError(f"Only pending items can be cancelled, item is {item.status}")
        await self.repository.delete(item)
        await self.session.commit()

    async def list_items(
        self, org_id: UUID, status: Optional[str] = None, page: int = 1, page_size: int = 50
    ) -> List[DeliveryQueueItem]:
        if status and status not in QUEUE_STATUSES:
            raise ValidationError(f"Unknown queue status: {status}")
        page = max(page, 1)
        return await self.repository.list_items(org_id, status=status, skip=(page - 1) * page_size, limit=page_size)

    async def stats(self, org_id: UUID) -> Dict[str, int]:
        counts = await self.repository.count_by_status(org_id)
        return {status: counts.get(status, 0) for status in QUEUE_STATUSES}

    async def record_delivery_event(
        self,
        event_type: str,
        email_id: str,
        recipient: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Store a provider webhook event and move the document's delivery state forward.

        ``event_type`` may carry the provider prefix (``email.delivered``).
        ``bounced`` and ``failed`` always apply; other states only move forward.
        """
        now = now or _utcnow()
        event_type = event_type.removeprefix("email.")
        if not email_id:
            raise ValidationError("Webhook event has no email id")

        await self.events.create(
            email_id=email_id, event_type=event_type, recipient=recipient, payload=payload, received_at=now
        )

        document_state = None
        item = await self.repository.get_by_email_id(email_id)
        document = await self.documents.get_by_id(item.document_id) if item else None
        if document is not None:
            if event_type == "opened":
                if document.viewed_at is None:
                    document.viewed_at = now
            elif event_type in EVENT_STATES:
                new_state = EVENT_STATES[event_type]
                current = document.delivery_state if document.delivery_state in _STATE_ORDER else "sent"
                if new_state in ("bounced", "failed") or _STATE_ORDER.index(new_state) > _STATE_ORDER.index(current):
                    document.delivery_state = new_state
            document_state = document.delivery_state
        else:
            LOGGER.info(f"No queued notification for email {email_id}, event stored only")

        await self.session.commit()
        return {
            "event_type": event_type,
            "email_id": email_id,
            "document_id": str(document.id) if document else None,
            "delivery_state": document_state,
        }

    @staticmethod
    def serialize(item: DeliveryQueueItem) -> Dict[str, Any]:
        return {
            "id": item.id,
            "document_id": item.document_id,
            "status": item.status,
            "attempts": item.attempts,
            "max_attempts": item.max_attempts,
            "next_retry_at": item.next_retry_at,
            "error_message": item.error_message,
            "email_id": item.email_id,
            "processed_at": item.processed_at,
            "created_at": item.created_at,
        }

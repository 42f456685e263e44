"""Repositories for the delivery queue and provider events."""

from datetime import datetime
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database.models import DeliveryEvent, DeliveryQueueItem, Document
from app.repositories.base_repository import BaseRepository


class DeliveryQueueRepository(BaseRepository[DeliveryQueueItem]):
    """Data access for queued notifications."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, DeliveryQueueItem)

    async def get_due(self, now: datetime, limit: int) -> List[DeliveryQueueItem]:
        """Pending items whose retry time has come, oldest first."""
        query = (
            select(DeliveryQueueItem)
            .where(
                DeliveryQueueItem.status == "pending",
                DeliveryQueueItem.next_retry_at <= now,
            )
            .order_by(DeliveryQueueItem.created_at)
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get_by_email_id(self, email_id: str) -> Optional[DeliveryQueueItem]:
        query = select(DeliveryQueueItem).where(DeliveryQueueItem.email_id == email_id)
        result = await self.session.execute(query.limit(1))
        return result.scalar_one_or_none()

    async def get_in_org(self, org_id: UUID, item_id: UUID) -> Optional[DeliveryQueueItem]:
        query = (
            select(DeliveryQueueItem)
            .join(Document, Document.id == DeliveryQueueItem.document_id)
            .where(DeliveryQueueItem.id == item_id, Document.org_id == org_id)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def list_items(
        self, org_id: UUID, status: Optional[str] = None, skip: int = 0, limit: int = 50
    ) -> List[DeliveryQueueItem]:
        query = (
            select(DeliveryQueueItem)
            .join(Document, Document.id == DeliveryQueueItem.document_id)
            .where(Document.org_id == org_id)
        )
        if status:
            query = query.where(DeliveryQueueItem.status == status)
        query = query.order_by(DeliveryQueueItem.created_at.desc()).offset(skip).limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def count_by_status(self, org_id: UUID) -> Dict[str, int]:
        query = (
            select(DeliveryQueueItem.status, func.count())
            .join(Document, Document.id == DeliveryQueueItem.document_id)
            .where(Document.org_id == org_id)
            .group_by(DeliveryQueueItem.status)
        )
        result = await self.session.execute(query)
        return {status: count for status, count in result.all()}


class DeliveryEventRepository(BaseRepository[DeliveryEvent]):
    def __init__(self, session: AsyncSession):
        super().__init__(session, DeliveryEvent)

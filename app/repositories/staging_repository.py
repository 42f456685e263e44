"""Repository for staged uploads."""

from typing import List, Optional, Sequence
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database.models import StagingUpload
from app.repositories.base_repository import BaseRepository


class StagingUploadRepository(BaseRepository[StagingUpload]):
    """Data access for staged uploads, scoped to an organization."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, StagingUpload)

    async def get_in_org(self, org_id: UUID, upload_id: UUID) -> Optional[StagingUpload]:
        query = select(StagingUpload).where(
            StagingUpload.id == upload_id, StagingUpload.org_id == org_id
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_many_in_org(self, org_id: UUID, upload_ids: Sequence[UUID]) -> List[StagingUpload]:
        if not upload_ids:
            return []
        query = select(StagingUpload).where(
            StagingUpload.org_id == org_id, StagingUpload.id.in_(list(upload_ids))
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def list_filtered(
        self,
        org_id: UUID,
        state: Optional[str] = None,
        ocr_status: Optional[str] = None,
        search: Optional[str] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[StagingUpload]:
        query = select(StagingUpload).where(StagingUpload.org_id == org_id)
        if state:
            query = query.where(StagingUpload.state == state)
        if ocr_status:
            query = query.where(StagingUpload.ocr_status == ocr_status)
        if search:
            query = query.where(StagingUpload.file_name.ilike(f"%{search}%"))
        query = query.order_by(StagingUpload.created_at.desc()).offset(skip).limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def count_pending(self, org_id: UUID) -> int:
        query = select(func.count()).select_from(StagingUpload).where(
            StagingUpload.org_id == org_id, StagingUpload.state == "pending"
        )
        result = await self.session.execute(query)
        return result.scalar_one()

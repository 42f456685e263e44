"""Repository for permanent documents."""

from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.database.models import Document
from app.repositories.base_repository import BaseRepository


class DocumentRepository(BaseRepository[Document]):
    """Data access for delivered documents."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Document)

    async def get_by_source_upload(self, upload_id: UUID) -> Optional[Document]:
        query = select(Document).where(Document.source_upload_id == upload_id)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_with_relations(self, document_id: UUID) -> Optional[Document]:
        """Load a document with its client and obligation for notification rendering."""
        query = (
            select(Document)
            .where(Document.id == document_id)
            .options(selectinload(Document.client), selectinload(Document.obligation))
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

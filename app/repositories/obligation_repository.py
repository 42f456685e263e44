"""Repositories for the obligation catalog and client links."""

from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.database.models import Client, ClientObligation, Obligation
from app.repositories.base_repository import BaseRepository


class ObligationRepository(BaseRepository[Obligation]):
    """Catalog lookups scoped to an organization."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Obligation)

    async def get_in_org(self, org_id: UUID, obligation_id: UUID) -> Optional[Obligation]:
        query = select(Obligation).where(
            Obligation.id == obligation_id, Obligation.org_id == org_id
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def list_for_org(self, org_id: UUID, include_archived: bool = False) -> List[Obligation]:
        query = select(Obligation).where(Obligation.org_id == org_id)
        if not include_archived:
            query = query.where(Obligation.archived_at.is_(None))
        result = await self.session.execute(query.order_by(Obligation.name))
        return list(result.scalars().all())

    async def find_by_fiscal_code(self, org_id: UUID, fiscal_code: str) -> List[Obligation]:
        query = select(Obligation).where(
            Obligation.org_id == org_id,
            Obligation.fiscal_code == fiscal_code,
            Obligation.archived_at.is_(None),
        )
        result = await self.session.execute(query.limit(5))
        return list(result.scalars().all())

    async def search_by_name(self, org_id: UUID, fragment: str) -> List[Obligation]:
        query = select(Obligation).where(
            Obligation.org_id == org_id,
            Obligation.name.ilike(f"%{fragment}%"),
            Obligation.archived_at.is_(None),
        )
        result = await self.session.execute(query.limit(5))
        return list(result.scalars().all())


class ClientObligationRepository(BaseRepository[ClientObligation]):
    """Client ↔ obligation links."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, ClientObligation)

    async def get_link(self, client_id: UUID, obligation_id: UUID) -> Optional[ClientObligation]:
        query = select(ClientObligation).where(
            ClientObligation.client_id == client_id,
            ClientObligation.obligation_id == obligation_id,
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_active_links(self, org_id: Optional[UUID] = None) -> List[ClientObligation]:
        """Active links of active clients to non-archived obligations, with both loaded."""
        query = (
            select(ClientObligation)
            .join(Client, Client.id == ClientObligation.client_id)
            .join(Obligation, Obligation.id == ClientObligation.obligation_id)
            .where(
                ClientObligation.active.is_(True),
                Client.active.is_(True),
                Obligation.archived_at.is_(None),
            )
            .options(
                selectinload(ClientObligation.obligation),
                selectinload(ClientObligation.client),
            )
        )
        if org_id is not None:
            query = query.where(Client.org_id == org_id)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def list_for_obligation(self, obligation_id: UUID) -> List[ClientObligation]:
        query = select(ClientObligation).where(ClientObligation.obligation_id == obligation_id)
        result = await self.session.execute(query)
        return list(result.scalars().all())

"""Repository for the client directory."""

from typing import List, Optional, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database.models import Client
from app.repositories.base_repository import BaseRepository


class ClientRepository(BaseRepository[Client]):
    """Read access to clients, always scoped to an organization."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Client)

    async def get_in_org(self, org_id: UUID, client_id: UUID) -> Optional[Client]:
        query = select(Client).where(Client.id == client_id, Client.org_id == org_id)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def find_active_by_identifier(
        self,
        org_id: UUID,
        field: str,
        candidates: Sequence[str],
    ) -> List[Client]:
        """Find active clients whose identifier column equals any candidate form.

        Args:
            org_id: Organization scope
            field: Identifier column name (``tax_id`` or ``social_insurance_id``)
            candidates: Accepted spellings of the identifier (digits-only, punctuated)

        Returns:
            Matching clients; more than one means the identifier is ambiguous.
        """
        column = getattr(Client, field)
        query = (
            select(Client)
            .where(
                Client.org_id == org_id,
                Client.active.is_(True),
                column.in_(list(candidates)),
            )
            .limit(5)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

"""Repository for obligation instances."""

from datetime import date
from typing import Iterable, List, Optional, Set, Tuple
from uuid import UUID

from sqlalchemy import select, tuple_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.database.models import Client, ObligationInstance
from app.repositories.base_repository import BaseRepository

InstanceKey = Tuple[UUID, UUID, str]


class ObligationInstanceRepository(BaseRepository[ObligationInstance]):
    """Data access for obligation instances."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, ObligationInstance)

    async def get_in_org(self, org_id: UUID, instance_id: UUID) -> Optional[ObligationInstance]:
        query = (
            select(ObligationInstance)
            .join(Client, Client.id == ObligationInstance.client_id)
            .where(ObligationInstance.id == instance_id, Client.org_id == org_id)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_for_period(
        self, client_id: UUID, obligation_id: UUID, competence: str
    ) -> Optional[ObligationInstance]:
        query = select(ObligationInstance).where(
            ObligationInstance.client_id == client_id,
            ObligationInstance.obligation_id == obligation_id,
            ObligationInstance.competence == competence,
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def existing_keys(self, competences: Iterable[str]) -> Set[InstanceKey]:
        """Return the (client, obligation, competence) keys already present."""
        competences = list(set(competences))
        if not competences:
            return set()
        query = select(
            ObligationInstance.client_id,
            ObligationInstance.obligation_id,
            ObligationInstance.competence,
        ).where(ObligationInstance.competence.in_(competences))
        result = await self.session.execute(query)
        return {tuple(row) for row in result.all()}

    async def insert_if_absent(self, **kwargs) -> Optional[ObligationInstance]:
        """Insert inside a SAVEPOINT; a uniqueness violation means it already exists.

        Returns:
            The new instance, or None when another writer created it first.
        """
        try:
            async with self.session.begin_nested():
                instance = ObligationInstance(**kwargs)
                self.session.add(instance)
                await self.session.flush()
            return instance
        except IntegrityError:
            self.logger.info(
                "Instance already exists, skipping",
                extra={
                    "client_id": str(kwargs.get("client_id")),
                    "obligation_id": str(kwargs.get("obligation_id")),
                    "competence": kwargs.get("competence"),
                },
            )
            return None

    async def list_for_org(
        self,
        org_id: UUID,
        client_id: Optional[UUID] = None,
        obligation_id: Optional[UUID] = None,
        competence: Optional[str] = None,
        completed: Optional[bool] = None,
        stored_status: Optional[str] = None,
        target_from: Optional[date] = None,
        target_to: Optional[date] = None,
        skip: int = 0,
        limit: int = 200,
    ) -> List[ObligationInstance]:
        """Org-scoped listing, filtered in SQL before paging.

        Args:
            completed: Only completed (True) or only open (False) instances
            stored_status: Match the persisted ``status`` column
            target_from: Earliest ``internal_target_at``, inclusive
            target_to: Latest ``internal_target_at``, inclusive
        """
        query = (
            select(ObligationInstance)
            .join(Client, Client.id == ObligationInstance.client_id)
            .where(Client.org_id == org_id)
        )
        if client_id:
            query = query.where(ObligationInstance.client_id == client_id)
        if obligation_id:
            query = query.where(ObligationInstance.obligation_id == obligation_id)
        if competence:
            query = query.where(ObligationInstance.competence == competence)
        if completed is True:
            query = query.where(ObligationInstance.completed_at.is_not(None))
        elif completed is False:
            query = query.where(ObligationInstance.completed_at.is_(None))
        if stored_status:
            query = query.where(ObligationInstance.status == stored_status)
        if target_from:
            query = query.where(ObligationInstance.internal_target_at >= target_from)
        if target_to:
            query = query.where(ObligationInstance.internal_target_at <= target_to)
        query = query.order_by(ObligationInstance.internal_target_at, ObligationInstance.id).offset(skip).limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def list_open(self, org_id: Optional[UUID] = None) -> List[ObligationInstance]:
        """Instances not yet completed, in one organization or across all of them."""
        query = select(ObligationInstance).where(ObligationInstance.completed_at.is_(None))
        if org_id:
            query = query.join(Client, Client.id == ObligationInstance.client_id).where(Client.org_id == org_id)
        result = await self.session.execute(query)
        return list(result.scalars().all())

"""Generation of obligation instances for active client links."""

from datetime import datetime, timezone
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.database.models import ClientObligation
from app.repositories.instance_repository import ObligationInstanceRepository
from app.repositories.obligation_repository import ClientObligationRepository
from app.services.base_service import BaseService
from app.services.obligations.competence import (
    Competence,
    current_competence,
    kind_for_frequency,
    parse_competence,
)
from app.services.obligations.deadline_calculator import ObligationSchedule, compute
from app.services.obligations.status_machine import PENDING, business_today
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


class InstanceGenerator(BaseService):
    """Creates one ``pending`` instance per active link and competence.

    Re-running is safe: existing (client, obligation, competence) keys are
    skipped up front, and each insert runs in its own SAVEPOINT so that a
    concurrent run that wins the race only costs a skipped row.
    """

    def __init__(self, session: AsyncSession, periods_ahead: Optional[int] = None):
        super().__init__()
        self.session = session
        self.link_repo = ClientObligationRepository(session)
        self.instance_repo = ObligationInstanceRepository(session)
        self.periods_ahead = (
            settings.obligations.periods_ahead if periods_ahead is None else periods_ahead
        )

    def validate(
        self,
        target_competence: Optional[str] = None,
        now: Optional[datetime] = None,
        org_id: Optional[UUID] = None,
    ):
        if target_competence is not None:
            parse_competence(target_competence)

    async def run(
        self,
        target_competence: Optional[str] = None,
        now: Optional[datetime] = None,
        org_id: Optional[UUID] = None,
    ) -> Dict[str, int]:
        """Generate missing instances.

        Args:
            target_competence: Restrict generation to this period. Defaults to the
                current period of each obligation (plus ``periods_ahead``).
            now: Reference time, defaults to the current UTC time
            org_id: Limit to one organization; all organizations when omitted

        Returns:
            ``{"instances_created": n, "skipped_existing": m}``
        """
        now = now or datetime.now(timezone.utc)
        today = business_today(now)
        target = parse_competence(target_competence) if target_competence else None

        links = await self.link_repo.get_active_links(org_id)
        plan = [
            (link, competence)
            for link in links
            for competence in self.competences_for(link, today, target)
        ]
        existing = await self.instance_repo.existing_keys(c.token for _, c in plan)

        created = 0
        skipped = 0
        for link, competence in plan:
            key = (link.client_id, link.obligation_id, competence.token)
            if key in existing:
                skipped += 1
                continue

            deadlines = compute(ObligationSchedule.from_obligation(link.obligation, link), competence)
            instance = await self.instance_repo.insert_if_absent(
                client_id=link.client_id,
                obligation_id=link.obligation_id,
                competence=competence.token,
                due_at=deadlines.due_at,
                internal_target_at=deadlines.internal_target_at,
                status=PENDING,
                notified_due_day=False,
            )
            if instance is None:
                skipped += 1
            else:
                created += 1
                existing.add(key)

        await self.session.commit()

        LOGGER.info(
            f"Instance generation finished: {created} created, {skipped} already existed",
            extra={"links": len(links), "target_competence": target_competence},
        )
        return {"instances_created": created, "skipped_existing": skipped}

    async def generate(
        self,
        target_competence: Optional[str] = None,
        now: Optional[datetime] = None,
        org_id: Optional[UUID] = None,
    ) -> Dict[str, int]:
        return await self.execute(target_competence=target_competence, now=now, org_id=org_id)

    def competences_for(
        self, link: ClientObligation, today, target: Optional[Competence] = None
    ) -> List[Competence]:
        """Competence periods a link should have instances for."""
        obligation = link.obligation
        kind = kind_for_frequency(obligation.frequency)

        if target is not None:
            candidates = [target] if target.kind == kind else []
        else:
            start = current_competence(obligation.frequency, today)
            candidates = [start.shift(i) for i in range(self.periods_ahead + 1)]

        if obligation.frequency == "annual":
            anchor = obligation.anchor_month or (
                link.created_at.month if link.created_at else today.month
            )
            candidates = [c for c in candidates if c.month == anchor]

        return candidates

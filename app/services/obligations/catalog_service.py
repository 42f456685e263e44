"""Obligation catalog and client link administration."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    ClientNotFoundError,
    ConflictError,
    NotFoundError,
    ObligationNotFoundError,
    ValidationError,
)
from app.database.models import ClientObligation, Obligation
from app.repositories.client_repository import ClientRepository
from app.repositories.obligation_repository import ClientObligationRepository, ObligationRepository
from app.services.obligations.deadline_calculator import ObligationSchedule, validate_schedule
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


class ObligationCatalogService:
    """Create, archive and link catalog obligations. Obligations are never deleted."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.obligations = ObligationRepository(session)
        self.links = ClientObligationRepository(session)
        self.clients = ClientRepository(session)

    async def create_obligation(
        self,
        org_id: UUID,
        name: str,
        frequency: str,
        internal_target_day: int,
        legal_due_rule: Optional[int] = None,
        due_period_offset: int = 0,
        fiscal_code: Optional[str] = None,
        anchor_month: Optional[int] = None,
        description: Optional[str] = None,
    ) -> Obligation:
        validate_schedule(
            ObligationSchedule(frequency, internal_target_day, legal_due_rule, due_period_offset)
        )
        if anchor_month is not None and not 1 <= anchor_month <= 12:
            raise ValidationError("anchor_month must be between 1 and 12")

        obligation = await self.obligations.create(
            org_id=org_id,
            name=name.strip(),
            frequency=frequency,
            internal_target_day=internal_target_day,
            legal_due_rule=legal_due_rule,
            due_period_offset=due_period_offset,
            fiscal_code=fiscal_code.strip() if fiscal_code else None,
            anchor_month=anchor_month,
            description=description,
        )
        await self.session.commit()
        LOGGER.info(f"Created obligation {obligation.name}", extra={"obligation_id": str(obligation.id)})
        return obligation

    async def list_obligations(self, org_id: UUID, include_archived: bool = False) -> List[Obligation]:
        return await self.obligations.list_for_org(org_id, include_archived=include_archived)

    async def archive_obligation(self, org_id: UUID, obligation_id: UUID) -> Obligation:
        obligation = await self.obligations.get_in_org(org_id, obligation_id)
        if obligation is None:
            raise ObligationNotFoundError(f"Obligation {obligation_id} not found")
        if obligation.archived_at is None:
            obligation.archived_at = datetime.now(timezone.utc)
            await self.session.commit()
        return obligation

    async def link_client(
        self,
        org_id: UUID,
        obligation_id: UUID,
        client_id: UUID,
        internal_target_day_override: Optional[int] = None,
        legal_due_rule_override: Optional[int] = None,
    ) -> ClientObligation:
        obligation = await self.obligations.get_in_org(org_id, obligation_id)
        if obligation is None:
            raise ObligationNotFoundError(f"Obligation {obligation_id} not found")
        if await self.clients.get_in_org(org_id, client_id) is None:
            raise ClientNotFoundError(f"Client {client_id} not found")

        validate_schedule(
            ObligationSchedule.from_obligation(
                obligation,
                ClientObligation(
                    internal_target_day_override=internal_target_day_override,
                    legal_due_rule_override=legal_due_rule_override,
                ),
            )
        )

        existing = await self.links.get_link(client_id, obligation_id)
        if existing is not None:
            if existing.active:
                raise ConflictError("Client is already linked to this obligation")
            existing.active = True
            existing.internal_target_day_override = internal_target_day_override
            existing.legal_due_rule_override = legal_due_rule_override
            await self.session.commit()
            return existing

        link = await self.links.create(
            client_id=client_id,
            obligation_id=obligation_id,
            active=True,
            internal_target_day_override=internal_target_day_override,
            legal_due_rule_override=legal_due_rule_override,
        )
        await self.session.commit()
        return link

    async def update_link(self, org_id: UUID, link_id: UUID, **changes) -> ClientObligation:
        """Toggle ``active`` or change overrides. Links are never hard-deleted."""
        link = await self.links.get_by_id(link_id)
        obligation = await self.obligations.get_in_org(org_id, link.obligation_id) if link else None
        if link is None or obligation is None:
            raise NotFoundError(f"Obligation link {link_id} not found")

        allowed = {"active", "internal_target_day_override", "legal_due_rule_override"}
        updates = {key: value for key, value in changes.items() if key in allowed}
        candidate = ClientObligation(
            internal_target_day_override=updates.get(
                "internal_target_day_override", link.internal_target_day_override
            ),
            legal_due_rule_override=updates.get(
                "legal_due_rule_override", link.legal_due_rule_override
            ),
        )
        validate_schedule(ObligationSchedule.from_obligation(obligation, candidate))

        await self.links.update(link, **updates)
        await self.session.commit()
        return link

    @staticmethod
    def serialize_obligation(obligation: Obligation) -> Dict[str, Any]:
        return {
            "id": obligation.id,
            "name": obligation.name,
            "frequency": obligation.frequency,
            "internal_target_day": obligation.internal_target_day,
            "legal_due_rule": obligation.legal_due_rule,
            "due_period_offset": obligation.due_period_offset,
            "fiscal_code": obligation.fiscal_code,
            "anchor_month": obligation.anchor_month,
            "description": obligation.description,
            "archived_at": obligation.archived_at,
        }

    @staticmethod
    def serialize_link(link: ClientObligation) -> Dict[str, Any]:
        return {
            "id": link.id,
            "client_id": link.client_id,
            "obligation_id": link.obligation_id,
            "active": link.active,
            "internal_target_day_override": link.internal_target_day_override,
            "legal_due_rule_override": link.legal_due_rule_override,
        }

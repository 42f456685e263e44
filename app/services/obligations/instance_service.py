"""Service layer for obligation instance transitions and queries."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import InstanceNotFoundError, ValidationError
from app.database.models import ObligationInstance
from app.repositories.instance_repository import ObligationInstanceRepository
from app.services.audit import AuditLog, audit_log
from app.services.obligations import status_machine
from app.services.obligations.competence import parse_competence
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ObligationInstanceService:
    """Applies lifecycle transitions to persisted instances."""

    def __init__(self, session: AsyncSession, audit: Optional[AuditLog] = None):
        self.session = session
        self.repository = ObligationInstanceRepository(session)
        self.audit = audit or audit_log

    async def _get(self, org_id: UUID, instance_id: UUID) -> ObligationInstance:
        instance = await self.repository.get_in_org(org_id, instance_id)
        if instance is None:
            raise InstanceNotFoundError(f"Obligation instance {instance_id} not found")
        return instance

    async def complete_instance(
        self,
        org_id: UUID,
        instance_id: UUID,
        notes: str,
        actor_id: Optional[UUID] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Manually complete an instance.

        Raises:
            ValidationError: If the notes are too short. Nothing is written.
            InstanceNotFoundError: If the instance is not in the organization.
        """
        now = now or _utcnow()
        status_machine.validate_completion_notes(notes)
        instance = await self._get(org_id, instance_id)

        changed = status_machine.complete(instance, now, notes=notes, manual=True, actor_id=actor_id)
        if changed:
            await self.session.commit()
            self.audit.record(
                "obligation_instance.completed",
                instance_id=instance.id,
                status=instance.status,
                actor_id=actor_id,
                source="manual",
            )
            LOGGER.info(
                f"Instance {instance.id} completed manually as {instance.status}",
                extra={"instance_id": str(instance.id), "actor_id": str(actor_id)},
            )
        else:
            LOGGER.info(f"Instance {instance.id} already completed, nothing to do")

        return self.serialize(instance, now)

    async def unmark_instance(
        self,
        org_id: UUID,
        instance_id: UUID,
        actor_id: Optional[UUID] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Revert a completed instance to its time-appropriate open status."""
        now = now or _utcnow()
        instance = await self._get(org_id, instance_id)
        previous = instance.status

        status_machine.unmark(instance, now)
        await self.session.commit()

        self.audit.record(
            "obligation_instance.unmarked",
            instance_id=instance.id,
            previous_status=previous,
            status=instance.status,
            actor_id=actor_id,
        )
        return self.serialize(instance, now)

    async def cascade_complete(
        self,
        client_id: UUID,
        obligation_id: UUID,
        competence: str,
        now: Optional[datetime] = None,
    ) -> Optional[ObligationInstance]:
        """Complete the instance matching a promoted document, if any.

        Runs inside the caller's transaction and never commits.

        Returns:
            The instance when it was completed now, None when missing or already done.
        """
        now = now or _utcnow()
        instance = await self.repository.get_for_period(client_id, obligation_id, competence)
        if instance is None:
            LOGGER.info(
                "No instance to complete for promoted document",
                extra={
                    "client_id": str(client_id),
                    "obligation_id": str(obligation_id),
                    "competence": competence,
                },
            )
            return None

        if not status_machine.complete(instance, now, manual=False):
            return None

        await self.session.flush()
        return instance

    async def sweep_statuses(
        self, now: Optional[datetime] = None, org_id: Optional[UUID] = None
    ) -> Dict[str, int]:
        """Write the derived open status of every open instance.

        Scoped to ``org_id`` when given; the scheduled sweep covers every organization.
        """
        now = now or _utcnow()
        counts = {status: 0 for status in status_machine.OPEN_STATUSES}
        updated = 0
        for instance in await self.repository.list_open(org_id):
            if status_machine.refresh(instance, now):
                updated += 1
            counts[instance.status] = counts.get(instance.status, 0) + 1

        await self.session.commit()
        LOGGER.info(f"Status sweep updated {updated} instances", extra={"counts": counts})
        return {**counts, "updated": updated}

    async def list_instances(
        self,
        org_id: UUID,
        client_id: Optional[UUID] = None,
        obligation_id: Optional[UUID] = None,
        competence: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 200,
        offset: int = 0,
        now: Optional[datetime] = None,
    ) -> List[Dict[str, Any]]:
        """List instances with their status computed at ``now``."""
        now = now or _utcnow()
        if competence:
            competence = parse_competence(competence).token
        if status and status not in status_machine.ALL_STATUSES:
            raise ValidationError(f"Unknown status filter: {status}")

        status_filters: Dict[str, Any] = {}
        if status in status_machine.DONE_STATUSES:
            status_filters = {"completed": True, "stored_status": status}
        elif status:
            target_from, target_to = status_machine.open_status_window(
                status, status_machine.business_today(now)
            )
            status_filters = {"completed": False, "target_from": target_from, "target_to": target_to}

        instances = await self.repository.list_for_org(
            org_id,
            client_id=client_id,
            obligation_id=obligation_id,
            competence=competence,
            skip=offset,
            limit=limit,
            **status_filters,
        )
        return [self.serialize(instance, now) for instance in instances]

    @staticmethod
    def serialize(instance: ObligationInstance, now: datetime) -> Dict[str, Any]:
        return {
            "id": instance.id,
            "client_id": instance.client_id,
            "obligation_id": instance.obligation_id,
            "competence": instance.competence,
            "due_at": instance.due_at,
            "internal_target_at": instance.internal_target_at,
            "status": status_machine.effective_status(instance, now),
            "completed_at": instance.completed_at,
            "completion_notes": instance.completion_notes,
            "notified_due_day": instance.notified_due_day,
        }

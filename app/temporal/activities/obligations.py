"""Scheduled obligation instance maintenance."""

from typing import Dict, Optional

from temporalio import activity

from app.core.database import async_session_maker
from app.services.obligations.instance_generator import InstanceGenerator
from app.services.obligations.instance_service import ObligationInstanceService


@activity.defn
async def generate_obligation_instances(target_competence: Optional[str] = None) -> Dict[str, int]:
    async with async_session_maker() as session:
        result = await InstanceGenerator(session).generate(target_competence=target_competence)
    activity.logger.info(f"Instance generation finished: {result}")
    return result


@activity.defn
async def sweep_obligation_statuses() -> Dict[str, int]:
    """Persist the time-derived status of every open instance."""
    async with async_session_maker() as session:
        return await ObligationInstanceService(session).sweep_statuses()

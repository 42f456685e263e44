"""Registers the cron workflows.

Re-running is harmless: a cron workflow that is already running is left alone.
"""

from typing import Dict, List, Tuple, Type

from temporalio.client import Client
from temporalio.exceptions import WorkflowAlreadyStartedError

from app.core.config import settings
from app.temporal.workflows import (
    GenerateInstancesWorkflow,
    ProcessDeliveryQueueWorkflow,
    SweepStatusesWorkflow,
)
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


def cron_workflows() -> List[Tuple[str, Type, str]]:
    """(workflow id, workflow class, cron expression)"""
    return [
        ("cron-generate-obligation-instances", GenerateInstancesWorkflow, settings.temporal.generation_cron),
        ("cron-sweep-obligation-statuses", SweepStatusesWorkflow, settings.temporal.sweep_cron),
        ("cron-process-delivery-queue", ProcessDeliveryQueueWorkflow, settings.temporal.delivery_cron),
    ]


async def register_cron_workflows(client: Client) -> Dict[str, str]:
    """Start every cron workflow that is not running yet.

    Returns:
        Workflow id -> ``started`` or ``already_running``
    """
    outcome: Dict[str, str] = {}
    for workflow_id, workflow_class, cron in cron_workflows():
        try:
            await client.start_workflow(
                workflow_class.run,
                id=workflow_id,
                task_queue=settings.temporal_task_queue,
                cron_schedule=cron,
            )
            outcome[workflow_id] = "started"
            LOGGER.info(f"Registered cron workflow {workflow_id} ({cron})")
        except WorkflowAlreadyStartedError:
            outcome[workflow_id] = "already_running"
            LOGGER.info(f"Cron workflow {workflow_id} already running")
    return outcome

"""Temporal worker for background jobs.

Runs OCR for staged uploads, instance generation, the status sweep and the
delivery queue on the configured task queue, and registers the cron
workflows on startup.
"""

import asyncio

from temporalio.client import Client
from temporalio.service import RPCError
from temporalio.worker import Worker
from temporalio.worker.workflow_sandbox import SandboxedWorkflowRunner, SandboxRestrictions

from app.core.config import settings
from app.temporal.activities import ALL_ACTIVITIES
from app.temporal.schedules import register_cron_workflows
from app.temporal.workflows import ALL_WORKFLOWS
from app.utils.logging import get_logger

logger = get_logger(__name__)


async def connect(max_retries: int = 5, retry_delay: int = 5) -> Client:
    """Connect to Temporal, retrying while the server comes up."""
    for attempt in range(max_retries):
        try:
            logger.info(
                f"Connecting to Temporal server at {settings.temporal_host}:{settings.temporal_port} "
                f"(Attempt {attempt + 1}/{max_retries})"
            )
            return await Client.connect(
                target_host=f"{settings.temporal_host}:{settings.temporal_port}",
                namespace=settings.temporal_namespace,
            )
        except (RuntimeError, RPCError) as e:
            if attempt < max_retries - 1:
                logger.warning(f"Connection attempt {attempt + 1} failed: {e}. Retrying in {retry_delay}s...")
                await asyncio.sleep(retry_delay)
            else:
                logger.error(f"Failed to connect to Temporal server after {max_retries} attempts: {e}")
                raise


async def run_worker() -> None:
    client = await connect()
    await register_cron_workflows(client)

    worker = Worker(
        client,
        task_queue=settings.temporal_task_queue,
        workflows=ALL_WORKFLOWS,
        activities=ALL_ACTIVITIES,
        max_concurrent_activities=10,
        max_concurrent_workflow_tasks=20,
        workflow_runner=SandboxedWorkflowRunner(
            restrictions=SandboxRestrictions.default.with_passthrough_all_modules()
        ),
    )
    logger.info(
        f"Worker polling {settings.temporal_task_queue} with "
        f"{len(ALL_WORKFLOWS)} workflows and {len(ALL_ACTIVITIES)} activities"
    )
    await worker.run()


if __name__ == "__main__":
    try:
        asyncio.run(run_worker())
    except KeyboardInterrupt:
        logger.info("Worker stopped by user")

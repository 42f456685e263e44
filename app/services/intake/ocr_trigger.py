"""Starts OCR for staged uploads without blocking the caller."""

from typing import Iterable
from uuid import UUID, uuid4

from fastapi import BackgroundTasks
from temporalio.exceptions import WorkflowAlreadyStartedError
from temporalio.service import RPCError

from app.core.config import settings
from app.core.database import async_session_maker
from app.core.temporal_client import get_temporal_client
from app.services.intake.ocr_processing_service import OCRProcessingService
from app.temporal.workflows.intake import ProcessUploadOCRWorkflow
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


async def run_ocr_in_new_session(upload_id: UUID) -> None:
    """Background-task entry point; owns its session since the request's is closed."""
    async with async_session_maker() as session:
        await OCRProcessingService(session).process_upload(upload_id)


async def trigger_ocr(upload_ids: Iterable[UUID], background_tasks: BackgroundTasks) -> None:
    """Queue OCR for each upload.

    Uses a Temporal workflow per upload when Temporal is enabled, otherwise
    a FastAPI background task. A trigger that cannot be started is logged;
    the upload keeps its status and can be reprocessed.
    """
    if not settings.temporal_enabled:
        for upload_id in upload_ids:
            background_tasks.add_task(run_ocr_in_new_session, upload_id)
        return

    client = await get_temporal_client()
    for upload_id in upload_ids:
        try:
            await client.start_workflow(
                ProcessUploadOCRWorkflow.run,
                str(upload_id),
                id=f"ocr-{upload_id}-{uuid4().hex[:8]}",
                task_queue=settings.temporal_task_queue,
            )
        except (WorkflowAlreadyStartedError, RPCError) as e:
            LOGGER.error(f"Could not start OCR workflow for upload {upload_id}: {e}")

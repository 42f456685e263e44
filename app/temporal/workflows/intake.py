"""Workflow that runs OCR for a freshly staged upload."""

from datetime import timedelta
from typing import Dict

from temporalio import workflow
from temporalio.common import RetryPolicy

with workflow.unsafe.imports_passed_through():
    from app.temporal.activities.intake import process_staging_upload_ocr


@workflow.defn
class ProcessUploadOCRWorkflow:
    """Fire-and-forget OCR trigger. Upstream failures are recorded on the upload itself."""

    @workflow.run
    async def run(self, upload_id: str) -> Dict:
        return await workflow.execute_activity(
            process_staging_upload_ocr,
            upload_id,
            start_to_close_timeout=timedelta(minutes=5),
            retry_policy=RetryPolicy(maximum_attempts=3, initial_interval=timedelta(seconds=10)),
        )

"""Cron workflow draining the delivery queue."""

from datetime import timedelta
from typing import Dict

from temporalio import workflow
from temporalio.common import RetryPolicy

with workflow.unsafe.imports_passed_through():
    from app.temporal.activities.delivery import process_delivery_queue


@workflow.defn
class ProcessDeliveryQueueWorkflow:
    @workflow.run
    async def run(self) -> Dict[str, int]:
        # Per-item retries live in the queue; one activity attempt per run.
        return await workflow.execute_activity(
            process_delivery_queue,
            start_to_close_timeout=timedelta(minutes=5),
            retry_policy=RetryPolicy(maximum_attempts=1),
        )

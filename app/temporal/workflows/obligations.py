"""Cron workflows for obligation instances."""

from datetime import timedelta
from typing import Dict, Optional

from temporalio import workflow
from temporalio.common import RetryPolicy

with workflow.unsafe.imports_passed_through():
    from app.temporal.activities.obligations import (
        generate_obligation_instances,
        sweep_obligation_statuses,
    )

_RETRY = RetryPolicy(maximum_attempts=5, initial_interval=timedelta(seconds=30))


@workflow.defn
class GenerateInstancesWorkflow:
    """Creates the instances of the current periods. Safe to run repeatedly."""

    @workflow.run
    async def run(self, target_competence: Optional[str] = None) -> Dict[str, int]:
        return await workflow.execute_activity(
            generate_obligation_instances,
            target_competence,
            start_to_close_timeout=timedelta(minutes=10),
            retry_policy=_RETRY,
        )


@workflow.defn
class SweepStatusesWorkflow:
    @workflow.run
    async def run(self) -> Dict[str, int]:
        return await workflow.execute_activity(
            sweep_obligation_statuses,
            start_to_close_timeout=timedelta(minutes=10),
            retry_policy=_RETRY,
        )

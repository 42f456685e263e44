"""Temporal workflows."""

from app.temporal.workflows.delivery import ProcessDeliveryQueueWorkflow
from app.temporal.workflows.intake import ProcessUploadOCRWorkflow
from app.temporal.workflows.obligations import GenerateInstancesWorkflow, SweepStatusesWorkflow

ALL_WORKFLOWS = [
    ProcessUploadOCRWorkflow,
    GenerateInstancesWorkflow,
    SweepStatusesWorkflow,
    ProcessDeliveryQueueWorkflow,
]

__all__ = [
    "ALL_WORKFLOWS",
    "GenerateInstancesWorkflow",
    "ProcessDeliveryQueueWorkflow",
    "ProcessUploadOCRWorkflow",
    "SweepStatusesWorkflow",
]

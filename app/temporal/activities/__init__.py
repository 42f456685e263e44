"""Temporal activities. Each opens its own database session."""

from app.temporal.activities.delivery import process_delivery_queue
from app.temporal.activities.intake import process_staging_upload_ocr
from app.temporal.activities.obligations import (
    generate_obligation_instances,
    sweep_obligation_statuses,
)

ALL_ACTIVITIES = [
    process_staging_upload_ocr,
    generate_obligation_instances,
    sweep_obligation_statuses,
    process_delivery_queue,
]

__all__ = [
    "ALL_ACTIVITIES",
    "generate_obligation_instances",
    "process_delivery_queue",
    "process_staging_upload_ocr",
    "sweep_obligation_statuses",
]

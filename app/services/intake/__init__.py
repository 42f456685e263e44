"""Document intake: staging, OCR processing and classification."""

from app.services.intake.classification_service import (
    BatchClassificationSummary,
    ClassificationResult,
    ClassificationService,
    collision_safe_name,
)
from app.services.intake.ocr_processing_service import OCRProcessingService, decide_ocr_status
from app.services.intake.staging_service import StagingUploadService, is_ready_for_batch

__all__ = [
    "BatchClassificationSummary",
    "ClassificationResult",
    "ClassificationService",
    "OCRProcessingService",
    "StagingUploadService",
    "collision_safe_name",
    "decide_ocr_status",
    "is_ready_for_batch",
]

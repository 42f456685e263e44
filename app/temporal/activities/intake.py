"""OCR activity for staged uploads."""

from typing import Dict
from uuid import UUID

from temporalio import activity

from app.core.database import async_session_maker
from app.services.intake.ocr_processing_service import OCRProcessingService


@activity.defn
async def process_staging_upload_ocr(upload_id: str) -> Dict:
    """Run extraction and matching for one upload and write the result back."""
    activity.logger.info(f"Starting OCR for staged upload {upload_id}", extra={"upload_id": upload_id})

    async with async_session_maker() as session:
        result = await OCRProcessingService(session).process_upload(UUID(upload_id))

    activity.logger.info(
        f"OCR for staged upload {upload_id} ended with {result.get('ocr_status')}",
        extra={"upload_id": upload_id},
    )
    return result

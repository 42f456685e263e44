"""Runs vision extraction and matching for a staged upload."""

from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import ConfigurationError, OCRExtractionError, StorageError
from app.database.models import StagingUpload
from app.repositories.staging_repository import StagingUploadRepository
from app.services.matching.matcher import ClientMatch, Matcher, ObligationMatch
from app.services.ocr.ocr_base import DocumentKind, OCRExtraction, VisionExtractor, guess_mime_type
from app.services.ocr.vision_extractor import get_vision_extractor
from app.services.storage_service import StorageService
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


def decide_ocr_status(
    extraction: OCRExtraction,
    client_match: ClientMatch,
    obligation_match: ObligationMatch,
    confidence_threshold: float,
) -> Tuple[str, List[str]]:
    """Pick the OCR status and the reasons that explain it.

    Unrecognized documents are errors. Anything that keeps the upload from
    being classified automatically (missing match, missing competence, low
    confidence) means ``needs_review``.
    """
    if extraction.document_type == DocumentKind.UNKNOWN:
        return "error", ["Document type not recognized"]

    reasons: List[str] = []
    if not client_match.found:
        reasons.append(client_match.reason or "Client not found")
    if not obligation_match.found:
        reasons.append(obligation_match.reason or "Obligation not found")
    if not extraction.extracted_data.competence:
        reasons.append("Competence not found on document")
    if extraction.confidence < confidence_threshold:
        reasons.append(f"Low confidence ({extraction.confidence:.0%})")

    return ("needs_review" if reasons else "success"), reasons


class OCRProcessingService:
    """Extracts, matches and writes the results back onto a staged upload."""

    def __init__(
        self,
        session: AsyncSession,
        storage: Optional[StorageService] = None,
        extractor: Optional[VisionExtractor] = None,
        matcher: Optional[Matcher] = None,
    ):
        self.session = session
        self.repository = StagingUploadRepository(session)
        self.storage = storage or StorageService()
        self.matcher = matcher or Matcher(session)
        self._extractor = extractor

    @property
    def extractor(self) -> VisionExtractor:
        if self._extractor is None:
            self._extractor = get_vision_extractor()
        return self._extractor

    async def process_upload(self, upload_id: UUID) -> Dict[str, Any]:
        """Run OCR for one upload.

        Upstream failures are recorded on the upload as ``ocr_status=error``
        and are not raised; a later reprocess request retries them.

        Returns:
            Summary with the final ``ocr_status``.
        """
        upload = await self.repository.get_by_id(upload_id)
        if upload is None:
            LOGGER.warning(f"Upload {upload_id} no longer exists, skipping OCR")
            return {"upload_id": str(upload_id), "ocr_status": None, "skipped": True}
        if upload.state != "pending":
            LOGGER.info(f"Upload {upload_id} is already {upload.state}, skipping OCR")
            return {"upload_id": str(upload_id), "ocr_status": upload.ocr_status, "skipped": True}

        await self.repository.update(upload, ocr_status="processing", ocr_error=None)
        await self.session.commit()

        org_id = upload.org_id
        file_path = upload.file_path
        mime_type = guess_mime_type(upload.file_name, upload.mime_type)

        try:
            content = await self.storage.download_file(file_path)
            extraction = await self.extractor.extract(content, mime_type)
            client_match = await self.matcher.match_client(
                org_id, extraction.document_type.value, extraction.identifier
            )
            obligation_match = await self.matcher.match_obligation(
                org_id, extraction.extracted_data.fiscal_code
            )
        except (OCRExtractionError, StorageError, ConfigurationError) as e:
            kind = getattr(e, "kind", e.code)
            LOGGER.warning(
                f"OCR failed for upload {upload_id}: {e}",
                extra={"upload_id": str(upload_id), "kind": kind},
            )
            return await self._write_failure(upload_id, str(e), kind)
        except Exception as e:
            LOGGER.error(
                f"Unexpected OCR failure for upload {upload_id}: {str(e)}",
                exc_info=True,
                extra={"upload_id": str(upload_id)},
            )
            await self.session.rollback()
            return await self._write_failure(
                upload_id, f"Unexpected OCR failure: {str(e)}", OCRExtractionError.UPSTREAM_ERROR
            )
        status, reasons = decide_ocr_status(
            extraction, client_match, obligation_match, settings.llm.ocr_confidence_threshold
        )

        upload = await self._reload_pending(upload_id)
        if upload is None:
            return {"upload_id": str(upload_id), "ocr_status": None, "skipped": True}

        fields = extraction.extracted_data
        await self.repository.update(
            upload,
            ocr_status=status,
            ocr_error="; ".join(reasons) or None,
            ocr_data={
                "document_type": extraction.document_type.value,
                "confidence": extraction.confidence,
                "extracted_data": fields.model_dump(mode="json"),
                "matching": {
                    "client": client_match.to_dict(),
                    "obligation": obligation_match.to_dict(),
                },
                "raw_text": extraction.raw_text,
                "extractor": self.extractor.get_service_name(),
            },
            document_type=extraction.document_type.value,
            client_id=client_match.client_id if client_match.found else None,
            obligation_id=obligation_match.obligation_id if obligation_match.found else None,
            competence=fields.competence,
            amount=fields.amount,
            due_at=fields.due_date,
        )
        await self.session.commit()

        LOGGER.info(
            f"OCR finished for upload {upload_id} with status {status}",
            extra={"upload_id": str(upload_id), "reasons": reasons},
        )
        return {"upload_id": str(upload_id), "ocr_status": status, "reasons": reasons, "skipped": False}

    async def _reload_pending(self, upload_id: UUID) -> Optional[StagingUpload]:
        """Re-read the row so results land on its latest state; skip if it moved on."""
        upload = await self.repository.get_by_id(upload_id)
        if upload is not None:
            await self.session.refresh(upload)
        if upload is None or upload.state != "pending":
            LOGGER.info(f"Upload {upload_id} changed while OCR was running, discarding result")
            return None
        return upload

    async def _write_failure(self, upload_id: UUID, message: str, kind: str) -> Dict[str, Any]:
        upload = await self._reload_pending(upload_id)
        if upload is None:
            return {"upload_id": str(upload_id), "ocr_status": None, "skipped": True}
        await self.repository.update(upload, ocr_status="error", ocr_error=message)
        await self.session.commit()
        return {"upload_id": str(upload_id), "ocr_status": "error", "reasons": [message], "kind": kind, "skipped": False}

"""Promotes staged uploads into permanent client documents.

Single and batch classification share one algorithm:

1. Validate the inputs and resolve client and obligation in the organization.
2. Pick the destination ``{org}/{client}/{file_name}``, renaming with a
   nanosecond timestamp on collision and re-checking right before the move.
3. Move the file out of staging.
4. In one transaction: create the Document, cascade-complete the matching
   obligation instance and mark the upload ``classified``.
5. Queue the client notification. Failing here never undoes the promotion.

If the database write fails after the move, the file is moved back to
staging; a file left in the client folder is preferred over a Document with
no file behind it.
"""

import posixpath
import time
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import (
    AppError,
    ClientNotFoundError,
    DatabaseError,
    DuplicateFileNameError,
    DuplicateFileNameExhaustedError,
    InvalidStateTransitionError,
    ObligationNotFoundError,
    ValidationError,
)
from app.database.models import Document, StagingUpload
from app.repositories.client_repository import ClientRepository
from app.repositories.document_repository import DocumentRepository
from app.repositories.obligation_repository import ObligationRepository
from app.repositories.staging_repository import StagingUploadRepository
from app.services.audit import AuditLog, audit_log
from app.services.delivery.delivery_queue_service import DeliveryQueueService
from app.services.intake.staging_service import StagingUploadService, is_ready_for_batch
from app.services.obligations.competence import kind_for_frequency, parse_competence
from app.services.obligations.instance_service import ObligationInstanceService
from app.services.storage_service import StorageService
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


def collision_safe_name(file_name: str, stamp: Optional[int] = None) -> str:
    """``darf.pdf`` -> ``darf_1717171717171717171.pdf``"""
    base, ext = posixpath.splitext(file_name)
    return f"{base}_{stamp if stamp is not None else time.time_ns()}{ext}"


@dataclass
class ClassificationResult:
    upload_id: UUID
    document_id: UUID
    file_name: str
    file_path: str
    renamed: bool
    completed_instance_id: Optional[UUID] = None
    delivery_queued: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BatchFailure:
    upload_id: UUID
    file_name: str
    code: str
    reason: str


@dataclass
class BatchClassificationSummary:
    success_count: int = 0
    error_count: int = 0
    failed_file_names: List[str] = field(default_factory=list)
    skipped_file_names: List[str] = field(default_factory=list)
    failures: List[BatchFailure] = field(default_factory=list)
    documents: List[ClassificationResult] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ClassificationService:
    """Single and batch promotion of staged uploads."""

    def __init__(
        self,
        session: AsyncSession,
        storage: Optional[StorageService] = None,
        delivery: Optional[DeliveryQueueService] = None,
        audit: Optional[AuditLog] = None,
    ):
        self.session = session
        self.storage = storage or StorageService()
        self.delivery = delivery or DeliveryQueueService(session)
        self.audit = audit or audit_log
        self.uploads = StagingUploadRepository(session)
        self.clients = ClientRepository(session)
        self.obligations = ObligationRepository(session)
        self.documents = DocumentRepository(session)
        self.instances = ObligationInstanceService(session, audit=self.audit)
        self.staging = StagingUploadService(session, storage=self.storage, audit=self.audit)

    async def classify_single(
        self,
        org_id: UUID,
        actor_id: Optional[UUID],
        upload_id: UUID,
        client_id: UUID,
        obligation_id: UUID,
        competence: str,
        amount: Optional[Decimal] = None,
        due_at: Optional[date] = None,
        now: Optional[datetime] = None,
    ) -> ClassificationResult:
        """Promote one upload with values confirmed by the operator.

        Raises:
            ValidationError: Malformed competence or amount. Nothing is written.
            ClientNotFoundError, ObligationNotFoundError, UploadNotFoundError
            InvalidStateTransitionError: If the upload was already promoted.
            DuplicateFileNameExhaustedError: If no free destination name was found.
            StorageError, DatabaseError
        """
        upload = await self.staging.get_upload(org_id, upload_id)
        return await self._promote(
            upload,
            client_id=client_id,
            obligation_id=obligation_id,
            competence=competence,
            amount=amount,
            due_at=due_at,
            actor_id=actor_id,
            now=now,
        )

    async def classify_batch(
        self,
        org_id: UUID,
        actor_id: Optional[UUID],
        upload_ids: Sequence[UUID],
        now: Optional[datetime] = None,
    ) -> BatchClassificationSummary:
        """Promote every ready upload using its OCR-resolved values.

        Items run sequentially and independently: a failure is recorded in
        the summary and the next item proceeds. Uploads that are not ready
        are reported as skipped.
        """
        summary = BatchClassificationSummary()
        uploads = await self.uploads.get_many_in_org(org_id, list(upload_ids))
        names = {upload.id: upload.file_name for upload in uploads}
        targets: List[Tuple[UUID, str]] = []
        for upload_id in dict.fromkeys(upload_ids):
            if upload_id in names:
                targets.append((upload_id, names[upload_id]))
            else:
                self._record_failure(
                    summary, upload_id, str(upload_id), "upload_not_found", "Staged upload not found"
                )

        for upload_id, file_name in targets:
            upload = await self.uploads.get_by_id(upload_id)
            if upload is None or not is_ready_for_batch(upload):
                summary.skipped_file_names.append(file_name)
                continue

            try:
                result = await self._promote(
                    upload,
                    client_id=upload.client_id,
                    obligation_id=upload.obligation_id,
                    competence=upload.competence,
                    amount=upload.amount,
                    due_at=upload.due_at,
                    actor_id=actor_id,
                    now=now,
                )
            except AppError as e:
                await self.session.rollback()
                self._record_failure(summary, upload_id, file_name, e.code, e.message)
            except Exception as e:
                await self.session.rollback()
                LOGGER.error(f"Unexpected error classifying {file_name}: {str(e)}", exc_info=True)
                self._record_failure(summary, upload_id, file_name, "internal_error", str(e))
            else:
                summary.success_count += 1
                summary.documents.append(result)

        LOGGER.info(
            f"Batch classification finished: {summary.success_count} ok, {summary.error_count} failed",
            extra={"skipped": len(summary.skipped_file_names), "org_id": str(org_id)},
        )
        return summary

    def _record_failure(
        self, summary: BatchClassificationSummary, upload_id: UUID, file_name: str, code: str, reason: str
    ) -> None:
        LOGGER.warning(f"Could not classify {file_name}: {reason}", extra={"upload_id": str(upload_id), "code": code})
        summary.error_count += 1
        summary.failed_file_names.append(file_name)
        summary.failures.append(BatchFailure(upload_id, file_name, code, reason))

    async def _promote(
        self,
        upload: StagingUpload,
        client_id: UUID,
        obligation_id: UUID,
        competence: str,
        amount: Optional[Decimal],
        due_at: Optional[date],
        actor_id: Optional[UUID],
        now: Optional[datetime],
    ) -> ClassificationResult:
        now = now or datetime.now(timezone.utc)
        upload_id, org_id = upload.id, upload.org_id

        if upload.state != "pending":
            raise InvalidStateTransitionError(f"Upload {upload.file_name} is already {upload.state}")
        if not competence:
            raise ValidationError("Competence is required")
        period = parse_competence(competence)
        if amount is not None and Decimal(amount) < 0:
            raise ValidationError("Amount cannot be negative")

        client = await self.clients.get_in_org(org_id, client_id)
        if client is None or not client.active:
            raise ClientNotFoundError(f"Client {client_id} not found or inactive")
        obligation = await self.obligations.get_in_org(org_id, obligation_id)
        if obligation is None:
            raise ObligationNotFoundError(f"Obligation {obligation_id} not found")
        if kind_for_frequency(obligation.frequency) != period.kind:
            raise ValidationError(
                f"Competence {period.token} does not fit a {obligation.frequency} obligation"
            )

        source_path = upload.file_path
        file_name, file_path = await self._move_to_client_folder(
            source_path, f"{org_id}/{client.id}", upload.file_name
        )

        try:
            document = await self.documents.create(
                org_id=org_id,
                client_id=client.id,
                obligation_id=obligation.id,
                source_upload_id=upload_id,
                competence=period.token,
                file_name=file_name,
                file_path=file_path,
                amount=amount,
                due_at=due_at,
                delivered_at=now,
                delivered_by=actor_id,
                delivery_state="sent",
            )
            instance = await self.instances.cascade_complete(client.id, obligation.id, period.token, now)
            await self.uploads.update(
                upload,
                state="classified",
                client_id=client.id,
                obligation_id=obligation.id,
                competence=period.token,
                amount=amount,
                due_at=due_at,
            )
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            LOGGER.error(f"Could not record promotion of {file_name}, restoring file", exc_info=True)
            await self._restore_file(file_path, source_path)
            raise DatabaseError(f"Failed to record document {file_name}: {str(e)}", original_error=e)

        document_id = document.id
        original_name = upload.file_name
        self.audit.record(
            "document.promoted",
            document_id=document_id,
            upload_id=upload_id,
            client_id=client.id,
            obligation_id=obligation.id,
            competence=period.token,
            file_path=file_path,
            actor_id=actor_id,
        )
        if instance is not None:
            self.audit.record(
                "obligation_instance.completed",
                instance_id=instance.id,
                status=instance.status,
                actor_id=actor_id,
                source="document",
            )

        LOGGER.info(
            f"Promoted {original_name} to {file_path}",
            extra={"upload_id": str(upload_id), "document_id": str(document_id)},
        )
        completed_instance_id = instance.id if instance is not None else None
        return ClassificationResult(
            upload_id=upload_id,
            document_id=document_id,
            file_name=file_name,
            file_path=file_path,
            renamed=file_name != original_name,
            completed_instance_id=completed_instance_id,
            delivery_queued=await self._enqueue_delivery(document_id),
        )

    async def _move_to_client_folder(self, source: str, folder: str, file_name: str) -> Tuple[str, str]:
        """Move ``source`` into ``folder`` without overwriting anything there.

        Raises:
            DuplicateFileNameExhaustedError: If every attempt collided.
        """
        candidate = file_name
        for attempt in range(1, settings.intake.collision_attempts + 1):
            destination = f"{folder}/{candidate}"
            if await self.storage.file_exists(destination):
                candidate = collision_safe_name(file_name)
                continue
            try:
                await self.storage.move_file(source, destination)
            except DuplicateFileNameError:
                LOGGER.info(f"Destination {destination} taken during move, attempt {attempt}")
                candidate = collision_safe_name(file_name)
                continue
            return candidate, destination

        raise DuplicateFileNameExhaustedError(
            f"Could not find a free name for {file_name} after "
            f"{settings.intake.collision_attempts} attempts"
        )

    async def _restore_file(self, current: str, original: str) -> None:
        try:
            await self.storage.move_file(current, original)
        except AppError as e:
            LOGGER.error(f"Could not move {current} back to {original}, file is orphaned: {e}")

    async def _enqueue_delivery(self, document_id: UUID) -> bool:
        try:
            await self.delivery.enqueue(document_id)
        except (AppError, SQLAlchemyError) as e:
            await self.session.rollback()
            LOGGER.error(f"Could not queue notification for document {document_id}: {str(e)}", exc_info=True)
            self.audit.record("delivery.enqueue_failed", document_id=document_id, reason=str(e))
            return False
        return True

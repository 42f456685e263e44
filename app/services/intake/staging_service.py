"""Staging area for uploaded files awaiting OCR and classification."""

import posixpath
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import (
    AppError,
    InvalidStateTransitionError,
    UploadNotFoundError,
    ValidationError,
)
from app.database.models import StagingUpload
from app.repositories.staging_repository import StagingUploadRepository
from app.services.audit import AuditLog, audit_log
from app.services.ocr.ocr_base import guess_mime_type
from app.services.storage_service import StorageService
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

_UNSAFE_CHARS = re.compile(r"[^\w.\- ()]+", re.UNICODE)


def sanitize_file_name(file_name: str) -> str:
    name = posixpath.basename((file_name or "").replace("\\", "/")).strip()
    name = _UNSAFE_CHARS.sub("_", name)
    if not name or name in (".", ".."):
        raise ValidationError("File name is empty")
    return name


def staging_path(org_id: UUID, file_name: str, now: datetime) -> str:
    """``{org}/staging/{epoch_ms}-{file_name}``"""
    return f"{org_id}/staging/{int(now.timestamp() * 1000)}-{file_name}"


def is_ready_for_batch(upload: Any) -> bool:
    """OCR has settled and client, obligation and competence are all resolved."""
    return (
        upload.state == "pending"
        and upload.ocr_status not in ("pending", "processing")
        and upload.client_id is not None
        and upload.obligation_id is not None
        and bool(upload.competence)
    )


class StagingUploadService:
    """Upload, query, reprocess and delete staged files."""

    def __init__(
        self,
        session: AsyncSession,
        storage: Optional[StorageService] = None,
        audit: Optional[AuditLog] = None,
    ):
        self.session = session
        self.repository = StagingUploadRepository(session)
        self.storage = storage or StorageService()
        self.audit = audit or audit_log

    async def create_upload(
        self,
        org_id: UUID,
        user_id: Optional[UUID],
        file_name: str,
        content: bytes,
        content_type: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> StagingUpload:
        """Store the file under the staging prefix and register it as ``pending``.

        Raises:
            ValidationError: If the file is empty or too large.
            StorageError: If the upload fails. No row is created.
        """
        now = now or datetime.now(timezone.utc)
        name = sanitize_file_name(file_name)
        if posixpath.splitext(name)[1].lower() not in settings.intake.allowed_extensions:
            raise ValidationError(f"File type of {name} is not accepted")
        if not content:
            raise ValidationError(f"File {name} is empty")
        if len(content) > settings.intake.max_upload_bytes:
            raise ValidationError(f"File {name} exceeds the maximum upload size")

        mime_type = guess_mime_type(name, content_type)
        path = staging_path(org_id, name, now)
        await self.storage.upload_file(content, path, content_type=mime_type)

        try:
            upload = await self.repository.create(
                org_id=org_id,
                uploaded_by=user_id,
                file_name=name,
                file_path=path,
                file_size=len(content),
                mime_type=mime_type,
                state="pending",
                ocr_status="pending",
            )
            await self.session.commit()
        except SQLAlchemyError:
            await self.session.rollback()
            LOGGER.error(f"Could not register upload {name}, removing stored file", exc_info=True)
            try:
                await self.storage.remove_files([path])
            except AppError as cleanup_error:
                LOGGER.error(f"Orphaned staging file {path}: {cleanup_error}")
            raise

        LOGGER.info(
            f"Staged upload {name}",
            extra={"upload_id": str(upload.id), "org_id": str(org_id), "file_path": path},
        )
        return upload

    async def create_uploads(
        self,
        org_id: UUID,
        user_id: Optional[UUID],
        files: List[Dict[str, Any]],
    ) -> Dict[str, Any]:
        """Stage several files; one failing file does not stop the others.

        Args:
            files: Dicts with ``file_name``, ``content`` and ``content_type``
        """
        uploaded: List[StagingUpload] = []
        failed: List[Dict[str, str]] = []
        for item in files:
            try:
                uploaded.append(
                    await self.create_upload(
                        org_id, user_id, item["file_name"], item["content"], item.get("content_type")
                    )
                )
            except (AppError, SQLAlchemyError) as e:
                LOGGER.error(f"Failed to stage {item.get('file_name')}: {e}")
                failed.append({"file_name": item.get("file_name"), "reason": str(e)})

        return {"uploads": uploaded, "failed_uploads": failed}

    async def get_upload(self, org_id: UUID, upload_id: UUID) -> StagingUpload:
        upload = await self.repository.get_in_org(org_id, upload_id)
        if upload is None:
            raise UploadNotFoundError(f"Staged upload {upload_id} not found")
        return upload

    async def list_uploads(
        self,
        org_id: UUID,
        state: Optional[str] = None,
        ocr_status: Optional[str] = None,
        search: Optional[str] = None,
        ready_only: bool = False,
        limit: int = 100,
        offset: int = 0,
    ) -> List[StagingUpload]:
        uploads = await self.repository.list_filtered(
            org_id, state=state, ocr_status=ocr_status, search=search, skip=offset, limit=limit
        )
        if ready_only:
            uploads = [upload for upload in uploads if is_ready_for_batch(upload)]
        return uploads

    async def count_pending(self, org_id: UUID) -> int:
        return await self.repository.count_pending(org_id)

    async def get_download_url(self, org_id: UUID, upload_id: UUID) -> Dict[str, Any]:
        """Signed URL so an operator can look at the file while reviewing OCR."""
        upload = await self.get_upload(org_id, upload_id)
        url = await self.storage.create_download_url(upload.file_path)
        return {"upload_id": upload.id, "file_name": upload.file_name, "url": url}

    async def request_reprocess(self, org_id: UUID, upload_id: UUID) -> StagingUpload:
        """Flag the upload for a fresh OCR pass. The next result overwrites the previous one."""
        upload = await self.get_upload(org_id, upload_id)
        if upload.state != "pending":
            raise InvalidStateTransitionError(
                f"Upload {upload.file_name} is already {upload.state} and cannot be reprocessed"
            )
        await self.repository.update(upload, ocr_status="processing", ocr_error=None)
        await self.session.commit()
        return upload

    async def delete_upload(self, org_id: UUID, upload_id: UUID, actor_id: Optional[UUID] = None) -> None:
        """Remove a pending upload: backing file first, then the row."""
        upload = await self.get_upload(org_id, upload_id)
        if upload.state != "pending":
            raise InvalidStateTransitionError(
                f"Upload {upload.file_name} is already {upload.state} and cannot be removed"
            )

        file_name, file_path = upload.file_name, upload.file_path
        await self.storage.remove_files([file_path])
        await self.repository.delete(upload)
        await self.session.commit()

        self.audit.record(
            "staging_upload.removed",
            upload_id=upload_id,
            file_name=file_name,
            actor_id=actor_id,
        )

    @staticmethod
    def serialize(upload: StagingUpload) -> Dict[str, Any]:
        return {
            "id": upload.id,
            "file_name": upload.file_name,
            "file_path": upload.file_path,
            "file_size": upload.file_size,
            "mime_type": upload.mime_type,
            "state": upload.state,
            "ocr_status": upload.ocr_status,
            "ocr_data": upload.ocr_data,
            "ocr_error": upload.ocr_error,
            "document_type": upload.document_type,
            "client_id": upload.client_id,
            "obligation_id": upload.obligation_id,
            "competence": upload.competence,
            "amount": upload.amount,
            "due_at": upload.due_at,
            "uploaded_by": upload.uploaded_by,
            "created_at": upload.created_at,
            "ready_for_batch": is_ready_for_batch(upload),
        }

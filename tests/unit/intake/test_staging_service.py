from datetime import datetime, timezone
from uuid import uuid4
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from app.core.exceptions import InvalidStateTransitionError, StorageError, UploadNotFoundError, ValidationError
from app.database.models import StagingUpload
from app.services.intake.staging_service import (
    StagingUploadService,
    is_ready_for_batch,
    sanitize_file_name,
    staging_path,
)

NOW = datetime(2025, 3, 10, 15, tzinfo=timezone.utc)


@pytest.fixture
def service(db_session, fake_storage):
    return StagingUploadService(db_session, storage=fake_storage, audit=MagicMock())


async def count_uploads(session) -> int:
    return (await session.execute(select(func.count()).select_from(StagingUpload))).scalar_one()


def test_staging_path_uses_epoch_millis(org_id):
    assert staging_path(org_id, "darf.pdf", NOW) == f"{org_id}/staging/{int(NOW.timestamp() * 1000)}-darf.pdf"


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("darf.pdf", "darf.pdf"),
        ("C:\\scans\\darf março.pdf", "darf março.pdf"),
        ("../../etc/passwd", "passwd"),
        ("guia#1?.pdf", "guia_1_.pdf"),
    ],
)
def test_sanitize_file_name(raw, expected):
    assert sanitize_file_name(raw) == expected


def test_sanitize_rejects_empty_name():
    with pytest.raises(ValidationError):
        sanitize_file_name("  ")


@pytest.mark.asyncio
async def test_create_upload_registers_pending_row(service, fake_storage, org_id, sample_pdf_content):
    upload = await service.create_upload(org_id, None, "darf.pdf", sample_pdf_content, now=NOW)

    assert upload.state == "pending"
    assert upload.ocr_status == "pending"
    assert upload.mime_type == "application/pdf"
    assert upload.file_size == len(sample_pdf_content)
    assert fake_storage.files[upload.file_path] == sample_pdf_content


@pytest.mark.asyncio
async def test_empty_file_is_rejected(service, db_session, org_id):
    with pytest.raises(ValidationError):
        await service.create_upload(org_id, None, "darf.pdf", b"")

    assert await count_uploads(db_session) == 0


@pytest.mark.asyncio
async def test_storage_failure_creates_no_row(service, db_session, fake_storage, org_id, sample_pdf_content):
    fake_storage.upload_file = AsyncMock(side_effect=StorageError("Upload failed: bucket offline"))

    with pytest.raises(StorageError):
        await service.create_upload(org_id, None, "darf.pdf", sample_pdf_content)

    assert await count_uploads(db_session) == 0


@pytest.mark.asyncio
async def test_database_failure_removes_stored_file(service, fake_storage, org_id, sample_pdf_content):
    service.repository.create = AsyncMock(side_effect=SQLAlchemyError("insert failed"))

    with pytest.raises(SQLAlchemyError):
        await service.create_upload(org_id, None, "darf.pdf", sample_pdf_content, now=NOW)

    assert fake_storage.files == {}


@pytest.mark.asyncio
async def test_create_uploads_reports_failures_per_file(service, org_id, sample_pdf_content):
    result = await service.create_uploads(
        org_id,
        None,
        [
            {"file_name": "darf.pdf", "content": sample_pdf_content, "content_type": "application/pdf"},
            {"file_name": "vazio.pdf", "content": b"", "content_type": "application/pdf"},
        ],
    )

    assert [upload.file_name for upload in result["uploads"]] == ["darf.pdf"]
    assert result["failed_uploads"][0]["file_name"] == "vazio.pdf"


@pytest.mark.asyncio
async def test_upload_from_other_org_is_not_found(service, seed, fake_storage):
    upload = await seed.upload(fake_storage)

    with pytest.raises(UploadNotFoundError):
        await service.get_upload(uuid4(), upload.id)


@pytest.mark.asyncio
async def test_delete_pending_upload(service, db_session, seed, fake_storage, org_id):
    upload = await seed.upload(fake_storage)

    await service.delete_upload(org_id, upload.id)

    assert fake_storage.files == {}
    assert await count_uploads(db_session) == 0
    service.audit.record.assert_called_once()


@pytest.mark.asyncio
async def test_classified_upload_cannot_be_deleted_or_reprocessed(service, seed, fake_storage, org_id):
    upload = await seed.upload(fake_storage, state="classified", ocr_status="success")

    with pytest.raises(InvalidStateTransitionError):
        await service.delete_upload(org_id, upload.id)
    with pytest.raises(InvalidStateTransitionError):
        await service.request_reprocess(org_id, upload.id)

    assert upload.file_path in fake_storage.files


@pytest.mark.asyncio
async def test_request_reprocess_marks_processing(service, seed, org_id):
    upload = await seed.upload(ocr_status="error", ocr_error="rate limited")

    updated = await service.request_reprocess(org_id, upload.id)

    assert updated.ocr_status == "processing"
    assert updated.ocr_error is None


@pytest.mark.asyncio
async def test_ready_only_listing_and_pending_count(service, seed, org_id):
    client = await seed.client()
    obligation = await seed.obligation()
    ready = await seed.upload(
        file_name="pronto.pdf",
        ocr_status="success",
        client_id=client.id,
        obligation_id=obligation.id,
        competence="03/2025",
    )
    await seed.upload(file_name="revisar.pdf", ocr_status="needs_review", obligation_id=obligation.id)
    await seed.upload(file_name="feito.pdf", state="classified", ocr_status="success")

    listed = await service.list_uploads(org_id, state="pending", ready_only=True)

    assert [upload.id for upload in listed] == [ready.id]
    assert await service.count_pending(org_id) == 2


def test_processing_upload_is_not_ready():
    upload = MagicMock(
        state="pending", ocr_status="processing", client_id="c", obligation_id="o", competence="03/2025"
    )

    assert not is_ready_for_batch(upload)


@pytest.mark.asyncio
async def test_unsupported_extension_is_rejected(service, fake_storage, org_id):
    with pytest.raises(ValidationError):
        await service.create_upload(org_id, None, "planilha.xlsx", b"PK\x03\x04")

    assert fake_storage.files == {}


@pytest.mark.asyncio
async def test_download_url_is_signed_for_staged_path(service, seed, fake_storage, org_id):
    upload = await seed.upload(fake_storage)

    data = await service.get_download_url(org_id, upload.id)

    assert data["file_name"] == "darf.pdf"
    assert data["url"].startswith("https://test.supabase.co/storage/v1/object/sign/documents/")
    assert upload.file_path in data["url"]
    with pytest.raises(UploadNotFoundError):
        await service.get_download_url(uuid4(), upload.id)

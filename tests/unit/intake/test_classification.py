import re
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from app.core.exceptions import (
    ClientNotFoundError,
    DatabaseError,
    DuplicateFileNameError,
    DuplicateFileNameExhaustedError,
    InvalidStateTransitionError,
    ValidationError,
)
from app.database.models import DeliveryQueueItem, Document
from app.services.delivery.delivery_queue_service import DeliveryQueueService
from app.services.intake.classification_service import ClassificationService, collision_safe_name

NOW = datetime(2025, 3, 10, 15, tzinfo=timezone.utc)


@pytest.fixture
def audit():
    return MagicMock()


@pytest.fixture
def service(db_session, fake_storage, audit):
    delivery = DeliveryQueueService(db_session, sender=MagicMock(), audit=audit)
    return ClassificationService(db_session, storage=fake_storage, delivery=delivery, audit=audit)


@pytest_asyncio.fixture
async def directory(seed):
    client = await seed.client()
    obligation = await seed.obligation()
    return client, obligation


async def ready_upload(seed, storage, client, obligation, file_name="darf.pdf", **kwargs):
    kwargs.setdefault("ocr_status", "success")
    kwargs.setdefault("competence", "03/2025")
    return await seed.upload(
        storage, file_name=file_name, client_id=client.id, obligation_id=obligation.id, **kwargs
    )


def test_collision_safe_name_keeps_extension():
    assert collision_safe_name("darf.pdf", stamp=123) == "darf_123.pdf"
    assert collision_safe_name("LEIAME", stamp=7) == "LEIAME_7"


@pytest.mark.asyncio
async def test_classify_single_promotes_and_completes(db_session, seed, fake_storage, service, org_id, audit):
    client = await seed.client()
    obligation = await seed.obligation()
    instance = await seed.instance(client, obligation)
    upload = await seed.upload(fake_storage)
    actor = uuid4()

    result = await service.classify_single(
        org_id, actor, upload.id, client.id, obligation.id, "03/2025", amount=Decimal("150.00"), now=NOW
    )

    document = (await db_session.execute(select(Document))).scalar_one()
    assert result.document_id == document.id
    assert result.file_path == f"{org_id}/{client.id}/darf.pdf"
    assert result.renamed is False
    assert result.completed_instance_id == instance.id
    assert result.delivery_queued is True
    assert document.source_upload_id == upload.id
    assert document.delivered_by == actor
    assert document.amount == Decimal("150.00")
    assert result.file_path in fake_storage.files
    assert upload.file_path not in fake_storage.files

    await db_session.refresh(upload)
    await db_session.refresh(instance)
    assert upload.state == "classified"
    assert instance.status == "on_time_done"
    queued = (await db_session.execute(select(DeliveryQueueItem))).scalar_one()
    assert queued.document_id == document.id
    events = [call.args[0] for call in audit.record.call_args_list]
    assert "document.promoted" in events
    assert "obligation_instance.completed" in events


@pytest.mark.asyncio
async def test_existing_destination_is_renamed(seed, fake_storage, service, org_id, directory):
    client, obligation = directory
    taken = f"{org_id}/{client.id}/darf.pdf"
    fake_storage.files[taken] = b"older"
    upload = await seed.upload(fake_storage)

    result = await service.classify_single(org_id, None, upload.id, client.id, obligation.id, "03/2025", now=NOW)

    assert result.renamed is True
    assert result.file_name.startswith("darf_")
    assert result.file_name.endswith(".pdf")
    assert fake_storage.files[taken] == b"older"
    assert result.file_path in fake_storage.files


@pytest.mark.asyncio
async def test_collisions_exhausted(db_session, seed, fake_storage, service, org_id, directory):
    client, obligation = directory
    upload = await seed.upload(fake_storage)
    fake_storage.file_exists = AsyncMock(return_value=True)

    with pytest.raises(DuplicateFileNameExhaustedError):
        await service.classify_single(org_id, None, upload.id, client.id, obligation.id, "03/2025", now=NOW)

    await db_session.refresh(upload)
    assert upload.state == "pending"
    assert upload.file_path in fake_storage.files


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "competence,amount",
    [("2025-03", None), ("2025-W10", None), ("03/2025", Decimal("-1.00")), ("", None)],
)
async def test_invalid_input_writes_nothing(db_session, seed, fake_storage, service, org_id, directory, competence, amount):
    client, obligation = directory
    upload = await seed.upload(fake_storage)

    with pytest.raises(ValidationError):
        await service.classify_single(
            org_id, None, upload.id, client.id, obligation.id, competence, amount=amount, now=NOW
        )

    assert fake_storage.moves == []
    assert (await db_session.execute(select(Document))).first() is None


@pytest.mark.asyncio
async def test_inactive_client_is_rejected(seed, fake_storage, service, org_id):
    client = await seed.client(active=False)
    obligation = await seed.obligation()
    upload = await seed.upload(fake_storage)

    with pytest.raises(ClientNotFoundError):
        await service.classify_single(org_id, None, upload.id, client.id, obligation.id, "03/2025", now=NOW)


@pytest.mark.asyncio
async def test_already_classified_upload(seed, fake_storage, service, org_id, directory):
    client, obligation = directory
    upload = await seed.upload(fake_storage, state="classified")

    with pytest.raises(InvalidStateTransitionError):
        await service.classify_single(org_id, None, upload.id, client.id, obligation.id, "03/2025", now=NOW)


@pytest.mark.asyncio
async def test_database_failure_moves_file_back(db_session, seed, fake_storage, service, org_id, directory):
    client, obligation = directory
    upload = await seed.upload(fake_storage)
    source = upload.file_path
    service.documents.create = AsyncMock(side_effect=SQLAlchemyError("insert failed"))

    with pytest.raises(DatabaseError):
        await service.classify_single(org_id, None, upload.id, client.id, obligation.id, "03/2025", now=NOW)

    assert source in fake_storage.files
    assert f"{org_id}/{client.id}/darf.pdf" not in fake_storage.files
    await db_session.refresh(upload)
    assert upload.state == "pending"


@pytest.mark.asyncio
async def test_enqueue_failure_keeps_promotion(db_session, seed, fake_storage, service, org_id, directory, audit):
    client, obligation = directory
    upload = await seed.upload(fake_storage)
    service.delivery.enqueue = AsyncMock(side_effect=SQLAlchemyError("queue table locked"))

    result = await service.classify_single(org_id, None, upload.id, client.id, obligation.id, "03/2025", now=NOW)

    assert result.delivery_queued is False
    assert (await db_session.execute(select(Document))).scalar_one().id == result.document_id
    events = [call.args[0] for call in audit.record.call_args_list]
    assert "delivery.enqueue_failed" in events


@pytest.mark.asyncio
async def test_batch_continues_after_storage_failure(db_session, seed, fake_storage, service, org_id, directory):
    client, obligation = directory
    uploads = [
        await ready_upload(seed, fake_storage, client, obligation, file_name=f"darf_{i}.pdf")
        for i in range(1, 6)
    ]
    fake_storage.failing_moves.add(uploads[2].file_path)

    summary = await service.classify_batch(org_id, uuid4(), [u.id for u in uploads], now=NOW)

    assert summary.success_count == 4
    assert summary.error_count == 1
    assert summary.failed_file_names == ["darf_3.pdf"]
    assert summary.failures[0].code == "storage_error"
    assert [doc.file_name for doc in summary.documents] == ["darf_1.pdf", "darf_2.pdf", "darf_4.pdf", "darf_5.pdf"]
    documents = (await db_session.execute(select(Document))).scalars().all()
    assert len(documents) == 4

    failed = uploads[2]
    await db_session.refresh(failed)
    assert failed.state == "pending"
    assert failed.file_path in fake_storage.files


@pytest.mark.asyncio
async def test_batch_skips_unready_and_reports_unknown_ids(seed, fake_storage, service, org_id, directory):
    client, obligation = directory
    ready = await ready_upload(seed, fake_storage, client, obligation)
    review = await seed.upload(fake_storage, file_name="revisar.pdf", ocr_status="needs_review")
    missing = uuid4()

    summary = await service.classify_batch(org_id, None, [ready.id, review.id, missing, ready.id], now=NOW)

    assert summary.success_count == 1
    assert summary.skipped_file_names == ["revisar.pdf"]
    assert summary.failed_file_names == [str(missing)]
    assert summary.failures[0].code == "upload_not_found"
    assert summary.to_dict()["documents"][0]["file_name"] == "darf.pdf"


@pytest.mark.asyncio
async def test_name_taken_during_move_retries_with_new_name(db_session, seed, fake_storage, service, org_id, directory):
    client, obligation = directory
    upload = await seed.upload(fake_storage)
    fake_storage.file_exists = AsyncMock(return_value=False)
    real_move = fake_storage.move_file
    destinations = []

    async def move_racing_another_writer(source, destination):
        destinations.append(destination)
        if len(destinations) == 1:
            raise DuplicateFileNameError(f"File already exists: {destination}")
        await real_move(source, destination)

    fake_storage.move_file = move_racing_another_writer

    result = await service.classify_single(org_id, None, upload.id, client.id, obligation.id, "03/2025", now=NOW)

    assert destinations[0] == f"{org_id}/{client.id}/darf.pdf"
    assert destinations[1] == result.file_path
    assert result.renamed is True
    assert re.fullmatch(r"darf_\d+\.pdf", result.file_name)
    assert result.file_path in fake_storage.files
    document = (await db_session.execute(select(Document))).scalar_one()
    assert document.file_name == result.file_name

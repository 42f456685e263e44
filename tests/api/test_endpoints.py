from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

from app.api.dependencies import (
    get_classification_service,
    get_delivery_service,
    get_instance_generator,
    get_instance_service,
    get_staging_service,
)
from app.core.exceptions import (
    APIClientError,
    InstanceNotFoundError,
    InvalidStateTransitionError,
    ValidationError,
)
from app.main import app
from app.services.intake.classification_service import BatchClassificationSummary, BatchFailure

ORG_ID = str(uuid4())
HEADERS = {"X-Org-ID": ORG_ID, "X-User-ID": str(uuid4())}


def override(dependency, service):
    app.dependency_overrides[dependency] = lambda: service
    return service


def test_root(test_client):
    response = test_client.get("/")

    assert response.status_code == 200
    assert response.json()["message"] == "Server is running"


def test_health_reports_database(test_client):
    with patch("app.api.v1.endpoints.health.db_client.health_check", new_callable=AsyncMock) as health:
        health.return_value = {"status": "unhealthy"}

        response = test_client.get("/api/v1/health")

    assert response.status_code == 200
    assert response.json()["status"] == "degraded"


def test_missing_org_header_is_unauthorized(test_client):
    override(get_instance_service, MagicMock())

    response = test_client.get("/api/v1/instances")

    assert response.status_code == 401
    assert response.json()["detail"]["detail"] == "X-Org-ID header is required"


def test_malformed_org_header_is_unauthorized(test_client):
    override(get_instance_service, MagicMock())

    response = test_client.get("/api/v1/instances", headers={"X-Org-ID": "not-a-uuid"})

    assert response.status_code == 401


def test_list_instances_is_scoped_to_header_org(test_client):
    service = override(get_instance_service, MagicMock())
    service.list_instances = AsyncMock(return_value=[{"competence": "03/2025", "status": "overdue"}])

    response = test_client.get("/api/v1/instances?status=overdue", headers=HEADERS)

    assert response.status_code == 200
    body = response.json()
    assert body["data"]["items"] == [{"competence": "03/2025", "status": "overdue"}]
    assert str(service.list_instances.call_args.args[0]) == ORG_ID
    assert service.list_instances.call_args.kwargs["status"] == "overdue"


def test_generate_without_body(test_client):
    generator = override(get_instance_generator, MagicMock())
    generator.generate = AsyncMock(return_value={"instances_created": 3, "skipped_existing": 0})

    response = test_client.post("/api/v1/instances/generate", headers=HEADERS)

    assert response.status_code == 200
    assert response.json()["message"] == "Created 3 instances"
    assert generator.generate.call_args.kwargs["target_competence"] is None


def test_short_notes_map_to_422(test_client):
    service = override(get_instance_service, MagicMock())
    service.complete_instance = AsyncMock(
        side_effect=ValidationError("Completion notes must have at least 10 characters")
    )

    response = test_client.post(
        f"/api/v1/instances/{uuid4()}/complete", json={"notes": "ok"}, headers=HEADERS
    )

    assert response.status_code == 422
    assert response.json()["detail"]["code"] == "validation_error"


def test_unknown_instance_maps_to_404(test_client):
    service = override(get_instance_service, MagicMock())
    service.unmark_instance = AsyncMock(side_effect=InstanceNotFoundError("Obligation instance not found"))

    response = test_client.post(f"/api/v1/instances/{uuid4()}/unmark", headers=HEADERS)

    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "instance_not_found"


def test_invalid_transition_maps_to_409(test_client):
    service = override(get_staging_service, MagicMock())
    service.delete_upload = AsyncMock(side_effect=InvalidStateTransitionError("already classified"))

    response = test_client.delete(f"/api/v1/staging/uploads/{uuid4()}", headers=HEADERS)

    assert response.status_code == 409


def test_upstream_failure_maps_to_502(test_client):
    service = override(get_delivery_service, MagicMock())
    service.process_pending = AsyncMock(side_effect=APIClientError("Email provider unreachable"))

    response = test_client.post("/api/v1/delivery/queue/process", headers=HEADERS)

    assert response.status_code == 502


def test_upload_files_starts_ocr(test_client, sample_pdf_content):
    upload = SimpleNamespace(id=uuid4(), file_name="darf.pdf")
    service = override(get_staging_service, MagicMock())
    service.create_uploads = AsyncMock(
        return_value={"uploads": [upload], "failed_uploads": [{"file_name": "vazio.pdf", "reason": "empty"}]}
    )
    service.serialize = lambda item: {"id": str(item.id), "file_name": item.file_name}

    with patch("app.api.v1.endpoints.staging.trigger_ocr", new_callable=AsyncMock) as trigger:
        response = test_client.post(
            "/api/v1/staging/uploads",
            files=[
                ("files", ("darf.pdf", sample_pdf_content, "application/pdf")),
                ("files", ("vazio.pdf", b"", "application/pdf")),
            ],
            headers=HEADERS,
        )

    assert response.status_code == 201
    body = response.json()
    assert body["message"] == "Staged 1 of 2 files"
    assert body["data"]["failed_uploads"][0]["file_name"] == "vazio.pdf"
    assert trigger.call_args.args[0] == [upload.id]
    items = service.create_uploads.call_args.args[2]
    assert items[0]["content"] == sample_pdf_content


def test_batch_with_failures_reports_status_false(test_client):
    failed_id = uuid4()
    service = override(get_classification_service, MagicMock())
    service.classify_batch = AsyncMock(
        return_value=BatchClassificationSummary(
            success_count=4,
            error_count=1,
            failed_file_names=["darf_3.pdf"],
            failures=[BatchFailure(failed_id, "darf_3.pdf", "storage_error", "Move failed")],
        )
    )

    response = test_client.post(
        "/api/v1/classification/batch", json={"upload_ids": [str(uuid4()), str(failed_id)]}, headers=HEADERS
    )

    assert response.status_code == 200
    body = response.json()
    assert body["status"] is False
    assert body["data"]["failed_file_names"] == ["darf_3.pdf"]
    assert body["data"]["failures"][0]["upload_id"] == str(failed_id)


def test_empty_batch_is_rejected(test_client):
    override(get_classification_service, MagicMock())

    response = test_client.post("/api/v1/classification/batch", json={"upload_ids": []}, headers=HEADERS)

    assert response.status_code == 422


def test_webhook_needs_no_org_header(test_client):
    service = override(get_delivery_service, MagicMock())
    service.record_delivery_event = AsyncMock(
        return_value={"event_type": "delivered", "email_id": "email-1", "document_id": None, "delivery_state": None}
    )

    response = test_client.post(
        "/api/v1/delivery/webhook",
        json={"type": "email.delivered", "data": {"email_id": "email-1", "to": ["ana@example.com"]}},
    )

    assert response.status_code == 200
    args = service.record_delivery_event.call_args
    assert args.args == ("email.delivered", "email-1")
    assert args.kwargs["recipient"] == "ana@example.com"


def test_staged_file_download_url(test_client):
    service = override(get_staging_service, MagicMock())
    upload_id = uuid4()
    service.get_download_url = AsyncMock(
        return_value={"upload_id": str(upload_id), "file_name": "darf.pdf", "url": "https://signed.example/darf.pdf"}
    )

    response = test_client.get(f"/api/v1/staging/uploads/{upload_id}/download-url", headers=HEADERS)

    assert response.status_code == 200
    assert response.json()["data"]["url"] == "https://signed.example/darf.pdf"
    org_arg, upload_arg = service.get_download_url.call_args.args
    assert str(org_arg) == ORG_ID
    assert upload_arg == upload_id

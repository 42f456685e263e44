"""Staging area endpoints: upload, inspect, reprocess and remove staged files."""

from typing import Annotated, List, Optional
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, File, Query, Request, UploadFile, status

from app.api.dependencies import RequestContext, get_request_context, get_staging_service
from app.schemas.common import ApiResponse
from app.services.intake.ocr_trigger import trigger_ocr
from app.services.intake.staging_service import StagingUploadService
from app.utils.logging import get_logger
from app.utils.responses import create_api_response

LOGGER = get_logger(__name__)

router = APIRouter()


@router.post(
    "/uploads",
    response_model=ApiResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Upload one or multiple files to staging",
    operation_id="upload_staging_files",
)
async def upload_files(
    request: Request,
    background_tasks: BackgroundTasks,
    context: Annotated[RequestContext, Depends(get_request_context)],
    service: Annotated[StagingUploadService, Depends(get_staging_service)],
    files: List[UploadFile] = File(..., description="Payment slips (PDF or image)"),
) -> ApiResponse:
    """Stage files and start OCR for each one in the background."""
    items = [
        {"file_name": upload.filename, "content": await upload.read(), "content_type": upload.content_type}
        for upload in files
    ]
    result = await service.create_uploads(context.org_id, context.user_id, items)
    uploads = result["uploads"]
    await trigger_ocr([upload.id for upload in uploads], background_tasks)

    return create_api_response(
        data={
            "uploads": [service.serialize(upload) for upload in uploads],
            "failed_uploads": result["failed_uploads"],
        },
        message=f"Staged {len(uploads)} of {len(files)} files",
        request=request,
    )


@router.get(
    "/uploads",
    response_model=ApiResponse,
    summary="List staged uploads",
    operation_id="list_staging_uploads",
)
async def list_uploads(
    request: Request,
    context: Annotated[RequestContext, Depends(get_request_context)],
    service: Annotated[StagingUploadService, Depends(get_staging_service)],
    state: Optional[str] = Query("pending"),
    ocr_status: Optional[str] = Query(None),
    search: Optional[str] = Query(None, description="File name fragment"),
    ready_only: bool = Query(False, description="Only uploads ready for batch classification"),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
) -> ApiResponse:
    uploads = await service.list_uploads(
        context.org_id,
        state=state,
        ocr_status=ocr_status,
        search=search,
        ready_only=ready_only,
        limit=limit,
        offset=offset,
    )
    return create_api_response(
        data=[service.serialize(upload) for upload in uploads],
        message="Uploads retrieved successfully",
        request=request,
    )


@router.get(
    "/uploads/count",
    response_model=ApiResponse,
    summary="Count uploads awaiting classification",
    operation_id="count_pending_staging_uploads",
)
async def count_pending(
    request: Request,
    context: Annotated[RequestContext, Depends(get_request_context)],
    service: Annotated[StagingUploadService, Depends(get_staging_service)],
) -> ApiResponse:
    count = await service.count_pending(context.org_id)
    return create_api_response(data={"pending": count}, message="Pending uploads counted", request=request)


@router.get(
    "/uploads/{upload_id}",
    response_model=ApiResponse,
    summary="Get a staged upload",
    operation_id="get_staging_upload",
)
async def get_upload(
    request: Request,
    upload_id: UUID,
    context: Annotated[RequestContext, Depends(get_request_context)],
    service: Annotated[StagingUploadService, Depends(get_staging_service)],
) -> ApiResponse:
    upload = await service.get_upload(context.org_id, upload_id)
    return create_api_response(data=service.serialize(upload), message="Upload retrieved", request=request)


@router.get(
    "/uploads/{upload_id}/download-url",
    response_model=ApiResponse,
    summary="Signed download URL for a staged file",
    operation_id="get_staging_upload_download_url",
)
async def get_upload_download_url(
    request: Request,
    upload_id: UUID,
    context: Annotated[RequestContext, Depends(get_request_context)],
    service: Annotated[StagingUploadService, Depends(get_staging_service)],
) -> ApiResponse:
    data = await service.get_download_url(context.org_id, upload_id)
    return create_api_response(data=data, message="Download URL created", request=request)


@router.post(
    "/uploads/{upload_id}/reprocess",
    response_model=ApiResponse,
    summary="Run OCR again for a staged upload",
    operation_id="reprocess_staging_upload",
)
async def reprocess_upload(
    request: Request,
    upload_id: UUID,
    background_tasks: BackgroundTasks,
    context: Annotated[RequestContext, Depends(get_request_context)],
    service: Annotated[StagingUploadService, Depends(get_staging_service)],
) -> ApiResponse:
    upload = await service.request_reprocess(context.org_id, upload_id)
    await trigger_ocr([upload.id], background_tasks)
    return create_api_response(data=service.serialize(upload), message="Reprocessing started", request=request)


@router.delete(
    "/uploads/{upload_id}",
    response_model=ApiResponse,
    summary="Remove a staged upload",
    operation_id="delete_staging_upload",
)
async def delete_upload(
    request: Request,
    upload_id: UUID,
    context: Annotated[RequestContext, Depends(get_request_context)],
    service: Annotated[StagingUploadService, Depends(get_staging_service)],
) -> ApiResponse:
    await service.delete_upload(context.org_id, upload_id, actor_id=context.user_id)
    return create_api_response(data=None, message="Upload removed", request=request)

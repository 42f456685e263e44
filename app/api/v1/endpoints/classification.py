"""Classification endpoints: promote staged uploads into client documents."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request

from app.api.dependencies import RequestContext, get_classification_service, get_request_context
from app.schemas.common import ApiResponse
from app.schemas.intake import BatchClassifyRequest, ClassifyRequest
from app.services.intake.classification_service import ClassificationService
from app.utils.responses import create_api_response

router = APIRouter()


@router.post(
    "/single",
    response_model=ApiResponse,
    summary="Classify one staged upload",
    operation_id="classify_single_upload",
)
async def classify_single(
    request: Request,
    body: ClassifyRequest,
    context: Annotated[RequestContext, Depends(get_request_context)],
    service: Annotated[ClassificationService, Depends(get_classification_service)],
) -> ApiResponse:
    result = await service.classify_single(
        context.org_id,
        context.user_id,
        body.upload_id,
        client_id=body.client_id,
        obligation_id=body.obligation_id,
        competence=body.competence,
        amount=body.amount,
        due_at=body.due_at,
    )
    return create_api_response(data=result, message=f"Document {result.file_name} delivered", request=request)


@router.post(
    "/batch",
    response_model=ApiResponse,
    summary="Classify every ready upload of a selection",
    operation_id="classify_upload_batch",
)
async def classify_batch(
    request: Request,
    body: BatchClassifyRequest,
    context: Annotated[RequestContext, Depends(get_request_context)],
    service: Annotated[ClassificationService, Depends(get_classification_service)],
) -> ApiResponse:
    """Per-item isolated; the response lists every failure with its reason."""
    summary = await service.classify_batch(context.org_id, context.user_id, body.upload_ids)
    return create_api_response(
        data=summary,
        message=f"{summary.success_count} classified, {summary.error_count} failed",
        status=summary.error_count == 0,
        request=request,
    )

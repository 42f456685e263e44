"""Delivery queue endpoints and the email provider webhook."""

from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request

from app.api.dependencies import RequestContext, get_delivery_service, get_request_context
from app.schemas.common import ApiResponse
from app.schemas.delivery import DeliveryWebhookEvent
from app.services.delivery.delivery_queue_service import DeliveryQueueService
from app.utils.responses import create_api_response

router = APIRouter()


@router.get(
    "/queue",
    response_model=ApiResponse,
    summary="List queued notifications",
    operation_id="list_delivery_queue",
)
async def list_queue(
    request: Request,
    context: Annotated[RequestContext, Depends(get_request_context)],
    service: Annotated[DeliveryQueueService, Depends(get_delivery_service)],
    status: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
) -> ApiResponse:
    items = await service.list_items(context.org_id, status=status, page=page, page_size=page_size)
    return create_api_response(
        data={"items": [service.serialize(item) for item in items], "stats": await service.stats(context.org_id)},
        message="Queue retrieved successfully",
        request=request,
    )


@router.post(
    "/queue/process",
    response_model=ApiResponse,
    summary="Send due notifications now",
    operation_id="process_delivery_queue",
)
async def process_queue(
    request: Request,
    context: Annotated[RequestContext, Depends(get_request_context)],
    service: Annotated[DeliveryQueueService, Depends(get_delivery_service)],
) -> ApiResponse:
    result = await service.process_pending()
    return create_api_response(data=result, message=f"Processed {result['processed']} items", request=request)


@router.post(
    "/queue/{item_id}/reprocess",
    response_model=ApiResponse,
    summary="Retry a failed notification",
    operation_id="reprocess_delivery_item",
)
async def reprocess_item(
    request: Request,
    item_id: UUID,
    context: Annotated[RequestContext, Depends(get_request_context)],
    service: Annotated[DeliveryQueueService, Depends(get_delivery_service)],
) -> ApiResponse:
    item = await service.reprocess(context.org_id, item_id)
    return create_api_response(data=service.serialize(item), message="Item queued again", request=request)


@router.delete(
    "/queue/{item_id}",
    response_model=ApiResponse,
    summary="Cancel a pending notification",
    operation_id="cancel_delivery_item",
)
async def cancel_item(
    request: Request,
    item_id: UUID,
    context: Annotated[RequestContext, Depends(get_request_context)],
    service: Annotated[DeliveryQueueService, Depends(get_delivery_service)],
) -> ApiResponse:
    await service.cancel(context.org_id, item_id)
    return create_api_response(data=None, message="Item cancelled", request=request)


@router.post(
    "/webhook",
    response_model=ApiResponse,
    summary="Email provider event webhook",
    operation_id="receive_delivery_event",
)
async def receive_event(
    request: Request,
    event: DeliveryWebhookEvent,
    service: Annotated[DeliveryQueueService, Depends(get_delivery_service)],
) -> ApiResponse:
    result = await service.record_delivery_event(
        event.type, event.data.email_id, recipient=event.recipient, payload=event.payload()
    )
    return create_api_response(data=result, message="Event recorded", request=request)

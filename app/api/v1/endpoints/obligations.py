"""Obligation catalog and client link endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status

from app.api.dependencies import RequestContext, get_catalog_service, get_request_context
from app.schemas.common import ApiResponse
from app.schemas.obligations import ClientLinkRequest, ClientLinkUpdateRequest, ObligationCreateRequest
from app.services.obligations.catalog_service import ObligationCatalogService
from app.utils.responses import create_api_response

router = APIRouter()


@router.post(
    "",
    response_model=ApiResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a catalog obligation",
    operation_id="create_obligation",
)
async def create_obligation(
    request: Request,
    body: ObligationCreateRequest,
    context: Annotated[RequestContext, Depends(get_request_context)],
    service: Annotated[ObligationCatalogService, Depends(get_catalog_service)],
) -> ApiResponse:
    obligation = await service.create_obligation(context.org_id, **body.model_dump())
    return create_api_response(
        data=service.serialize_obligation(obligation),
        message="Obligation created",
        request=request,
    )


@router.get(
    "",
    response_model=ApiResponse,
    summary="List catalog obligations",
    operation_id="list_obligations",
)
async def list_obligations(
    request: Request,
    context: Annotated[RequestContext, Depends(get_request_context)],
    service: Annotated[ObligationCatalogService, Depends(get_catalog_service)],
    include_archived: bool = Query(False),
) -> ApiResponse:
    obligations = await service.list_obligations(context.org_id, include_archived=include_archived)
    return create_api_response(
        data=[service.serialize_obligation(obligation) for obligation in obligations],
        message="Obligations retrieved successfully",
        request=request,
    )


@router.post(
    "/{obligation_id}/archive",
    response_model=ApiResponse,
    summary="Archive an obligation",
    operation_id="archive_obligation",
)
async def archive_obligation(
    request: Request,
    obligation_id: UUID,
    context: Annotated[RequestContext, Depends(get_request_context)],
    service: Annotated[ObligationCatalogService, Depends(get_catalog_service)],
) -> ApiResponse:
    """Archived obligations stop generating instances; history is kept."""
    obligation = await service.archive_obligation(context.org_id, obligation_id)
    return create_api_response(
        data=service.serialize_obligation(obligation),
        message="Obligation archived",
        request=request,
    )


@router.post(
    "/{obligation_id}/links",
    response_model=ApiResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Link a client to an obligation",
    operation_id="link_client_obligation",
)
async def link_client(
    request: Request,
    obligation_id: UUID,
    body: ClientLinkRequest,
    context: Annotated[RequestContext, Depends(get_request_context)],
    service: Annotated[ObligationCatalogService, Depends(get_catalog_service)],
) -> ApiResponse:
    link = await service.link_client(
        context.org_id,
        obligation_id,
        body.client_id,
        internal_target_day_override=body.internal_target_day_override,
        legal_due_rule_override=body.legal_due_rule_override,
    )
    return create_api_response(data=service.serialize_link(link), message="Client linked", request=request)


@router.patch(
    "/links/{link_id}",
    response_model=ApiResponse,
    summary="Update a client obligation link",
    operation_id="update_client_obligation_link",
)
async def update_link(
    request: Request,
    link_id: UUID,
    body: ClientLinkUpdateRequest,
    context: Annotated[RequestContext, Depends(get_request_context)],
    service: Annotated[ObligationCatalogService, Depends(get_catalog_service)],
) -> ApiResponse:
    link = await service.update_link(context.org_id, link_id, **body.model_dump(exclude_unset=True))
    return create_api_response(data=service.serialize_link(link), message="Link updated", request=request)

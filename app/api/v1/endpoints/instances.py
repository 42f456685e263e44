"""Obligation instance endpoints."""

from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request

from app.api.dependencies import (
    RequestContext,
    get_instance_generator,
    get_instance_service,
    get_request_context,
)
from app.schemas.common import ApiResponse
from app.schemas.obligations import CompleteInstanceRequest, GenerateInstancesRequest
from app.services.obligations.instance_generator import InstanceGenerator
from app.services.obligations.instance_service import ObligationInstanceService
from app.utils.responses import create_api_response

router = APIRouter()


@router.post(
    "/generate",
    response_model=ApiResponse,
    summary="Generate missing obligation instances",
    operation_id="generate_obligation_instances",
)
async def generate_instances(
    request: Request,
    context: Annotated[RequestContext, Depends(get_request_context)],
    generator: Annotated[InstanceGenerator, Depends(get_instance_generator)],
    body: Optional[GenerateInstancesRequest] = None,
) -> ApiResponse:
    """Safe to call repeatedly; existing instances are skipped."""
    result = await generator.generate(
        target_competence=body.target_competence if body else None, org_id=context.org_id
    )
    return create_api_response(
        data=result,
        message=f"Created {result['instances_created']} instances",
        request=request,
    )


@router.post(
    "/sweep",
    response_model=ApiResponse,
    summary="Persist time-derived statuses",
    operation_id="sweep_obligation_statuses",
)
async def sweep_statuses(
    request: Request,
    context: Annotated[RequestContext, Depends(get_request_context)],
    service: Annotated[ObligationInstanceService, Depends(get_instance_service)],
) -> ApiResponse:
    result = await service.sweep_statuses(org_id=context.org_id)
    return create_api_response(data=result, message="Statuses updated", request=request)


@router.get(
    "",
    response_model=ApiResponse,
    summary="List obligation instances",
    operation_id="list_obligation_instances",
)
async def list_instances(
    request: Request,
    context: Annotated[RequestContext, Depends(get_request_context)],
    service: Annotated[ObligationInstanceService, Depends(get_instance_service)],
    client_id: Optional[UUID] = Query(None),
    obligation_id: Optional[UUID] = Query(None),
    competence: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    limit: int = Query(200, ge=1, le=1000),
    offset: int = Query(0, ge=0),
) -> ApiResponse:
    rows = await service.list_instances(
        context.org_id,
        client_id=client_id,
        obligation_id=obligation_id,
        competence=competence,
        status=status,
        limit=limit,
        offset=offset,
    )
    return create_api_response(data=rows, message="Instances retrieved successfully", request=request)


@router.post(
    "/{instance_id}/complete",
    response_model=ApiResponse,
    summary="Complete an instance manually",
    operation_id="complete_obligation_instance",
)
async def complete_instance(
    request: Request,
    instance_id: UUID,
    body: CompleteInstanceRequest,
    context: Annotated[RequestContext, Depends(get_request_context)],
    service: Annotated[ObligationInstanceService, Depends(get_instance_service)],
) -> ApiResponse:
    row = await service.complete_instance(context.org_id, instance_id, body.notes, actor_id=context.user_id)
    return create_api_response(data=row, message="Instance completed", request=request)


@router.post(
    "/{instance_id}/unmark",
    response_model=ApiResponse,
    summary="Revert a completed instance",
    operation_id="unmark_obligation_instance",
)
async def unmark_instance(
    request: Request,
    instance_id: UUID,
    context: Annotated[RequestContext, Depends(get_request_context)],
    service: Annotated[ObligationInstanceService, Depends(get_instance_service)],
) -> ApiResponse:
    row = await service.unmark_instance(context.org_id, instance_id, actor_id=context.user_id)
    return create_api_response(data=row, message="Instance reopened", request=request)

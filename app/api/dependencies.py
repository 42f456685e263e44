"""Shared FastAPI dependencies: request scope and service factories."""

from dataclasses import dataclass
from typing import Annotated, Optional
from uuid import UUID

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_async_session as get_session
from app.services.delivery.delivery_queue_service import DeliveryQueueService
from app.services.intake.classification_service import ClassificationService
from app.services.intake.staging_service import StagingUploadService
from app.services.obligations.catalog_service import ObligationCatalogService
from app.services.obligations.instance_generator import InstanceGenerator
from app.services.obligations.instance_service import ObligationInstanceService
from app.services.storage_service import StorageService, get_storage_service
from app.utils.logging import get_logger
from app.utils.responses import create_error_detail

LOGGER = get_logger(__name__)


@dataclass
class RequestContext:
    """Organization scope and acting staff member of a request."""

    org_id: UUID
    user_id: Optional[UUID] = None


def _parse_uuid(value: Optional[str], header: str, request: Request) -> Optional[UUID]:
    if value is None:
        return None
    try:
        return UUID(value)
    except ValueError:
        error_detail = create_error_detail(
            title="Invalid Request Scope",
            status=status.HTTP_401_UNAUTHORIZED,
            detail=f"{header} is not a valid UUID",
            request=request,
        )
        raise HTTPException(status_code=401, detail=error_detail.model_dump(mode="json"))


async def get_request_context(
    request: Request,
    x_org_id: Annotated[Optional[str], Header()] = None,
    x_user_id: Annotated[Optional[str], Header()] = None,
) -> RequestContext:
    """Read the organization scope set by the gateway in front of this service."""
    if not x_org_id:
        LOGGER.warning("Request without X-Org-ID header")
        error_detail = create_error_detail(
            title="Missing Request Scope",
            status=status.HTTP_401_UNAUTHORIZED,
            detail="X-Org-ID header is required",
            request=request,
        )
        raise HTTPException(status_code=401, detail=error_detail.model_dump(mode="json"))

    return RequestContext(
        org_id=_parse_uuid(x_org_id, "X-Org-ID", request),
        user_id=_parse_uuid(x_user_id, "X-User-ID", request),
    )


async def get_catalog_service(
    db_session: Annotated[AsyncSession, Depends(get_session)]
) -> ObligationCatalogService:
    return ObligationCatalogService(db_session)


async def get_instance_service(
    db_session: Annotated[AsyncSession, Depends(get_session)]
) -> ObligationInstanceService:
    return ObligationInstanceService(db_session)


async def get_instance_generator(
    db_session: Annotated[AsyncSession, Depends(get_session)]
) -> InstanceGenerator:
    return InstanceGenerator(db_session)


async def get_storage() -> StorageService:
    return get_storage_service()


async def get_staging_service(
    db_session: Annotated[AsyncSession, Depends(get_session)],
    storage: Annotated[StorageService, Depends(get_storage)],
) -> StagingUploadService:
    return StagingUploadService(db_session, storage=storage)


async def get_delivery_service(
    db_session: Annotated[AsyncSession, Depends(get_session)]
) -> DeliveryQueueService:
    return DeliveryQueueService(db_session)


async def get_classification_service(
    db_session: Annotated[AsyncSession, Depends(get_session)],
    storage: Annotated[StorageService, Depends(get_storage)],
    delivery: Annotated[DeliveryQueueService, Depends(get_delivery_service)],
) -> ClassificationService:
    return ClassificationService(db_session, storage=storage, delivery=delivery)

from fastapi import APIRouter

from app.api.v1.endpoints import classification, delivery, health, instances, obligations, staging

api_router = APIRouter()

api_router.include_router(obligations.router, prefix="/obligations", tags=["Obligations"])
api_router.include_router(instances.router, prefix="/instances", tags=["Instances"])
api_router.include_router(staging.router, prefix="/staging", tags=["Staging"])
api_router.include_router(classification.router, prefix="/classification", tags=["Classification"])
api_router.include_router(delivery.router, prefix="/delivery", tags=["Delivery"])
api_router.include_router(health.router, prefix="/health", tags=["Health"])

__all__ = ["api_router"]

"""Response envelope shared by every endpoint."""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class ResponseMeta(BaseModel):
    timestamp: datetime = Field(..., description="Server time the response was built")
    request_id: str = Field(..., description="Correlation id of the request")
    api_version: str = Field(default="v1", description="API version")


class ApiResponse(BaseModel):
    """Standard success envelope."""

    status: bool = Field(..., description="Whether the operation succeeded")
    message: str = Field(..., description="Human-readable outcome")
    data: Dict[str, Any] = Field(default_factory=dict, description="Operation payload")
    meta: ResponseMeta


class ErrorDetail(BaseModel):
    """Problem details (RFC 7807) with the machine-readable error code."""

    title: str
    status: int
    detail: str
    code: Optional[str] = None
    instance: Optional[str] = None
    request_id: Optional[str] = None
    timestamp: datetime

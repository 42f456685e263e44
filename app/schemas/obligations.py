"""Request bodies for the obligation catalog and instance endpoints."""

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class ObligationCreateRequest(BaseModel):
    name: str = Field(..., min_length=1)
    frequency: str = Field(..., description="weekly, monthly or annual")
    internal_target_day: int = Field(..., ge=1, le=31)
    legal_due_rule: Optional[int] = Field(
        default=None, ge=1, le=31, description="Day of the due period; empty means its last day"
    )
    due_period_offset: int = Field(default=0, ge=0)
    fiscal_code: Optional[str] = None
    anchor_month: Optional[int] = Field(default=None, ge=1, le=12)
    description: Optional[str] = None


class ClientLinkRequest(BaseModel):
    client_id: UUID
    internal_target_day_override: Optional[int] = Field(default=None, ge=1, le=31)
    legal_due_rule_override: Optional[int] = Field(default=None, ge=1, le=31)


class ClientLinkUpdateRequest(BaseModel):
    active: Optional[bool] = None
    internal_target_day_override: Optional[int] = Field(default=None, ge=1, le=31)
    legal_due_rule_override: Optional[int] = Field(default=None, ge=1, le=31)


class GenerateInstancesRequest(BaseModel):
    target_competence: Optional[str] = Field(
        default=None, description="MM/YYYY or YYYY-Www; defaults to the current periods"
    )


class CompleteInstanceRequest(BaseModel):
    notes: str = Field(..., description="What was done; at least 10 characters")

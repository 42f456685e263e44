"""Request bodies for classification."""

from datetime import date
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class ClassifyRequest(BaseModel):
    upload_id: UUID
    client_id: UUID
    obligation_id: UUID
    competence: str = Field(..., description="MM/YYYY or YYYY-Www")
    amount: Optional[Decimal] = None
    due_at: Optional[date] = None


class BatchClassifyRequest(BaseModel):
    upload_ids: List[UUID] = Field(..., min_length=1)

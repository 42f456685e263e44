"""Webhook payload sent by the email provider."""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class DeliveryWebhookData(BaseModel):
    email_id: str
    to: Optional[Any] = None


class DeliveryWebhookEvent(BaseModel):
    type: str = Field(..., description="Provider event type, e.g. email.delivered")
    data: DeliveryWebhookData
    created_at: Optional[str] = None

    @property
    def recipient(self) -> Optional[str]:
        to = self.data.to
        if isinstance(to, list):
            return to[0] if to else None
        return to

    def payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")

"""Notification delivery queue."""

from app.services.delivery.delivery_queue_service import DeliveryQueueService, retry_delay_seconds
from app.services.delivery.email_sender import EmailSender, render_document_email

__all__ = ["DeliveryQueueService", "EmailSender", "render_document_email", "retry_delay_seconds"]

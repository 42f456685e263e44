"""Database module for SQLAlchemy models."""

from app.database.models import (
    Client,
    ClientObligation,
    DeliveryEvent,
    DeliveryQueueItem,
    Document,
    Obligation,
    ObligationInstance,
    StagingUpload,
)

__all__ = [
    "Client",
    "ClientObligation",
    "DeliveryEvent",
    "DeliveryQueueItem",
    "Document",
    "Obligation",
    "ObligationInstance",
    "StagingUpload",
]

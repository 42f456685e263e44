"""Repository layer modules."""

from app.repositories.client_repository import ClientRepository
from app.repositories.delivery_repository import DeliveryEventRepository, DeliveryQueueRepository
from app.repositories.document_repository import DocumentRepository
from app.repositories.instance_repository import ObligationInstanceRepository
from app.repositories.obligation_repository import ClientObligationRepository, ObligationRepository
from app.repositories.staging_repository import StagingUploadRepository

__all__ = [
    "ClientRepository",
    "ClientObligationRepository",
    "DeliveryEventRepository",
    "DeliveryQueueRepository",
    "DocumentRepository",
    "ObligationInstanceRepository",
    "ObligationRepository",
    "StagingUploadRepository",
]

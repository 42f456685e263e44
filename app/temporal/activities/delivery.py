"""Delivery queue activity."""

from typing import Dict

from temporalio import activity

from app.core.database import async_session_maker
from app.services.delivery.delivery_queue_service import DeliveryQueueService


@activity.defn
async def process_delivery_queue() -> Dict[str, int]:
    async with async_session_maker() as session:
        result = await DeliveryQueueService(session).process_pending()
    activity.logger.info(f"Delivery queue run: {result}")
    return result

"""Dispatcher that only logs, for dry runs and local development."""

import logging
import uuid

from nudge.scheduling.types import Priority, describe_destination

logger = logging.getLogger(__name__)


class LogDispatcher:
    """Logs each notification instead of delivering it."""

    async def deliver(
        self,
        title: str,
        message: str,
        destination: str,
        priority: Priority,
    ) -> str:
        delivery_id = uuid.uuid4().hex[:12]
        logger.info(
            "notification_logged",
            extra={
                "delivery.id": delivery_id,
                "notification.title": title,
                "notification.message_preview": message[:50],
                "notification.destination": describe_destination(destination),
                "notification.priority": str(priority),
            },
        )
        return delivery_id

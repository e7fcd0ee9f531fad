"""Status publisher for Redis Streams."""

import json
import uuid
from datetime import datetime, timezone
from typing import Any

from fmconnect.domain.status import ConnectionStatus, ValidationError
from fmconnect.events.client import RedisClient
from fmconnect.logger.logger import get_logger
from fmconnect.logger.types import Category, param

# Держим stream коротким: UI читает только последние статусы
STATUS_STREAM_MAXLEN = 1000


class EventPublisher:
    """Publishes connection status events for the UI."""

    def __init__(self, redis_client: RedisClient, stream: str) -> None:
        """
        Initialize EventPublisher.

        Args:
            redis_client: Redis client instance
            stream: Target stream (e.g., "filemaker-status")
        """
        self.redis_client = redis_client
        self.stream = stream
        self.logger = get_logger().with_category(Category.MESSENGER)

    async def publish(self, event_type: str, data: dict[str, Any]) -> str:
        """
        XADD an event in the same shape the subscriber parses.

        Returns:
            Message ID assigned by Redis
        """
        redis = self.redis_client.get_redis()
        message = {
            "event_id": str(uuid.uuid4()),
            "event_type": event_type,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "data": json.dumps(data),
        }
        message_id = await redis.xadd(
            self.stream,
            message,
            maxlen=STATUS_STREAM_MAXLEN,
            approximate=True,
        )
        self.logger.debug(
            "Event published",
            param("stream", self.stream),
            param("event_type", event_type),
        )
        return message_id

    async def publish_status(self, status: ConnectionStatus) -> None:
        """StatusMonitor listener: publish every status replacement."""
        await self.publish("connection_status_changed", status.to_dict())

    async def publish_rejection(self, error: ValidationError) -> None:
        await self.publish(
            "mode_switch_rejected",
            {
                "error_kind": error.kind.value,
                "missing_fields": list(error.missing_fields),
                "message": error.message,
            },
        )

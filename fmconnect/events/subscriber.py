"""Command subscriber for Redis Streams."""

import asyncio
import json
from collections.abc import Awaitable, Callable
from typing import Any

from fmconnect.events.client import RedisClient
from fmconnect.logger.logger import get_logger
from fmconnect.logger.types import Category, param

EventHandlerFn = Callable[[dict[str, Any]], Awaitable[None]]


def parse_event(message_data: dict[str, Any]) -> dict[str, Any]:
    """
    Parse event from a Redis Stream message.

    ``data`` is stored as a JSON string; invalid JSON becomes an empty dict.
    """
    event = {
        "event_id": message_data.get("event_id"),
        "event_type": message_data.get("event_type"),
        "timestamp": message_data.get("timestamp"),
        "requested_by": message_data.get("requested_by"),
    }

    data_json = message_data.get("data", "{}")
    try:
        data = json.loads(data_json)
    except (json.JSONDecodeError, TypeError):
        data = {}
    event["data"] = data if isinstance(data, dict) else {}

    return event


class EventSubscriber:
    """
    Reads UI commands from Redis Streams using consumer groups.

    - Создаёт consumer group при первом запуске
    - Читает только новые сообщения (>)
    - ACK после успешной обработки, при ошибке сообщение остаётся в pending
    """

    def __init__(
        self,
        redis_client: RedisClient,
        consumer_group: str,
        streams: list[str],
    ) -> None:
        """
        Initialize EventSubscriber.

        Args:
            redis_client: Redis client instance
            consumer_group: Consumer group name (e.g., "fmconnect-dev")
            streams: Stream names to read commands from
        """
        self.redis_client = redis_client
        self.consumer_group = consumer_group
        self.streams = streams
        self.consumer_name = f"{consumer_group}-consumer-{id(self)}"
        self._stopped = False
        self.logger = get_logger().with_category(Category.MESSENGER)

    async def ensure_groups(self) -> None:
        """Create consumer groups for all streams (BUSYGROUP is fine)."""
        redis = self.redis_client.get_redis()
        for stream in self.streams:
            try:
                await redis.xgroup_create(
                    name=stream,
                    groupname=self.consumer_group,
                    id="$",  # Только команды, пришедшие после создания группы
                    mkstream=True,
                )
                self.logger.info(
                    "Created consumer group",
                    param("group", self.consumer_group),
                    param("stream", stream),
                )
            except Exception as e:
                if "BUSYGROUP" not in str(e):
                    self.logger.warn(
                        "Failed to create consumer group",
                        param("stream", stream),
                        param("error", str(e)),
                    )

    async def consume(self, handler: EventHandlerFn) -> None:
        """
        Consume commands until stopped.

        Args:
            handler: Async function to handle each event
        """
        redis = self.redis_client.get_redis()
        await self.ensure_groups()

        self.logger.info(
            "Starting command consumer",
            param("group", self.consumer_group),
            param("streams", self.streams),
        )

        while not self._stopped:
            try:
                messages = await redis.xreadgroup(
                    groupname=self.consumer_group,
                    consumername=self.consumer_name,
                    streams={stream: ">" for stream in self.streams},
                    count=10,
                    block=5000,  # Блокировка на 5 сек (для graceful shutdown)
                )

                for stream, stream_messages in messages:
                    for message_id, message_data in stream_messages:
                        await self.handle_message(stream, message_id, message_data, handler)

            except asyncio.CancelledError:
                self.logger.info("Consumer cancelled, stopping...")
                break
            except Exception as e:
                self.logger.error("Error in consumer loop", e)
                await asyncio.sleep(5)  # Backoff before retry

        self.logger.info("Command consumer stopped")

    async def handle_message(
        self,
        stream: str,
        message_id: str,
        message_data: dict[str, Any],
        handler: EventHandlerFn,
    ) -> None:
        """
        Handle single message from stream and ACK it on success.

        Args:
            stream: Stream name
            message_id: Message ID in Redis Stream
            message_data: Message data dict
            handler: Handler function
        """
        try:
            event = parse_event(message_data)
            self.logger.debug(
                "Received command",
                param("stream", stream),
                param("event_id", event.get("event_id")),
                param("event_type", event.get("event_type")),
            )

            await handler(event)

            redis = self.redis_client.get_redis()
            await redis.xack(stream, self.consumer_group, message_id)

        except Exception as e:
            # НЕ ACK при ошибке - сообщение останется в pending list
            self.logger.error(
                "Failed to handle command",
                e,
                param("stream", stream),
                param("message_id", message_id),
            )

    async def stop(self) -> None:
        """Stop consuming events gracefully."""
        self.logger.info("Stopping command consumer...")
        self._stopped = True

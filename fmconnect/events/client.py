"""Redis connection for the command and status streams."""

import asyncio
from collections.abc import Iterator
from typing import TYPE_CHECKING

import redis.asyncio as redis_async
from redis.asyncio.client import Redis

from fmconnect.logger.logger import get_logger
from fmconnect.logger.types import Category, param

if TYPE_CHECKING:
    from fmconnect.config.settings import RedisConfig

MAX_BACKOFF = 30.0


def backoff_delays(initial: float, maximum: float = MAX_BACKOFF) -> Iterator[float]:
    """Exponential delays: initial, 2x, 4x, ... capped at ``maximum``."""
    delay = initial
    while True:
        yield delay
        delay = min(delay * 2, maximum)


class RedisClient:
    """Owns the single Redis connection used by subscriber and publisher."""

    def __init__(self, config: "RedisConfig") -> None:
        self.config = config
        self.redis: Redis | None = None
        self.logger = get_logger().with_category(Category.MESSENGER)

    @property
    def is_connected(self) -> bool:
        return self.redis is not None

    def _open(self) -> Redis:
        return redis_async.Redis(
            host=self.config.host,
            port=self.config.port,
            db=self.config.db,
            password=self.config.password,
            decode_responses=True,
            socket_keepalive=True,
            socket_connect_timeout=5,
            retry_on_timeout=True,
        )

    async def connect(self, max_retries: int | None = None, initial_delay: float = 1.0) -> None:
        """
        Connect and PING, retrying with exponential backoff.

        The service starts before the messenger is reachable in compose
        setups, so a refused connection is retried rather than fatal.

        Args:
            max_retries: Attempts before giving up (default from config)
            initial_delay: First delay between attempts in seconds

        Raises:
            ConnectionError: If every attempt failed
        """
        attempts = max_retries or self.config.connect_retries
        delays = backoff_delays(initial_delay)
        last_error: Exception | None = None

        for attempt in range(1, attempts + 1):
            client = self._open()
            try:
                await client.ping()  # type: ignore[misc]
            except Exception as e:
                last_error = e
                await client.aclose()
                if attempt == attempts:
                    break
                delay = next(delays)
                self.logger.warn(
                    f"Redis connection attempt {attempt}/{attempts} failed, retrying...",
                    param("host", self.config.host),
                    param("port", self.config.port),
                    param("delay", delay),
                    param("error", str(e)),
                )
                await asyncio.sleep(delay)
            else:
                self.redis = client
                return

        self.logger.error(
            f"Failed to connect to Redis after {attempts} attempts",
            last_error,
            param("host", self.config.host),
            param("port", self.config.port),
        )
        raise ConnectionError(
            f"Failed to connect to Redis at {self.config.host}:{self.config.port} "
            f"after {attempts} attempts"
        )

    async def close(self) -> None:
        if self.redis:
            await self.redis.aclose()
            self.redis = None

    def get_redis(self) -> Redis:
        """
        Get the connected client.

        Raises:
            RuntimeError: If not connected
        """
        if self.redis is None:
            raise RuntimeError("RedisClient not connected. Call connect() first.")
        return self.redis

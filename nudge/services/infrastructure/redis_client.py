# nudge/services/infrastructure/redis_client.py
"""
Optional Redis cache in front of slow third-party lookups.

Nothing here is authoritative: a missing REDIS_URL, a failed connect or a
failed command all read as a cache miss.
"""

import redis.asyncio as redis

from nudge.config import settings
from nudge.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

MAX_CONNECTIONS = 20


class FastRedisClient:
    def __init__(self):
        self.client: redis.Redis | None = None

    @property
    def configured(self) -> bool:
        return bool(settings.REDIS_URL)

    async def initialize(self) -> None:
        """
        Connect and ping once at startup.

        Raises:
            RuntimeError: REDIS_URL is set but the server is unreachable
        """
        if self.client is not None:
            return
        if not self.configured:
            logger.info("REDIS_URL not set, Redis cache disabled")
            return

        client = redis.from_url(
            settings.REDIS_URL,
            max_connections=MAX_CONNECTIONS,
            socket_connect_timeout=5,
            socket_timeout=5,
            health_check_interval=30,
            decode_responses=True,
        )
        try:
            await client.ping()
        except Exception as e:
            await client.aclose()
            raise RuntimeError(f"Redis initialization failed: {e}") from e

        self.client = client
        logger.info("Redis cache connected", max_connections=MAX_CONNECTIONS)

    async def close(self) -> None:
        if self.client is None:
            return
        client, self.client = self.client, None
        await client.aclose()
        logger.info("Redis cache closed")

    async def ping(self) -> bool:
        if self.client is None:
            return False
        try:
            return bool(await self.client.ping())
        except Exception as e:
            logger.error("Redis ping failed", error=str(e))
            return False

    async def get(self, key: str) -> str | None:
        if self.client is None:
            return None
        try:
            return await self.client.get(key)
        except Exception as e:
            logger.warning("Redis GET failed", key=key[:30], error=str(e))
            return None

    async def set_with_ttl(self, key: str, value: str, ttl_s: int | None = None) -> bool:
        if self.client is None:
            return False
        try:
            if ttl_s:
                return bool(await self.client.setex(key, ttl_s, value))
            return bool(await self.client.set(key, value))
        except Exception as e:
            logger.warning("Redis SET failed", key=key[:30], error=str(e))
            return False


# Global instance
fast_redis = FastRedisClient()

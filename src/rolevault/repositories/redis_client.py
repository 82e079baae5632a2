import redis.asyncio as redis

from rolevault.configs.settings import get_settings
from rolevault.configs.logging_config import get_logger

log = get_logger(__name__)


class RedisClient:
    """
    Process-wide Redis connection used for notification fan-out.
    """

    client: redis.Redis = None

    async def connect(self) -> None:
        settings = get_settings()
        try:
            log.info("redis.connect url=%s", settings.redis_url)
            self.client = redis.from_url(settings.redis_url, decode_responses=True)
            await self.client.ping()
            log.info("redis.connected")
        except Exception as e:
            log.error("redis.connect_failed error=%s", e)
            raise

    async def close(self) -> None:
        if self.client:
            await self.client.aclose()
            self.client = None


redis_client = RedisClient()

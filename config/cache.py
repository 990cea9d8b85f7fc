# config/cache.py
from typing import Optional
from redis.asyncio import Redis, from_url
from config.settings import settings

_client: Optional[Redis] = None


async def get_redis() -> Redis:
    """Lazily build the shared client; blobs are binary so responses stay undecoded."""
    global _client
    if _client is None:
        client = from_url(
            settings.REDIS_URL,
            decode_responses=False,
            socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
            socket_keepalive=True,
            health_check_interval=30,
        )
        # Fail fast on startup if Redis is unreachable.
        await client.ping()
        _client = client
    return _client


def use_redis(client: Optional[Redis]) -> None:
    """Swap the shared client (tests hand in an in-memory fake)."""
    global _client
    _client = client


async def close_redis() -> None:
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None

from redis.asyncio import Redis

from content_catalog.config import Settings


def get_redis_client(settings: Settings) -> Redis:
    return Redis(
        host=settings.redis_host,
        port=settings.redis_port,
        db=settings.redis_db,
        socket_connect_timeout=5,
        socket_timeout=settings.redis_socket_timeout_sec,
        decode_responses=True,
    )

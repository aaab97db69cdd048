import redis

from app.config.settings import Settings
from app.logging.logger import Log


def init_redis(settings: Settings) -> redis.Redis:
    """Create a Redis client from settings and verify it answers PING."""
    client = redis.Redis(
        host=settings.redis_host,
        port=settings.redis_port,
        password=settings.redis_password or None,
        db=settings.redis_db,
        decode_responses=True,
    )
    client.ping()
    Log.info("Redis connected", host=settings.redis_host, port=settings.redis_port)
    return client

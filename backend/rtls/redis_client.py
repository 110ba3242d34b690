# rtls/redis_client.py
# ------------------------------------------------------------
# Centralized Redis connection helper.
#
# Redis carries the SSE update feed and the admin lock; device,
# geofence and alert state stays in process memory.
# ------------------------------------------------------------

import redis
from .config import settings


def get_redis() -> redis.Redis:
    """
    Returns a Redis client instance.

    - decode_responses=True ensures all values are returned as str
      (important for JSON handling and SSE payloads).
    - short timeouts so an unreachable Redis fails fast instead of
      holding up a simulator publish.
    """
    return redis.Redis.from_url(
        settings.redis_url,
        decode_responses=True,
        socket_connect_timeout=2,
        socket_timeout=2,
    )

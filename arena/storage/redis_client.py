"""Redis/Valkey connection factory.

The service keeps working without a store: generation still succeeds and the
pair/vote endpoints report the store as unavailable. This factory therefore
returns `None` instead of raising when the store cannot be reached.
"""

import logging

import redis

from arena import config


logger = logging.getLogger(__name__)


def get_redis_client(url: str | None = None) -> redis.Redis | None:
    """Connect and ping the configured store.

    Args:
        url: Explicit URL; defaults to `arena.config.redis_url()`.

    Returns:
        Connected client with `decode_responses=True`, or `None` when no URL is
        configured or the ping fails.
    """
    url = url or config.redis_url()
    if not url:
        logger.warning("No Redis/Valkey configuration found (REDIS_URL or DO_VALKEY_HOST/PORT)")
        return None

    try:
        client = redis.from_url(
            url,
            socket_timeout=5.0,
            socket_connect_timeout=5.0,
            decode_responses=True,
        )
        client.ping()
        return client
    except redis.exceptions.RedisError as e:
        logger.warning(f"Could not connect to Redis/Valkey: {e}")
        return None

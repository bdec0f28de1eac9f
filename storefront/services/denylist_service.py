# storefront/services/denylist_service.py

from datetime import timedelta
from typing import Optional

import redis

from ..core.config import settings
from ..logging import logger

_redis_client: Optional[redis.Redis] = None
_connection_attempted = False


def get_redis_client() -> Optional[redis.Redis]:
    """Connect to Redis on first use; None when REDIS_URL is unset or unreachable."""
    global _redis_client, _connection_attempted
    if _connection_attempted:
        return _redis_client
    _connection_attempted = True

    if not settings.REDIS_URL:
        logger.info("REDIS_URL not set; token denylist disabled.")
        return None
    try:
        client = redis.from_url(settings.REDIS_URL, decode_responses=True)
        # Ping the server to check the connection
        client.ping()
        logger.info("Successfully connected to Redis.")
        _redis_client = client
    except redis.exceptions.RedisError as e:
        logger.error(f"Could not connect to Redis: {e}")
        _redis_client = None
    return _redis_client


def add_token_to_denylist(jti: str, expires: timedelta):
    """
    Adds a token's JTI to the denylist until the token would have expired anyway.
    """
    client = get_redis_client()
    if client is None:
        return
    try:
        client.setex(f"denylist:{jti}", expires, "denied")
    except redis.exceptions.RedisError as e:
        logger.error(f"Failed to denylist token {jti}: {e}")


def is_token_denylisted(jti: str) -> bool:
    """
    Checks if a token's JTI is in the denylist.
    """
    client = get_redis_client()
    if client is None:
        # If Redis is not available, fail open
        return False
    try:
        return bool(client.exists(f"denylist:{jti}"))
    except redis.exceptions.RedisError as e:
        logger.error(f"Denylist lookup failed for {jti}: {e}")
        return False

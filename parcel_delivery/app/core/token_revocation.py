"""
Token Revocation System using Redis.

Implements token blacklisting to immediately invalidate identity tokens
when users log out.
"""

import logging
import time
from typing import Any, Dict
from redis.exceptions import RedisError
from parcel_delivery.app.core.config import settings

logger = logging.getLogger("parcel_delivery.auth")

# Redis key prefix for blacklisted tokens
TOKEN_BLACKLIST_PREFIX = "blacklist:token:"


def remaining_lifetime(payload: Dict[str, Any]) -> int:
    """
    Seconds until the token described by ``payload`` expires.

    Falls back to the configured token lifetime when the token has no
    ``exp`` claim. Never less than one second.
    """
    exp = payload.get("exp")
    if exp is None:
        return settings.access_token_expire_minutes * 60
    return max(int(exp - time.time()), 1)


async def revoke_token(redis_client, token: str, payload: Dict[str, Any]) -> bool:
    """
    Revoke a specific token by adding it to the blacklist.

    Args:
        redis_client: Redis client
        token: The token string to revoke
        payload: Decoded token claims (used for TTL and audit)

    Returns:
        True if successfully revoked, False otherwise
    """
    try:
        # Token auto-expires anyway; keep the entry only as long as it could be used
        key = f"{TOKEN_BLACKLIST_PREFIX}{token}"
        await redis_client.set(
            key,
            str(payload.get("email", "")),
            ex=remaining_lifetime(payload)
        )
        return True
    except RedisError as e:
        logger.error("Error revoking token", extra={"error": str(e)})
        return False


async def is_token_revoked(redis_client, token: str) -> bool:
    """
    Check if a token has been revoked.

    Args:
        redis_client: Redis client
        token: Token string to check

    Returns:
        True if token is revoked, False otherwise
    """
    try:
        key = f"{TOKEN_BLACKLIST_PREFIX}{token}"
        exists = await redis_client.exists(key)
        return exists > 0
    except RedisError as e:
        # Fail-open: If Redis is down, allow the request (availability over revocation)
        logger.warning("Error checking token revocation", extra={"error": str(e)})
        return False

"""
Token Revocation System using Redis.

Implements token blacklisting to immediately invalidate JWT tokens
when users sign out or are blocked by an administrator.
"""

import logging
import time
from typing import Optional
from redis.asyncio import Redis
from redis.exceptions import RedisError

from backend.finpanel.core.config import settings

logger = logging.getLogger("finpanel.auth")

# Redis key prefix for blacklisted tokens
TOKEN_BLACKLIST_PREFIX = "blacklist:token:"
USER_TOKENS_PREFIX = "user:tokens:"


def _ttl_seconds() -> int:
    # Tokens expire on their own after this long, so the marker can too
    return settings.access_token_expire_minutes * 60


async def revoke_token(redis: Redis, token: str, user_id: int) -> bool:
    """
    Revoke a specific JWT token by adding it to the blacklist.

    Args:
        redis: Redis client
        token: The JWT token string to revoke
        user_id: User ID who owns the token

    Returns:
        True if successfully revoked, False otherwise
    """
    try:
        await redis.setex(f"{TOKEN_BLACKLIST_PREFIX}{token}", _ttl_seconds(), str(user_id))
        return True
    except (RedisError, OSError):
        logger.exception("Error revoking token for user %s", user_id)
        return False


async def is_token_revoked(redis: Redis, token: str) -> bool:
    """
    Check if a token has been revoked.

    Fails open: if Redis is unreachable the token is treated as valid.
    """
    try:
        exists = await redis.exists(f"{TOKEN_BLACKLIST_PREFIX}{token}")
        return exists > 0
    except (RedisError, OSError):
        logger.exception("Error checking token revocation")
        return False


async def revoke_all_user_tokens(redis: Redis, user_id: int) -> bool:
    """
    Revoke every token issued to a user up to now.

    Stores the revocation time; tokens whose ``iat`` is not later than it are
    rejected until the marker expires with the last of them. Tokens issued
    afterwards (e.g. after an unblock) are unaffected.
    """
    try:
        await redis.setex(f"{USER_TOKENS_PREFIX}{user_id}:revoked", _ttl_seconds(), str(time.time()))
        return True
    except (RedisError, OSError):
        logger.exception("Error revoking all tokens for user %s", user_id)
        return False


async def are_user_tokens_revoked(redis: Redis, user_id: int, issued_at: Optional[float] = None) -> bool:
    """
    Check whether a token issued at ``issued_at`` falls under a per-user revocation.

    A token without ``iat`` is treated as revoked whenever a marker exists.
    """
    try:
        revoked_at = await redis.get(f"{USER_TOKENS_PREFIX}{user_id}:revoked")
    except (RedisError, OSError):
        logger.exception("Error checking user token revocation for user %s", user_id)
        return False

    if revoked_at is None:
        return False
    if issued_at is None:
        return True
    return float(issued_at) <= float(revoked_at)

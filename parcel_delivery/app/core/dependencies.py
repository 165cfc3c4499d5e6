"""
Authentication dependencies for FastAPI.

This module provides dependencies for protecting routes with identity tokens.
"""

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from parcel_delivery.app.core.exceptions import AuthenticationError, TokenRevokedError
from parcel_delivery.app.core.jwt import decode_access_token
from parcel_delivery.app.core.redis_client import get_redis
from parcel_delivery.app.core.token_revocation import is_token_revoked
from parcel_delivery.app.models.enums import UserRole

# HTTP Bearer security scheme
security = HTTPBearer()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    redis_client=Depends(get_redis)
) -> dict:
    """
    FastAPI dependency for identity token authentication.

    Checks:
    1. Validates token signature and expiry
    2. Requires an email claim (the payer/owner identity)
    3. Checks if the token has been explicitly revoked

    Args:
        credentials: HTTP Bearer token from request header
        redis_client: Redis client holding the revocation list

    Returns:
        Decoded token payload containing user information

    Raises:
        AuthenticationError: 401 (ERR_AUTH_001) for an invalid, expired or incomplete token
        TokenRevokedError: 401 (ERR_AUTH_002) for a revoked token
    """
    token = credentials.credentials

    # 1. Decode and validate token
    payload = decode_access_token(token)
    if payload is None:
        raise AuthenticationError("Could not validate credentials")

    # 2. Identity must carry an email
    if not payload.get("email"):
        raise AuthenticationError("Invalid token payload")

    # 3. Check if this specific token has been revoked
    if await is_token_revoked(redis_client, token):
        raise TokenRevokedError()

    payload.setdefault("role", UserRole.USER.value)
    return payload

"""
Authentication API endpoints.

Identity tokens come from the external identity provider; these endpoints
expose the verified identity and let a client revoke its token on logout.
"""

from fastapi import APIRouter, Depends
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from parcel_delivery.app.core.dependencies import get_current_user, security
from parcel_delivery.app.core.redis_client import get_redis
from parcel_delivery.app.core.token_revocation import revoke_token
from parcel_delivery.app.db.session import get_db
from parcel_delivery.app.schemas.auth import IdentityResponse, LogoutResponse
from parcel_delivery.app.services.audit import log_event, AuditAction

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.get("/me", response_model=IdentityResponse)
async def get_current_user_info(current_user: dict = Depends(get_current_user)):
    """
    Get the verified identity of the caller.

    Requires valid token in Authorization header.
    """
    return IdentityResponse(
        sub=current_user.get("sub"),
        email=current_user["email"],
        role=current_user["role"]
    )


@router.post("/logout", response_model=LogoutResponse)
async def logout(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    current_user: dict = Depends(get_current_user),
    redis_client=Depends(get_redis),
    db: AsyncSession = Depends(get_db)
):
    """
    Revoke the presented token until it expires.
    """
    revoked = await revoke_token(redis_client, credentials.credentials, current_user)

    if revoked:
        await log_event(
            db=db,
            action=AuditAction.TOKEN_REVOKED,
            actor_email=current_user["email"]
        )

    return LogoutResponse(
        message="Logged out" if revoked else "Token could not be revoked",
        revoked=revoked
    )

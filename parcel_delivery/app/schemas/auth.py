"""
Authentication Pydantic schemas.
"""

from pydantic import BaseModel, Field
from typing import Optional
from parcel_delivery.app.models.enums import UserRole


class IdentityResponse(BaseModel):
    """
    Verified identity of the caller.

    Used by GET /auth/me endpoint.
    """
    sub: Optional[str] = Field(default=None, description="Identity provider subject")
    email: str = Field(..., description="Email address")
    role: UserRole = Field(..., description="User role")


class LogoutResponse(BaseModel):
    message: str
    revoked: bool

"""Authentication schemas for Supabase sessions and resolved actors."""

from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from licencias.schemas.enums import Role


class JWTClaims(BaseModel):
    """JWT claims extracted from a Supabase access token."""

    sub: str = Field(..., description="Subject (user ID)")
    email: str = Field(default="", description="User email")
    role: str = Field(default="authenticated", description="Postgres role claim, not used for authorization")
    exp: int = Field(..., description="Expiration timestamp")
    iat: int = Field(..., description="Issued at timestamp")
    iss: str = Field(..., description="Token issuer")

    aud: Optional[Union[str, List[str]]] = Field(None, description="Audience")
    app_metadata: Optional[Dict[str, Any]] = Field(None, description="Application metadata")
    user_metadata: Optional[Dict[str, Any]] = Field(None, description="User metadata")
    session_id: Optional[str] = Field(None, description="Session ID")


class SessionUser(BaseModel):
    """Identity carried by a verified session: who, not what they may do."""

    user_id: str = Field(..., description="Supabase user ID")
    email: str = Field(default="", description="User email")
    full_name: Optional[str] = Field(None, description="Display name from user metadata")


class Actor(BaseModel):
    """Caller identity with the role resolved from the profiles table."""

    model_config = ConfigDict(frozen=True)

    user_id: str = Field(..., description="Supabase user ID")
    email: str = Field(default="", description="User email")
    role: Role = Field(default=Role.USER, description="Role from the profiles table")

    @property
    def is_elevated(self) -> bool:
        return self.role.is_elevated

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


class ProfileResponse(BaseModel):
    """Profile information for API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., description="User ID")
    email: Optional[str] = Field(None, description="User email")
    full_name: Optional[str] = Field(None, description="User's full name")
    role: Role = Field(..., description="User role")
    created_at: datetime = Field(..., description="Profile creation date")


class RoleUpdate(BaseModel):
    """Role change requested by an administrator."""

    role: str = Field(..., description="New role: user, rh or admin")


__all__ = [
    "JWTClaims",
    "SessionUser",
    "Actor",
    "ProfileResponse",
    "RoleUpdate",
]

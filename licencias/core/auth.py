"""Authentication dependencies for FastAPI routes."""

from typing import Annotated, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from licencias.core.exceptions import AuthenticationError
from licencias.dependencies import get_identity_gate
from licencias.schemas.auth import Actor
from licencias.services.identity_gate import IdentityGate
from licencias.utils.logging import get_logger

LOGGER = get_logger(__name__)

security = HTTPBearer(auto_error=False)


async def get_current_actor(
    gate: Annotated[IdentityGate, Depends(get_identity_gate)],
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Actor:
    """Resolve the bearer token into an actor.

    Raises:
        AuthenticationError: If the header is missing or the token is invalid
    """
    if not credentials:
        LOGGER.warning("No authorization credentials provided")
        raise AuthenticationError("Authorization header missing")

    actor = await gate.resolve(credentials.credentials)
    LOGGER.debug(f"Authenticated actor: {actor.user_id} ({actor.role.value})")
    return actor


CurrentActor = Annotated[Actor, Depends(get_current_actor)]

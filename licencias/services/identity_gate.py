"""Identity gate: turns a session token into an actor with a role."""

from typing import Optional, Union

from licencias.core.exceptions import AuthenticationError, ForbiddenError
from licencias.core.jwt import JWTVerifier
from licencias.database.models import ActorProfile
from licencias.repositories.profile_repository import ProfileRepository
from licencias.schemas.auth import Actor, SessionUser
from licencias.schemas.enums import Role
from licencias.utils.logging import get_logger

LOGGER = get_logger(__name__)


class IdentityGate:
    """Resolves sessions and owns the administrator-only role update.

    The role always comes from the profiles table. Token metadata is never
    consulted for authorization.
    """

    def __init__(self, verifier: JWTVerifier, profiles: ProfileRepository):
        self.verifier = verifier
        self.profiles = profiles

    async def get_session(self, token: Optional[str]) -> Optional[SessionUser]:
        """Identity of the session, or None when there is no token."""
        if not token:
            return None
        return await self.verifier.verify_session(token)

    async def resolve(self, token: Optional[str]) -> Actor:
        """Resolve a token into an actor, reading the role from its profile.

        Raises:
            AuthenticationError: If there is no valid session
        """
        session = await self.get_session(token)
        if session is None:
            raise AuthenticationError("Authentication required")

        profile = await self.profiles.get_or_create(session)
        return Actor(user_id=profile.id, email=session.email or profile.email or "", role=profile.role)

    async def get_profile(self, actor: Actor) -> ActorProfile:
        return await self.profiles.get_or_create(SessionUser(user_id=actor.user_id, email=actor.email))

    async def update_role(self, target_user_id: str, role: Union[Role, str], actor: Actor) -> ActorProfile:
        """Change the role of another user.

        Raises:
            ForbiddenError: Unless the actor is an administrator
            ValidationError: If the role is unknown
            NotFoundError: If the target has no profile
        """
        if not actor.is_admin:
            LOGGER.warning(
                "Role update denied",
                extra={"actor_id": actor.user_id, "target_user_id": target_user_id},
            )
            raise ForbiddenError()

        new_role = Role.parse(role)
        profile = await self.profiles.update_role(target_user_id, new_role)
        LOGGER.info(
            f"Administrator {actor.user_id} set role of {target_user_id} to {new_role.value}",
            extra={"actor_id": actor.user_id, "target_user_id": target_user_id},
        )
        return profile

"""Repository for actor profiles.

Profiles are the only source of an actor's role. They are created the first
time a verified session is seen and otherwise changed only through
``update_role``.
"""

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from licencias.core.exceptions import DatabaseError, NotFoundError
from licencias.database.models import ActorProfile, utcnow
from licencias.repositories.base_repository import BaseRepository
from licencias.schemas.auth import SessionUser
from licencias.schemas.enums import Role
from licencias.utils.logging import get_logger

LOGGER = get_logger(__name__)


class ProfileRepository(BaseRepository[ActorProfile]):
    """Repository for ActorProfile rows."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, ActorProfile)

    async def get_or_create(self, user: SessionUser) -> ActorProfile:
        """Get the profile of a session user, creating it with role ``user``.

        Args:
            user: Identity from a verified session

        Returns:
            The existing or newly created profile
        """
        profile = await self.get_by_id(user.user_id)
        if profile is not None:
            return profile

        profile = ActorProfile(
            id=user.user_id,
            email=user.email or None,
            full_name=user.full_name,
            role=Role.USER,
        )
        self.session.add(profile)
        try:
            await self._commit(f"profile insert {user.user_id}")
        except IntegrityError:
            # Another request created it first
            existing = await self.get_by_id(user.user_id)
            if existing is None:
                raise DatabaseError(f"Failed to create profile for {user.user_id}")
            return existing
        except SQLAlchemyError as e:
            raise DatabaseError(f"Failed to create profile for {user.user_id}", original_error=e) from e

        LOGGER.info(f"Created profile for user {user.user_id}", extra={"user_id": user.user_id})
        return profile

    async def update_role(self, user_id: str, role: Role) -> ActorProfile:
        """Set the role of an existing profile.

        Raises:
            NotFoundError: If no profile exists for ``user_id``
        """
        profile = await self.get_by_id(user_id)
        if profile is None:
            raise NotFoundError(f"Profile {user_id} not found")

        profile.role = role
        profile.updated_at = utcnow()
        try:
            await self._commit(f"role update {user_id}")
        except SQLAlchemyError as e:
            raise DatabaseError(f"Failed to update role of {user_id}", original_error=e) from e

        LOGGER.info(f"Role of {user_id} set to {role.value}", extra={"user_id": user_id, "role": role.value})
        return profile

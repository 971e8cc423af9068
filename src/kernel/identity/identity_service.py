"""
Identity service: loads principals for users known to the kernel.
"""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.kernel.identity.principal import Principal
from src.kernel.models.user import User


class IdentityService:
    """
    Read-only access to user identities.

    Credentials, registration and login belong to the upstream identity
    provider; this service only answers "who is this user".
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_user(self, user_id: str, include_deleted: bool = False) -> Optional[User]:
        """
        Get a user by ID.

        Args:
            user_id: The user's ID
            include_deleted: Also return soft-deleted users

        Returns:
            The User or None
        """
        query = select(User).where(User.id == user_id)
        if not include_deleted:
            query = query.where(User.deleted_at.is_(None))
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def load_principal(self, user_id: str) -> Optional[Principal]:
        """Principal for an active (not soft-deleted) user, else None."""
        user = await self.get_user(user_id)
        if user is None:
            return None
        return principal_from_user(user)


def principal_from_user(user: User) -> Principal:
    return Principal(
        id=user.id,
        role=user.role,
        institution_id=user.institution_id,
        qcto_id=user.qcto_id,
        assigned_provinces=user.assigned_provinces or (),
    )

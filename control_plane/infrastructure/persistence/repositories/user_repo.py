"""User repository: app_user profile mirror of identity-provider users."""

from __future__ import annotations

from sqlalchemy import delete, func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from control_plane.application.dtos.user import UserIdentity
from control_plane.domain.exceptions import ConflictException
from control_plane.infrastructure.persistence.models.user import AppUser


def _user_to_identity(u: AppUser) -> UserIdentity:
    return UserIdentity(
        id=u.id, email=u.email, full_name=u.full_name, avatar_url=u.avatar_url
    )


class UserRepository:
    """IUserDirectory over SQLAlchemy. The email column is the email index."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get_by_email(self, email: str) -> UserIdentity | None:
        result = await self.db.execute(
            select(AppUser).where(func.lower(AppUser.email) == email.strip().lower())
        )
        user = result.scalar_one_or_none()
        return _user_to_identity(user) if user else None

    async def get_by_id(self, user_id: str) -> UserIdentity | None:
        result = await self.db.execute(select(AppUser).where(AppUser.id == user_id))
        user = result.scalar_one_or_none()
        return _user_to_identity(user) if user else None

    async def save(self, identity: UserIdentity) -> UserIdentity:
        """Upsert by id; existing full_name/avatar_url are kept when the new value is null.

        Raises ConflictException when the email belongs to another identity.
        """
        stmt = pg_insert(AppUser).values(
            id=identity.id,
            email=identity.email.strip().lower(),
            full_name=identity.full_name,
            avatar_url=identity.avatar_url,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[AppUser.id],
            set_={
                "email": stmt.excluded.email,
                "full_name": func.coalesce(stmt.excluded.full_name, AppUser.full_name),
                "avatar_url": func.coalesce(stmt.excluded.avatar_url, AppUser.avatar_url),
                "updated_at": func.now(),
            },
        ).returning(AppUser)
        try:
            async with self.db.begin_nested():
                result = await self.db.execute(
                    stmt.execution_options(populate_existing=True)
                )
                user = result.scalar_one()
        except IntegrityError:
            raise ConflictException(
                "Email address is already linked to another user",
                error_code="EMAIL_ALREADY_LINKED",
                details={"user_id": identity.id},
            ) from None
        return _user_to_identity(user)

    async def delete(self, user_id: str) -> bool:
        result = await self.db.execute(delete(AppUser).where(AppUser.id == user_id))
        return (result.rowcount or 0) > 0

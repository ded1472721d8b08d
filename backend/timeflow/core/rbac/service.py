import uuid
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from timeflow.core.rbac.models import User


async def get_user(db: AsyncSession, user_id: uuid.UUID) -> User | None:
    result = await db.execute(select(User).where(User.id == user_id, User.is_deleted == False))
    return result.scalar_one_or_none()


class SqlIdentityLookup:
    """Resolves global roles and reporting lines from the users table."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def role_of(self, user_id: uuid.UUID) -> str:
        from timeflow.core.timesheets.exceptions import NotFound
        user = await get_user(self.db, user_id)
        if not user or user.status != "active":
            raise NotFound("User", user_id)
        return user.role

    async def manager_of(self, user_id: uuid.UUID) -> uuid.UUID | None:
        user = await get_user(self.db, user_id)
        return user.manager_id if user else None

import uuid
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from timeflow.core.projects.models import Project, ProjectMember

MANAGING_PROJECT_ROLES = ("manager",)


async def managed_project_ids(db: AsyncSession, user_id: uuid.UUID) -> set[uuid.UUID]:
    result = await db.execute(
        select(ProjectMember.project_id)
        .join(Project, Project.id == ProjectMember.project_id)
        .where(
            ProjectMember.user_id == user_id,
            ProjectMember.project_role.in_(MANAGING_PROJECT_ROLES),
            ProjectMember.is_deleted == False,
            Project.is_deleted == False,
        )
    )
    return set(result.scalars().all())


class SqlProjectAuthority:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def managed_project_ids(self, user_id: uuid.UUID) -> set[uuid.UUID]:
        return await managed_project_ids(self.db, user_id)

import asyncio
import logging
import os
import uuid

from sqlalchemy import select

from timeflow.core.projects.models import Project, ProjectMember, Task
from timeflow.core.rbac.models import User
from timeflow.db.session import get_session

logger = logging.getLogger(__name__)

DEMO_USERS = (
    # email, full name, role, reports to
    ("management@timeflow.local", "Morgan Management", "management", None),
    ("manager@timeflow.local", "Casey Manager", "manager", "management@timeflow.local"),
    ("lead@timeflow.local", "Riley Lead", "lead", "manager@timeflow.local"),
    ("employee@timeflow.local", "Jordan Employee", "employee", "manager@timeflow.local"),
)


async def _get_or_create_user(db, email: str, full_name: str, role: str, manager_id: uuid.UUID | None) -> User:
    existing = await db.execute(select(User).where(User.email == email))
    user = existing.scalar_one_or_none()
    if user:
        logger.info("User exists: %s", email)
        return user
    user = User(id=uuid.uuid4(), email=email, full_name=full_name, role=role, manager_id=manager_id)
    db.add(user)
    await db.flush()
    logger.info("Created %s: %s", role, email)
    return user


async def seed() -> None:
    project_name = os.getenv("SEED_PROJECT_NAME", "Internal Platform")

    async with get_session() as db:
        users: dict[str, User] = {}
        for email, full_name, role, reports_to in DEMO_USERS:
            manager_id = users[reports_to].id if reports_to else None
            users[email] = await _get_or_create_user(db, email, full_name, role, manager_id)

        existing = await db.execute(select(Project).where(Project.name == project_name))
        project = existing.scalar_one_or_none()
        if project:
            logger.info("Project exists: %s", project_name)
            return

        project = Project(id=uuid.uuid4(), name=project_name, status="active")
        db.add(project)
        await db.flush()
        for name in ("Development", "Code review", "Meetings"):
            db.add(Task(project_id=project.id, name=name))
        db.add(ProjectMember(project_id=project.id, user_id=users["lead@timeflow.local"].id, project_role="manager"))
        db.add(ProjectMember(project_id=project.id, user_id=users["employee@timeflow.local"].id, project_role="member"))
        await db.flush()
        logger.info("Created project %s (%s)", project.name, project.id)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(seed())

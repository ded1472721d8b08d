import uuid
from sqlalchemy import String, Text, ForeignKey, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship
from timeflow.db.base import Base, TimestampMixin, SoftDeleteMixin


class Project(Base, TimestampMixin, SoftDeleteMixin):
    __tablename__ = "projects"
    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="active")
    tasks: Mapped[list["Task"]] = relationship(back_populates="project", lazy="noload")
    members: Mapped[list["ProjectMember"]] = relationship(back_populates="project", lazy="noload")


class Task(Base, TimestampMixin, SoftDeleteMixin):
    __tablename__ = "tasks"
    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    project_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    project: Mapped["Project"] = relationship(back_populates="tasks")


class ProjectMember(Base, TimestampMixin, SoftDeleteMixin):
    """
    Project-scoped role. project_role: member | lead | manager
    manager grants approval authority over timesheets touching this project,
    independent of the user's global role.
    """
    __tablename__ = "project_members"
    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    project_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    project_role: Mapped[str] = mapped_column(String(50), nullable=False, default="member")
    project: Mapped["Project"] = relationship(back_populates="members")
    __table_args__ = (UniqueConstraint("project_id", "user_id", name="uq_project_member"),)

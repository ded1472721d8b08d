import uuid
from sqlalchemy import String, ForeignKey, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from timeflow.db.base import Base, TimestampMixin, SoftDeleteMixin

VALID_ROLES = ("employee", "lead", "manager", "management", "super_admin")


class User(Base, TimestampMixin, SoftDeleteMixin):
    """
    Global role drives the default approval matrix.
    manager_id: reporting line, used when a manager revises a rejected
    timesheet on behalf of the owner.
    """
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    full_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    role: Mapped[str] = mapped_column(String(50), nullable=False, default="employee")
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="active")
    manager_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    __table_args__ = (UniqueConstraint("email", name="uq_user_email"),)

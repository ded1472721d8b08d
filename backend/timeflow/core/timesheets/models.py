import uuid
from datetime import datetime, date
from decimal import Decimal
from sqlalchemy import (
    Boolean, DateTime, Date, String, Text, Numeric,
    ForeignKey, Integer, Index, text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship
from timeflow.db.base import Base, TimestampMixin, SoftDeleteMixin

TIMESHEET_STATUSES = (
    "draft",
    "submitted",
    "manager_approved",
    "management_pending",
    "manager_rejected",
    "management_rejected",
    "frozen",
    "billed",
)
EDITABLE_TIMESHEET_STATUSES = frozenset({"draft", "manager_rejected", "management_rejected"})
IMMUTABLE_TIMESHEET_STATUSES = frozenset({"frozen", "billed"})

ENTRY_TYPES = ("project_task", "custom_task")


class Timesheet(Base, TimestampMixin, SoftDeleteMixin):
    """
    One timesheet per user per week (Monday start).
    status: draft → submitted → manager_approved → management_pending → frozen → billed
    Rejections land in manager_rejected / management_rejected and go back via submit.
    version is bumped on every write; writers compare it to detect concurrent edits.
    """
    __tablename__ = "timesheets"
    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    week_start_date: Mapped[date] = mapped_column(Date, nullable=False)
    week_end_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="draft", index=True)
    total_hours: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False, default=Decimal("0"))
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    # Manager stage
    approved_by_manager_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    approved_by_manager_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    manager_rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    manager_rejected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    # Management stage
    approved_by_management_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    approved_by_management_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    management_rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    management_rejected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    # Verification / freeze / billing
    verified_by_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_frozen: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    billing_snapshot_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("billing_snapshots.id", ondelete="SET NULL", use_alter=True, name="fk_timesheet_billing_snapshot"),
        nullable=True,
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    entries: Mapped[list["TimeEntry"]] = relationship(back_populates="timesheet", lazy="noload")
    __table_args__ = (
        Index(
            "uq_timesheet_user_week_active", "user_id", "week_start_date",
            unique=True,
            postgresql_where=text("is_deleted = false"),
            sqlite_where=text("is_deleted = 0"),
        ),
    )


class TimeEntry(Base, TimestampMixin, SoftDeleteMixin):
    """
    Single time entry within a timesheet.
    entry_type project_task: project_id + task_id set, custom_task_description empty.
    entry_type custom_task: custom_task_description set, no project/task.
    Replaced entries are soft-deleted; the rows stay for history.
    """
    __tablename__ = "time_entries"
    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    timesheet_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("timesheets.id", ondelete="CASCADE"), nullable=False, index=True)
    entry_type: Mapped[str] = mapped_column(String(50), nullable=False, default="project_task")
    project_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), ForeignKey("projects.id", ondelete="RESTRICT"), nullable=True, index=True)
    task_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), ForeignKey("tasks.id", ondelete="RESTRICT"), nullable=True)
    custom_task_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    work_date: Mapped[date] = mapped_column(Date, nullable=False)
    hours: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    is_billable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    timesheet: Mapped["Timesheet"] = relationship(back_populates="entries")
    __table_args__ = (
        Index(
            "uq_time_entry_project_task_date", "timesheet_id", "project_id", "task_id", "work_date",
            unique=True,
            postgresql_where=text("is_deleted = false AND entry_type = 'project_task'"),
            sqlite_where=text("is_deleted = 0 AND entry_type = 'project_task'"),
        ),
    )


class BillingSnapshot(Base, TimestampMixin):
    """
    Immutable billing record taken when a frozen timesheet is marked billed.
    Hours are copied, not referenced, so later entry purges do not change billing.
    """
    __tablename__ = "billing_snapshots"
    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    timesheet_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("timesheets.id", ondelete="RESTRICT"), nullable=False, unique=True)
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    week_start_date: Mapped[date] = mapped_column(Date, nullable=False)
    week_end_date: Mapped[date] = mapped_column(Date, nullable=False)
    total_hours: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False)
    billable_hours: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False)
    non_billable_hours: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False)
    generated_by: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    generated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

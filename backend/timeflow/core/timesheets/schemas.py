import uuid
from datetime import datetime, date
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator

VALID_TIMESHEET_STATUSES = Literal[
    "draft", "submitted", "manager_approved", "management_pending",
    "manager_rejected", "management_rejected", "frozen", "billed",
]
VALID_ENTRY_TYPES = Literal["project_task", "custom_task"]
VALID_DECISIONS = Literal["approve", "reject"]


# ── Timesheet ─────────────────────────────────────────────────────────────────

class TimesheetCreate(BaseModel):
    week_start_date: date  # Must be Monday
    user_id: uuid.UUID | None = None  # None = the caller


class TimesheetRead(BaseModel):
    model_config = {"from_attributes": True}
    id: uuid.UUID
    user_id: uuid.UUID
    week_start_date: date
    week_end_date: date
    status: str
    total_hours: Decimal
    submitted_at: datetime | None
    approved_by_manager_id: uuid.UUID | None
    approved_by_manager_at: datetime | None
    manager_rejection_reason: str | None
    manager_rejected_at: datetime | None
    approved_by_management_id: uuid.UUID | None
    approved_by_management_at: datetime | None
    management_rejection_reason: str | None
    management_rejected_at: datetime | None
    verified_by_id: uuid.UUID | None
    verified_at: datetime | None
    is_verified: bool
    is_frozen: bool
    billing_snapshot_id: uuid.UUID | None
    version: int


class StatusFlowRead(BaseModel):
    model_config = {"from_attributes": True}
    can_edit: bool
    can_submit: bool
    can_approve: bool
    can_reject: bool
    can_finalize: bool
    next_action: str


class DecisionRequest(BaseModel):
    action: VALID_DECISIONS
    reason: str | None = None
    finalize: bool = False

    @model_validator(mode="after")
    def validate_finalize(self) -> "DecisionRequest":
        if self.finalize and self.action != "approve":
            raise ValueError("finalize only applies to approve")
        return self


# ── Time entries ──────────────────────────────────────────────────────────────

class TimeEntryIn(BaseModel):
    work_date: date
    hours: Decimal = Field(..., gt=0, le=24)
    entry_type: VALID_ENTRY_TYPES = "project_task"
    project_id: uuid.UUID | None = None
    task_id: uuid.UUID | None = None
    custom_task_description: str | None = None
    is_billable: bool = True
    description: str | None = None


class TimeEntriesReplace(BaseModel):
    entries: list[TimeEntryIn]


class TimeEntryRead(BaseModel):
    model_config = {"from_attributes": True}
    id: uuid.UUID
    timesheet_id: uuid.UUID
    entry_type: str
    project_id: uuid.UUID | None
    task_id: uuid.UUID | None
    custom_task_description: str | None
    work_date: date
    hours: Decimal
    is_billable: bool
    description: str | None


# ── Views ─────────────────────────────────────────────────────────────────────

class HoursSummaryRead(BaseModel):
    total_hours: Decimal
    billable_hours: Decimal
    non_billable_hours: Decimal
    project_breakdown: dict[str, Decimal]


class TimesheetViewRead(BaseModel):
    model_config = {"from_attributes": True}
    timesheet: TimesheetRead
    entries: list[TimeEntryRead]
    permissions: StatusFlowRead
    warnings: list[str]
    summary: HoursSummaryRead


class DashboardRead(BaseModel):
    total_timesheets: int
    status_counts: dict[str, int]
    total_hours: Decimal
    completion_rate: float
    pending_approvals: int


class AuditEntryRead(BaseModel):
    model_config = {"from_attributes": True}
    id: uuid.UUID
    user_id: uuid.UUID | None
    action: str
    detail: dict[str, Any] | None
    created_at: datetime

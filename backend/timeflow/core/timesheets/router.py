import uuid
from fastapi import APIRouter, Depends, Query, Response

from timeflow.core.timesheets.permissions import get_status_flow
from timeflow.core.timesheets.schemas import (
    VALID_TIMESHEET_STATUSES,
    TimesheetCreate, TimesheetRead, TimesheetViewRead, StatusFlowRead,
    TimeEntryIn, TimeEntriesReplace, DecisionRequest,
    DashboardRead, AuditEntryRead,
)
from timeflow.core.timesheets.service import TimesheetLifecycleService
from timeflow.dependencies import get_current_user, get_lifecycle_service, CurrentUser

router = APIRouter(tags=["timesheets"])


def _read(view) -> TimesheetViewRead:
    return TimesheetViewRead.model_validate(view)


# ── Timesheets ────────────────────────────────────────────────────────────────

@router.post("/timesheets", response_model=TimesheetViewRead, status_code=201)
async def create_timesheet(
    data: TimesheetCreate,
    svc: TimesheetLifecycleService = Depends(get_lifecycle_service),
    current: CurrentUser = Depends(get_current_user),
):
    return _read(await svc.create(data.user_id or current.user_id, data.week_start_date, current.user_id))


@router.get("/timesheets", response_model=list[TimesheetRead])
async def list_my_timesheets(
    status: list[VALID_TIMESHEET_STATUSES] | None = Query(None),
    svc: TimesheetLifecycleService = Depends(get_lifecycle_service),
    current: CurrentUser = Depends(get_current_user),
):
    return await svc.list_own(current.user_id, statuses=status)


@router.get("/timesheets/approvals", response_model=list[TimesheetViewRead])
async def list_for_approval(
    status: list[VALID_TIMESHEET_STATUSES] | None = Query(None),
    svc: TimesheetLifecycleService = Depends(get_lifecycle_service),
    current: CurrentUser = Depends(get_current_user),
):
    return [_read(v) for v in await svc.list_for_approval(current.user_id, statuses=status)]


@router.get("/timesheets/dashboard", response_model=DashboardRead)
async def dashboard(
    svc: TimesheetLifecycleService = Depends(get_lifecycle_service),
    current: CurrentUser = Depends(get_current_user),
):
    return await svc.dashboard(current.user_id)


@router.get("/timesheets/status-flow/{status}", response_model=StatusFlowRead)
async def status_flow(
    status: VALID_TIMESHEET_STATUSES,
    current: CurrentUser = Depends(get_current_user),
):
    return get_status_flow(status, current.role)


@router.get("/timesheets/{timesheet_id}", response_model=TimesheetViewRead)
async def get_timesheet(
    timesheet_id: uuid.UUID,
    svc: TimesheetLifecycleService = Depends(get_lifecycle_service),
    current: CurrentUser = Depends(get_current_user),
):
    return _read(await svc.get_view(timesheet_id, current.user_id))


@router.delete("/timesheets/{timesheet_id}", status_code=204)
async def delete_timesheet(
    timesheet_id: uuid.UUID,
    svc: TimesheetLifecycleService = Depends(get_lifecycle_service),
    current: CurrentUser = Depends(get_current_user),
):
    await svc.delete_timesheet(timesheet_id, current.user_id)
    return Response(status_code=204)


@router.get("/timesheets/{timesheet_id}/history", response_model=list[AuditEntryRead])
async def timesheet_history(
    timesheet_id: uuid.UUID,
    svc: TimesheetLifecycleService = Depends(get_lifecycle_service),
    current: CurrentUser = Depends(get_current_user),
):
    return await svc.history(timesheet_id, current.user_id)


# ── Time entries ──────────────────────────────────────────────────────────────

@router.put("/timesheets/{timesheet_id}/entries", response_model=TimesheetViewRead)
async def replace_entries(
    timesheet_id: uuid.UUID,
    data: TimeEntriesReplace,
    svc: TimesheetLifecycleService = Depends(get_lifecycle_service),
    current: CurrentUser = Depends(get_current_user),
):
    return _read(await svc.replace_entries(timesheet_id, current.user_id, data.entries))


@router.post("/timesheets/{timesheet_id}/entries", response_model=TimesheetViewRead, status_code=201)
async def add_entries(
    timesheet_id: uuid.UUID,
    data: list[TimeEntryIn],
    svc: TimesheetLifecycleService = Depends(get_lifecycle_service),
    current: CurrentUser = Depends(get_current_user),
):
    return _read(await svc.add_entries(timesheet_id, current.user_id, data))


# ── Workflow ──────────────────────────────────────────────────────────────────

@router.post("/timesheets/{timesheet_id}/submit", response_model=TimesheetViewRead)
async def submit_timesheet(
    timesheet_id: uuid.UUID,
    svc: TimesheetLifecycleService = Depends(get_lifecycle_service),
    current: CurrentUser = Depends(get_current_user),
):
    return _read(await svc.submit(timesheet_id, current.user_id))


@router.post("/timesheets/{timesheet_id}/decision", response_model=TimesheetViewRead)
async def decide_timesheet(
    timesheet_id: uuid.UUID,
    data: DecisionRequest,
    svc: TimesheetLifecycleService = Depends(get_lifecycle_service),
    current: CurrentUser = Depends(get_current_user),
):
    return _read(await svc.decide(timesheet_id, current.user_id, data.action, reason=data.reason, finalize=data.finalize))


@router.post("/timesheets/{timesheet_id}/bill", response_model=TimesheetViewRead)
async def mark_billed(
    timesheet_id: uuid.UUID,
    svc: TimesheetLifecycleService = Depends(get_lifecycle_service),
    current: CurrentUser = Depends(get_current_user),
):
    return _read(await svc.mark_billed(timesheet_id, current.user_id))

"""
Timesheet lifecycle: the write operations and the read views.

Every operation takes the acting user's id explicitly; roles, reporting lines
and project authority are looked up per call through the injected
collaborators. Writes read the timesheet, decide in pure code, then persist
with one version-checked atomic_replace(). A ConflictError re-runs the whole
read/decide/write cycle up to CONFLICT_RETRY_LIMIT times.
"""
import logging
import uuid
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Protocol, TypeVar

from timeflow.core.timesheets.exceptions import (
    ConflictError, DuplicateTimesheet, InvalidTransition, NotFound, PermissionDenied, ValidationFailure,
)
from timeflow.core.timesheets.models import IMMUTABLE_TIMESHEET_STATUSES
from timeflow.core.timesheets.permissions import (
    TIME_LOGGING_ROLES, ProjectAuthority, Relation, StatusFlow, resolve_permissions,
)
from timeflow.core.timesheets.store import EntryDiff
from timeflow.core.timesheets.validation import (
    HourLimits, check_entry_shape, coerce_hours, find_hard_violations, hours_summary, validate_entries,
)
from timeflow.core.timesheets.workflow import ApprovalCommand, apply_transition, require_reason
from timeflow.db.base import utcnow
from timeflow.settings import Settings, get_settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

ACTIONABLE_STATUSES = ("submitted", "manager_approved", "management_pending")
VIEW_ALL_ROLES = frozenset({"manager", "management", "super_admin"})
CREATE_FOR_OTHERS_ROLES = frozenset({"management"})
ENTRY_FIELDS = (
    "entry_type", "project_id", "task_id", "custom_task_description",
    "work_date", "hours", "is_billable", "description",
)


class TimesheetStore(Protocol):
    async def load_timesheet(self, timesheet_id: uuid.UUID) -> Any: ...
    async def load_entries(self, timesheet_id: uuid.UUID) -> list[Any]: ...
    async def find_active(self, user_id: uuid.UUID, week_start: date) -> Any: ...
    async def insert_timesheet(self, **fields: Any) -> Any: ...
    async def atomic_replace(
        self, timesheet_id: uuid.UUID, expected_version: int, changes: dict[str, Any],
        entry_diff: EntryDiff | None = None, snapshot: dict[str, Any] | None = None,
    ) -> Any: ...
    async def list_timesheets(self, *, user_ids=None, statuses=None, week_start=None) -> list[Any]: ...
    async def record_history(self, timesheet_id: uuid.UUID, actor_id: uuid.UUID, action: str, detail: dict) -> Any: ...
    async def load_history(self, timesheet_id: uuid.UUID) -> list[Any]: ...


class ProjectAuthorityLookup(Protocol):
    async def managed_project_ids(self, user_id: uuid.UUID) -> set[uuid.UUID]: ...


class IdentityLookup(Protocol):
    async def role_of(self, user_id: uuid.UUID) -> str: ...
    async def manager_of(self, user_id: uuid.UUID) -> uuid.UUID | None: ...


@dataclass
class TimesheetView:
    timesheet: Any
    entries: list[Any]
    permissions: StatusFlow
    warnings: list[str]
    summary: dict[str, Any]


@dataclass
class _Access:
    actor_role: str
    owner_role: str
    relation: Relation
    flow: StatusFlow


def week_end_for(week_start: date) -> date:
    return week_start + timedelta(days=6)


def _entry_fields(entry: Any) -> dict[str, Any]:
    if hasattr(entry, "model_dump"):
        entry = entry.model_dump()
    if isinstance(entry, dict):
        raw = entry
    else:
        raw = {name: getattr(entry, name, None) for name in ENTRY_FIELDS}
    fields = {name: raw.get(name) for name in ENTRY_FIELDS}
    fields["entry_type"] = fields["entry_type"] or "project_task"
    fields["is_billable"] = True if fields["is_billable"] is None else bool(fields["is_billable"])
    fields["hours"] = coerce_hours(fields["hours"])
    if fields["custom_task_description"] is not None:
        fields["custom_task_description"] = fields["custom_task_description"].strip() or None
    return fields


def _total(entries: Iterable[Any]) -> Decimal:
    return sum((coerce_hours(getattr(e, "hours", None)) for e in entries), Decimal("0"))


class TimesheetLifecycleService:
    def __init__(
        self,
        store: TimesheetStore,
        authority: ProjectAuthorityLookup,
        identity: IdentityLookup,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.authority = authority
        self.identity = identity
        self.settings = settings or get_settings()
        self.limits = HourLimits.from_settings(self.settings)
        self.clock = clock

    # ── Resolution helpers ────────────────────────────────────────────────────

    async def _load(self, timesheet_id: uuid.UUID) -> Any:
        sheet = await self.store.load_timesheet(timesheet_id)
        if sheet is None:
            raise NotFound("Timesheet", timesheet_id)
        return sheet

    async def _relation(self, sheet: Any, actor_id: uuid.UUID) -> Relation:
        if sheet.user_id == actor_id:
            return "owner"
        if await self.identity.manager_of(sheet.user_id) == actor_id:
            return "owner_manager"
        return "other"

    async def _project_authority(self, actor_id: uuid.UUID, entries: list[Any]) -> ProjectAuthority:
        referenced = frozenset(e.project_id for e in entries if getattr(e, "project_id", None))
        if not referenced:
            return ProjectAuthority()
        managed = await self.authority.managed_project_ids(actor_id)
        return ProjectAuthority(managed_project_ids=frozenset(managed), timesheet_project_ids=referenced)

    async def _access(self, sheet: Any, entries: list[Any], actor_id: uuid.UUID) -> _Access:
        actor_role = await self.identity.role_of(actor_id)
        relation = await self._relation(sheet, actor_id)
        if relation == "owner":
            owner_role, authority = actor_role, None
        else:
            owner_role = await self.identity.role_of(sheet.user_id)
            authority = await self._project_authority(actor_id, entries)
        flow = resolve_permissions(sheet.status, actor_role, owner_role, authority, relation=relation)
        return _Access(actor_role=actor_role, owner_role=owner_role, relation=relation, flow=flow)

    async def _require_visible(self, sheet: Any, entries: list[Any], actor_id: uuid.UUID) -> _Access:
        access = await self._access(sheet, entries, actor_id)
        if access.relation != "other" or access.actor_role in VIEW_ALL_ROLES:
            return access
        if any((access.flow.can_approve, access.flow.can_reject, access.flow.can_finalize)):
            return access
        authority = await self._project_authority(actor_id, entries)
        if authority.timesheet_project_ids & authority.managed_project_ids:
            return access
        raise PermissionDenied("You do not have access to this timesheet")

    def _view(self, sheet: Any, entries: list[Any], flow: StatusFlow) -> TimesheetView:
        return TimesheetView(
            timesheet=sheet,
            entries=entries,
            permissions=flow,
            warnings=validate_entries(entries, self.limits),
            summary=hours_summary(entries),
        )

    async def _fresh_view(self, sheet: Any, actor_id: uuid.UUID) -> TimesheetView:
        entries = await self.store.load_entries(sheet.id)
        access = await self._access(sheet, entries, actor_id)
        return self._view(sheet, entries, access.flow)

    async def _with_retry(self, timesheet_id: uuid.UUID, operation: Callable[[], Awaitable[T]]) -> T:
        attempt = 0
        while True:
            try:
                return await operation()
            except ConflictError:
                if attempt >= self.settings.CONFLICT_RETRY_LIMIT:
                    logger.warning("Timesheet %s: giving up after %d conflicting writes", timesheet_id, attempt + 1)
                    raise
                attempt += 1
                logger.info("Timesheet %s changed concurrently, retrying (%d)", timesheet_id, attempt)

    # ── Create / delete ───────────────────────────────────────────────────────

    async def create(
        self,
        owner_id: uuid.UUID,
        week_start: date,
        actor_id: uuid.UUID | None = None,
    ) -> TimesheetView:
        actor_id = actor_id or owner_id
        owner_role = await self.identity.role_of(owner_id)
        if actor_id != owner_id:
            actor_role = await self.identity.role_of(actor_id)
            if actor_role not in CREATE_FOR_OTHERS_ROLES and await self.identity.manager_of(owner_id) != actor_id:
                raise PermissionDenied("Timesheets can only be created by the owner or the owner's manager")
        if owner_role not in TIME_LOGGING_ROLES:
            raise PermissionDenied(f"Role '{owner_role}' does not log time")
        if week_start.weekday() != 0:
            raise ValidationFailure("week_start_date must be a Monday")
        if await self.store.find_active(owner_id, week_start) is not None:
            raise DuplicateTimesheet(owner_id, week_start)

        sheet = await self.store.insert_timesheet(
            user_id=owner_id,
            week_start_date=week_start,
            week_end_date=week_end_for(week_start),
            status="draft",
            total_hours=Decimal("0"),
        )
        await self.store.record_history(sheet.id, actor_id, "create", {
            "to": "draft", "week_start_date": week_start.isoformat(),
        })
        logger.info("Timesheet %s created for user %s week %s", sheet.id, owner_id, week_start)
        return await self._fresh_view(sheet, actor_id)

    async def delete_timesheet(self, timesheet_id: uuid.UUID, actor_id: uuid.UUID) -> None:
        async def attempt() -> None:
            sheet = await self._load(timesheet_id)
            entries = await self.store.load_entries(timesheet_id)
            access = await self._access(sheet, entries, actor_id)
            if sheet.status != "draft":
                raise InvalidTransition(sheet.status, "delete")
            if access.relation != "owner":
                raise PermissionDenied("Only the owner can delete a draft timesheet")
            await self.store.atomic_replace(
                sheet.id, sheet.version, {"is_deleted": True},
                EntryDiff(remove_ids=[e.id for e in entries]),
            )
            await self.store.record_history(sheet.id, actor_id, "delete", {"from": "draft"})

        await self._with_retry(timesheet_id, attempt)

    # ── Entries ───────────────────────────────────────────────────────────────

    def _check_batch(self, sheet: Any, existing: list[Any], batch: list[dict[str, Any]]) -> None:
        errors: list[str] = []
        for fields in batch:
            errors.extend(check_entry_shape(fields, sheet.week_start_date, sheet.week_end_date))
        errors.extend(find_hard_violations(
            existing, batch, self.limits, enforce_daily_max=self.settings.ENFORCE_DAILY_HARD_LIMIT,
        ))
        if errors:
            raise ValidationFailure("; ".join(errors), errors)

    def _require_editable(self, sheet: Any, access: _Access) -> None:
        if access.flow.can_edit:
            return
        if sheet.status in IMMUTABLE_TIMESHEET_STATUSES:
            raise PermissionDenied(f"Timesheet is {sheet.status} and can no longer be changed")
        raise PermissionDenied(f"You cannot edit this timesheet in status '{sheet.status}'")

    async def replace_entries(
        self,
        timesheet_id: uuid.UUID,
        actor_id: uuid.UUID,
        entries: Iterable[Any],
    ) -> TimesheetView:
        batch = [_entry_fields(e) for e in entries if e is not None]

        async def attempt() -> TimesheetView:
            sheet = await self._load(timesheet_id)
            current = await self.store.load_entries(timesheet_id)
            access = await self._access(sheet, current, actor_id)
            self._require_editable(sheet, access)
            self._check_batch(sheet, [], batch)

            total = sum((f["hours"] for f in batch), Decimal("0"))
            updated = await self.store.atomic_replace(
                sheet.id, sheet.version, {"total_hours": total},
                EntryDiff(remove_ids=[e.id for e in current], add=batch),
            )
            await self.store.record_history(sheet.id, actor_id, "entries_replaced", {
                "removed": len(current), "added": len(batch), "total_hours": str(total),
            })
            return await self._fresh_view(updated, actor_id)

        return await self._with_retry(timesheet_id, attempt)

    async def add_entries(
        self,
        timesheet_id: uuid.UUID,
        actor_id: uuid.UUID,
        entries: Iterable[Any],
    ) -> TimesheetView:
        batch = [_entry_fields(e) for e in entries if e is not None]

        async def attempt() -> TimesheetView:
            sheet = await self._load(timesheet_id)
            current = await self.store.load_entries(timesheet_id)
            access = await self._access(sheet, current, actor_id)
            self._require_editable(sheet, access)
            self._check_batch(sheet, current, batch)

            total = _total(current) + sum((f["hours"] for f in batch), Decimal("0"))
            updated = await self.store.atomic_replace(
                sheet.id, sheet.version, {"total_hours": total}, EntryDiff(add=batch),
            )
            await self.store.record_history(sheet.id, actor_id, "entries_added", {
                "added": len(batch), "total_hours": str(total),
            })
            return await self._fresh_view(updated, actor_id)

        return await self._with_retry(timesheet_id, attempt)

    # ── Transitions ───────────────────────────────────────────────────────────

    async def submit(self, timesheet_id: uuid.UUID, actor_id: uuid.UUID) -> TimesheetView:
        return await self.decide(timesheet_id, actor_id, "submit")

    async def decide(
        self,
        timesheet_id: uuid.UUID,
        actor_id: uuid.UUID,
        action: str,
        reason: str | None = None,
        finalize: bool = False,
    ) -> TimesheetView:
        require_reason(action, reason)

        async def attempt() -> TimesheetView:
            sheet = await self._load(timesheet_id)
            entries = await self.store.load_entries(timesheet_id)
            access = await self._access(sheet, entries, actor_id)
            command = ApprovalCommand(
                actor_id=actor_id,
                actor_role=access.actor_role,
                action=action,
                reason=reason,
                finalize=finalize,
                billing_snapshot_id=uuid.uuid4() if action == "mark_billed" else None,
                is_owner=access.relation == "owner",
            )
            result = apply_transition(
                sheet.status, command, access.flow,
                total_hours=_total(entries),
                now=self.clock(),
                mode=self.settings.MANAGEMENT_REVIEW_MODE,
            )

            snapshot = None
            if action == "mark_billed":
                summary = hours_summary(entries)
                snapshot = {
                    "id": command.billing_snapshot_id,
                    "timesheet_id": sheet.id,
                    "user_id": sheet.user_id,
                    "week_start_date": sheet.week_start_date,
                    "week_end_date": sheet.week_end_date,
                    "total_hours": summary["total_hours"],
                    "billable_hours": summary["billable_hours"],
                    "non_billable_hours": summary["non_billable_hours"],
                    "generated_by": actor_id,
                    "generated_at": self.clock(),
                }

            updated = await self.store.atomic_replace(
                sheet.id, sheet.version, result.changes, snapshot=snapshot,
            )
            detail: dict[str, Any] = {"from": result.from_status, "to": result.to_status}
            if reason:
                detail["reason"] = reason.strip()
            if finalize:
                detail["finalize"] = True
            await self.store.record_history(sheet.id, actor_id, action, detail)
            logger.info(
                "Timesheet %s %s by %s (%s): %s -> %s",
                sheet.id, result.transition.label, actor_id, access.actor_role,
                result.from_status, result.to_status,
            )
            return await self._fresh_view(updated, actor_id)

        return await self._with_retry(timesheet_id, attempt)

    async def mark_billed(self, timesheet_id: uuid.UUID, actor_id: uuid.UUID) -> TimesheetView:
        return await self.decide(timesheet_id, actor_id, "mark_billed")

    # ── Reads ─────────────────────────────────────────────────────────────────

    async def get_view(self, timesheet_id: uuid.UUID, viewer_id: uuid.UUID) -> TimesheetView:
        sheet = await self._load(timesheet_id)
        entries = await self.store.load_entries(timesheet_id)
        access = await self._require_visible(sheet, entries, viewer_id)
        return self._view(sheet, entries, access.flow)

    async def history(self, timesheet_id: uuid.UUID, viewer_id: uuid.UUID) -> list[Any]:
        sheet = await self._load(timesheet_id)
        entries = await self.store.load_entries(timesheet_id)
        await self._require_visible(sheet, entries, viewer_id)
        return await self.store.load_history(timesheet_id)

    async def list_own(self, actor_id: uuid.UUID, statuses: list[str] | None = None) -> list[Any]:
        return await self.store.list_timesheets(user_ids=[actor_id], statuses=statuses)

    async def list_for_approval(
        self,
        approver_id: uuid.UUID,
        statuses: list[str] | None = None,
    ) -> list[TimesheetView]:
        """Timesheets on which the approver can approve, reject or finalize right now."""
        sheets = await self.store.list_timesheets(statuses=list(statuses or ACTIONABLE_STATUSES))
        views = []
        for sheet in sheets:
            if sheet.user_id == approver_id:
                continue
            entries = await self.store.load_entries(sheet.id)
            access = await self._access(sheet, entries, approver_id)
            if access.flow.can_approve or access.flow.can_reject or access.flow.can_finalize:
                views.append(self._view(sheet, entries, access.flow))
        return views

    async def dashboard(self, actor_id: uuid.UUID) -> dict[str, Any]:
        role = await self.identity.role_of(actor_id)
        own = await self.store.list_timesheets(user_ids=[actor_id])
        counts: dict[str, int] = {}
        for sheet in own:
            counts[sheet.status] = counts.get(sheet.status, 0) + 1
        completed = counts.get("frozen", 0) + counts.get("billed", 0)
        pending = 0
        if role in VIEW_ALL_ROLES or role == "lead":
            pending = len(await self.list_for_approval(actor_id))
        return {
            "total_timesheets": len(own),
            "status_counts": counts,
            "total_hours": sum((coerce_hours(s.total_hours) for s in own), Decimal("0")),
            "completion_rate": round(completed / len(own) * 100, 1) if own else 0.0,
            "pending_approvals": pending,
        }

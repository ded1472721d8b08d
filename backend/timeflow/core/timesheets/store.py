import uuid
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from timeflow.core.audit.models import AuditLog
from timeflow.core.audit.service import audit, list_audit
from timeflow.core.timesheets.exceptions import ConflictError, DuplicateTimesheet
from timeflow.core.timesheets.models import Timesheet, TimeEntry, BillingSnapshot
from timeflow.db.base import utcnow


@dataclass
class EntryDiff:
    """Entries to soft-delete and entry field sets to insert, applied as one unit."""
    remove_ids: list[uuid.UUID] = field(default_factory=list)
    add: list[dict[str, Any]] = field(default_factory=list)


class SqlTimesheetStore:
    """
    Timesheet persistence on an AsyncSession.
    Writes to an existing timesheet go through atomic_replace(), which bumps
    the version only if it still matches what the caller read.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def load_timesheet(self, timesheet_id: uuid.UUID) -> Timesheet | None:
        result = await self.db.execute(
            select(Timesheet)
            .where(Timesheet.id == timesheet_id, Timesheet.is_deleted == False)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def load_entries(self, timesheet_id: uuid.UUID) -> list[TimeEntry]:
        result = await self.db.execute(
            select(TimeEntry)
            .where(TimeEntry.timesheet_id == timesheet_id, TimeEntry.is_deleted == False)
            .order_by(TimeEntry.work_date, TimeEntry.created_at)
        )
        return list(result.scalars().all())

    async def find_active(self, user_id: uuid.UUID, week_start: date) -> Timesheet | None:
        result = await self.db.execute(
            select(Timesheet).where(
                Timesheet.user_id == user_id,
                Timesheet.week_start_date == week_start,
                Timesheet.is_deleted == False,
            )
        )
        return result.scalar_one_or_none()

    async def insert_timesheet(self, **fields: Any) -> Timesheet:
        # uq_timesheet_user_week_active settles concurrent creates for the same week.
        sheet = Timesheet(version=1, **fields)
        try:
            async with self.db.begin_nested():
                self.db.add(sheet)
                await self.db.flush()
        except IntegrityError as exc:
            raise DuplicateTimesheet(fields["user_id"], fields["week_start_date"]) from exc
        await self.db.refresh(sheet)
        return sheet

    async def insert_snapshot(self, **fields: Any) -> BillingSnapshot:
        snapshot = BillingSnapshot(**fields)
        self.db.add(snapshot)
        await self.db.flush()
        return snapshot

    async def atomic_replace(
        self,
        timesheet_id: uuid.UUID,
        expected_version: int,
        changes: dict[str, Any],
        entry_diff: EntryDiff | None = None,
        snapshot: dict[str, Any] | None = None,
    ) -> Timesheet:
        """
        Compare-and-swap on Timesheet.version. The header update, entry diff
        and optional billing snapshot commit together or not at all.
        """
        async with self.db.begin_nested():
            if snapshot is not None:
                await self.insert_snapshot(**snapshot)

            result = await self.db.execute(
                update(Timesheet)
                .where(
                    Timesheet.id == timesheet_id,
                    Timesheet.version == expected_version,
                    Timesheet.is_deleted == False,
                )
                .values(**changes, version=Timesheet.version + 1, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise ConflictError(timesheet_id, expected_version)

            if entry_diff and entry_diff.remove_ids:
                await self.db.execute(
                    update(TimeEntry)
                    .where(TimeEntry.id.in_(entry_diff.remove_ids))
                    .values(is_deleted=True, updated_at=utcnow())
                    .execution_options(synchronize_session=False)
                )
            if entry_diff:
                for fields in entry_diff.add:
                    self.db.add(TimeEntry(timesheet_id=timesheet_id, **fields))
            await self.db.flush()

        result = await self.db.execute(
            select(Timesheet)
            .where(Timesheet.id == timesheet_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()

    async def list_timesheets(
        self,
        *,
        user_ids: list[uuid.UUID] | None = None,
        statuses: list[str] | None = None,
        week_start: date | None = None,
    ) -> list[Timesheet]:
        q = select(Timesheet).where(Timesheet.is_deleted == False)
        if user_ids is not None:
            q = q.where(Timesheet.user_id.in_(user_ids))
        if statuses:
            q = q.where(Timesheet.status.in_(statuses))
        if week_start:
            q = q.where(Timesheet.week_start_date == week_start)
        q = q.order_by(Timesheet.week_start_date.desc())
        result = await self.db.execute(q)
        return list(result.scalars().all())

    async def record_history(
        self,
        timesheet_id: uuid.UUID,
        actor_id: uuid.UUID,
        action: str,
        detail: dict[str, Any],
    ) -> AuditLog:
        return await audit(
            self.db,
            user_id=actor_id,
            action=f"timesheet.{action}",
            resource_type="timesheet",
            resource_id=str(timesheet_id),
            detail=detail,
        )

    async def load_history(self, timesheet_id: uuid.UUID) -> list[AuditLog]:
        return await list_audit(self.db, "timesheet", str(timesheet_id))

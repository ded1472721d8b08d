import asyncio
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest

from timeflow.core.timesheets.exceptions import ConflictError, NotFound
from timeflow.core.timesheets.service import TimesheetLifecycleService
from timeflow.settings import Settings

NOW = datetime(2024, 1, 8, 9, 0, tzinfo=timezone.utc)
WEEK = date(2024, 1, 1)  # Monday
PROJECT = uuid.uuid4()
TASK = uuid.uuid4()

TIMESHEET_DEFAULTS = {
    "status": "draft",
    "total_hours": Decimal("0"),
    "submitted_at": None,
    "approved_by_manager_id": None,
    "approved_by_manager_at": None,
    "manager_rejection_reason": None,
    "manager_rejected_at": None,
    "approved_by_management_id": None,
    "approved_by_management_at": None,
    "management_rejection_reason": None,
    "management_rejected_at": None,
    "verified_by_id": None,
    "verified_at": None,
    "is_verified": False,
    "is_frozen": False,
    "billing_snapshot_id": None,
    "version": 1,
    "is_deleted": False,
}


class MemoryStore:
    """Dict-backed store; hands out copies so each reader sees the row as of its read."""

    def __init__(self):
        self.sheets: dict[uuid.UUID, dict] = {}
        self.entries: dict[uuid.UUID, dict] = {}
        self.snapshots: dict[uuid.UUID, dict] = {}
        self.history: list[dict] = []
        self.conflicts = 0
        self.yield_on_load = False

    async def load_timesheet(self, timesheet_id):
        row = self.sheets.get(timesheet_id)
        sheet = SimpleNamespace(**row) if row and not row["is_deleted"] else None
        if self.yield_on_load:
            await asyncio.sleep(0)
        return sheet

    async def load_entries(self, timesheet_id):
        rows = [e for e in self.entries.values() if e["timesheet_id"] == timesheet_id and not e["is_deleted"]]
        return [SimpleNamespace(**e) for e in sorted(rows, key=lambda e: e["work_date"])]

    async def find_active(self, user_id, week_start):
        for row in self.sheets.values():
            if row["user_id"] == user_id and row["week_start_date"] == week_start and not row["is_deleted"]:
                return SimpleNamespace(**row)
        return None

    async def insert_timesheet(self, **fields):
        row = {**TIMESHEET_DEFAULTS, "id": uuid.uuid4(), **fields}
        self.sheets[row["id"]] = row
        return SimpleNamespace(**row)

    async def atomic_replace(self, timesheet_id, expected_version, changes, entry_diff=None, snapshot=None):
        row = self.sheets.get(timesheet_id)
        if row is None or row["is_deleted"] or row["version"] != expected_version:
            self.conflicts += 1
            raise ConflictError(timesheet_id, expected_version)
        if snapshot is not None:
            self.snapshots[snapshot["id"]] = dict(snapshot)
        row.update(changes)
        row["version"] += 1
        if entry_diff:
            for entry_id in entry_diff.remove_ids:
                self.entries[entry_id]["is_deleted"] = True
            for fields in entry_diff.add:
                entry = {"id": uuid.uuid4(), "timesheet_id": timesheet_id, "is_deleted": False, **fields}
                self.entries[entry["id"]] = entry
        return SimpleNamespace(**row)

    async def list_timesheets(self, *, user_ids=None, statuses=None, week_start=None):
        rows = [
            r for r in self.sheets.values()
            if not r["is_deleted"]
            and (user_ids is None or r["user_id"] in user_ids)
            and (not statuses or r["status"] in statuses)
            and (week_start is None or r["week_start_date"] == week_start)
        ]
        return [SimpleNamespace(**r) for r in rows]

    async def record_history(self, timesheet_id, actor_id, action, detail):
        entry = {"timesheet_id": timesheet_id, "user_id": actor_id, "action": f"timesheet.{action}", "detail": detail}
        self.history.append(entry)
        return entry

    async def load_history(self, timesheet_id):
        return [h for h in self.history if h["timesheet_id"] == timesheet_id]


class MemoryIdentity:
    def __init__(self):
        self.users: dict[uuid.UUID, tuple[str, uuid.UUID | None]] = {}

    def add(self, role: str, manager_id: uuid.UUID | None = None) -> uuid.UUID:
        user_id = uuid.uuid4()
        self.users[user_id] = (role, manager_id)
        return user_id

    async def role_of(self, user_id):
        if user_id not in self.users:
            raise NotFound("User", user_id)
        return self.users[user_id][0]

    async def manager_of(self, user_id):
        return self.users.get(user_id, (None, None))[1]


class MemoryAuthority:
    def __init__(self):
        self.managed: dict[uuid.UUID, set[uuid.UUID]] = {}

    async def managed_project_ids(self, user_id):
        return set(self.managed.get(user_id, set()))


def entry(day: int = 1, hours="8", project=PROJECT, task=TASK, **extra) -> dict:
    return {"work_date": date(2024, 1, day), "hours": hours, "project_id": project, "task_id": task, **extra}


def full_week(hours="8", days=5) -> list[dict]:
    return [entry(day, hours) for day in range(1, days + 1)]


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def identity():
    return MemoryIdentity()


@pytest.fixture
def authority():
    return MemoryAuthority()


@pytest.fixture
def people(identity):
    management = identity.add("management")
    manager = identity.add("manager", manager_id=management)
    return SimpleNamespace(
        management=management,
        manager=manager,
        other_manager=identity.add("manager", manager_id=management),
        lead=identity.add("lead", manager_id=manager),
        employee=identity.add("employee", manager_id=manager),
        colleague=identity.add("employee", manager_id=manager),
        admin=identity.add("super_admin"),
    )


@pytest.fixture
def make_service(store, authority, identity):
    def _make(**overrides) -> TimesheetLifecycleService:
        return TimesheetLifecycleService(
            store, authority, identity, settings=Settings(**overrides), clock=lambda: NOW,
        )
    return _make


@pytest.fixture
def svc(make_service):
    return make_service()

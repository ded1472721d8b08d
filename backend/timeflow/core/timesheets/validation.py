"""
Time entry validation.

validate_entries() produces advisory warnings only:
  - per day below the minimum or above the maximum
  - week above the weekly maximum
  - repeated project/task/date keys
It never raises and never mutates its input.

find_hard_violations() and check_entry_shape() produce blocking errors used
by write operations; callers turn them into ValidationFailure.
"""
import uuid
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any

QUARTER_HOUR = Decimal("0.25")
MISSING_KEY_PART = "N/A"


@dataclass(frozen=True)
class HourLimits:
    daily_min: Decimal = Decimal("8")
    daily_max: Decimal = Decimal("10")
    weekly_max: Decimal = Decimal("56")

    @classmethod
    def from_settings(cls, settings) -> "HourLimits":
        return cls(
            daily_min=Decimal(settings.DAILY_MIN_HOURS),
            daily_max=Decimal(settings.DAILY_MAX_HOURS),
            weekly_max=Decimal(settings.WEEKLY_MAX_HOURS),
        )


DEFAULT_LIMITS = HourLimits()


def _field(entry: Any, name: str) -> Any:
    if isinstance(entry, Mapping):
        return entry.get(name)
    return getattr(entry, name, None)


def coerce_hours(value: Any) -> Decimal:
    """Non-numeric, NaN and negative hours count as zero."""
    if value is None or isinstance(value, bool):
        return Decimal("0")
    try:
        hours = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return Decimal("0")
    if not hours.is_finite() or hours < 0:
        return Decimal("0")
    return hours


def format_hours(value: Decimal) -> str:
    return format(value.normalize(), "f")


def _day_key(value: Any) -> str:
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def _key_part(value: Any) -> str:
    return str(value) if value else MISSING_KEY_PART


def duplicate_key(entry: Any) -> str:
    return "/".join((
        _key_part(_field(entry, "project_id")),
        _key_part(_field(entry, "task_id")),
        _day_key(_field(entry, "work_date")),
    ))


def daily_totals(entries: Iterable[Any]) -> dict[str, Decimal]:
    totals: dict[str, Decimal] = {}
    for entry in entries:
        if entry is None or not _field(entry, "work_date"):
            continue
        day = _day_key(_field(entry, "work_date"))
        totals[day] = totals.get(day, Decimal("0")) + coerce_hours(_field(entry, "hours"))
    return totals


def validate_entries(entries: Iterable[Any], limits: HourLimits = DEFAULT_LIMITS) -> list[str]:
    dated = [e for e in entries if e is not None and _field(e, "work_date")]
    warnings: list[str] = []

    per_day = daily_totals(dated)
    for day in sorted(per_day):
        total = per_day[day]
        if total < limits.daily_min:
            warnings.append(f"On {day}: total hours {format_hours(total)} < minimum {format_hours(limits.daily_min)}")
        elif total > limits.daily_max:
            warnings.append(f"On {day}: total hours {format_hours(total)} > maximum {format_hours(limits.daily_max)}")

    weekly = sum(per_day.values(), Decimal("0"))
    if weekly > limits.weekly_max:
        warnings.append(f"Total weekly hours {format_hours(weekly)} > maximum {format_hours(limits.weekly_max)}")

    seen: set[str] = set()
    for entry in dated:
        key = duplicate_key(entry)
        if key in seen:
            warnings.append(f"Duplicate entry for project/task/date: {key}")
        else:
            seen.add(key)

    return warnings


def check_entry_shape(entry: Any, week_start: date, week_end: date) -> list[str]:
    """Structural rules for one entry about to be written."""
    errors: list[str] = []
    work_date = _field(entry, "work_date")
    raw_hours = _field(entry, "hours")
    entry_type = _field(entry, "entry_type") or "project_task"
    label = _day_key(work_date) if work_date else "unknown date"

    if not isinstance(work_date, date):
        errors.append("Entry date is required")
    elif not (week_start <= work_date <= week_end):
        errors.append(f"Entry date {label} is outside timesheet week {week_start} to {week_end}")

    hours = coerce_hours(raw_hours)
    if hours <= 0:
        errors.append(f"Hours must be greater than zero (on {label})")
    elif hours % QUARTER_HOUR != 0:
        errors.append(f"Hours must be in quarter-hour increments (on {label}: {format_hours(hours)})")

    custom = (_field(entry, "custom_task_description") or "").strip()
    if entry_type == "project_task":
        if not _field(entry, "project_id") or not _field(entry, "task_id"):
            errors.append(f"Project and task are required for project task entries (on {label})")
        if custom:
            errors.append(f"Project task entries cannot carry a custom task description (on {label})")
    elif entry_type == "custom_task":
        if not custom:
            errors.append(f"Custom task description is required (on {label})")
        if _field(entry, "project_id") or _field(entry, "task_id"):
            errors.append(f"Custom task entries cannot reference a project or task (on {label})")
    else:
        errors.append(f"Unknown entry type '{entry_type}'")

    return errors


def find_hard_violations(
    existing: Iterable[Any],
    batch: Iterable[Any],
    limits: HourLimits = DEFAULT_LIMITS,
    enforce_daily_max: bool = True,
) -> list[str]:
    """
    Check a batch of new entries against entries that will remain alongside it.
    Entries are applied in order so each one sees the hours already accepted
    for its date (current) plus its own hours (adding).
    """
    errors: list[str] = []
    day_hours: dict[str, Decimal] = {}
    project_keys: set[tuple[uuid.UUID | str, uuid.UUID | str, str]] = set()
    custom_keys: set[tuple[str, str]] = set()

    def _register(entry: Any) -> None:
        day = _day_key(_field(entry, "work_date"))
        day_hours[day] = day_hours.get(day, Decimal("0")) + coerce_hours(_field(entry, "hours"))
        if (_field(entry, "entry_type") or "project_task") == "project_task":
            project_keys.add((_field(entry, "project_id"), _field(entry, "task_id"), day))
        else:
            custom_keys.add(((_field(entry, "custom_task_description") or "").strip(), day))

    for entry in existing:
        if entry is not None and _field(entry, "work_date"):
            _register(entry)

    for entry in batch:
        if entry is None or not _field(entry, "work_date"):
            continue
        day = _day_key(_field(entry, "work_date"))
        adding = coerce_hours(_field(entry, "hours"))

        if (_field(entry, "entry_type") or "project_task") == "project_task":
            key = (_field(entry, "project_id"), _field(entry, "task_id"), day)
            if key in project_keys:
                errors.append(
                    f"Duplicate entry for project/task/date: {duplicate_key(entry)}. "
                    "A time entry for this project and task already exists on this date"
                )
                continue
        else:
            description = (_field(entry, "custom_task_description") or "").strip()
            if (description, day) in custom_keys:
                errors.append(f"Duplicate custom task '{description}' on {day}")
                continue

        current = day_hours.get(day, Decimal("0"))
        total = current + adding
        if enforce_daily_max and total > limits.daily_max:
            errors.append(
                f"On {day}: total hours {format_hours(total)} > maximum {format_hours(limits.daily_max)} "
                f"(current: {format_hours(current)}, adding: {format_hours(adding)}, "
                f"total: {format_hours(total)})"
            )
            continue

        _register(entry)

    return errors


def hours_summary(entries: Iterable[Any]) -> dict[str, Any]:
    """Total, billable and per-project hours for a set of entries."""
    total = Decimal("0")
    billable = Decimal("0")
    by_project: dict[str, Decimal] = {}
    for entry in entries:
        hours = coerce_hours(_field(entry, "hours"))
        total += hours
        if _field(entry, "is_billable"):
            billable += hours
        project = _key_part(_field(entry, "project_id"))
        by_project[project] = by_project.get(project, Decimal("0")) + hours
    return {
        "total_hours": total,
        "billable_hours": billable,
        "non_billable_hours": total - billable,
        "project_breakdown": by_project,
    }

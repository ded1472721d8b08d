"""
Timesheet error taxonomy.

TimesheetError (base)
  ValidationFailure   422  user-correctable input or hour-limit breach
  PermissionDenied    403  actor lacks authority in the current status
  InvalidTransition   409  action not defined for the current status
  ConflictError       409  concurrent write detected; re-read and retry
  DuplicateTimesheet  409  active timesheet already exists for owner/week
  NotFound            404  timesheet or user missing
"""
import uuid
from datetime import date


class TimesheetError(Exception):
    code = "TIMESHEET_ERROR"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationFailure(TimesheetError):
    code = "VALIDATION_FAILED"
    status_code = 422

    def __init__(self, message: str, errors: list[str] | None = None):
        super().__init__(message)
        self.errors = errors or [message]


class PermissionDenied(TimesheetError):
    code = "PERMISSION_DENIED"
    status_code = 403


class InvalidTransition(TimesheetError):
    code = "INVALID_TRANSITION"
    status_code = 409

    def __init__(self, status: str, action: str):
        super().__init__(f"Action '{action}' is not allowed from status '{status}'")
        self.status = status
        self.action = action


class ConflictError(TimesheetError):
    code = "CONFLICT"
    status_code = 409
    retryable = True

    def __init__(self, timesheet_id: uuid.UUID, expected_version: int):
        super().__init__(
            f"Timesheet {timesheet_id} was modified concurrently "
            f"(expected version {expected_version})"
        )
        self.timesheet_id = timesheet_id
        self.expected_version = expected_version


class DuplicateTimesheet(TimesheetError):
    code = "DUPLICATE_TIMESHEET"
    status_code = 409

    def __init__(self, user_id: uuid.UUID, week_start: date):
        super().__init__(f"Timesheet already exists for user {user_id} and week {week_start}")
        self.user_id = user_id
        self.week_start = week_start


class NotFound(TimesheetError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, kind: str, ident: object):
        super().__init__(f"{kind} not found: {ident}")
        self.kind = kind
        self.ident = ident

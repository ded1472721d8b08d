"""
Permission resolution for timesheet actions.

Resolution order:
  1. global role x status table (APPROVAL_MATRIX), gated by who may approve
     a given owner's role (STAGE_APPROVERS)
  2. project-scoped override: an actor managing every project on the
     timesheet approves/rejects at 'submitted' as if they were a manager
  3. edit/submit only in editable statuses, for the owner or (after a
     rejection) the owner's manager
  4. frozen/billed grant nothing

Everything here is pure; the caller loads roles and project authority.
"""
import uuid
from dataclasses import dataclass, field, replace
from typing import Literal

from timeflow.core.timesheets.models import EDITABLE_TIMESHEET_STATUSES, IMMUTABLE_TIMESHEET_STATUSES

Relation = Literal["owner", "owner_manager", "other"]

REJECTED_STATUSES = frozenset({"manager_rejected", "management_rejected"})
TIME_LOGGING_ROLES = frozenset({"employee", "lead", "manager", "management"})

# status -> approver role -> rights
APPROVAL_MATRIX: dict[str, dict[str, frozenset[str]]] = {
    "submitted": {
        "manager": frozenset({"approve", "reject"}),
        "management": frozenset({"approve", "reject"}),
    },
    "manager_approved": {
        "manager": frozenset({"finalize"}),
        "management": frozenset({"approve", "reject"}),
    },
    "management_pending": {
        "management": frozenset({"approve", "reject"}),
    },
}

# Manager-stage approvers by owner role. Managers do not sign off their peers.
STAGE_APPROVERS: dict[str, frozenset[str]] = {
    "employee": frozenset({"manager", "management"}),
    "lead": frozenset({"manager", "management"}),
    "manager": frozenset({"management"}),
    "management": frozenset({"management"}),
}

PROJECT_OVERRIDE_STATUSES = frozenset({"submitted"})
PROJECT_OVERRIDE_ROLE = "manager"


@dataclass(frozen=True)
class ProjectAuthority:
    """Projects the actor manages vs. projects referenced by the timesheet's entries."""
    managed_project_ids: frozenset[uuid.UUID] = field(default_factory=frozenset)
    timesheet_project_ids: frozenset[uuid.UUID] = field(default_factory=frozenset)

    def covers_timesheet(self) -> bool:
        return bool(self.timesheet_project_ids) and self.timesheet_project_ids <= self.managed_project_ids


@dataclass(frozen=True)
class StatusFlow:
    can_edit: bool = False
    can_submit: bool = False
    can_approve: bool = False
    can_reject: bool = False
    can_finalize: bool = False
    next_action: str = ""


def _approval_rights(status: str, role: str, owner_role: str) -> frozenset[str]:
    rights = APPROVAL_MATRIX.get(status, {}).get(role, frozenset())
    if not rights:
        return rights
    # finalize and manager-stage approval follow the owner's reporting level
    if status == "submitted" or "finalize" in rights:
        if role not in STAGE_APPROVERS.get(owner_role, frozenset()):
            return frozenset()
    return rights


def _next_action(status: str, flow: StatusFlow) -> str:
    if status == "draft":
        return "Submit for approval" if flow.can_submit else "Draft - awaiting submission"
    if status == "submitted":
        return "Ready for your approval" if flow.can_approve else "Awaiting manager approval"
    if status == "manager_approved":
        if flow.can_approve:
            return "Manager approved - ready for your review"
        if flow.can_finalize:
            return "Manager approved - finalize or forward to management"
        return "Manager approved - pending management review"
    if status == "management_pending":
        return "Ready for final approval" if flow.can_approve else "Pending management approval"
    if status == "manager_rejected":
        if flow.can_submit:
            return "Rejected - needs revision"
        return "Rejected by manager - awaiting resubmission"
    if status == "management_rejected":
        if flow.can_submit:
            return "Rejected by management - needs revision"
        return "Rejected by management - awaiting resubmission"
    if status == "frozen":
        return "Approved & Frozen - included in billing"
    if status == "billed":
        return "Billed - no further changes"
    return "No action available"


def resolve_permissions(
    status: str,
    actor_role: str,
    owner_role: str,
    authority: ProjectAuthority | None = None,
    *,
    relation: Relation = "owner",
) -> StatusFlow:
    if status in IMMUTABLE_TIMESHEET_STATUSES:
        return StatusFlow(next_action=_next_action(status, StatusFlow()))

    rights: frozenset[str] = frozenset()
    if relation != "owner":
        rights = _approval_rights(status, actor_role, owner_role)
        if (
            not rights
            and status in PROJECT_OVERRIDE_STATUSES
            and authority is not None
            and authority.covers_timesheet()
        ):
            rights = _approval_rights(status, PROJECT_OVERRIDE_ROLE, owner_role)

    can_edit = False
    if status in EDITABLE_TIMESHEET_STATUSES:
        if relation == "owner":
            can_edit = actor_role in TIME_LOGGING_ROLES
        elif relation == "owner_manager":
            can_edit = status in REJECTED_STATUSES

    flow = StatusFlow(
        can_edit=can_edit,
        can_submit=can_edit,
        can_approve="approve" in rights,
        can_reject="reject" in rights,
        can_finalize="finalize" in rights,
    )
    return replace(flow, next_action=_next_action(status, flow))


def get_status_flow(status: str, role: str) -> StatusFlow:
    """
    Role-level affordances for UIs: what this role may do on its own
    timesheet, merged with what it may do on an employee's timesheet.
    """
    own = resolve_permissions(status, role, role, relation="owner")
    review = resolve_permissions(status, role, "employee", relation="other")
    flow = StatusFlow(
        can_edit=own.can_edit,
        can_submit=own.can_submit,
        can_approve=review.can_approve,
        can_reject=review.can_reject,
        can_finalize=review.can_finalize,
    )
    return replace(flow, next_action=_next_action(status, flow))

"""
Timesheet approval state machine.

TRANSITIONS is the single source of truth for (status, action) → status.
apply_transition() is pure: it checks the reason, looks the action up for the
current status, checks the actor's permission flags (resolved against the
current status, never the target), and returns the new status together with
every field the write has to carry.
"""
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any

from timeflow.core.timesheets.exceptions import InvalidTransition, PermissionDenied, ValidationFailure
from timeflow.core.timesheets.permissions import StatusFlow

ACTIONS = ("submit", "approve", "reject", "mark_billed")
BILLING_ROLES = frozenset({"management"})


@dataclass(frozen=True)
class Transition:
    source: str
    action: str
    actor_class: str  # owner | manager | management | billing
    target: str
    finalize: bool = False

    @property
    def label(self) -> str:
        return f"{self.action}+finalize" if self.finalize else self.action


TRANSITIONS: tuple[Transition, ...] = (
    Transition("draft", "submit", "owner", "submitted"),
    Transition("manager_rejected", "submit", "owner", "submitted"),
    Transition("management_rejected", "submit", "owner", "submitted"),
    Transition("submitted", "approve", "manager", "manager_approved"),
    Transition("submitted", "reject", "manager", "manager_rejected"),
    Transition("manager_approved", "approve", "manager", "frozen", finalize=True),
    Transition("manager_approved", "approve", "management", "management_pending"),
    Transition("manager_approved", "reject", "management", "management_rejected"),
    Transition("management_pending", "approve", "management", "frozen"),
    Transition("management_pending", "reject", "management", "management_rejected"),
    Transition("frozen", "mark_billed", "billing", "billed"),
)


@dataclass(frozen=True)
class ApprovalCommand:
    actor_id: uuid.UUID
    actor_role: str
    action: str
    reason: str | None = None
    finalize: bool = False
    billing_snapshot_id: uuid.UUID | None = None
    is_owner: bool = False


@dataclass(frozen=True)
class TransitionResult:
    from_status: str
    to_status: str
    transition: Transition
    changes: dict[str, Any] = field(default_factory=dict)


def require_reason(action: str, reason: str | None) -> None:
    if action == "reject" and not (reason or "").strip():
        raise ValidationFailure("Rejection reason is required")


def find_transition(status: str, action: str, finalize: bool = False) -> Transition:
    label = f"{action}+finalize" if finalize else action
    for t in TRANSITIONS:
        if t.source == status and t.action == action and t.finalize == finalize:
            return t
    raise InvalidTransition(status, label)


def _is_permitted(transition: Transition, command: ApprovalCommand, flow: StatusFlow) -> bool:
    if transition.action == "submit":
        return flow.can_submit
    if transition.action == "reject":
        return flow.can_reject
    if transition.action == "mark_billed":
        return command.actor_role in BILLING_ROLES and not command.is_owner
    if transition.finalize:
        return flow.can_finalize
    return flow.can_approve


def _side_effects(
    transition: Transition,
    command: ApprovalCommand,
    total_hours: Decimal,
    now: datetime,
) -> dict[str, Any]:
    source, target = transition.source, transition.target

    if transition.action == "submit":
        if total_hours <= 0:
            raise ValidationFailure("Cannot submit timesheet with zero hours")
        changes: dict[str, Any] = {"submitted_at": now, "total_hours": total_hours}
        # Only the stage that rejected is cleared; the other stage keeps its record.
        if source == "manager_rejected":
            changes.update(manager_rejection_reason=None, manager_rejected_at=None)
        elif source == "management_rejected":
            changes.update(management_rejection_reason=None, management_rejected_at=None)
        return changes

    if transition.action == "reject":
        reason = (command.reason or "").strip()
        if target == "manager_rejected":
            return {"manager_rejection_reason": reason, "manager_rejected_at": now}
        return {"management_rejection_reason": reason, "management_rejected_at": now}

    if transition.action == "mark_billed":
        if command.billing_snapshot_id is None:
            raise ValidationFailure("A billing snapshot is required to mark a timesheet billed")
        return {"billing_snapshot_id": command.billing_snapshot_id}

    if source == "submitted":
        return {"approved_by_manager_id": command.actor_id, "approved_by_manager_at": now}
    if transition.finalize:
        return {"is_frozen": True}
    if source == "management_pending":
        return {
            "approved_by_management_id": command.actor_id,
            "approved_by_management_at": now,
            "verified_by_id": command.actor_id,
            "verified_at": now,
            "is_verified": True,
            "is_frozen": True,
        }
    return {}


def apply_transition(
    status: str,
    command: ApprovalCommand,
    flow: StatusFlow,
    *,
    total_hours: Decimal,
    now: datetime,
    mode: str = "explicit",
) -> TransitionResult:
    require_reason(command.action, command.reason)
    if command.action not in ACTIONS:
        raise InvalidTransition(status, command.action)

    transition = find_transition(status, command.action, command.finalize)
    if not _is_permitted(transition, command, flow):
        raise PermissionDenied(
            f"Role '{command.actor_role}' may not {transition.label} a timesheet in status '{status}'"
        )

    changes = _side_effects(transition, command, total_hours, now)
    target = transition.target
    if mode == "auto_forward" and target == "manager_approved":
        target = "management_pending"
    changes["status"] = target
    return TransitionResult(from_status=status, to_status=target, transition=transition, changes=changes)

import uuid
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from timeflow.core.timesheets.exceptions import InvalidTransition, PermissionDenied, ValidationFailure
from timeflow.core.timesheets.models import TIMESHEET_STATUSES
from timeflow.core.timesheets.permissions import StatusFlow
from timeflow.core.timesheets.workflow import ApprovalCommand, apply_transition

NOW = datetime(2024, 1, 8, 12, 0, tzinfo=timezone.utc)
ACTOR = uuid.uuid4()
ANYTHING = StatusFlow(can_edit=True, can_submit=True, can_approve=True, can_reject=True, can_finalize=True)
NOTHING = StatusFlow()


def _apply(status, action, role="manager", flow=ANYTHING, hours="40", mode="explicit", **kw):
    command = ApprovalCommand(actor_id=ACTOR, actor_role=role, action=action, **kw)
    return apply_transition(status, command, flow, total_hours=Decimal(hours), now=NOW, mode=mode)


def test_submit_from_draft():
    result = _apply("draft", "submit", role="employee")
    assert result.to_status == "submitted"
    assert result.changes == {"status": "submitted", "submitted_at": NOW, "total_hours": Decimal("40")}


@pytest.mark.parametrize("action,kw", [
    ("approve", {}),
    ("approve", {"finalize": True}),
    ("reject", {"reason": "no"}),
    ("mark_billed", {"billing_snapshot_id": uuid.uuid4()}),
])
def test_draft_only_allows_submit(action, kw):
    with pytest.raises(InvalidTransition) as exc:
        _apply("draft", action, role="management", **kw)
    assert "draft" in exc.value.message


@pytest.mark.parametrize("action,kw", [
    ("submit", {}),
    ("approve", {}),
    ("approve", {"finalize": True}),
    ("reject", {"reason": "late"}),
])
def test_frozen_allows_no_owner_or_approver_action(action, kw):
    with pytest.raises(InvalidTransition):
        _apply("frozen", action, role="management", **kw)


@pytest.mark.parametrize("status", TIMESHEET_STATUSES)
@pytest.mark.parametrize("reason", [None, "", "   "])
def test_reject_requires_reason_everywhere(status, reason):
    with pytest.raises(ValidationFailure) as exc:
        _apply(status, "reject", role="management", reason=reason)
    assert exc.value.message == "Rejection reason is required"


def test_unknown_action_is_invalid_transition():
    with pytest.raises(InvalidTransition):
        _apply("submitted", "reopen")


def test_manager_approval_explicit_mode():
    result = _apply("submitted", "approve")
    assert result.to_status == "manager_approved"
    assert result.changes["approved_by_manager_id"] == ACTOR
    assert result.changes["approved_by_manager_at"] == NOW


def test_manager_approval_auto_forward_mode():
    result = _apply("submitted", "approve", mode="auto_forward")
    assert result.to_status == "management_pending"
    assert result.changes["approved_by_manager_id"] == ACTOR


def test_manager_reject_records_reason():
    result = _apply("submitted", "reject", reason="  incomplete ")
    assert result.to_status == "manager_rejected"
    assert result.changes["manager_rejection_reason"] == "incomplete"
    assert result.changes["manager_rejected_at"] == NOW


def test_finalize_freezes_manager_approved():
    result = _apply("manager_approved", "approve", finalize=True)
    assert result.to_status == "frozen"
    assert result.changes["is_frozen"] is True


def test_finalize_not_defined_at_submitted():
    with pytest.raises(InvalidTransition) as exc:
        _apply("submitted", "approve", finalize=True)
    assert "approve+finalize" in exc.value.message


def test_management_forwards_then_freezes():
    assert _apply("manager_approved", "approve", role="management").to_status == "management_pending"
    result = _apply("management_pending", "approve", role="management")
    assert result.to_status == "frozen"
    for name in ("approved_by_management_id", "verified_by_id"):
        assert result.changes[name] == ACTOR
    assert result.changes["is_verified"] is True
    assert result.changes["is_frozen"] is True


@pytest.mark.parametrize("status", ["manager_approved", "management_pending"])
def test_management_reject(status):
    result = _apply(status, "reject", role="management", reason="wrong project")
    assert result.to_status == "management_rejected"
    assert result.changes["management_rejection_reason"] == "wrong project"


def test_resubmit_clears_only_rejecting_stage():
    after_manager = _apply("manager_rejected", "submit", role="employee").changes
    assert after_manager["manager_rejection_reason"] is None
    assert "management_rejection_reason" not in after_manager

    after_management = _apply("management_rejected", "submit", role="employee").changes
    assert after_management["management_rejection_reason"] is None
    assert "manager_rejection_reason" not in after_management


def test_permission_checked_against_current_status():
    with pytest.raises(PermissionDenied):
        _apply("submitted", "approve", flow=NOTHING)
    with pytest.raises(PermissionDenied):
        _apply("manager_approved", "approve", finalize=True, flow=StatusFlow(can_approve=True))


def test_submit_with_zero_hours_fails():
    with pytest.raises(ValidationFailure) as exc:
        _apply("draft", "submit", role="employee", hours="0")
    assert exc.value.message == "Cannot submit timesheet with zero hours"


def test_mark_billed_is_management_only():
    snapshot_id = uuid.uuid4()
    with pytest.raises(PermissionDenied):
        _apply("frozen", "mark_billed", role="manager", billing_snapshot_id=snapshot_id)
    result = _apply("frozen", "mark_billed", role="management", flow=NOTHING, billing_snapshot_id=snapshot_id)
    assert result.to_status == "billed"
    assert result.changes["billing_snapshot_id"] == snapshot_id


def test_owner_cannot_bill_own_timesheet():
    with pytest.raises(PermissionDenied):
        _apply("frozen", "mark_billed", role="management", billing_snapshot_id=uuid.uuid4(), is_owner=True)


def test_billed_is_terminal():
    for action in ("submit", "approve", "mark_billed"):
        with pytest.raises(InvalidTransition):
            _apply("billed", action, role="management", billing_snapshot_id=uuid.uuid4())

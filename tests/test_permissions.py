import uuid

import pytest
from timeflow.core.timesheets.models import TIMESHEET_STATUSES
from timeflow.core.timesheets.permissions import (
    ProjectAuthority, StatusFlow, resolve_permissions, get_status_flow,
)

ROLES = ("employee", "lead", "manager", "management", "super_admin")
RELATIONS = ("owner", "owner_manager", "other")
P1, P2 = uuid.uuid4(), uuid.uuid4()


def _rights(flow: StatusFlow) -> set[str]:
    return {name for name in ("approve", "reject", "finalize") if getattr(flow, f"can_{name}")}


def test_owner_can_edit_and_submit_draft():
    flow = resolve_permissions("draft", "employee", "employee")
    assert flow.can_edit and flow.can_submit
    assert _rights(flow) == set()
    assert flow.next_action == "Submit for approval"


def test_owner_cannot_approve_own_timesheet():
    flow = resolve_permissions("management_pending", "management", "management", relation="owner")
    assert _rights(flow) == set()


def test_manager_reviews_employee_submission():
    flow = resolve_permissions("submitted", "manager", "employee", relation="owner_manager")
    assert _rights(flow) == {"approve", "reject"}
    assert not flow.can_edit
    assert flow.next_action == "Ready for your approval"


def test_manager_does_not_approve_peer_manager():
    flow = resolve_permissions("submitted", "manager", "manager", relation="other")
    assert _rights(flow) == set()
    assert _rights(resolve_permissions("submitted", "management", "manager", relation="other")) == {"approve", "reject"}


def test_manager_approved_stage():
    assert _rights(resolve_permissions("manager_approved", "manager", "employee", relation="other")) == {"finalize"}
    assert _rights(resolve_permissions("manager_approved", "management", "employee", relation="other")) == {"approve", "reject"}
    assert _rights(resolve_permissions("manager_approved", "lead", "employee", relation="other")) == set()


def test_management_pending_is_management_only():
    assert _rights(resolve_permissions("management_pending", "manager", "employee", relation="other")) == set()
    assert _rights(resolve_permissions("management_pending", "management", "employee", relation="other")) == {"approve", "reject"}


def test_owner_manager_may_revise_rejected_timesheets_only():
    for status in ("manager_rejected", "management_rejected"):
        flow = resolve_permissions(status, "manager", "employee", relation="owner_manager")
        assert flow.can_edit and flow.can_submit
    assert not resolve_permissions("draft", "manager", "employee", relation="owner_manager").can_edit
    assert not resolve_permissions("manager_rejected", "manager", "employee", relation="other").can_edit


def test_super_admin_is_view_only():
    for status in TIMESHEET_STATUSES:
        flow = resolve_permissions(status, "super_admin", "employee", relation="other")
        assert not (flow.can_edit or flow.can_submit or _rights(flow))


@pytest.mark.parametrize("status", ["frozen", "billed"])
def test_immutable_statuses_grant_nothing(status):
    covering = ProjectAuthority(frozenset({P1}), frozenset({P1}))
    for role in ROLES:
        for owner_role in ROLES:
            for relation in RELATIONS:
                flow = resolve_permissions(status, role, owner_role, covering, relation=relation)
                assert flow == StatusFlow(next_action=flow.next_action)


def test_project_manager_override_at_submitted():
    covering = ProjectAuthority(frozenset({P1, P2}), frozenset({P1}))
    flow = resolve_permissions("submitted", "lead", "employee", covering, relation="other")
    assert _rights(flow) == {"approve", "reject"}


def test_project_override_needs_every_project():
    partial = ProjectAuthority(frozenset({P1}), frozenset({P1, P2}))
    assert _rights(resolve_permissions("submitted", "lead", "employee", partial, relation="other")) == set()


def test_project_override_needs_project_entries():
    empty = ProjectAuthority(frozenset({P1}), frozenset())
    assert _rights(resolve_permissions("submitted", "employee", "employee", empty, relation="other")) == set()


def test_project_override_stops_after_submitted():
    covering = ProjectAuthority(frozenset({P1}), frozenset({P1}))
    for status in ("manager_approved", "management_pending"):
        assert _rights(resolve_permissions(status, "lead", "employee", covering, relation="other")) == set()


def test_project_override_does_not_let_owner_approve():
    covering = ProjectAuthority(frozenset({P1}), frozenset({P1}))
    assert _rights(resolve_permissions("submitted", "lead", "lead", covering, relation="owner")) == set()


def test_status_flow_for_ui():
    assert get_status_flow("draft", "employee").can_submit
    assert not get_status_flow("draft", "super_admin").can_submit
    assert get_status_flow("submitted", "manager").can_approve
    assert get_status_flow("manager_approved", "manager").can_finalize
    assert not get_status_flow("manager_approved", "lead").can_finalize
    assert get_status_flow("frozen", "management").next_action == "Approved & Frozen - included in billing"


def test_status_flow_is_pure():
    for status in TIMESHEET_STATUSES:
        for role in ROLES:
            assert get_status_flow(status, role) == get_status_flow(status, role)

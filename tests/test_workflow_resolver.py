from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

import pytest

from expense_intimation.modules.identity.models import UserRole
from expense_intimation.modules.workflow.config import APPROVAL_WORKFLOW_CONFIG
from expense_intimation.modules.workflow.errors import UnconfiguredTransitionError
from expense_intimation.modules.workflow.models import ApprovalAction, WorkflowStatus
from expense_intimation.modules.workflow.resolver import (
    can_perform_action,
    find_action,
    get_available_actions,
    get_level_config,
    get_next_level,
    get_next_status,
    get_previous_level,
    levels_for_role,
    project_level,
    project_status,
    resolve_transition,
    should_auto_approve,
)


@dataclass(frozen=True)
class Entry:
    level: int
    action: ApprovalAction


def test_level_chain():
    assert get_next_level(1) == 2
    assert get_next_level(2) == 3
    assert get_next_level(3) is None
    assert get_previous_level(1) is None
    assert get_previous_level(3) == 2
    assert get_next_level(7) is None
    assert get_level_config(0) is None
    assert get_level_config(2).name == "Business Management Approval"


def test_config_is_read_only():
    with pytest.raises(TypeError):
        APPROVAL_WORKFLOW_CONFIG[4] = APPROVAL_WORKFLOW_CONFIG[1]  # type: ignore[index]


@pytest.mark.parametrize(
    ("role", "level", "allowed"),
    [
        (UserRole.MANAGER, 1, True),
        (UserRole.MANAGER, 2, False),
        ("business_head", 2, True),
        ("finance", 3, True),
        ("finance", 1, False),
        (UserRole.ADMIN, 1, True),
        (UserRole.ADMIN, 3, True),
        (UserRole.EMPLOYEE, 1, False),
        ("intern", 1, False),
        (UserRole.MANAGER, 9, False),
    ],
)
def test_can_perform_action(role, level, allowed):
    assert can_perform_action(role, level) is allowed


def test_levels_for_role():
    assert levels_for_role(UserRole.ADMIN) == [1, 2, 3]
    assert levels_for_role(UserRole.FINANCE) == [3]
    assert levels_for_role(UserRole.EMPLOYEE) == []


def test_auto_approval_thresholds():
    assert should_auto_approve(1, Decimal("800"))
    assert should_auto_approve(1, 1000)
    assert not should_auto_approve(1, Decimal("1000.01"))
    assert should_auto_approve(2, "5000")
    assert not should_auto_approve(2, 5001)
    for amount in (0, 1, 10_000_000):
        assert not should_auto_approve(3, amount)
    assert not should_auto_approve(4, 1)
    assert not should_auto_approve(1, "not-a-number")
    for amount in (float("nan"), Decimal("NaN"), float("inf"), Decimal("-Infinity")):
        assert not should_auto_approve(1, amount)
        assert not should_auto_approve(2, amount)


def test_next_status_per_level():
    assert get_next_status(1, ApprovalAction.APPROVE) == WorkflowStatus.LEVEL1_APPROVED
    assert get_next_status(2, "approve") == WorkflowStatus.LEVEL2_APPROVED
    assert get_next_status(3, ApprovalAction.CONFIRM_PAYMENT) == WorkflowStatus.PAID
    for level in (1, 2, 3):
        assert get_next_status(level, ApprovalAction.REJECT) == WorkflowStatus.REJECTED
        assert get_next_status(level, ApprovalAction.RETURN) == WorkflowStatus.SUBMITTED


@pytest.mark.parametrize(
    ("level", "action"),
    [
        (3, ApprovalAction.APPROVE),
        (1, ApprovalAction.CONFIRM_PAYMENT),
        (2, ApprovalAction.CONFIRM_PAYMENT),
        (5, ApprovalAction.APPROVE),
        (1, "escalate"),
    ],
)
def test_unconfigured_transition_falls_back_but_strict_variant_raises(level, action):
    assert find_action(level, action) is None
    assert get_next_status(level, action) == WorkflowStatus.SUBMITTED
    with pytest.raises(UnconfiguredTransitionError):
        resolve_transition(level, action)


def test_available_actions_depend_on_role():
    assert get_available_actions(UserRole.MANAGER, 2) == []
    assert [a.action for a in get_available_actions(UserRole.MANAGER, 1)] == [
        ApprovalAction.APPROVE,
        ApprovalAction.REJECT,
        ApprovalAction.RETURN,
    ]
    level3 = get_available_actions(UserRole.FINANCE, 3)
    assert [a.action for a in level3] == [
        ApprovalAction.CONFIRM_PAYMENT,
        ApprovalAction.REJECT,
        ApprovalAction.RETURN,
    ]
    assert level3[0].requires_payment_details
    assert level3[1].requires_comment and level3[1].variant == "destructive"


def test_project_status_without_history():
    assert project_status([], submitted=False) == WorkflowStatus.DRAFT
    assert project_status([], submitted=True) == WorkflowStatus.SUBMITTED
    assert project_status([Entry(1, ApprovalAction.APPROVE)], submitted=True, cancelled=True) == (
        WorkflowStatus.CANCELLED
    )
    assert project_level([], submitted=False) is None
    assert project_level([], submitted=True) == 1


def test_projection_matches_next_status_for_every_configured_action():
    for level, cfg in APPROVAL_WORKFLOW_CONFIG.items():
        for action_cfg in cfg.available_actions:
            history = [Entry(level, action_cfg.action)]
            assert project_status(history, submitted=True) == get_next_status(
                level, action_cfg.action
            )


def test_project_level_follows_history():
    history = [Entry(1, ApprovalAction.APPROVE), Entry(2, ApprovalAction.APPROVE)]
    assert project_status(history, submitted=True) == WorkflowStatus.LEVEL2_APPROVED
    assert project_level(history, submitted=True) == 3

    returned = [*history, Entry(3, ApprovalAction.RETURN)]
    assert project_status(returned, submitted=True) == WorkflowStatus.SUBMITTED
    assert project_level(returned, submitted=True) == 1

    rejected = [Entry(1, ApprovalAction.APPROVE), Entry(2, ApprovalAction.REJECT)]
    assert project_status(rejected, submitted=True) == WorkflowStatus.REJECTED
    assert project_level(rejected, submitted=True) is None

    paid = [*history, Entry(3, ApprovalAction.CONFIRM_PAYMENT)]
    assert project_status(paid, submitted=True) == WorkflowStatus.PAID
    assert project_level(paid, submitted=True) is None

"""
Approval workflow configuration.

Three sequential levels (manager, business head, finance). Each level lists
the roles allowed to act, the actions they are offered, an optional
auto-approval ceiling and the side effects every action fires. The tables are
built once at import time and are read-only afterwards.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from decimal import Decimal
from types import MappingProxyType
from typing import Any

from expense_intimation.modules.identity.models import UserRole
from expense_intimation.modules.workflow.models import (
    ApprovalAction,
    SideEffectType,
    WorkflowStatus,
)

_EMPTY: Mapping[str, Any] = MappingProxyType({})


@dataclass(frozen=True)
class SideEffect:
    type: SideEffectType
    target: str | None = None
    payload: Mapping[str, Any] = field(default_factory=lambda: _EMPTY)


@dataclass(frozen=True)
class ActionConfig:
    action: ApprovalAction
    label: str
    next_status: WorkflowStatus
    side_effects: tuple[SideEffect, ...]
    variant: str = "default"
    requires_comment: bool = False
    requires_payment_details: bool = False


@dataclass(frozen=True)
class LevelConfig:
    level: int
    name: str
    description: str
    required_roles: frozenset[UserRole]
    available_actions: tuple[ActionConfig, ...]
    auto_approve_threshold: Decimal | None
    notification_recipients: tuple[str, ...] = ()


def _effect(type_: SideEffectType, target: str | None = None, **payload: Any) -> SideEffect:
    return SideEffect(type=type_, target=target, payload=MappingProxyType(dict(payload)))


# next_status is replaced per level.
_APPROVE = ActionConfig(
    action=ApprovalAction.APPROVE,
    label="Approve",
    next_status=WorkflowStatus.LEVEL1_APPROVED,
    side_effects=(
        _effect(SideEffectType.NOTIFICATION, "employee", message="Your expense has been approved"),
        _effect(SideEffectType.ASSIGN_NEXT_LEVEL),
        _effect(SideEffectType.EMAIL, "next_approver", template="expense_awaiting_approval"),
    ),
)

_REJECT = ActionConfig(
    action=ApprovalAction.REJECT,
    label="Reject",
    variant="destructive",
    requires_comment=True,
    next_status=WorkflowStatus.REJECTED,
    side_effects=(
        _effect(SideEffectType.NOTIFICATION, "employee", message="Your expense has been rejected"),
        _effect(SideEffectType.EMAIL, "employee", template="expense_rejected"),
        _effect(SideEffectType.STATUS_CHANGE, status=WorkflowStatus.REJECTED.value),
    ),
)

_RETURN = ActionConfig(
    action=ApprovalAction.RETURN,
    label="Return for Clarification",
    variant="outline",
    requires_comment=True,
    next_status=WorkflowStatus.SUBMITTED,
    side_effects=(
        _effect(
            SideEffectType.NOTIFICATION, "employee", message="Your expense needs clarification"
        ),
        _effect(SideEffectType.EMAIL, "employee", template="expense_returned"),
    ),
)

_CONFIRM_PAYMENT = ActionConfig(
    action=ApprovalAction.CONFIRM_PAYMENT,
    label="Confirm Payment",
    requires_payment_details=True,
    next_status=WorkflowStatus.PAID,
    side_effects=(
        _effect(SideEffectType.NOTIFICATION, "employee", message="Your expense has been paid"),
        _effect(SideEffectType.EMAIL, "employee", template="expense_paid"),
        _effect(SideEffectType.STATUS_CHANGE, status=WorkflowStatus.PAID.value),
        _effect(SideEffectType.WEBHOOK, "accounting_system", action="record_payment"),
    ),
)

LEVEL1_CONFIG = LevelConfig(
    level=1,
    name="Manager Approval",
    description="Direct manager reviews and approves expense claims",
    required_roles=frozenset({UserRole.MANAGER, UserRole.ADMIN}),
    available_actions=(
        replace(_APPROVE, next_status=WorkflowStatus.LEVEL1_APPROVED),
        _REJECT,
        _RETURN,
    ),
    auto_approve_threshold=Decimal("1000"),
    notification_recipients=("manager@company.com",),
)

LEVEL2_CONFIG = LevelConfig(
    level=2,
    name="Business Management Approval",
    description="Business head reviews manager-approved expenses",
    required_roles=frozenset({UserRole.BUSINESS_HEAD, UserRole.ADMIN}),
    available_actions=(
        replace(_APPROVE, next_status=WorkflowStatus.LEVEL2_APPROVED),
        _REJECT,
        _RETURN,
    ),
    auto_approve_threshold=Decimal("5000"),
    notification_recipients=("business-head@company.com",),
)

# Finance always reviews manually.
LEVEL3_CONFIG = LevelConfig(
    level=3,
    name="Finance Approval & Payment",
    description="Finance team processes payment for approved expenses",
    required_roles=frozenset({UserRole.FINANCE, UserRole.ADMIN}),
    available_actions=(_CONFIRM_PAYMENT, _REJECT, _RETURN),
    auto_approve_threshold=None,
    notification_recipients=("finance@company.com",),
)

APPROVAL_WORKFLOW_CONFIG: Mapping[int, LevelConfig] = MappingProxyType(
    {cfg.level: cfg for cfg in (LEVEL1_CONFIG, LEVEL2_CONFIG, LEVEL3_CONFIG)}
)

APPROVAL_LEVELS: tuple[int, ...] = tuple(sorted(APPROVAL_WORKFLOW_CONFIG))
FIRST_LEVEL = APPROVAL_LEVELS[0]
LAST_LEVEL = APPROVAL_LEVELS[-1]

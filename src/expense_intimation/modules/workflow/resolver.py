"""
Pure transition rules over the approval workflow configuration.

Nothing here touches the database. Unknown roles and levels degrade to
"no permission" instead of raising.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal, InvalidOperation
from typing import Protocol

from expense_intimation.modules.identity.models import UserRole
from expense_intimation.modules.workflow.config import (
    APPROVAL_LEVELS,
    APPROVAL_WORKFLOW_CONFIG,
    FIRST_LEVEL,
    ActionConfig,
    LevelConfig,
)
from expense_intimation.modules.workflow.errors import UnconfiguredTransitionError
from expense_intimation.modules.workflow.models import (
    TERMINAL_STATUSES,
    ApprovalAction,
    WorkflowStatus,
)


class HistoryEntry(Protocol):
    level: int
    action: ApprovalAction


def _level_config(level: object) -> LevelConfig | None:
    try:
        return APPROVAL_WORKFLOW_CONFIG.get(level)  # type: ignore[call-overload]
    except TypeError:
        return None


def _coerce_role(role: object) -> UserRole | None:
    try:
        return UserRole(role)
    except ValueError:
        return None


def _coerce_action(action: object) -> ApprovalAction | None:
    try:
        return ApprovalAction(action)
    except ValueError:
        return None


def _to_decimal(amount: object) -> Decimal | None:
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError):
        return None
    # NaN and infinities never compare as within a threshold.
    return value if value.is_finite() else None


def get_level_config(level: int) -> LevelConfig | None:
    return _level_config(level)


def get_next_level(level: int) -> int | None:
    if _level_config(level) is None:
        return None
    idx = APPROVAL_LEVELS.index(level)
    return APPROVAL_LEVELS[idx + 1] if idx + 1 < len(APPROVAL_LEVELS) else None


def get_previous_level(level: int) -> int | None:
    if _level_config(level) is None:
        return None
    idx = APPROVAL_LEVELS.index(level)
    return APPROVAL_LEVELS[idx - 1] if idx > 0 else None


def can_perform_action(role: UserRole | str, level: int) -> bool:
    cfg = _level_config(level)
    user_role = _coerce_role(role)
    if cfg is None or user_role is None:
        return False
    return user_role in cfg.required_roles


def should_auto_approve(level: int, amount: Decimal | int | float | str) -> bool:
    cfg = _level_config(level)
    if cfg is None or cfg.auto_approve_threshold is None:
        return False
    value = _to_decimal(amount)
    if value is None:
        return False
    return value <= cfg.auto_approve_threshold


def find_action(level: int, action: ApprovalAction | str) -> ActionConfig | None:
    cfg = _level_config(level)
    wanted = _coerce_action(action)
    if cfg is None or wanted is None:
        return None
    for candidate in cfg.available_actions:
        if candidate.action == wanted:
            return candidate
    return None


def get_next_status(level: int, action: ApprovalAction | str) -> WorkflowStatus:
    """Next status for ``action`` at ``level``.

    An action that is not configured at the level falls back to ``submitted``.
    Callers that must not guess use :func:`resolve_transition`.
    """
    config = find_action(level, action)
    return config.next_status if config else WorkflowStatus.SUBMITTED


def resolve_transition(level: int, action: ApprovalAction | str) -> WorkflowStatus:
    config = find_action(level, action)
    if config is None:
        raise UnconfiguredTransitionError(level, action)
    return config.next_status


def get_available_actions(role: UserRole | str, level: int) -> list[ActionConfig]:
    if not can_perform_action(role, level):
        return []
    return list(APPROVAL_WORKFLOW_CONFIG[level].available_actions)


def levels_for_role(role: UserRole | str) -> list[int]:
    return [level for level in APPROVAL_LEVELS if can_perform_action(role, level)]


def project_status(
    history: Sequence[HistoryEntry], *, submitted: bool, cancelled: bool = False
) -> WorkflowStatus:
    """Status implied by the approval history; the history is the source of truth."""
    if cancelled:
        return WorkflowStatus.CANCELLED
    if not history:
        return WorkflowStatus.SUBMITTED if submitted else WorkflowStatus.DRAFT
    last = history[-1]
    return get_next_status(last.level, last.action)


def project_level(
    history: Sequence[HistoryEntry], *, submitted: bool, cancelled: bool = False
) -> int | None:
    """Level currently expected to act, or ``None`` when nobody is."""
    status = project_status(history, submitted=submitted, cancelled=cancelled)
    if status == WorkflowStatus.DRAFT or status in TERMINAL_STATUSES:
        return None
    if status == WorkflowStatus.SUBMITTED:
        return FIRST_LEVEL
    return get_next_level(history[-1].level)

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field

from expense_intimation.modules.identity.models import UserRole
from expense_intimation.modules.workflow.config import ActionConfig, LevelConfig
from expense_intimation.modules.workflow.models import (
    ApprovalAction,
    PaymentMethod,
    SideEffectType,
    SubjectType,
    WorkflowStatus,
)


class PaymentDetailsIn(BaseModel):
    payment_date: date
    payment_reference: str = Field(min_length=1, max_length=120)
    payment_method: PaymentMethod
    transaction_id: str | None = None
    bank_details: str | None = None


class ActionRequest(BaseModel):
    action: ApprovalAction
    level: int | None = Field(
        default=None, description="Level the decision was taken at; rejected when stale."
    )
    comments: str | None = None
    payment_details: PaymentDetailsIn | None = None


class ApprovalRecordOut(BaseModel):
    id: uuid.UUID
    subject_type: SubjectType
    subject_id: uuid.UUID
    sequence: int
    level: int
    action: ApprovalAction
    approver_user_id: uuid.UUID | None
    approver_role: str
    is_automatic: bool
    comments: str | None
    payment_details_json: dict[str, Any] | None
    decided_at: datetime


class SideEffectOut(BaseModel):
    type: SideEffectType
    target: str | None
    payload: dict[str, Any]


class ActionConfigOut(BaseModel):
    action: ApprovalAction
    label: str
    variant: str
    requires_comment: bool
    requires_payment_details: bool
    next_status: WorkflowStatus
    side_effects: list[SideEffectOut]

    @classmethod
    def from_config(cls, cfg: ActionConfig) -> ActionConfigOut:
        return cls(
            action=cfg.action,
            label=cfg.label,
            variant=cfg.variant,
            requires_comment=cfg.requires_comment,
            requires_payment_details=cfg.requires_payment_details,
            next_status=cfg.next_status,
            side_effects=[
                SideEffectOut(type=e.type, target=e.target, payload=dict(e.payload))
                for e in cfg.side_effects
            ],
        )


class LevelConfigOut(BaseModel):
    level: int
    name: str
    description: str
    required_roles: list[UserRole]
    auto_approve_threshold: Decimal | None
    available_actions: list[ActionConfigOut]

    @classmethod
    def from_config(cls, cfg: LevelConfig) -> LevelConfigOut:
        return cls(
            level=cfg.level,
            name=cfg.name,
            description=cfg.description,
            required_roles=sorted(cfg.required_roles, key=lambda r: r.value),
            auto_approve_threshold=cfg.auto_approve_threshold,
            available_actions=[ActionConfigOut.from_config(a) for a in cfg.available_actions],
        )

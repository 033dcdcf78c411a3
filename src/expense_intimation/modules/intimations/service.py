from __future__ import annotations

import uuid
from collections.abc import Iterable
from decimal import Decimal
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from expense_intimation.core.config import settings
from expense_intimation.core.models import utcnow
from expense_intimation.modules.expenses.service import normalize_currency
from expense_intimation.modules.identity.models import User, UserRole
from expense_intimation.modules.intimations.models import Intimation, IntimationType
from expense_intimation.modules.intimations.schemas import JourneySegmentIn
from expense_intimation.modules.workflow.models import (
    ApprovalAction,
    ApprovalRecord,
    RaisedFor,
    WorkflowStatus,
)
from expense_intimation.modules.workflow.resolver import levels_for_role
from expense_intimation.modules.workflow.schemas import PaymentDetailsIn
from expense_intimation.modules.workflow.service import (
    ActionOutcome,
    apply_action,
    cancel_subject,
    ensure_can_view,
    ensure_draft,
    ensure_owner,
    next_reference_number,
    resolve_requester,
    submit_subject,
)


def _next_intimation_number(session: Session) -> str:
    prefix = f"{settings.intimation_number_prefix}-{utcnow().year}-"
    return next_reference_number(session, Intimation.intimation_number, prefix)


def _segment_row(segment: JourneySegmentIn) -> dict[str, Any]:
    row = segment.model_dump(mode="json")
    row["id"] = str(uuid.uuid4())
    row["total_cost"] = str(segment.cost_breakdown.total)
    return row


def total_estimated_cost(segments: Iterable[dict[str, Any]]) -> Decimal:
    return sum((Decimal(str(s.get("total_cost") or "0")) for s in segments), Decimal("0"))


def create_intimation(
    session: Session,
    *,
    user: User,
    type: IntimationType,
    raised_for: RaisedFor = RaisedFor.MYSELF,
    employee_id: uuid.UUID | None = None,
    temporary_person_name: str | None = None,
    temporary_person_phone: str | None = None,
    temporary_person_email: str | None = None,
    description: str | None = None,
    currency: str | None = None,
    journey_segments: Iterable[JourneySegmentIn] = (),
) -> Intimation:
    segments = list(journey_segments)
    description = (description or "").strip() or None
    if type == IntimationType.TRAVEL:
        if not segments:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="A travel intimation needs at least one journey segment",
            )
    else:
        if not description:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="description is required for this intimation type",
            )
        if segments:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Only travel intimations take journey segments",
            )

    requester = resolve_requester(
        session,
        user=user,
        raised_for=raised_for,
        employee_id=employee_id,
        temporary_person_name=temporary_person_name,
        temporary_person_phone=temporary_person_phone,
        temporary_person_email=temporary_person_email,
    )
    rows = [_segment_row(s) for s in segments]
    intimation = Intimation(
        intimation_number=_next_intimation_number(session),
        type=type,
        description=description,
        currency=normalize_currency(currency),
        journey_segments_json=rows,
        amount=total_estimated_cost(rows),
        status=WorkflowStatus.DRAFT,
        current_approval_level=None,
        **requester,
    )
    session.add(intimation)
    session.commit()
    session.refresh(intimation)
    return intimation


def list_intimations_for_user(
    session: Session,
    *,
    user: User,
    status_filter: WorkflowStatus | None = None,
    type_filter: IntimationType | None = None,
) -> list[Intimation]:
    q = select(Intimation)
    if user.role != UserRole.ADMIN:
        own = or_(Intimation.employee_id == user.id, Intimation.raised_by_id == user.id)
        if levels_for_role(user.role):
            q = q.where(or_(own, Intimation.status != WorkflowStatus.DRAFT))
        else:
            q = q.where(own)
    if status_filter is not None:
        q = q.where(Intimation.status == status_filter)
    if type_filter is not None:
        q = q.where(Intimation.type == type_filter)
    return list(session.scalars(q.order_by(Intimation.created_at.desc())))


def get_intimation_for_user(
    session: Session, *, intimation_id: uuid.UUID, user: User
) -> Intimation:
    intimation = session.scalar(select(Intimation).where(Intimation.id == intimation_id))
    if not intimation:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Intimation not found")
    ensure_can_view(intimation, user)
    return intimation


def delete_intimation(session: Session, *, intimation: Intimation, user: User) -> None:
    ensure_owner(intimation, user)
    ensure_draft(intimation, detail="Only draft intimations can be deleted")
    session.delete(intimation)
    session.commit()


def submit_intimation(
    session: Session, *, intimation: Intimation, user: User
) -> tuple[Intimation, list[ApprovalRecord]]:
    automatic = submit_subject(session, subject=intimation, user=user)
    return intimation, automatic


def cancel_intimation(session: Session, *, intimation: Intimation, user: User) -> Intimation:
    cancel_subject(session, subject=intimation, user=user)
    return intimation


def act_on_intimation(
    session: Session,
    *,
    intimation: Intimation,
    user: User,
    action: ApprovalAction | str,
    comments: str | None = None,
    payment_details: PaymentDetailsIn | None = None,
    expected_level: int | None = None,
) -> ActionOutcome:
    # Disbursement details live on the approval record only.
    return apply_action(
        session,
        subject=intimation,
        user=user,
        action=action,
        comments=comments,
        payment_details=payment_details.model_dump(mode="json") if payment_details else None,
        expected_level=expected_level,
    )

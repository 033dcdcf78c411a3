from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from expense_intimation.api.deps import get_current_user
from expense_intimation.core.db import db_session
from expense_intimation.modules.identity.models import User
from expense_intimation.modules.intimations.models import Intimation, IntimationType
from expense_intimation.modules.intimations.schemas import IntimationCreate, IntimationOut
from expense_intimation.modules.intimations.service import (
    act_on_intimation,
    cancel_intimation,
    create_intimation,
    delete_intimation,
    get_intimation_for_user,
    list_intimations_for_user,
    submit_intimation,
)
from expense_intimation.modules.workflow.models import WorkflowStatus
from expense_intimation.modules.workflow.schemas import (
    ActionConfigOut,
    ActionRequest,
    ApprovalRecordOut,
)
from expense_intimation.modules.workflow.service import (
    available_actions_for,
    list_approval_history,
)
from expense_intimation.worker.tasks import enqueue_side_effects

router = APIRouter(tags=["intimations"])


def _out(intimation: Intimation) -> IntimationOut:
    return IntimationOut.model_validate(intimation, from_attributes=True)


@router.post("/intimations", response_model=IntimationOut)
def create_intimation_endpoint(
    payload: IntimationCreate,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> IntimationOut:
    intimation = create_intimation(
        session,
        user=user,
        journey_segments=payload.journey_segments,
        **payload.model_dump(exclude={"journey_segments"}),
    )
    return _out(intimation)


@router.get("/intimations", response_model=list[IntimationOut])
def list_intimations_endpoint(
    status: WorkflowStatus | None = None,
    type: IntimationType | None = None,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> list[IntimationOut]:
    rows = list_intimations_for_user(session, user=user, status_filter=status, type_filter=type)
    return [_out(i) for i in rows]


@router.get("/intimations/{intimation_id}", response_model=IntimationOut)
def get_intimation_endpoint(
    intimation_id: uuid.UUID,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> IntimationOut:
    return _out(get_intimation_for_user(session, intimation_id=intimation_id, user=user))


@router.delete("/intimations/{intimation_id}")
def delete_intimation_endpoint(
    intimation_id: uuid.UUID,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> Response:
    intimation = get_intimation_for_user(session, intimation_id=intimation_id, user=user)
    delete_intimation(session, intimation=intimation, user=user)
    return Response(status_code=204)


@router.post("/intimations/{intimation_id}/submit", response_model=IntimationOut)
def submit_intimation_endpoint(
    intimation_id: uuid.UUID,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> IntimationOut:
    intimation = get_intimation_for_user(session, intimation_id=intimation_id, user=user)
    intimation, automatic = submit_intimation(session, intimation=intimation, user=user)
    enqueue_side_effects(automatic)
    return _out(intimation)


@router.post("/intimations/{intimation_id}/cancel", response_model=IntimationOut)
def cancel_intimation_endpoint(
    intimation_id: uuid.UUID,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> IntimationOut:
    intimation = get_intimation_for_user(session, intimation_id=intimation_id, user=user)
    return _out(cancel_intimation(session, intimation=intimation, user=user))


@router.post("/intimations/{intimation_id}/actions", response_model=IntimationOut)
def act_on_intimation_endpoint(
    intimation_id: uuid.UUID,
    payload: ActionRequest,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> IntimationOut:
    intimation = get_intimation_for_user(session, intimation_id=intimation_id, user=user)
    outcome = act_on_intimation(
        session,
        intimation=intimation,
        user=user,
        action=payload.action,
        comments=payload.comments,
        payment_details=payload.payment_details,
        expected_level=payload.level,
    )
    enqueue_side_effects(outcome.records)
    return _out(outcome.subject)


@router.get(
    "/intimations/{intimation_id}/approvals", response_model=list[ApprovalRecordOut]
)
def list_intimation_approvals_endpoint(
    intimation_id: uuid.UUID,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> list[ApprovalRecordOut]:
    intimation = get_intimation_for_user(session, intimation_id=intimation_id, user=user)
    history = list_approval_history(session, subject=intimation)
    return [ApprovalRecordOut.model_validate(r, from_attributes=True) for r in history]


@router.get(
    "/intimations/{intimation_id}/available-actions", response_model=list[ActionConfigOut]
)
def available_intimation_actions_endpoint(
    intimation_id: uuid.UUID,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> list[ActionConfigOut]:
    intimation = get_intimation_for_user(session, intimation_id=intimation_id, user=user)
    return [ActionConfigOut.from_config(a) for a in available_actions_for(intimation, user)]

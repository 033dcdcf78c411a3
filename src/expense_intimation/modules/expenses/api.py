from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from expense_intimation.api.deps import get_current_user
from expense_intimation.core.db import db_session
from expense_intimation.modules.expenses.models import ExpenseType
from expense_intimation.modules.expenses.schemas import (
    ExpenseCreate,
    ExpenseOut,
    ExpenseStatsOut,
    ExpenseUpdate,
    LineItemIn,
    LineItemOut,
)
from expense_intimation.modules.expenses.service import (
    act_on_expense,
    add_line_item,
    cancel_expense,
    create_expense,
    delete_expense,
    delete_line_item,
    expense_stats,
    get_expense_for_user,
    list_expenses_for_user,
    submit_expense,
    update_expense,
)
from expense_intimation.modules.identity.models import User
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

router = APIRouter(tags=["expenses"])


def _out(expense) -> ExpenseOut:
    return ExpenseOut.model_validate(expense, from_attributes=True)


@router.post("/expenses", response_model=ExpenseOut)
def create_expense_endpoint(
    payload: ExpenseCreate,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> ExpenseOut:
    expense = create_expense(
        session,
        user=user,
        line_items=[item.model_dump() for item in payload.line_items],
        **payload.model_dump(exclude={"line_items"}),
    )
    return _out(expense)


@router.get("/expenses", response_model=list[ExpenseOut])
def list_expenses_endpoint(
    status: WorkflowStatus | None = None,
    type: ExpenseType | None = None,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> list[ExpenseOut]:
    expenses = list_expenses_for_user(
        session, user=user, status_filter=status, type_filter=type
    )
    return [_out(e) for e in expenses]


@router.get("/expenses/stats", response_model=ExpenseStatsOut)
def expense_stats_endpoint(
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> ExpenseStatsOut:
    return ExpenseStatsOut(**expense_stats(session, user=user))


@router.get("/expenses/{expense_id}", response_model=ExpenseOut)
def get_expense_endpoint(
    expense_id: uuid.UUID,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> ExpenseOut:
    return _out(get_expense_for_user(session, expense_id=expense_id, user=user))


@router.patch("/expenses/{expense_id}", response_model=ExpenseOut)
def update_expense_endpoint(
    expense_id: uuid.UUID,
    payload: ExpenseUpdate,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> ExpenseOut:
    expense = get_expense_for_user(session, expense_id=expense_id, user=user)
    expense = update_expense(
        session, expense=expense, user=user, **payload.model_dump(exclude_unset=True)
    )
    return _out(expense)


@router.delete("/expenses/{expense_id}")
def delete_expense_endpoint(
    expense_id: uuid.UUID,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> Response:
    expense = get_expense_for_user(session, expense_id=expense_id, user=user)
    delete_expense(session, expense=expense, user=user)
    return Response(status_code=204)


@router.post("/expenses/{expense_id}/line-items", response_model=LineItemOut)
def add_line_item_endpoint(
    expense_id: uuid.UUID,
    payload: LineItemIn,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> LineItemOut:
    expense = get_expense_for_user(session, expense_id=expense_id, user=user)
    item = add_line_item(session, expense=expense, user=user, **payload.model_dump())
    return LineItemOut.model_validate(item, from_attributes=True)


@router.delete("/expenses/{expense_id}/line-items/{item_id}")
def delete_line_item_endpoint(
    expense_id: uuid.UUID,
    item_id: uuid.UUID,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> Response:
    expense = get_expense_for_user(session, expense_id=expense_id, user=user)
    delete_line_item(session, expense=expense, user=user, item_id=item_id)
    return Response(status_code=204)


@router.post("/expenses/{expense_id}/submit", response_model=ExpenseOut)
def submit_expense_endpoint(
    expense_id: uuid.UUID,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> ExpenseOut:
    expense = get_expense_for_user(session, expense_id=expense_id, user=user)
    expense, automatic = submit_expense(session, expense=expense, user=user)
    enqueue_side_effects(automatic)
    return _out(expense)


@router.post("/expenses/{expense_id}/cancel", response_model=ExpenseOut)
def cancel_expense_endpoint(
    expense_id: uuid.UUID,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> ExpenseOut:
    expense = get_expense_for_user(session, expense_id=expense_id, user=user)
    return _out(cancel_expense(session, expense=expense, user=user))


@router.post("/expenses/{expense_id}/actions", response_model=ExpenseOut)
def act_on_expense_endpoint(
    expense_id: uuid.UUID,
    payload: ActionRequest,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> ExpenseOut:
    expense = get_expense_for_user(session, expense_id=expense_id, user=user)
    outcome = act_on_expense(
        session,
        expense=expense,
        user=user,
        action=payload.action,
        comments=payload.comments,
        payment_details=payload.payment_details,
        expected_level=payload.level,
    )
    enqueue_side_effects(outcome.records)
    return _out(outcome.subject)


@router.get("/expenses/{expense_id}/approvals", response_model=list[ApprovalRecordOut])
def list_expense_approvals_endpoint(
    expense_id: uuid.UUID,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> list[ApprovalRecordOut]:
    expense = get_expense_for_user(session, expense_id=expense_id, user=user)
    history = list_approval_history(session, subject=expense)
    return [ApprovalRecordOut.model_validate(r, from_attributes=True) for r in history]


@router.get("/expenses/{expense_id}/available-actions", response_model=list[ActionConfigOut])
def available_expense_actions_endpoint(
    expense_id: uuid.UUID,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> list[ActionConfigOut]:
    expense = get_expense_for_user(session, expense_id=expense_id, user=user)
    return [ActionConfigOut.from_config(a) for a in available_actions_for(expense, user)]

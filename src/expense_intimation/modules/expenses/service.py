from __future__ import annotations

import re
import uuid
from collections.abc import Iterable
from datetime import date
from decimal import Decimal
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from expense_intimation.core.config import settings
from expense_intimation.core.models import utcnow
from expense_intimation.modules.expenses.models import (
    Expense,
    ExpenseCategory,
    ExpenseLineItem,
    ExpenseType,
    PaymentConfirmation,
)
from expense_intimation.modules.identity.models import User, UserRole
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

_CURRENCY_RE = re.compile(r"^[A-Z]{3}$")

AWAITING_LOWER_LEVELS = frozenset(
    {WorkflowStatus.SUBMITTED, WorkflowStatus.LEVEL1_APPROVED}
)
AWAITING_PAYMENT = frozenset({WorkflowStatus.LEVEL2_APPROVED, WorkflowStatus.LEVEL3_APPROVED})


def normalize_currency(value: str | None) -> str:
    cur = (value or settings.default_currency).strip().upper()
    if not _CURRENCY_RE.match(cur):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="currency must be a 3-letter ISO-4217 code",
        )
    return cur


def _next_expense_number(session: Session) -> str:
    prefix = f"{settings.expense_number_prefix}-{utcnow().year}-"
    return next_reference_number(session, Expense.expense_number, prefix)


def _recompute_amount(expense: Expense) -> None:
    if expense.type == ExpenseType.EXPENSE:
        expense.amount = sum((i.amount for i in expense.line_items), Decimal("0"))


def _build_line_item(
    *,
    category: ExpenseCategory,
    description: str,
    amount: Decimal,
    from_date: date,
    to_date: date,
    notes: str | None = None,
) -> ExpenseLineItem:
    if amount <= 0:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="amount must be > 0")
    if to_date < from_date:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="to_date must not be before from_date"
        )
    return ExpenseLineItem(
        category=category,
        description=description,
        amount=amount,
        from_date=from_date,
        to_date=to_date,
        notes=notes,
    )


def create_expense(
    session: Session,
    *,
    user: User,
    type: ExpenseType,
    description: str,
    raised_for: RaisedFor = RaisedFor.MYSELF,
    employee_id: uuid.UUID | None = None,
    temporary_person_name: str | None = None,
    temporary_person_phone: str | None = None,
    temporary_person_email: str | None = None,
    currency: str | None = None,
    amount: Decimal | None = None,
    line_items: Iterable[dict[str, Any]] = (),
) -> Expense:
    line_items = list(line_items)
    if type == ExpenseType.ADVANCE:
        if amount is None or amount <= 0:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail="An advance needs an amount > 0"
            )
        if line_items:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail="Advances do not take line items"
            )
    elif amount is not None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Expense claims are totalled from their line items",
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
    expense = Expense(
        expense_number=_next_expense_number(session),
        type=type,
        description=description,
        currency=normalize_currency(currency),
        amount=amount if type == ExpenseType.ADVANCE else Decimal("0"),
        status=WorkflowStatus.DRAFT,
        current_approval_level=None,
        **requester,
    )
    expense.line_items = [_build_line_item(**item) for item in line_items]
    _recompute_amount(expense)
    session.add(expense)
    session.commit()
    session.refresh(expense)
    return expense


def list_expenses_for_user(
    session: Session,
    *,
    user: User,
    status_filter: WorkflowStatus | None = None,
    type_filter: ExpenseType | None = None,
) -> list[Expense]:
    q = select(Expense)
    if user.role != UserRole.ADMIN:
        own = or_(Expense.employee_id == user.id, Expense.raised_by_id == user.id)
        if levels_for_role(user.role):
            q = q.where(or_(own, Expense.status != WorkflowStatus.DRAFT))
        else:
            q = q.where(own)
    if status_filter is not None:
        q = q.where(Expense.status == status_filter)
    if type_filter is not None:
        q = q.where(Expense.type == type_filter)
    return list(session.scalars(q.order_by(Expense.created_at.desc())))


def get_expense_for_user(session: Session, *, expense_id: uuid.UUID, user: User) -> Expense:
    expense = session.scalar(select(Expense).where(Expense.id == expense_id))
    if not expense:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Expense not found")
    ensure_can_view(expense, user)
    return expense


def update_expense(session: Session, *, expense: Expense, user: User, **changes) -> Expense:
    ensure_owner(expense, user)
    ensure_draft(expense, detail="Expense not editable in this status")

    for field, value in changes.items():
        if value is None:
            continue
        if field == "currency":
            value = normalize_currency(value)
        elif field == "amount" and expense.type != ExpenseType.ADVANCE:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Expense claims are totalled from their line items",
            )
        setattr(expense, field, value)
    session.add(expense)
    session.commit()
    session.refresh(expense)
    return expense


def add_line_item(session: Session, *, expense: Expense, user: User, **fields) -> ExpenseLineItem:
    ensure_owner(expense, user)
    ensure_draft(expense, detail="Expense not editable in this status")
    if expense.type != ExpenseType.EXPENSE:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Advances do not take line items"
        )

    item = _build_line_item(**fields)
    expense.line_items.append(item)
    _recompute_amount(expense)
    session.add(expense)
    session.commit()
    session.refresh(item)
    return item


def delete_line_item(
    session: Session, *, expense: Expense, user: User, item_id: uuid.UUID
) -> None:
    ensure_owner(expense, user)
    ensure_draft(expense, detail="Expense not editable in this status")
    item = next((i for i in expense.line_items if i.id == item_id), None)
    if item is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Line item not found")
    expense.line_items.remove(item)
    _recompute_amount(expense)
    session.add(expense)
    session.commit()


def delete_expense(session: Session, *, expense: Expense, user: User) -> None:
    ensure_owner(expense, user)
    ensure_draft(expense, detail="Only draft expenses can be deleted")
    session.delete(expense)
    session.commit()


def submit_expense(
    session: Session, *, expense: Expense, user: User
) -> tuple[Expense, list[ApprovalRecord]]:
    ensure_owner(expense, user)
    ensure_draft(expense, detail="Only drafts can be submitted")
    if expense.amount is None or expense.amount <= 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Add at least one line item before submitting",
        )
    automatic = submit_subject(session, subject=expense, user=user)
    return expense, automatic


def cancel_expense(session: Session, *, expense: Expense, user: User) -> Expense:
    cancel_subject(session, subject=expense, user=user)
    return expense


def act_on_expense(
    session: Session,
    *,
    expense: Expense,
    user: User,
    action: ApprovalAction | str,
    comments: str | None = None,
    payment_details: PaymentDetailsIn | None = None,
    expected_level: int | None = None,
) -> ActionOutcome:
    def _store_payment(session: Session, record: ApprovalRecord) -> None:
        if record.action != ApprovalAction.CONFIRM_PAYMENT or payment_details is None:
            return
        session.add(
            PaymentConfirmation(
                expense_id=expense.id,
                approval_record_id=record.id,
                payment_date=payment_details.payment_date,
                payment_reference=payment_details.payment_reference,
                payment_method=payment_details.payment_method,
                transaction_id=payment_details.transaction_id,
                bank_details=payment_details.bank_details,
            )
        )
        expense.paid_at = record.decided_at

    return apply_action(
        session,
        subject=expense,
        user=user,
        action=action,
        comments=comments,
        payment_details=payment_details.model_dump(mode="json") if payment_details else None,
        expected_level=expected_level,
        on_recorded=_store_payment,
    )


def expense_stats(session: Session, *, user: User) -> dict[str, Any]:
    expenses = list_expenses_for_user(session, user=user)
    zero = Decimal("0")
    pending = [e for e in expenses if e.status in AWAITING_LOWER_LEVELS]
    paid = [e for e in expenses if e.status == WorkflowStatus.PAID]
    return {
        "total": len(expenses),
        "pending": len(pending),
        "approved": sum(1 for e in expenses if e.status in AWAITING_PAYMENT),
        "rejected": sum(1 for e in expenses if e.status == WorkflowStatus.REJECTED),
        "paid": len(paid),
        "total_amount": sum(
            (e.amount for e in expenses if e.status != WorkflowStatus.CANCELLED), zero
        ),
        "pending_amount": sum((e.amount for e in pending), zero),
        "paid_amount": sum((e.amount for e in paid), zero),
    }

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, EmailStr, Field, model_validator

from expense_intimation.modules.expenses.models import ExpenseCategory, ExpenseType
from expense_intimation.modules.workflow.models import PaymentMethod, RaisedFor, WorkflowStatus


class LineItemIn(BaseModel):
    category: ExpenseCategory
    description: str = Field(min_length=1)
    amount: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    from_date: date
    to_date: date
    notes: str | None = None

    @model_validator(mode="after")
    def _check_dates(self) -> LineItemIn:
        if self.to_date < self.from_date:
            raise ValueError("to_date must not be before from_date")
        return self


class LineItemOut(BaseModel):
    id: uuid.UUID
    category: ExpenseCategory
    description: str
    amount: Decimal
    from_date: date
    to_date: date
    notes: str | None
    created_at: datetime


class ExpenseCreate(BaseModel):
    type: ExpenseType = ExpenseType.EXPENSE
    raised_for: RaisedFor = RaisedFor.MYSELF
    employee_id: uuid.UUID | None = None
    temporary_person_name: str | None = None
    temporary_person_phone: str | None = None
    temporary_person_email: EmailStr | None = None
    description: str = Field(min_length=1)
    currency: str | None = None
    # Advances only; claims total their line items.
    amount: Decimal | None = Field(default=None, gt=0, max_digits=12, decimal_places=2)
    line_items: list[LineItemIn] = []


class ExpenseUpdate(BaseModel):
    description: str | None = None
    currency: str | None = None
    amount: Decimal | None = Field(default=None, gt=0, max_digits=12, decimal_places=2)


class PaymentConfirmationOut(BaseModel):
    id: uuid.UUID
    approval_record_id: uuid.UUID
    payment_date: date
    payment_reference: str
    payment_method: PaymentMethod
    transaction_id: str | None
    bank_details: str | None


class ExpenseOut(BaseModel):
    id: uuid.UUID
    expense_number: str
    type: ExpenseType
    raised_for: RaisedFor
    employee_id: uuid.UUID | None
    raised_by_id: uuid.UUID | None
    temporary_person_name: str | None
    temporary_person_phone: str | None
    temporary_person_email: str | None
    description: str | None
    amount: Decimal
    currency: str
    status: WorkflowStatus
    current_approval_level: int | None
    line_items: list[LineItemOut]
    payment_confirmation: PaymentConfirmationOut | None
    submitted_at: datetime | None
    cancelled_at: datetime | None
    completed_at: datetime | None
    paid_at: datetime | None
    created_at: datetime
    updated_at: datetime


class ExpenseStatsOut(BaseModel):
    total: int
    pending: int
    approved: int
    rejected: int
    paid: int
    total_amount: Decimal
    pending_amount: Decimal
    paid_amount: Decimal

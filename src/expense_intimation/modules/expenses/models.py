from __future__ import annotations

import enum
import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Date, DateTime, ForeignKey, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from expense_intimation.core.models import Base, Timestamped, UUIDPrimaryKey, value_enum
from expense_intimation.modules.workflow.models import (
    PaymentMethod,
    SubjectType,
    WorkflowSubjectMixin,
)


class ExpenseType(str, enum.Enum):
    EXPENSE = "expense"
    ADVANCE = "advance"


class ExpenseCategory(str, enum.Enum):
    TRAVEL = "travel"
    ACCOMMODATION = "accommodation"
    MEALS = "meals"
    TRANSPORTATION = "transportation"
    OFFICE_SUPPLIES = "office_supplies"
    EQUIPMENT = "equipment"
    TRAINING = "training"
    CLIENT_ENTERTAINMENT = "client_entertainment"
    SOFTWARE_LICENSES = "software_licenses"
    OTHER = "other"


class Expense(WorkflowSubjectMixin, UUIDPrimaryKey, Timestamped, Base):
    __tablename__ = "expenses_expense"

    subject_type = SubjectType.EXPENSE

    expense_number: Mapped[str] = mapped_column(String(32), unique=True, index=True)
    type: Mapped[ExpenseType] = mapped_column(value_enum(ExpenseType), index=True)
    currency: Mapped[str] = mapped_column(String(3), default="USD")
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    employee = relationship("User", foreign_keys="Expense.employee_id")
    raised_by = relationship("User", foreign_keys="Expense.raised_by_id")
    line_items = relationship(
        "ExpenseLineItem",
        back_populates="expense",
        order_by="ExpenseLineItem.created_at",
        cascade="all, delete-orphan",
    )
    payment_confirmation = relationship(
        "PaymentConfirmation", back_populates="expense", uselist=False, cascade="all, delete-orphan"
    )

    @property
    def reference(self) -> str:
        return self.expense_number


class ExpenseLineItem(UUIDPrimaryKey, Timestamped, Base):
    __tablename__ = "expenses_line_item"

    expense_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("expenses_expense.id"), index=True
    )
    category: Mapped[ExpenseCategory] = mapped_column(value_enum(ExpenseCategory))
    description: Mapped[str] = mapped_column(Text)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    from_date: Mapped[date] = mapped_column(Date)
    to_date: Mapped[date] = mapped_column(Date)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    expense = relationship("Expense", back_populates="line_items")


class PaymentConfirmation(UUIDPrimaryKey, Timestamped, Base):
    __tablename__ = "expenses_payment_confirmation"

    expense_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("expenses_expense.id"), unique=True
    )
    approval_record_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("workflow_approval_record.id")
    )
    payment_date: Mapped[date] = mapped_column(Date)
    payment_reference: Mapped[str] = mapped_column(String(120))
    payment_method: Mapped[PaymentMethod] = mapped_column(value_enum(PaymentMethod))
    transaction_id: Mapped[str | None] = mapped_column(String(120), nullable=True)
    bank_details: Mapped[str | None] = mapped_column(Text, nullable=True)

    expense = relationship("Expense", back_populates="payment_confirmation")

from __future__ import annotations

import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    event,
)
from sqlalchemy.orm import Mapped, declared_attr, mapped_column, relationship

from expense_intimation.core.models import Base, UUIDPrimaryKey, utcnow, value_enum
from expense_intimation.modules.workflow.errors import ApprovalRecordImmutableError


class SubjectType(str, enum.Enum):
    EXPENSE = "expense"
    INTIMATION = "intimation"


class WorkflowStatus(str, enum.Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    LEVEL1_APPROVED = "level1_approved"
    LEVEL2_APPROVED = "level2_approved"
    LEVEL3_APPROVED = "level3_approved"
    PAID = "paid"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset(
    {WorkflowStatus.PAID, WorkflowStatus.REJECTED, WorkflowStatus.CANCELLED}
)


class ApprovalAction(str, enum.Enum):
    APPROVE = "approve"
    REJECT = "reject"
    RETURN = "return"
    CONFIRM_PAYMENT = "confirm_payment"


class SideEffectType(str, enum.Enum):
    NOTIFICATION = "notification"
    EMAIL = "email"
    WEBHOOK = "webhook"
    STATUS_CHANGE = "status_change"
    ASSIGN_NEXT_LEVEL = "assign_next_level"


class RaisedFor(str, enum.Enum):
    MYSELF = "myself"
    EMPLOYEE = "employee"
    TEMPORARY_PERSON = "temporary-person"


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    CARD = "card"
    BANK_TRANSFER = "bank_transfer"
    CHEQUE = "cheque"
    DIGITAL_WALLET = "digital_wallet"


SYSTEM_APPROVER_ROLE = "system"


class WorkflowSubjectMixin:
    """Columns shared by every record that moves through the approval chain.

    ``status`` and ``current_approval_level`` are projections of the approval
    history and are only written by the workflow service.
    Concrete models set a plain ``subject_type`` class attribute.
    """

    raised_for: Mapped[RaisedFor] = mapped_column(value_enum(RaisedFor), default=RaisedFor.MYSELF)

    @declared_attr
    def employee_id(cls) -> Mapped[uuid.UUID | None]:
        return mapped_column(
            Uuid(as_uuid=True), ForeignKey("identity_user.id"), nullable=True, index=True
        )

    @declared_attr
    def raised_by_id(cls) -> Mapped[uuid.UUID | None]:
        return mapped_column(
            Uuid(as_uuid=True), ForeignKey("identity_user.id"), nullable=True, index=True
        )

    temporary_person_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    temporary_person_phone: Mapped[str | None] = mapped_column(String(40), nullable=True)
    temporary_person_email: Mapped[str | None] = mapped_column(String(320), nullable=True)

    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))

    status: Mapped[WorkflowStatus] = mapped_column(value_enum(WorkflowStatus), index=True)
    current_approval_level: Mapped[int | None] = mapped_column(
        Integer, nullable=True, index=True
    )

    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def owner_ids(self) -> set[uuid.UUID]:
        return {i for i in (self.employee_id, self.raised_by_id) if i is not None}

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def reference(self) -> str:
        return str(self.id)


class ApprovalRecord(UUIDPrimaryKey, Base):
    __tablename__ = "workflow_approval_record"
    __table_args__ = (
        UniqueConstraint(
            "subject_type", "subject_id", "sequence", name="uq_workflow_approval_record_sequence"
        ),
    )

    subject_type: Mapped[SubjectType] = mapped_column(value_enum(SubjectType), index=True)
    subject_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), index=True)
    sequence: Mapped[int] = mapped_column(Integer)

    level: Mapped[int] = mapped_column(Integer)
    action: Mapped[ApprovalAction] = mapped_column(value_enum(ApprovalAction), index=True)
    approver_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("identity_user.id"), nullable=True
    )
    approver_role: Mapped[str] = mapped_column(String(32))
    is_automatic: Mapped[bool] = mapped_column(Boolean, default=False)
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    payment_details_json: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    decided_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    approver = relationship("User")


@event.listens_for(ApprovalRecord, "before_update")
def _reject_record_update(mapper, connection, target) -> None:  # noqa: ARG001
    raise ApprovalRecordImmutableError()


@event.listens_for(ApprovalRecord, "before_delete")
def _reject_record_delete(mapper, connection, target) -> None:  # noqa: ARG001
    raise ApprovalRecordImmutableError()

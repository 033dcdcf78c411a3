"""initial approval schema

Revision ID: 4c1e7a2b9d10
Revises:
Create Date: 2026-10-19

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "4c1e7a2b9d10"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

WORKFLOW_STATUSES = (
    "draft",
    "submitted",
    "level1_approved",
    "level2_approved",
    "level3_approved",
    "paid",
    "rejected",
    "cancelled",
)
PAYMENT_METHODS = ("cash", "card", "bank_transfer", "cheque", "digital_wallet")


def _enum(*values: str, name: str) -> sa.Enum:
    return sa.Enum(*values, name=name, native_enum=False, length=32)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def _subject_columns() -> list[sa.Column]:
    return [
        sa.Column(
            "raised_for",
            _enum("myself", "employee", "temporary-person", name="raisedfor"),
            nullable=False,
        ),
        sa.Column("employee_id", sa.Uuid(), nullable=True),
        sa.Column("raised_by_id", sa.Uuid(), nullable=True),
        sa.Column("temporary_person_name", sa.String(length=200), nullable=True),
        sa.Column("temporary_person_phone", sa.String(length=40), nullable=True),
        sa.Column("temporary_person_email", sa.String(length=320), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("status", _enum(*WORKFLOW_STATUSES, name="workflowstatus"), nullable=False),
        sa.Column("current_approval_level", sa.Integer(), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["employee_id"], ["identity_user.id"]),
        sa.ForeignKeyConstraint(["raised_by_id"], ["identity_user.id"]),
    ]


def _subject_indexes(table: str) -> None:
    for column in ("employee_id", "raised_by_id", "status", "current_approval_level"):
        op.create_index(op.f(f"ix_{table}_{column}"), table, [column])


def upgrade() -> None:
    op.create_table(
        "identity_user",
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("full_name", sa.String(length=200), nullable=True),
        sa.Column("phone", sa.String(length=40), nullable=True),
        sa.Column("department", sa.String(length=120), nullable=True),
        sa.Column("password_hash", sa.String(length=200), nullable=False),
        sa.Column(
            "role",
            _enum("employee", "manager", "business_head", "finance", "admin", name="userrole"),
            nullable=False,
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_identity_user_email"), "identity_user", ["email"], unique=True)
    op.create_index(op.f("ix_identity_user_role"), "identity_user", ["role"])

    op.create_table(
        "workflow_approval_record",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("subject_type", _enum("expense", "intimation", name="subjecttype"), nullable=False),
        sa.Column("subject_id", sa.Uuid(), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("level", sa.Integer(), nullable=False),
        sa.Column(
            "action",
            _enum("approve", "reject", "return", "confirm_payment", name="approvalaction"),
            nullable=False,
        ),
        sa.Column("approver_user_id", sa.Uuid(), nullable=True),
        sa.Column("approver_role", sa.String(length=32), nullable=False),
        sa.Column("is_automatic", sa.Boolean(), nullable=False),
        sa.Column("comments", sa.Text(), nullable=True),
        sa.Column("payment_details_json", sa.JSON(), nullable=True),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["approver_user_id"], ["identity_user.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "subject_type", "subject_id", "sequence", name="uq_workflow_approval_record_sequence"
        ),
    )
    op.create_index(
        op.f("ix_workflow_approval_record_subject_type"),
        "workflow_approval_record",
        ["subject_type"],
    )
    op.create_index(
        op.f("ix_workflow_approval_record_subject_id"), "workflow_approval_record", ["subject_id"]
    )
    op.create_index(
        op.f("ix_workflow_approval_record_action"), "workflow_approval_record", ["action"]
    )

    op.create_table(
        "expenses_expense",
        sa.Column("expense_number", sa.String(length=32), nullable=False),
        sa.Column("type", _enum("expense", "advance", name="expensetype"), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        *_subject_columns(),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_expenses_expense_expense_number"),
        "expenses_expense",
        ["expense_number"],
        unique=True,
    )
    op.create_index(op.f("ix_expenses_expense_type"), "expenses_expense", ["type"])
    _subject_indexes("expenses_expense")

    op.create_table(
        "expenses_line_item",
        sa.Column("expense_id", sa.Uuid(), nullable=False),
        sa.Column(
            "category",
            _enum(
                "travel",
                "accommodation",
                "meals",
                "transportation",
                "office_supplies",
                "equipment",
                "training",
                "client_entertainment",
                "software_licenses",
                "other",
                name="expensecategory",
            ),
            nullable=False,
        ),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("from_date", sa.Date(), nullable=False),
        sa.Column("to_date", sa.Date(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["expense_id"], ["expenses_expense.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_expenses_line_item_expense_id"), "expenses_line_item", ["expense_id"]
    )

    op.create_table(
        "expenses_payment_confirmation",
        sa.Column("expense_id", sa.Uuid(), nullable=False),
        sa.Column("approval_record_id", sa.Uuid(), nullable=False),
        sa.Column("payment_date", sa.Date(), nullable=False),
        sa.Column("payment_reference", sa.String(length=120), nullable=False),
        sa.Column("payment_method", _enum(*PAYMENT_METHODS, name="paymentmethod"), nullable=False),
        sa.Column("transaction_id", sa.String(length=120), nullable=True),
        sa.Column("bank_details", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["expense_id"], ["expenses_expense.id"]),
        sa.ForeignKeyConstraint(["approval_record_id"], ["workflow_approval_record.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("expense_id"),
    )

    op.create_table(
        "intimations_intimation",
        sa.Column("intimation_number", sa.String(length=32), nullable=False),
        sa.Column("type", _enum("travel", "other", name="intimationtype"), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("journey_segments_json", sa.JSON(), nullable=False),
        *_subject_columns(),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_intimations_intimation_intimation_number"),
        "intimations_intimation",
        ["intimation_number"],
        unique=True,
    )
    op.create_index(op.f("ix_intimations_intimation_type"), "intimations_intimation", ["type"])
    _subject_indexes("intimations_intimation")

    op.create_table(
        "notifications_notification",
        sa.Column("recipient_user_id", sa.Uuid(), nullable=True),
        sa.Column("recipient_email", sa.String(length=320), nullable=True),
        sa.Column("channel", _enum("in_app", "email", name="notificationchannel"), nullable=False),
        sa.Column(
            "delivery_status", _enum("queued", "delivered", name="deliverystatus"), nullable=False
        ),
        sa.Column("subject_type", _enum("expense", "intimation", name="subjecttype"), nullable=True),
        sa.Column("subject_id", sa.Uuid(), nullable=True),
        sa.Column("template", sa.String(length=100), nullable=True),
        sa.Column("title", sa.String(length=300), nullable=False),
        sa.Column("body", sa.Text(), nullable=True),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["recipient_user_id"], ["identity_user.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_notifications_notification_recipient_user_id"),
        "notifications_notification",
        ["recipient_user_id"],
    )
    op.create_index(
        op.f("ix_notifications_notification_channel"), "notifications_notification", ["channel"]
    )
    op.create_index(
        op.f("ix_notifications_notification_subject_id"),
        "notifications_notification",
        ["subject_id"],
    )


def downgrade() -> None:
    op.drop_table("notifications_notification")
    op.drop_table("intimations_intimation")
    op.drop_table("expenses_payment_confirmation")
    op.drop_table("expenses_line_item")
    op.drop_table("expenses_expense")
    op.drop_table("workflow_approval_record")
    op.drop_table("identity_user")

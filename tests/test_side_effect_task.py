from __future__ import annotations

from datetime import date
from decimal import Decimal

from sqlalchemy import select

from expense_intimation.core.db import SessionLocal
from expense_intimation.modules.expenses.models import ExpenseCategory, ExpenseType
from expense_intimation.modules.expenses.service import (
    act_on_expense,
    create_expense,
    submit_expense,
)
from expense_intimation.modules.identity.models import User, UserRole
from expense_intimation.modules.notifications.models import (
    DeliveryStatus,
    Notification,
    NotificationChannel,
)
from expense_intimation.modules.notifications.service import (
    list_email_outbox,
    list_notifications_for_user,
    mark_read,
)
from expense_intimation.worker.tasks import enqueue_side_effects, execute_side_effects_task


def _submit(session, employee: User, amount: str):
    expense = create_expense(
        session,
        user=employee,
        type=ExpenseType.EXPENSE,
        description="Hotel",
        line_items=[
            {
                "category": ExpenseCategory.ACCOMMODATION,
                "description": "Two nights",
                "amount": Decimal(amount),
                "from_date": date(2026, 4, 1),
                "to_date": date(2026, 4, 3),
            }
        ],
    )
    return submit_expense(session, expense=expense, user=employee)


def test_task_notifies_employee_and_queues_next_approver_email(users):
    with SessionLocal() as session:
        employee = session.get(User, users[UserRole.EMPLOYEE])
        expense, automatic = _submit(session, employee, "450.00")
        record_id = str(automatic[0].id)
        reference = expense.expense_number

    execute_side_effects_task(record_id)

    with SessionLocal() as session:
        employee = session.get(User, users[UserRole.EMPLOYEE])
        inbox = list_notifications_for_user(session, user=employee)
        assert len(inbox) == 1
        assert inbox[0].title == f"Your expense has been approved ({reference})"
        assert inbox[0].delivery_status == DeliveryStatus.DELIVERED

        outbox = list_email_outbox(session)
        # Expense now waits at finance: the finance user plus the level's mailbox.
        assert sorted(n.recipient_email for n in outbox) == [
            "finance@company.com",
            "finance@example.com",
        ]
        assert all(n.template == "expense_awaiting_approval" for n in outbox)
        assert all(reference in n.title for n in outbox)
        # Admins act everywhere but are not paged.
        assert not session.scalar(
            select(Notification).where(Notification.recipient_email == "admin@example.com")
        )

        marked = mark_read(session, notification_id=inbox[0].id, user=employee)
        assert marked.read_at is not None
        assert list_notifications_for_user(session, user=employee, unread_only=True) == []


def test_enqueue_runs_eagerly_for_every_record(users):
    with SessionLocal() as session:
        employee = session.get(User, users[UserRole.EMPLOYEE])
        finance = session.get(User, users[UserRole.FINANCE])
        expense, automatic = _submit(session, employee, "900.00")
        assert len(enqueue_side_effects(automatic)) == 2

        outcome = act_on_expense(
            session, expense=expense, user=finance, action="reject", comments="Duplicate claim"
        )
        assert len(enqueue_side_effects(outcome.records)) == 1

    with SessionLocal() as session:
        employee = session.get(User, users[UserRole.EMPLOYEE])
        titles = [n.title for n in list_notifications_for_user(session, user=employee)]
        assert len(titles) == 3
        assert sum("rejected" in t for t in titles) == 1

        rejected_mail = session.scalars(
            select(Notification).where(
                Notification.channel == NotificationChannel.EMAIL,
                Notification.template == "expense_rejected",
            )
        ).all()
        assert [n.recipient_email for n in rejected_mail] == ["employee@example.com"]
        assert "Duplicate claim" in rejected_mail[0].body

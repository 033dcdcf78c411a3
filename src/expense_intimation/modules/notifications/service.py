from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from expense_intimation.core.models import utcnow
from expense_intimation.modules.identity.models import User
from expense_intimation.modules.notifications.models import (
    DeliveryStatus,
    Notification,
    NotificationChannel,
)
from expense_intimation.modules.workflow.models import SubjectType

if TYPE_CHECKING:
    from expense_intimation.modules.workflow.side_effects import Recipient, SideEffectContext

# template -> (subject, body)
EMAIL_TEMPLATES: dict[str, tuple[str, str]] = {
    "expense_awaiting_approval": (
        "{reference} is awaiting your approval",
        "Hello {name},\n\n{reference} ({amount}) is waiting for review at approval level "
        "{current_level}.\n",
    ),
    "expense_rejected": (
        "{reference} was rejected",
        "Hello {name},\n\n{reference} was rejected at approval level {level}.\n\n{comments}\n",
    ),
    "expense_returned": (
        "{reference} needs clarification",
        "Hello {name},\n\n{reference} was returned for clarification at approval level "
        "{level}.\n\n{comments}\n",
    ),
    "expense_paid": (
        "{reference} has been paid",
        "Hello {name},\n\nPayment for {reference} ({amount}) has been confirmed.\n",
    ),
}


def render_email(
    template: str, *, context: SideEffectContext, recipient: Recipient
) -> tuple[str, str]:
    subject_tpl, body_tpl = EMAIL_TEMPLATES.get(
        template, ("Update on {reference}", "Hello {name},\n\n{reference} was updated.\n")
    )
    amount = ""
    if context.amount is not None:
        amount = f"{context.currency or ''} {context.amount:.2f}".strip()
    values = {
        "reference": context.reference or context.entity_id,
        "name": recipient.name or recipient.email or "there",
        "amount": amount,
        "level": context.level or "",
        "current_level": context.current_level or "",
        "comments": context.comments or "",
    }
    return subject_tpl.format(**values), body_tpl.format(**values)


def create_notification(
    session: Session,
    *,
    channel: NotificationChannel,
    title: str,
    recipient_user_id: uuid.UUID | None = None,
    recipient_email: str | None = None,
    subject_type: SubjectType | None = None,
    subject_id: uuid.UUID | None = None,
    template: str | None = None,
    body: str | None = None,
) -> Notification:
    notification = Notification(
        recipient_user_id=recipient_user_id,
        recipient_email=recipient_email,
        channel=channel,
        # In-app rows are delivered by being written; emails wait in the outbox.
        delivery_status=(
            DeliveryStatus.DELIVERED
            if channel == NotificationChannel.IN_APP
            else DeliveryStatus.QUEUED
        ),
        subject_type=subject_type,
        subject_id=subject_id,
        template=template,
        title=title[:300],
        body=body,
    )
    session.add(notification)
    session.commit()
    session.refresh(notification)
    return notification


def list_notifications_for_user(
    session: Session, *, user: User, unread_only: bool = False
) -> list[Notification]:
    q = select(Notification).where(
        Notification.recipient_user_id == user.id,
        Notification.channel == NotificationChannel.IN_APP,
    )
    if unread_only:
        q = q.where(Notification.read_at.is_(None))
    return list(session.scalars(q.order_by(Notification.created_at.desc())))


def list_email_outbox(session: Session) -> list[Notification]:
    return list(
        session.scalars(
            select(Notification)
            .where(
                Notification.channel == NotificationChannel.EMAIL,
                Notification.delivery_status == DeliveryStatus.QUEUED,
            )
            .order_by(Notification.created_at.asc())
        )
    )


def mark_read(session: Session, *, notification_id: uuid.UUID, user: User) -> Notification:
    notification = session.scalar(select(Notification).where(Notification.id == notification_id))
    if not notification:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    if notification.recipient_user_id != user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed")
    if notification.read_at is None:
        notification.read_at = utcnow()
        session.add(notification)
        session.commit()
        session.refresh(notification)
    return notification

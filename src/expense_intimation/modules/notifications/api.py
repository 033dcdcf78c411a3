from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from expense_intimation.api.deps import get_current_user
from expense_intimation.core.db import db_session
from expense_intimation.modules.identity.models import User
from expense_intimation.modules.notifications.schemas import NotificationOut
from expense_intimation.modules.notifications.service import (
    list_notifications_for_user,
    mark_read,
)

router = APIRouter(tags=["notifications"])


@router.get("/notifications", response_model=list[NotificationOut])
def list_notifications_endpoint(
    unread_only: bool = False,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> list[NotificationOut]:
    items = list_notifications_for_user(session, user=user, unread_only=unread_only)
    return [NotificationOut.model_validate(n, from_attributes=True) for n in items]


@router.post("/notifications/{notification_id}/read", response_model=NotificationOut)
def mark_read_endpoint(
    notification_id: uuid.UUID,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> NotificationOut:
    notification = mark_read(session, notification_id=notification_id, user=user)
    return NotificationOut.model_validate(notification, from_attributes=True)

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel

from expense_intimation.modules.notifications.models import DeliveryStatus, NotificationChannel
from expense_intimation.modules.workflow.models import SubjectType


class NotificationOut(BaseModel):
    id: uuid.UUID
    channel: NotificationChannel
    delivery_status: DeliveryStatus
    subject_type: SubjectType | None
    subject_id: uuid.UUID | None
    template: str | None
    title: str
    body: str | None
    read_at: datetime | None
    created_at: datetime

from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from expense_intimation.core.models import Base, Timestamped, UUIDPrimaryKey, value_enum
from expense_intimation.modules.workflow.models import SubjectType


class NotificationChannel(str, enum.Enum):
    IN_APP = "in_app"
    EMAIL = "email"


class DeliveryStatus(str, enum.Enum):
    QUEUED = "queued"
    DELIVERED = "delivered"


class Notification(UUIDPrimaryKey, Timestamped, Base):
    __tablename__ = "notifications_notification"

    recipient_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("identity_user.id"), nullable=True, index=True
    )
    recipient_email: Mapped[str | None] = mapped_column(String(320), nullable=True)

    channel: Mapped[NotificationChannel] = mapped_column(value_enum(NotificationChannel), index=True)
    delivery_status: Mapped[DeliveryStatus] = mapped_column(value_enum(DeliveryStatus))

    subject_type: Mapped[SubjectType | None] = mapped_column(value_enum(SubjectType), nullable=True)
    subject_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), nullable=True, index=True
    )

    template: Mapped[str | None] = mapped_column(String(100), nullable=True)
    title: Mapped[str] = mapped_column(String(300))
    body: Mapped[str | None] = mapped_column(Text, nullable=True)
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    recipient = relationship("User")

from __future__ import annotations

import enum

from sqlalchemy import JSON, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from expense_intimation.core.models import Base, Timestamped, UUIDPrimaryKey, value_enum
from expense_intimation.modules.workflow.models import SubjectType, WorkflowSubjectMixin


class IntimationType(str, enum.Enum):
    TRAVEL = "travel"
    OTHER = "other"


class Intimation(WorkflowSubjectMixin, UUIDPrimaryKey, Timestamped, Base):
    __tablename__ = "intimations_intimation"

    subject_type = SubjectType.INTIMATION

    intimation_number: Mapped[str] = mapped_column(String(32), unique=True, index=True)
    type: Mapped[IntimationType] = mapped_column(value_enum(IntimationType), index=True)
    currency: Mapped[str] = mapped_column(String(3), default="USD")
    # Travel only: list of journey segments with cost breakdown and total_cost.
    journey_segments_json: Mapped[list] = mapped_column(JSON, default=list)

    employee = relationship("User", foreign_keys="Intimation.employee_id")
    raised_by = relationship("User", foreign_keys="Intimation.raised_by_id")

    @property
    def reference(self) -> str:
        return self.intimation_number

    @property
    def journey_count(self) -> int:
        return len(self.journey_segments_json or [])

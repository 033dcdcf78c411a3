from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import AliasChoices, BaseModel, EmailStr, Field, model_validator

from expense_intimation.modules.intimations.models import IntimationType
from expense_intimation.modules.workflow.models import RaisedFor, WorkflowStatus


class CostBreakdown(BaseModel):
    transport: Decimal = Field(default=Decimal("0"), ge=0)
    accommodation: Decimal = Field(default=Decimal("0"), ge=0)
    food: Decimal = Field(default=Decimal("0"), ge=0)
    miscellaneous: Decimal = Field(default=Decimal("0"), ge=0)

    @property
    def total(self) -> Decimal:
        return self.transport + self.accommodation + self.food + self.miscellaneous


class JourneySegmentIn(BaseModel):
    from_location: str = Field(min_length=1)
    to_location: str = Field(min_length=1)
    from_date: date
    to_date: date
    mode_of_transport: str = Field(min_length=1)
    notes: str | None = None
    cost_breakdown: CostBreakdown = CostBreakdown()

    @model_validator(mode="after")
    def _check_dates(self) -> JourneySegmentIn:
        if self.to_date < self.from_date:
            raise ValueError("to_date must not be before from_date")
        return self


class JourneySegmentOut(JourneySegmentIn):
    id: str
    total_cost: Decimal


class IntimationCreate(BaseModel):
    type: IntimationType
    raised_for: RaisedFor = RaisedFor.MYSELF
    employee_id: uuid.UUID | None = None
    temporary_person_name: str | None = None
    temporary_person_phone: str | None = None
    temporary_person_email: EmailStr | None = None
    description: str | None = None
    currency: str | None = None
    journey_segments: list[JourneySegmentIn] = []


class IntimationOut(BaseModel):
    id: uuid.UUID
    intimation_number: str
    type: IntimationType
    raised_for: RaisedFor
    employee_id: uuid.UUID | None
    raised_by_id: uuid.UUID | None
    temporary_person_name: str | None
    temporary_person_phone: str | None
    temporary_person_email: str | None
    description: str | None
    currency: str
    amount: Decimal = Field(description="Total estimated cost")
    journey_segments: list[JourneySegmentOut] = Field(
        validation_alias=AliasChoices("journey_segments_json", "journey_segments")
    )
    journey_count: int
    status: WorkflowStatus
    current_approval_level: int | None
    submitted_at: datetime | None
    cancelled_at: datetime | None
    completed_at: datetime | None
    created_at: datetime
    updated_at: datetime

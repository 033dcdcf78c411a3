from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest
from fastapi import HTTPException

from expense_intimation.core.db import SessionLocal
from expense_intimation.modules.identity.models import User, UserRole
from expense_intimation.modules.intimations.models import IntimationType
from expense_intimation.modules.intimations.schemas import (
    CostBreakdown,
    IntimationOut,
    JourneySegmentIn,
)
from expense_intimation.modules.intimations.service import (
    act_on_intimation,
    cancel_intimation,
    create_intimation,
    delete_intimation,
    get_intimation_for_user,
    list_intimations_for_user,
    submit_intimation,
)
from expense_intimation.modules.workflow.models import SubjectType, WorkflowStatus
from expense_intimation.modules.workflow.service import (
    list_approval_history,
    list_awaiting_for_user,
)


def _segment(transport: str, accommodation: str = "0", food: str = "0") -> JourneySegmentIn:
    return JourneySegmentIn(
        from_location="Pune",
        to_location="Mumbai",
        from_date=date(2026, 5, 4),
        to_date=date(2026, 5, 6),
        mode_of_transport="train",
        cost_breakdown=CostBreakdown(
            transport=Decimal(transport),
            accommodation=Decimal(accommodation),
            food=Decimal(food),
        ),
    )


def test_travel_intimation_totals_its_segments(users):
    with SessionLocal() as session:
        employee = session.get(User, users[UserRole.EMPLOYEE])
        intimation = create_intimation(
            session,
            user=employee,
            type=IntimationType.TRAVEL,
            journey_segments=[_segment("1200", "2400", "600"), _segment("900")],
        )

        assert intimation.intimation_number.startswith("INT-")
        assert intimation.amount == Decimal("5100.00")
        assert intimation.journey_count == 2
        assert [s["total_cost"] for s in intimation.journey_segments_json] == ["4200", "900"]

        out = IntimationOut.model_validate(intimation, from_attributes=True)
        assert out.journey_segments[0].cost_breakdown.accommodation == Decimal("2400")
        assert out.journey_segments[1].total_cost == Decimal("900")


def test_intimation_validation(users):
    with SessionLocal() as session:
        employee = session.get(User, users[UserRole.EMPLOYEE])
        with pytest.raises(HTTPException) as excinfo:
            create_intimation(session, user=employee, type=IntimationType.TRAVEL)
        assert excinfo.value.status_code == 400

        with pytest.raises(HTTPException) as excinfo:
            create_intimation(session, user=employee, type=IntimationType.OTHER, description=" ")
        assert excinfo.value.status_code == 400

        with pytest.raises(HTTPException):
            create_intimation(
                session,
                user=employee,
                type=IntimationType.OTHER,
                description="Site visit",
                journey_segments=[_segment("10")],
            )

        with pytest.raises(ValueError):
            JourneySegmentIn(
                from_location="A",
                to_location="B",
                from_date=date(2026, 5, 6),
                to_date=date(2026, 5, 4),
                mode_of_transport="car",
            )


def test_intimation_goes_through_the_approval_chain(users):
    with SessionLocal() as session:
        employee = session.get(User, users[UserRole.EMPLOYEE])
        manager = session.get(User, users[UserRole.MANAGER])
        head = session.get(User, users[UserRole.BUSINESS_HEAD])
        intimation = create_intimation(
            session,
            user=employee,
            type=IntimationType.TRAVEL,
            journey_segments=[_segment("3000", "2500")],
        )
        intimation, automatic = submit_intimation(session, intimation=intimation, user=employee)
        assert automatic == []
        assert intimation.current_approval_level == 1

        assert [i.id for i in list_awaiting_for_user(
            session, user=manager, subject_type=SubjectType.INTIMATION
        )] == [intimation.id]
        assert list_awaiting_for_user(
            session, user=head, subject_type=SubjectType.INTIMATION
        ) == []

        outcome = act_on_intimation(session, intimation=intimation, user=manager, action="approve")
        assert outcome.automatic_records == ()
        assert intimation.status == WorkflowStatus.LEVEL1_APPROVED

        act_on_intimation(
            session, intimation=intimation, user=head, action="reject", comments="Use video call"
        )
        assert intimation.status == WorkflowStatus.REJECTED
        assert [r.subject_type for r in list_approval_history(session, subject=intimation)] == [
            SubjectType.INTIMATION,
            SubjectType.INTIMATION,
        ]


def test_other_intimation_lands_with_finance(users):
    with SessionLocal() as session:
        employee = session.get(User, users[UserRole.EMPLOYEE])
        finance = session.get(User, users[UserRole.FINANCE])
        intimation = create_intimation(
            session,
            user=employee,
            type=IntimationType.OTHER,
            description="Working from the Chennai office next week",
        )
        assert intimation.amount == Decimal("0")

        _, automatic = submit_intimation(session, intimation=intimation, user=employee)
        assert [r.level for r in automatic] == [1, 2]
        assert intimation.current_approval_level == 3

        inbox = list_awaiting_for_user(session, user=finance, subject_type=SubjectType.INTIMATION)
        assert [i.id for i in inbox] == [intimation.id]


def test_intimation_visibility_delete_and_cancel(users):
    with SessionLocal() as session:
        employee = session.get(User, users[UserRole.EMPLOYEE])
        manager = session.get(User, users[UserRole.MANAGER])
        admin = session.get(User, users[UserRole.ADMIN])
        draft = create_intimation(
            session, user=employee, type=IntimationType.OTHER, description="Offsite"
        )
        kept = create_intimation(
            session, user=employee, type=IntimationType.TRAVEL, journey_segments=[_segment("4000")]
        )

        with pytest.raises(HTTPException) as excinfo:
            get_intimation_for_user(session, intimation_id=draft.id, user=manager)
        assert excinfo.value.status_code == 403
        assert get_intimation_for_user(session, intimation_id=draft.id, user=admin).id == draft.id

        submit_intimation(session, intimation=kept, user=employee)
        assert [i.id for i in list_intimations_for_user(session, user=manager)] == [kept.id]
        assert len(list_intimations_for_user(session, user=employee)) == 2

        delete_intimation(session, intimation=draft, user=employee)
        with pytest.raises(HTTPException) as excinfo:
            delete_intimation(session, intimation=kept, user=employee)
        assert excinfo.value.status_code == 409

        cancel_intimation(session, intimation=kept, user=employee)
        assert kept.status == WorkflowStatus.CANCELLED
        assert list_intimations_for_user(
            session, user=employee, status_filter=WorkflowStatus.CANCELLED
        ) == [kept]


def test_intimation_numbers_stay_unique_after_a_draft_is_deleted(users):
    with SessionLocal() as session:
        employee = session.get(User, users[UserRole.EMPLOYEE])
        first, second = (
            create_intimation(
                session, user=employee, type=IntimationType.OTHER, description="Offsite"
            )
            for _ in range(2)
        )
        delete_intimation(session, intimation=first, user=employee)

        third = create_intimation(
            session, user=employee, type=IntimationType.OTHER, description="Offsite"
        )

        assert second.intimation_number.endswith("-0002")
        assert third.intimation_number.endswith("-0003")
        assert third.intimation_number != second.intimation_number

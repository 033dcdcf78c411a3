from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from expense_intimation.api.deps import get_current_user, require_approver
from expense_intimation.core.db import db_session
from expense_intimation.modules.expenses.schemas import ExpenseOut
from expense_intimation.modules.identity.models import User
from expense_intimation.modules.intimations.schemas import IntimationOut
from expense_intimation.modules.workflow.config import APPROVAL_LEVELS
from expense_intimation.modules.workflow.models import SubjectType
from expense_intimation.modules.workflow.resolver import get_level_config
from expense_intimation.modules.workflow.schemas import LevelConfigOut
from expense_intimation.modules.workflow.service import list_awaiting_for_user

router = APIRouter(tags=["workflow"])


class InboxOut(BaseModel):
    expenses: list[ExpenseOut]
    intimations: list[IntimationOut]


@router.get("/workflow/levels", response_model=list[LevelConfigOut])
def list_levels_endpoint(_: User = Depends(get_current_user)) -> list[LevelConfigOut]:
    return [LevelConfigOut.from_config(get_level_config(level)) for level in APPROVAL_LEVELS]


@router.get("/workflow/levels/{level}", response_model=LevelConfigOut)
def get_level_endpoint(level: int, _: User = Depends(get_current_user)) -> LevelConfigOut:
    cfg = get_level_config(level)
    if cfg is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Level not found")
    return LevelConfigOut.from_config(cfg)


@router.get("/approvals/inbox", response_model=InboxOut)
def approver_inbox(
    session: Session = Depends(db_session),
    user: User = Depends(require_approver),
) -> InboxOut:
    expenses = list_awaiting_for_user(session, user=user, subject_type=SubjectType.EXPENSE)
    intimations = list_awaiting_for_user(session, user=user, subject_type=SubjectType.INTIMATION)
    return InboxOut(
        expenses=[ExpenseOut.model_validate(e, from_attributes=True) for e in expenses],
        intimations=[IntimationOut.model_validate(i, from_attributes=True) for i in intimations],
    )

from __future__ import annotations

from fastapi import APIRouter

from expense_intimation.modules.expenses.api import router as expenses_router
from expense_intimation.modules.identity.api import router as identity_router
from expense_intimation.modules.intimations.api import router as intimations_router
from expense_intimation.modules.notifications.api import router as notifications_router
from expense_intimation.modules.workflow.api import router as workflow_router

router = APIRouter()

router.include_router(identity_router, prefix="/api")
router.include_router(expenses_router, prefix="/api")
router.include_router(intimations_router, prefix="/api")
router.include_router(workflow_router, prefix="/api")
router.include_router(notifications_router, prefix="/api")


@router.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok"}

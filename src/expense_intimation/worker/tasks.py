from __future__ import annotations

# Ensure all models are registered before any task runs
# isort: off
import expense_intimation.models  # noqa: F401
# isort: on

import asyncio
import time
import uuid
from collections.abc import Iterable

from expense_intimation.core.logging import (
    get_logger,
    log_event,
    log_exception,
    monotonic_ms,
    reset_task_context,
    set_task_context,
    subject_context,
)
from expense_intimation.modules.workflow.models import ApprovalRecord
from expense_intimation.worker.celery_app import celery_app

logger = get_logger(__name__)


@celery_app.task(name="execute_side_effects", bind=True)
def execute_side_effects_task(self, approval_record_id: str) -> None:
    from expense_intimation.core.db import session_scope
    from expense_intimation.modules.workflow.service import (
        build_side_effect_context,
        get_approval_record,
    )
    from expense_intimation.modules.workflow.side_effects import execute_side_effects

    task_id = getattr(self.request, "id", None)
    token = set_task_context(task_id)
    start = time.monotonic()
    log_event(
        logger,
        "celery.task.start",
        task_name="execute_side_effects",
        celery_task_id=task_id,
        approval_record_id=approval_record_id,
    )
    try:
        with session_scope() as session:
            record = get_approval_record(session, record_id=uuid.UUID(approval_record_id))
            action_config, context = build_side_effect_context(session, record=record)
        with subject_context(context.subject_type.value, context.entity_id):
            asyncio.run(execute_side_effects(action_config, context.entity_id, context=context))
        log_event(
            logger,
            "celery.task.finish",
            task_name="execute_side_effects",
            approval_record_id=approval_record_id,
            duration_ms=monotonic_ms(start),
        )
    except Exception:
        log_exception(
            logger,
            "celery.task.error",
            task_name="execute_side_effects",
            approval_record_id=approval_record_id,
            duration_ms=monotonic_ms(start),
        )
        raise
    finally:
        reset_task_context(token)


def enqueue_side_effects(records: Iterable[ApprovalRecord]) -> list[str]:
    """Queue side effects for committed approval records, one task per record.

    The transition is already committed, so a failure here is logged rather
    than surfaced to the caller.
    """
    task_ids: list[str] = []
    for record in records:
        record_id = str(record.id)
        try:
            async_result = execute_side_effects_task.delay(record_id)
        except Exception:
            log_exception(
                logger,
                "celery.task.enqueue_error",
                task_name="execute_side_effects",
                approval_record_id=record_id,
            )
            continue
        log_event(
            logger,
            "celery.task.enqueued",
            task_name="execute_side_effects",
            celery_task_id=async_result.id,
            approval_record_id=record_id,
        )
        task_ids.append(async_result.id)
    return task_ids

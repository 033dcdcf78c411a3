from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from expense_intimation.core.logging import get_logger, log_event
from expense_intimation.core.models import utcnow
from expense_intimation.modules.identity.models import User, UserRole
from expense_intimation.modules.identity.service import get_user, list_active_users_with_roles
from expense_intimation.modules.workflow.config import ActionConfig
from expense_intimation.modules.workflow.errors import UnconfiguredTransitionError, WorkflowError
from expense_intimation.modules.workflow.models import (
    SYSTEM_APPROVER_ROLE,
    TERMINAL_STATUSES,
    ApprovalAction,
    ApprovalRecord,
    RaisedFor,
    SubjectType,
    WorkflowStatus,
    WorkflowSubjectMixin,
)
from expense_intimation.modules.workflow.resolver import (
    find_action,
    get_available_actions,
    get_level_config,
    levels_for_role,
    project_level,
    project_status,
    resolve_transition,
    should_auto_approve,
)
from expense_intimation.modules.workflow.side_effects import Recipient, SideEffectContext

logger = get_logger(__name__)

AUTO_APPROVAL_COMMENT = "Auto-approved: amount within level threshold"


@dataclass(frozen=True)
class ActionOutcome:
    subject: WorkflowSubjectMixin
    record: ApprovalRecord
    action_config: ActionConfig
    automatic_records: tuple[ApprovalRecord, ...] = ()

    @property
    def records(self) -> tuple[ApprovalRecord, ...]:
        return (self.record, *self.automatic_records)


def next_reference_number(session: Session, column, prefix: str) -> str:
    """Next `<prefix><seq:04d>` after the highest sequence already issued for the prefix.

    Deleted drafts leave gaps; their numbers are not reused.
    """
    highest = 0
    for number in session.scalars(select(column).where(column.like(f"{prefix}%"))):
        suffix = number[len(prefix) :]
        if suffix.isdigit():
            highest = max(highest, int(suffix))
    return f"{prefix}{highest + 1:04d}"


def _subject_model(subject_type: SubjectType) -> type:
    from expense_intimation.modules.expenses.models import Expense
    from expense_intimation.modules.intimations.models import Intimation

    return {SubjectType.EXPENSE: Expense, SubjectType.INTIMATION: Intimation}[subject_type]


def get_subject(
    session: Session, *, subject_type: SubjectType, subject_id: uuid.UUID
) -> WorkflowSubjectMixin | None:
    model = _subject_model(subject_type)
    return session.scalar(select(model).where(model.id == subject_id))


def get_approval_record(session: Session, *, record_id: uuid.UUID) -> ApprovalRecord:
    record = session.scalar(select(ApprovalRecord).where(ApprovalRecord.id == record_id))
    if not record:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Approval not found")
    return record


def list_approval_history(
    session: Session, *, subject: WorkflowSubjectMixin
) -> list[ApprovalRecord]:
    return list(
        session.scalars(
            select(ApprovalRecord)
            .where(
                ApprovalRecord.subject_type == subject.subject_type,
                ApprovalRecord.subject_id == subject.id,
            )
            .order_by(ApprovalRecord.sequence.asc())
        )
    )


def _project(subject: WorkflowSubjectMixin, history: list[ApprovalRecord]) -> None:
    submitted = subject.submitted_at is not None
    cancelled = subject.cancelled_at is not None
    subject.status = project_status(history, submitted=submitted, cancelled=cancelled)
    subject.current_approval_level = project_level(
        history, submitted=submitted, cancelled=cancelled
    )
    if subject.status in TERMINAL_STATUSES and subject.completed_at is None:
        subject.completed_at = utcnow()


def _check_projection(subject: WorkflowSubjectMixin, history: list[ApprovalRecord]) -> None:
    expected = project_status(
        history,
        submitted=subject.submitted_at is not None,
        cancelled=subject.cancelled_at is not None,
    )
    if expected != subject.status:
        log_event(
            logger,
            "workflow.status.drift",
            level=logging.WARNING,
            subject_type=subject.subject_type.value,
            subject_id=str(subject.id),
            stored_status=subject.status.value,
            projected_status=expected.value,
        )
        _project(subject, history)


def _append_record(
    session: Session,
    *,
    subject: WorkflowSubjectMixin,
    history: list[ApprovalRecord],
    level: int,
    action: ApprovalAction,
    approver: User | None,
    comments: str | None = None,
    payment_details: dict[str, Any] | None = None,
) -> ApprovalRecord:
    resolve_transition(level, action)
    record = ApprovalRecord(
        subject_type=subject.subject_type,
        subject_id=subject.id,
        sequence=len(history) + 1,
        level=level,
        action=action,
        approver_user_id=approver.id if approver else None,
        approver_role=approver.role.value if approver else SYSTEM_APPROVER_ROLE,
        is_automatic=approver is None,
        comments=comments,
        payment_details_json=payment_details,
        decided_at=utcnow(),
    )
    session.add(record)
    history.append(record)
    _project(subject, history)
    return record


def _run_auto_approval(
    session: Session, *, subject: WorkflowSubjectMixin, history: list[ApprovalRecord]
) -> list[ApprovalRecord]:
    records: list[ApprovalRecord] = []
    while (
        subject.current_approval_level is not None
        and not subject.is_terminal
        and should_auto_approve(subject.current_approval_level, subject.amount)
    ):
        records.append(
            _append_record(
                session,
                subject=subject,
                history=history,
                level=subject.current_approval_level,
                action=ApprovalAction.APPROVE,
                approver=None,
                comments=AUTO_APPROVAL_COMMENT,
            )
        )
    return records


def _lock_subject(session: Session, subject: WorkflowSubjectMixin) -> None:
    model = type(subject)
    session.scalar(
        select(model)
        .where(model.id == subject.id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )


def is_owner(subject: WorkflowSubjectMixin, user: User) -> bool:
    return user.id in subject.owner_ids


def can_view_subject(subject: WorkflowSubjectMixin, user: User) -> bool:
    if user.role == UserRole.ADMIN or is_owner(subject, user):
        return True
    return subject.status != WorkflowStatus.DRAFT and bool(levels_for_role(user.role))


def ensure_can_view(subject: WorkflowSubjectMixin, user: User) -> None:
    if not can_view_subject(subject, user):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed")


def ensure_owner(subject: WorkflowSubjectMixin, user: User) -> None:
    if user.role != UserRole.ADMIN and not is_owner(subject, user):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed")


def ensure_draft(subject: WorkflowSubjectMixin, *, detail: str) -> None:
    if subject.status != WorkflowStatus.DRAFT:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=detail)


def resolve_requester(
    session: Session,
    *,
    user: User,
    raised_for: RaisedFor,
    employee_id: uuid.UUID | None = None,
    temporary_person_name: str | None = None,
    temporary_person_phone: str | None = None,
    temporary_person_email: str | None = None,
) -> dict[str, Any]:
    """Requester columns for a new record raised by ``user``."""
    fields: dict[str, Any] = {
        "raised_for": raised_for,
        "employee_id": None,
        "raised_by_id": None,
        "temporary_person_name": None,
        "temporary_person_phone": None,
        "temporary_person_email": None,
    }
    if raised_for == RaisedFor.MYSELF:
        fields["employee_id"] = user.id
        return fields

    fields["raised_by_id"] = user.id
    if raised_for == RaisedFor.EMPLOYEE:
        if not employee_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="employee_id is required when raising for another employee",
            )
        employee = get_user(session, user_id=employee_id)
        if not employee or not employee.is_active:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Employee not found")
        fields["employee_id"] = employee.id
        return fields

    name = (temporary_person_name or "").strip()
    if not name:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="temporary_person_name is required for a temporary person",
        )
    fields.update(
        temporary_person_name=name,
        temporary_person_phone=temporary_person_phone,
        temporary_person_email=temporary_person_email,
    )
    return fields


def available_actions_for(subject: WorkflowSubjectMixin, user: User) -> list[ActionConfig]:
    if subject.is_terminal or subject.current_approval_level is None:
        return []
    return get_available_actions(user.role, subject.current_approval_level)


def submit_subject(
    session: Session, *, subject: WorkflowSubjectMixin, user: User
) -> list[ApprovalRecord]:
    """Enter level 1 and apply auto-approval. Returns the automatic records appended."""
    ensure_owner(subject, user)
    ensure_draft(subject, detail="Only drafts can be submitted")

    history = list_approval_history(session, subject=subject)
    subject.submitted_at = utcnow()
    _project(subject, history)
    automatic = _run_auto_approval(session, subject=subject, history=history)

    session.add(subject)
    session.commit()
    session.refresh(subject)
    log_event(
        logger,
        "workflow.subject.submitted",
        subject_type=subject.subject_type.value,
        subject_id=str(subject.id),
        amount=str(subject.amount),
        status=subject.status.value,
        current_level=subject.current_approval_level,
        auto_approved_levels=[r.level for r in automatic] or None,
    )
    return automatic


def cancel_subject(
    session: Session, *, subject: WorkflowSubjectMixin, user: User
) -> WorkflowSubjectMixin:
    ensure_owner(subject, user)
    if subject.is_terminal:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail="Already closed and cannot be cancelled"
        )

    history = list_approval_history(session, subject=subject)
    subject.cancelled_at = utcnow()
    _project(subject, history)

    session.add(subject)
    session.commit()
    session.refresh(subject)
    log_event(
        logger,
        "workflow.subject.cancelled",
        subject_type=subject.subject_type.value,
        subject_id=str(subject.id),
    )
    return subject


def apply_action(
    session: Session,
    *,
    subject: WorkflowSubjectMixin,
    user: User,
    action: ApprovalAction | str,
    comments: str | None = None,
    payment_details: dict[str, Any] | None = None,
    expected_level: int | None = None,
    on_recorded: Callable[[Session, ApprovalRecord], None] | None = None,
) -> ActionOutcome:
    """Apply one approver decision at the subject's current level.

    ``on_recorded`` runs after the record is appended and before the commit so
    callers can persist related rows in the same transaction.
    """
    _lock_subject(session, subject)

    if subject.is_terminal or subject.current_approval_level is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail="Not awaiting an approval decision"
        )
    level = subject.current_approval_level
    if expected_level is not None and expected_level != level:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Approval level {expected_level} is no longer current (now {level})",
        )

    offered = get_available_actions(user.role, level)
    if not offered:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Role {user.role.value} cannot act at approval level {level}",
        )
    try:
        wanted = ApprovalAction(action)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unknown action {action!r}"
        ) from e
    action_config = next((a for a in offered if a.action == wanted), None)
    if action_config is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Action {wanted.value} is not available at approval level {level}",
        )

    comments = (comments or "").strip() or None
    if action_config.requires_comment and not comments:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"A comment is required to {action_config.label.lower()}",
        )
    if action_config.requires_payment_details and not payment_details:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Payment details are required"
        )

    history = list_approval_history(session, subject=subject)
    _check_projection(subject, history)

    record = _append_record(
        session,
        subject=subject,
        history=history,
        level=level,
        action=wanted,
        approver=user,
        comments=comments,
        payment_details=payment_details if action_config.requires_payment_details else None,
    )
    automatic: list[ApprovalRecord] = []
    if wanted == ApprovalAction.APPROVE:
        automatic = _run_auto_approval(session, subject=subject, history=history)
    if on_recorded is not None:
        session.flush()
        on_recorded(session, record)

    session.add(subject)
    session.commit()
    session.refresh(subject)
    log_event(
        logger,
        "workflow.action.applied",
        subject_type=subject.subject_type.value,
        subject_id=str(subject.id),
        level=level,
        action=wanted.value,
        approver_user_id=str(user.id),
        approver_role=user.role.value,
        status=subject.status.value,
        current_level=subject.current_approval_level,
        auto_approved_levels=[r.level for r in automatic] or None,
    )
    return ActionOutcome(
        subject=subject,
        record=record,
        action_config=action_config,
        automatic_records=tuple(automatic),
    )


def _employee_recipients(
    session: Session, subject: WorkflowSubjectMixin
) -> tuple[Recipient, ...]:
    recipients: list[Recipient] = []
    if subject.employee_id:
        employee = get_user(session, user_id=subject.employee_id)
        if employee:
            recipients.append(Recipient(employee.id, employee.email, employee.full_name))
    elif subject.temporary_person_email or subject.temporary_person_name:
        recipients.append(
            Recipient(None, subject.temporary_person_email, subject.temporary_person_name)
        )
    if subject.raised_by_id and subject.raised_by_id != subject.employee_id:
        raiser = get_user(session, user_id=subject.raised_by_id)
        if raiser:
            recipients.append(Recipient(raiser.id, raiser.email, raiser.full_name))
    return tuple(recipients)


def _approver_recipients(
    session: Session, subject: WorkflowSubjectMixin
) -> tuple[Recipient, ...]:
    if subject.is_terminal or subject.current_approval_level is None:
        return ()
    cfg = get_level_config(subject.current_approval_level)
    if cfg is None:
        return ()
    # Admins can act everywhere but are not paged for every level.
    users = list_active_users_with_roles(session, roles=cfg.required_roles - {UserRole.ADMIN})
    recipients = [Recipient(u.id, u.email, u.full_name) for u in users]
    known = {u.email.lower() for u in users}
    recipients.extend(
        Recipient(None, email) for email in cfg.notification_recipients if email.lower() not in known
    )
    return tuple(recipients)


def build_side_effect_context(
    session: Session, *, record: ApprovalRecord
) -> tuple[ActionConfig, SideEffectContext]:
    subject = get_subject(session, subject_type=record.subject_type, subject_id=record.subject_id)
    if subject is None:
        raise WorkflowError(f"{record.subject_type.value} {record.subject_id} not found")
    action_config = find_action(record.level, record.action)
    if action_config is None:
        raise UnconfiguredTransitionError(record.level, record.action)

    context = SideEffectContext(
        entity_id=str(subject.id),
        subject_type=subject.subject_type,
        reference=subject.reference,
        level=record.level,
        action=record.action,
        status=action_config.next_status,
        current_level=subject.current_approval_level,
        amount=subject.amount,
        currency=getattr(subject, "currency", None),
        comments=record.comments,
        recipients=MappingProxyType(
            {
                "employee": _employee_recipients(session, subject),
                "next_approver": _approver_recipients(session, subject),
            }
        ),
    )
    return action_config, context


def list_awaiting_for_user(session: Session, *, user: User, subject_type: SubjectType) -> list:
    levels = levels_for_role(user.role)
    if not levels:
        return []
    model = _subject_model(subject_type)
    return list(
        session.scalars(
            select(model)
            .where(
                model.current_approval_level.in_(levels),
                model.status.not_in(list(TERMINAL_STATUSES)),
            )
            .order_by(model.submitted_at.asc())
        )
    )

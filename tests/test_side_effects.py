from __future__ import annotations

import asyncio
import json
import uuid
from decimal import Decimal

import httpx
import pytest
from sqlalchemy import select

from expense_intimation.core.db import SessionLocal
from expense_intimation.modules.identity.models import UserRole
from expense_intimation.modules.notifications.models import Notification, NotificationChannel
from expense_intimation.modules.notifications.service import list_email_outbox
from expense_intimation.modules.workflow.config import SideEffect
from expense_intimation.modules.workflow.models import (
    ApprovalAction,
    SideEffectType,
    SubjectType,
    WorkflowStatus,
)
from expense_intimation.modules.workflow.resolver import find_action
from expense_intimation.modules.workflow.side_effects import (
    EmailDispatcher,
    NotificationDispatcher,
    Recipient,
    SideEffectContext,
    WebhookDispatcher,
    execute_side_effects,
)


class RecordingDispatcher:
    def __init__(self, calls: list, *, fail: bool = False):
        self.calls = calls
        self.fail = fail

    async def dispatch(self, effect: SideEffect, context: SideEffectContext) -> None:
        self.calls.append((effect.type, effect.target))
        if self.fail:
            raise RuntimeError("dispatcher down")


def _context(**overrides) -> SideEffectContext:
    values = {
        "entity_id": str(uuid.uuid4()),
        "subject_type": SubjectType.EXPENSE,
        "reference": "EXP-2026-0007",
        "level": 3,
        "action": ApprovalAction.CONFIRM_PAYMENT,
        "status": WorkflowStatus.PAID,
        "amount": Decimal("1250.00"),
        "currency": "USD",
    }
    values.update(overrides)
    return SideEffectContext(**values)


def test_effects_run_in_declared_order():
    calls: list = []
    recorder = RecordingDispatcher(calls)
    dispatchers = {t: recorder for t in SideEffectType}
    action = find_action(3, ApprovalAction.CONFIRM_PAYMENT)

    asyncio.run(execute_side_effects(action, uuid.uuid4(), dispatchers=dispatchers))

    assert calls == [(e.type, e.target) for e in action.side_effects]
    assert calls[-1] == (SideEffectType.WEBHOOK, "accounting_system")


def test_failing_effect_does_not_stop_the_rest():
    calls: list = []
    ok = RecordingDispatcher(calls)
    dispatchers = {
        SideEffectType.NOTIFICATION: RecordingDispatcher(calls, fail=True),
        SideEffectType.EMAIL: ok,
        SideEffectType.STATUS_CHANGE: ok,
    }
    action = find_action(1, ApprovalAction.REJECT)

    asyncio.run(execute_side_effects(action, uuid.uuid4(), dispatchers=dispatchers))

    assert [c[0] for c in calls] == [
        SideEffectType.NOTIFICATION,
        SideEffectType.EMAIL,
        SideEffectType.STATUS_CHANGE,
    ]


def test_effect_without_dispatcher_is_skipped():
    calls: list = []
    dispatchers = {SideEffectType.NOTIFICATION: RecordingDispatcher(calls)}
    action = find_action(2, ApprovalAction.APPROVE)

    asyncio.run(execute_side_effects(action, "entity-1", dispatchers=dispatchers))

    assert calls == [(SideEffectType.NOTIFICATION, "employee")]


def test_webhook_retries_then_posts_event():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if len(seen) == 1:
            return httpx.Response(503)
        return httpx.Response(200, json={"ok": True})

    dispatcher = WebhookDispatcher(
        urls={"accounting_system": "https://accounting.example.com/hooks/payments"},
        transport=httpx.MockTransport(handler),
        max_attempts=3,
        backoff_seconds=0,
    )
    effect = SideEffect(
        type=SideEffectType.WEBHOOK, target="accounting_system", payload={"action": "record_payment"}
    )
    context = _context()

    asyncio.run(dispatcher.dispatch(effect, context))

    assert len(seen) == 2
    body = json.loads(seen[-1].content)
    assert body["event"] == "record_payment"
    assert body["subject_id"] == context.entity_id
    assert body["status"] == "paid"
    assert body["amount"] == "1250.00"


def test_webhook_gives_up_after_max_attempts():
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        return httpx.Response(500)

    dispatcher = WebhookDispatcher(
        urls={"accounting_system": "https://accounting.example.com/hooks/payments"},
        transport=httpx.MockTransport(handler),
        max_attempts=2,
        backoff_seconds=0,
    )
    effect = SideEffect(type=SideEffectType.WEBHOOK, target="accounting_system")

    with pytest.raises(httpx.HTTPStatusError):
        asyncio.run(dispatcher.dispatch(effect, _context()))
    assert len(attempts) == 2


def test_webhook_without_url_is_a_no_op():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    dispatcher = WebhookDispatcher(urls={}, transport=httpx.MockTransport(handler))
    effect = SideEffect(type=SideEffectType.WEBHOOK, target="accounting_system")

    asyncio.run(dispatcher.dispatch(effect, _context()))


def test_webhook_waits_longer_before_each_retry():
    attempts = []
    pauses: list[float] = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        return httpx.Response(502)

    async def fake_sleep(seconds: float) -> None:
        pauses.append(seconds)

    dispatcher = WebhookDispatcher(
        urls={"accounting_system": "https://accounting.example.com/hooks/payments"},
        transport=httpx.MockTransport(handler),
        max_attempts=3,
        backoff_seconds=0.5,
        sleep=fake_sleep,
    )
    effect = SideEffect(type=SideEffectType.WEBHOOK, target="accounting_system")

    with pytest.raises(httpx.HTTPStatusError):
        asyncio.run(dispatcher.dispatch(effect, _context()))
    assert len(attempts) == 3
    # No pause after the final attempt.
    assert pauses == [0.5, 1.0]


def test_context_defaults_to_no_recipients():
    context = SideEffectContext(entity_id="x")
    assert context.recipients_for("employee") == ()
    assert dict(context.recipients) == {}
    assert dict(SideEffect(type=SideEffectType.STATUS_CHANGE).payload) == {}


def test_notification_and_email_rows_are_written(users):
    employee = Recipient(
        user_id=users[UserRole.EMPLOYEE], email="employee@example.com", name="Employee"
    )
    context = _context(recipients={"employee": (employee,)}, comments="All settled")

    asyncio.run(
        NotificationDispatcher().dispatch(
            SideEffect(
                type=SideEffectType.NOTIFICATION,
                target="employee",
                payload={"message": "Payment confirmed"},
            ),
            context,
        )
    )
    asyncio.run(
        EmailDispatcher().dispatch(
            SideEffect(
                type=SideEffectType.EMAIL, target="employee", payload={"template": "expense_paid"}
            ),
            context,
        )
    )

    with SessionLocal() as session:
        outbox = list_email_outbox(session)
        assert [n.recipient_email for n in outbox] == ["employee@example.com"]
        assert outbox[0].title == "EXP-2026-0007 has been paid"
        assert outbox[0].channel == NotificationChannel.EMAIL
        in_app = session.scalars(
            select(Notification).where(Notification.channel == NotificationChannel.IN_APP)
        ).all()
        assert [n.title for n in in_app] == ["Payment confirmed (EXP-2026-0007)"]
        assert in_app[0].recipient_user_id == users[UserRole.EMPLOYEE]

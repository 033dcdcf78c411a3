from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from types import MappingProxyType
from typing import Protocol

import httpx
from sqlalchemy.orm import Session

from expense_intimation.core.config import settings
from expense_intimation.core.logging import get_logger, log_event, log_exception
from expense_intimation.modules.workflow.config import ActionConfig, SideEffect
from expense_intimation.modules.workflow.models import (
    ApprovalAction,
    SideEffectType,
    SubjectType,
    WorkflowStatus,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class Recipient:
    user_id: uuid.UUID | None
    email: str | None
    name: str | None = None


@dataclass(frozen=True)
class SideEffectContext:
    entity_id: str
    subject_type: SubjectType | None = None
    reference: str | None = None
    level: int | None = None
    action: ApprovalAction | None = None
    status: WorkflowStatus | None = None
    current_level: int | None = None
    amount: Decimal | None = None
    currency: str | None = None
    comments: str | None = None
    # Keyed by side-effect target ("employee", "next_approver").
    recipients: Mapping[str, tuple[Recipient, ...]] = field(
        default_factory=lambda: MappingProxyType({})
    )

    def recipients_for(self, target: str | None) -> tuple[Recipient, ...]:
        if not target:
            return ()
        return self.recipients.get(target, ())


class SideEffectDispatcher(Protocol):
    async def dispatch(self, effect: SideEffect, context: SideEffectContext) -> None: ...


def _default_session_factory() -> Session:
    from expense_intimation.core.db import SessionLocal

    return SessionLocal()


class NotificationDispatcher:
    """Writes one in-app notification per user recipient of the effect's target."""

    def __init__(self, session_factory: Callable[[], Session] = _default_session_factory):
        self._session_factory = session_factory

    async def dispatch(self, effect: SideEffect, context: SideEffectContext) -> None:
        recipients = [r for r in context.recipients_for(effect.target) if r.user_id]
        if not recipients:
            log_event(
                logger,
                "workflow.side_effect.no_recipients",
                level=logging.WARNING,
                effect_type=effect.type.value,
                target=effect.target,
                entity_id=context.entity_id,
            )
            return

        message = str(effect.payload.get("message") or "Your request was updated")
        if context.reference:
            message = f"{message} ({context.reference})"
        await asyncio.to_thread(self._write, recipients, context, message)

    def _write(
        self, recipients: list[Recipient], context: SideEffectContext, message: str
    ) -> None:
        from expense_intimation.modules.notifications.models import NotificationChannel
        from expense_intimation.modules.notifications.service import create_notification

        with self._session_factory() as session:
            for recipient in recipients:
                create_notification(
                    session,
                    channel=NotificationChannel.IN_APP,
                    recipient_user_id=recipient.user_id,
                    recipient_email=recipient.email,
                    subject_type=context.subject_type,
                    subject_id=uuid.UUID(context.entity_id),
                    title=message,
                    body=context.comments,
                )


class EmailDispatcher:
    """Queues a rendered email in the outbox for each recipient with an address."""

    def __init__(self, session_factory: Callable[[], Session] = _default_session_factory):
        self._session_factory = session_factory

    async def dispatch(self, effect: SideEffect, context: SideEffectContext) -> None:
        recipients = [r for r in context.recipients_for(effect.target) if r.email]
        if not recipients:
            log_event(
                logger,
                "workflow.side_effect.no_recipients",
                level=logging.WARNING,
                effect_type=effect.type.value,
                target=effect.target,
                entity_id=context.entity_id,
            )
            return

        template = str(effect.payload.get("template") or "")
        await asyncio.to_thread(self._write, recipients, context, template)

    def _write(
        self, recipients: list[Recipient], context: SideEffectContext, template: str
    ) -> None:
        from expense_intimation.modules.notifications.models import NotificationChannel
        from expense_intimation.modules.notifications.service import (
            create_notification,
            render_email,
        )

        with self._session_factory() as session:
            for recipient in recipients:
                title, body = render_email(template, context=context, recipient=recipient)
                create_notification(
                    session,
                    channel=NotificationChannel.EMAIL,
                    recipient_user_id=recipient.user_id,
                    recipient_email=recipient.email,
                    subject_type=context.subject_type,
                    subject_id=uuid.UUID(context.entity_id),
                    template=template,
                    title=title,
                    body=body,
                )


class WebhookDispatcher:
    """POSTs a JSON event to the URL configured for the effect's target."""

    def __init__(
        self,
        *,
        urls: Mapping[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float | None = None,
        max_attempts: int | None = None,
        backoff_seconds: float | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._urls = urls
        self._transport = transport
        self._timeout = timeout if timeout is not None else settings.webhook_timeout_seconds
        self._max_attempts = max(1, max_attempts or settings.webhook_max_attempts)
        self._backoff = (
            backoff_seconds
            if backoff_seconds is not None
            else settings.webhook_retry_backoff_seconds
        )
        self._sleep = sleep

    async def dispatch(self, effect: SideEffect, context: SideEffectContext) -> None:
        urls = self._urls if self._urls is not None else settings.webhook_urls
        url = urls.get(effect.target or "")
        if not url:
            log_event(
                logger,
                "workflow.webhook.unconfigured",
                level=logging.WARNING,
                target=effect.target,
                entity_id=context.entity_id,
            )
            return

        body = {
            "event": effect.payload.get("action"),
            "subject_type": context.subject_type.value if context.subject_type else None,
            "subject_id": context.entity_id,
            "reference": context.reference,
            "status": context.status.value if context.status else None,
            "amount": str(context.amount) if context.amount is not None else None,
            "currency": context.currency,
        }
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            for attempt in range(1, self._max_attempts + 1):
                try:
                    resp = await client.post(url, json=body)
                    resp.raise_for_status()
                except httpx.HTTPError:
                    if attempt >= self._max_attempts:
                        raise
                    log_event(
                        logger,
                        "workflow.webhook.retry",
                        level=logging.WARNING,
                        target=effect.target,
                        attempt=attempt,
                        entity_id=context.entity_id,
                    )
                    # Linear backoff: backoff, 2 * backoff, ...
                    if self._backoff > 0:
                        await self._sleep(self._backoff * attempt)
                    continue
                return


class LogOnlyDispatcher:
    """For effects whose state change the workflow service already persisted."""

    async def dispatch(self, effect: SideEffect, context: SideEffectContext) -> None:
        log_event(
            logger,
            f"workflow.side_effect.{effect.type.value}",
            entity_id=context.entity_id,
            status=effect.payload.get("status") or (context.status.value if context.status else None),
            current_level=context.current_level,
        )


def default_dispatchers() -> dict[SideEffectType, SideEffectDispatcher]:
    log_only = LogOnlyDispatcher()
    return {
        SideEffectType.NOTIFICATION: NotificationDispatcher(),
        SideEffectType.EMAIL: EmailDispatcher(),
        SideEffectType.WEBHOOK: WebhookDispatcher(),
        SideEffectType.STATUS_CHANGE: log_only,
        SideEffectType.ASSIGN_NEXT_LEVEL: log_only,
    }


async def execute_side_effects(
    action_config: ActionConfig,
    entity_id: uuid.UUID | str,
    *,
    context: SideEffectContext | None = None,
    dispatchers: Mapping[SideEffectType, SideEffectDispatcher] | None = None,
    delay_seconds: float | None = None,
) -> None:
    """Dispatch each declared side effect in order.

    Best-effort: a failing dispatcher is logged and the remaining effects still
    run. The workflow transition itself is already committed by the caller.
    """
    ctx = context or SideEffectContext(entity_id=str(entity_id))
    registry = dispatchers if dispatchers is not None else default_dispatchers()
    delay = settings.side_effect_delay_ms / 1000 if delay_seconds is None else delay_seconds

    for index, effect in enumerate(action_config.side_effects):
        fields = {
            "entity_id": str(entity_id),
            "action": action_config.action.value,
            "effect_index": index,
            "effect_type": effect.type.value,
            "target": effect.target,
        }
        dispatcher = registry.get(effect.type)
        if dispatcher is None:
            log_event(logger, "workflow.side_effect.skipped", level=logging.WARNING, **fields)
            continue
        try:
            await dispatcher.dispatch(effect, ctx)
        except Exception:
            log_exception(logger, "workflow.side_effect.error", **fields)
        else:
            log_event(logger, "workflow.side_effect.dispatched", **fields)
        if delay > 0:
            await asyncio.sleep(delay)

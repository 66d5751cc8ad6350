from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from datetime import UTC, date, datetime
from typing import Any

from ..db.gateway import CLIENTS_TABLE, INSTALLMENTS_TABLE, PersistenceGateway
from ..logging.error_log import UNKNOWN_LINE
from ..models.context import RunContext
from ..models.installment import (
    BulkSendResult,
    DispatchOutcome,
    Installment,
    InstallmentStatus,
    Reminder,
)
from .cadence import days_until_due, due_reminders, in_bulk_window, reminder_kind
from .gateway import MessagingGateway
from .messages import build_message, to_e164

"""Reminder dispatch.

Bulk run: load the owner's pending installments, keep the ones the cadence
selects for today, resolve client phones in one query, send one message at a
time with a fixed pause in between and record each successful attempt. A
failed dispatch leaves the installment untouched so the next scheduled run
retries it.
"""

__all__ = [
    "BillingError",
    "ReminderError",
    "load_pending_installments",
    "resolve_phones",
    "send_due_reminders",
    "send_reminder",
    "mark_paid",
]

logger = logging.getLogger(__name__)

ERROR_SOURCE = "reminders"
ERROR_TYPE_DISPATCH = "DISPATCH_ERROR"


class BillingError(Exception):
    pass


class ReminderError(BillingError):
    """A single (manual) reminder could not be sent."""


def load_pending_installments(gateway: PersistenceGateway, owner_id: str) -> list[Installment]:
    rows = gateway.select_where(
        INSTALLMENTS_TABLE,
        {"user_id": owner_id, "status": InstallmentStatus.PENDENTE.value},
    )
    installments = []
    for row in rows:
        try:
            installments.append(Installment.from_row(row))
        except (KeyError, ValueError) as e:
            logger.warning(f"installment {row.get('id')} ignored: {e}")
    return installments


def resolve_phones(
    gateway: PersistenceGateway, owner_id: str, client_ids: Iterable[Any]
) -> dict[Any, str | None]:
    """client id -> stored phone, one query for all ids."""
    ids = sorted({cid for cid in client_ids if cid is not None}, key=str)
    if not ids:
        return {}
    rows = gateway.select_where(
        CLIENTS_TABLE, {"user_id": owner_id, "id": ids}, columns=["id", "telefone"]
    )
    return {r["id"]: r.get("telefone") for r in rows}


def _require_messenger(ctx: RunContext) -> MessagingGateway:
    if ctx.messenger is None:
        raise BillingError("no messaging gateway configured")
    return ctx.messenger


def _record_attempt(ctx: RunContext, installment: Installment, now: datetime) -> None:
    outcome = ctx.gateway.update_where(
        INSTALLMENTS_TABLE,
        {"id": installment.id, "user_id": ctx.owner_id},
        {
            "ultimo_envio_cobranca": now,
            "tentativas_cobranca": installment.reminder_attempts + 1,
        },
    )
    if outcome.error is not None:
        logger.error(f"installment {installment.id}: message sent but attempt not recorded: {outcome.error}")


def _dispatch(
    ctx: RunContext,
    messenger: MessagingGateway,
    reminder: Reminder,
    phone: str | None,
) -> DispatchOutcome:
    inst = reminder.installment
    to = to_e164(phone)
    if to is None:
        return DispatchOutcome(
            installment_id=inst.id,
            client_name=inst.client_name,
            success=False,
            phone=phone,
            error="client has no valid phone",
        )
    result = messenger.send(to, build_message(inst, reminder.kind))
    if not result.success:
        return DispatchOutcome(
            installment_id=inst.id,
            client_name=inst.client_name,
            success=False,
            phone=to,
            error=result.error or "send failed",
        )
    _record_attempt(ctx, inst, datetime.now(UTC))
    return DispatchOutcome(
        installment_id=inst.id,
        client_name=inst.client_name,
        success=True,
        phone=to,
        provider_message_id=result.provider_message_id,
    )


def send_due_reminders(
    ctx: RunContext,
    today: date,
    *,
    sleep: Callable[[float], Any] = time.sleep,
) -> BulkSendResult:
    """Send today's reminders for ``ctx.owner_id`` and summarize the run.

    Raises:
        BillingError: no messaging gateway in the context
    """
    messenger = _require_messenger(ctx)
    pending = [i for i in load_pending_installments(ctx.gateway, ctx.owner_id) if in_bulk_window(i, today)]
    reminders = due_reminders(pending, today)
    logger.info(f"{len(pending)} pending installments in window, {len(reminders)} reminders due")
    if not reminders:
        return BulkSendResult(success_count=0, failure_count=0)

    phones = resolve_phones(ctx.gateway, ctx.owner_id, (r.installment.client_id for r in reminders))

    outcomes: list[DispatchOutcome] = []
    gateway_calls = 0
    for reminder in reminders:
        phone = phones.get(reminder.installment.client_id)
        if to_e164(phone) is not None:
            if gateway_calls:
                # 連続送信によるレート制限回避
                sleep(ctx.reminder_delay_seconds)
            gateway_calls += 1
        outcome = _dispatch(ctx, messenger, reminder, phone)
        if outcome.success:
            logger.info(f"reminder sent: installment={outcome.installment_id} kind={reminder.kind.value}")
        else:
            logger.warning(f"reminder failed: installment={outcome.installment_id}: {outcome.error}")
            ctx.error_log.record(
                ERROR_SOURCE, "dispatch", UNKNOWN_LINE, ERROR_TYPE_DISPATCH,
                f"installment {outcome.installment_id}: {outcome.error}",
            )
        outcomes.append(outcome)

    ctx.error_log.flush()
    success = sum(1 for o in outcomes if o.success)
    return BulkSendResult(success_count=success, failure_count=len(outcomes) - success, outcomes=outcomes)


def _load_installment(ctx: RunContext, installment_id: Any) -> Installment:
    rows = ctx.gateway.select_where(
        INSTALLMENTS_TABLE, {"id": installment_id, "user_id": ctx.owner_id}
    )
    if not rows:
        raise ReminderError(f"installment {installment_id} not found")
    return Installment.from_row(rows[0])


def send_reminder(ctx: RunContext, installment_id: Any, today: date) -> DispatchOutcome:
    """Send the reminder matching the installment's current state, ignoring the cadence.

    Raises:
        ReminderError: installment missing or paid, client without phone, or
            the gateway rejected the message
    """
    messenger = _require_messenger(ctx)
    inst = _load_installment(ctx, installment_id)
    if inst.is_paid:
        raise ReminderError(f"installment {installment_id} is already paid")
    days = days_until_due(inst.due_date, today)
    reminder = Reminder(installment=inst, days_until_due=days, kind=reminder_kind(days))
    phone = resolve_phones(ctx.gateway, ctx.owner_id, [inst.client_id]).get(inst.client_id)
    outcome = _dispatch(ctx, messenger, reminder, phone)
    if not outcome.success:
        raise ReminderError(f"installment {installment_id}: {outcome.error}")
    logger.info(f"reminder sent: installment={installment_id} kind={reminder.kind.value}")
    return outcome


def mark_paid(
    gateway: PersistenceGateway, owner_id: str, installment_id: Any, paid_on: date
) -> None:
    """Confirm payment: status -> PAGO and ``data_pagamento`` set."""
    outcome = gateway.update_where(
        INSTALLMENTS_TABLE,
        {"id": installment_id, "user_id": owner_id},
        {"status": InstallmentStatus.PAGO.value, "data_pagamento": paid_on},
    )
    if outcome.error is not None:
        raise BillingError(f"installment {installment_id}: {outcome.error}")
    if outcome.updated == 0:
        raise BillingError(f"installment {installment_id} not found")

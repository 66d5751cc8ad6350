from __future__ import annotations

from datetime import date, timedelta

import pytest

from legalops.billing.dispatcher import (
    BillingError,
    ReminderError,
    load_pending_installments,
    mark_paid,
    send_due_reminders,
    send_reminder,
)

TODAY = date(2024, 5, 10)


@pytest.fixture()
def seeded(gateway):
    clients = gateway.seed("clientes", [
        {"user_id": "owner-1", "nome": "Ana", "telefone": "11987654321"},
        {"user_id": "owner-1", "nome": "Bia", "telefone": "81999990000"},
        {"user_id": "owner-1", "nome": "Caio", "telefone": None},
    ])
    ana, bia, caio = (c["id"] for c in clients)

    def inst(client_id, name, offset, status="PENDENTE", owner="owner-1"):
        return {
            "user_id": owner, "cliente_id": client_id, "cliente_nome": name, "valor": "250.00",
            "tipo": "Honorários", "status": status, "vencimento": TODAY + timedelta(days=offset),
            "tentativas_cobranca": 0,
        }

    gateway.seed("financeiro", [
        inst(ana, "Ana", 3),          # id 1: first warning
        inst(bia, "Bia", 0),          # id 2: due today
        inst(ana, "Ana", -10),        # id 3: overdue, 10 days
        inst(bia, "Bia", -7),         # id 4: overdue, off cadence
        inst(bia, "Bia", 3, "PAGO"),  # id 5: paid
        inst(bia, "Bia", 10),         # id 6: outside window
        inst(ana, "Ana", 0, owner="other"),  # id 7: other owner
    ])
    return {"ana": ana, "bia": bia, "caio": caio}


def _installment(gateway, id_):
    return next(r for r in gateway.tables["financeiro"] if r["id"] == id_)


def test_load_pending_is_owner_scoped(gateway, seeded):
    ids = sorted(i.id for i in load_pending_installments(gateway, "owner-1"))
    assert ids == [1, 2, 3, 4, 6]


def test_bad_installment_row_is_skipped(gateway, seeded):
    gateway.seed("financeiro", [{"user_id": "owner-1", "status": "PENDENTE", "vencimento": None}])
    assert len(load_pending_installments(gateway, "owner-1")) == 5


def test_bulk_send_follows_cadence(ctx, gateway, messenger, seeded):
    sleeps = []
    result = send_due_reminders(ctx, TODAY, sleep=sleeps.append)
    assert (result.success_count, result.failure_count) == (3, 0)
    # oldest due date first
    assert [o.installment_id for o in result.outcomes] == [3, 2, 1]
    assert [body.split(":")[0] for _, body in messenger.sent] == ["Atraso", "Hoje", "Lembrete"]
    assert messenger.sent[0][0] == "+5511987654321"
    assert sleeps == [0.0, 0.0]


def test_successful_dispatch_records_attempt(ctx, gateway, seeded):
    send_due_reminders(ctx, TODAY, sleep=lambda s: None)
    for id_ in (1, 2, 3):
        row = _installment(gateway, id_)
        assert row["tentativas_cobranca"] == 1
        assert row["ultimo_envio_cobranca"] is not None
    assert "ultimo_envio_cobranca" not in _installment(gateway, 4)


def test_failed_dispatch_is_counted_and_not_recorded(ctx, gateway, messenger, seeded, tmp_path):
    messenger.failing = {"+5581999990000"}
    result = send_due_reminders(ctx, TODAY, sleep=lambda s: None)
    assert (result.success_count, result.failure_count) == (2, 1)
    failed = [o for o in result.outcomes if not o.success]
    assert failed[0].installment_id == 2
    assert failed[0].error == "provider rejected"
    assert _installment(gateway, 2)["tentativas_cobranca"] == 0
    logs = list((tmp_path / "logs").glob("errors-*.log"))
    assert len(logs) == 1


def test_client_without_phone_fails_without_gateway_call(ctx, gateway, messenger, seeded):
    gateway.seed("financeiro", [{
        "user_id": "owner-1", "cliente_id": seeded["caio"], "cliente_nome": "Caio", "valor": 10,
        "status": "PENDENTE", "vencimento": TODAY,
    }])
    sleeps = []
    result = send_due_reminders(ctx, TODAY, sleep=sleeps.append)
    assert result.failure_count == 1
    assert len(messenger.sent) == 3
    caio = next(o for o in result.outcomes if o.client_name == "Caio")
    assert caio.error == "client has no valid phone"
    # 送信しない相手の前では待たない
    assert len(sleeps) == 2


def test_phones_resolved_with_one_query(ctx, gateway, seeded):
    send_due_reminders(ctx, TODAY, sleep=lambda s: None)
    client_queries = [f for t, f in gateway.select_calls if t == "clientes"]
    assert len(client_queries) == 1
    assert sorted(client_queries[0]["id"]) == sorted([seeded["ana"], seeded["bia"]])


def test_nothing_due(ctx, gateway, messenger):
    result = send_due_reminders(ctx, TODAY, sleep=lambda s: None)
    assert result.total == 0
    assert messenger.sent == []


def test_no_messenger_is_an_error(ctx):
    ctx.messenger = None
    with pytest.raises(BillingError):
        send_due_reminders(ctx, TODAY)


def test_delay_between_messages(ctx, seeded):
    ctx.reminder_delay_seconds = 1.0
    sleeps = []
    send_due_reminders(ctx, TODAY, sleep=sleeps.append)
    assert sleeps == [1.0, 1.0]


def test_manual_send_ignores_cadence(ctx, gateway, messenger, seeded):
    outcome = send_reminder(ctx, 4, TODAY)
    assert outcome.success
    assert messenger.sent[0][1].startswith("Atraso:")
    assert _installment(gateway, 4)["tentativas_cobranca"] == 1


def test_manual_send_future_installment_uses_first_warning_text(ctx, messenger, seeded):
    send_reminder(ctx, 6, TODAY)
    assert messenger.sent[0][1].startswith("Lembrete:")


@pytest.mark.parametrize("installment_id,match", [(5, "already paid"), (7, "not found"), (99, "not found")])
def test_manual_send_rejections(ctx, seeded, installment_id, match):
    with pytest.raises(ReminderError, match=match):
        send_reminder(ctx, installment_id, TODAY)


def test_manual_send_gateway_failure_raises(ctx, messenger, seeded):
    messenger.failing = {"+5511987654321"}
    with pytest.raises(ReminderError, match="provider rejected"):
        send_reminder(ctx, 1, TODAY)


def test_mark_paid(gateway, seeded):
    mark_paid(gateway, "owner-1", 1, TODAY)
    row = _installment(gateway, 1)
    assert row["status"] == "PAGO"
    assert row["data_pagamento"] == TODAY


def test_paid_installment_leaves_cadence(ctx, gateway, messenger, seeded):
    mark_paid(gateway, "owner-1", 1, TODAY)
    result = send_due_reminders(ctx, TODAY, sleep=lambda s: None)
    assert 1 not in [o.installment_id for o in result.outcomes]


def test_mark_paid_other_owner_not_found(gateway, seeded):
    with pytest.raises(BillingError, match="not found"):
        mark_paid(gateway, "owner-1", 7, TODAY)


def test_mark_paid_store_error(gateway, seeded):
    gateway.fail_updates = True
    with pytest.raises(BillingError):
        mark_paid(gateway, "owner-1", 1, TODAY)

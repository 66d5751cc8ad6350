from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

"""Installment (``financeiro`` row) and reminder models.

Installments reference their client by identity (``cliente_id``). The
cadence engine never persists DueState; it is derived from the due date and
the evaluation day on every run.
"""


class InstallmentKind(Enum):
    ENTRADA = "Entrada"
    HONORARIOS = "Honorários"
    TMP = "TMP"


class InstallmentStatus(Enum):
    PENDENTE = "PENDENTE"
    PAGO = "PAGO"


class DueState(Enum):
    """Conceptual cadence state of an installment on a given day.

    FUTURE → DUE_SOON (1–3 days out) → DUE_TODAY → OVERDUE.
    A paid installment is SETTLED regardless of its date.
    """
    FUTURE = "future"
    DUE_SOON = "due_soon"
    DUE_TODAY = "due_today"
    OVERDUE = "overdue"
    SETTLED = "settled"


class ReminderKind(Enum):
    FIRST_WARNING = "first_warning"  # 期日の3日前
    DUE_TODAY = "due_today"
    OVERDUE = "overdue"


def _to_date(value: Any) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _to_datetime(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


@dataclass(frozen=True)
class Installment:
    """One scheduled payment obligation tied to a client."""
    id: Any
    client_id: Any
    client_name: str
    amount: Decimal
    kind: InstallmentKind
    status: InstallmentStatus
    due_date: date
    paid_date: date | None = None
    last_reminder_sent_at: datetime | None = None
    reminder_attempts: int = 0

    @property
    def is_paid(self) -> bool:
        return self.status is InstallmentStatus.PAGO

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Installment:
        """Build from a ``financeiro`` table row."""
        due = _to_date(row["vencimento"])
        if due is None:
            raise ValueError(f"installment {row.get('id')} has no due date")
        return cls(
            id=row["id"],
            client_id=row.get("cliente_id"),
            client_name=row.get("cliente_nome") or "",
            amount=Decimal(str(row.get("valor") or 0)),
            kind=InstallmentKind(row.get("tipo") or InstallmentKind.HONORARIOS.value),
            status=InstallmentStatus(row.get("status") or InstallmentStatus.PENDENTE.value),
            due_date=due,
            paid_date=_to_date(row.get("data_pagamento")),
            last_reminder_sent_at=_to_datetime(row.get("ultimo_envio_cobranca")),
            reminder_attempts=int(row.get("tentativas_cobranca") or 0),
        )


@dataclass(frozen=True)
class Reminder:
    """An installment selected for a reminder on a given day."""
    installment: Installment
    days_until_due: int  # 負数 = 延滞
    kind: ReminderKind


@dataclass(frozen=True)
class DispatchOutcome:
    """Per-recipient result of a reminder dispatch."""
    installment_id: Any
    client_name: str
    success: bool
    phone: str | None = None
    provider_message_id: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class BulkSendResult:
    """Summary of one bulk reminder run."""
    success_count: int
    failure_count: int
    outcomes: list[DispatchOutcome] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.success_count + self.failure_count

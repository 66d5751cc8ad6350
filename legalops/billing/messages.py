from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from ..models.installment import Installment, ReminderKind
from ..validation.normalizer import digits_only

"""Reminder message bodies (pt-BR) and phone formatting."""

__all__ = [
    "format_brl",
    "format_date_br",
    "to_e164",
    "build_message",
]

BRAZIL_COUNTRY_CODE = "55"


def format_brl(amount: Decimal | float | int) -> str:
    """``R$ 1.234,56``."""
    value = Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    sign = "-" if value < 0 else ""
    text = f"{abs(value):,.2f}"  # 1,234.56
    text = text.replace(",", "_").replace(".", ",").replace("_", ".")
    return f"{sign}R$ {text}"


def format_date_br(value) -> str:
    return value.strftime("%d/%m/%Y")


def to_e164(phone: str | None) -> str | None:
    """Stored phone (digits, national format) -> ``+55...``; None if unusable."""
    digits = digits_only(phone)
    if len(digits) < 10:
        return None
    if len(digits) in (10, 11):
        digits = BRAZIL_COUNTRY_CODE + digits
    return f"+{digits}"


def build_message(installment: Installment, kind: ReminderKind) -> str:
    name = installment.client_name
    amount = format_brl(installment.amount)
    due = format_date_br(installment.due_date)
    if kind is ReminderKind.FIRST_WARNING:
        return f"Lembrete: Sr(a). {name}, seu pagamento de {amount} vence em {due}."
    if kind is ReminderKind.DUE_TODAY:
        return f"Hoje: Sr(a). {name}, seu pagamento de {amount} vence hoje!"
    return f"Atraso: Sr(a). {name}, seu pagamento de {amount} está atrasado desde {due}."

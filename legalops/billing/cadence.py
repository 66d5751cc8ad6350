from __future__ import annotations

from collections.abc import Iterable
from datetime import date

from ..models.installment import DueState, Installment, InstallmentStatus, Reminder, ReminderKind

"""Billing-reminder cadence.

A pending installment gets a reminder 3 days before its due date, on the due
date, and every 5th day after it (5, 10, 15, ...). Paid installments never get
one. Day offsets are whole calendar days between the due date and the
evaluation day.
"""

__all__ = [
    "FIRST_WARNING_DAYS",
    "OVERDUE_INTERVAL_DAYS",
    "days_until_due",
    "due_state",
    "is_reminder_due",
    "reminder_kind",
    "in_bulk_window",
    "due_reminders",
]

FIRST_WARNING_DAYS = 3
OVERDUE_INTERVAL_DAYS = 5


def days_until_due(due_date: date, today: date) -> int:
    """Positive before the due date, 0 on it, negative once overdue."""
    return (due_date - today).days


def due_state(installment: Installment, today: date) -> DueState:
    if installment.status is InstallmentStatus.PAGO:
        return DueState.SETTLED
    days = days_until_due(installment.due_date, today)
    if days > FIRST_WARNING_DAYS:
        return DueState.FUTURE
    if days > 0:
        return DueState.DUE_SOON
    if days == 0:
        return DueState.DUE_TODAY
    return DueState.OVERDUE


def reminder_kind(days: int) -> ReminderKind:
    """Message template for an installment ``days`` away from its due date."""
    if days > 0:
        return ReminderKind.FIRST_WARNING
    if days == 0:
        return ReminderKind.DUE_TODAY
    return ReminderKind.OVERDUE


def is_reminder_due(installment: Installment, today: date) -> bool:
    if installment.status is not InstallmentStatus.PENDENTE:
        return False
    days = days_until_due(installment.due_date, today)
    if days == FIRST_WARNING_DAYS or days == 0:
        return True
    return days < 0 and abs(days) % OVERDUE_INTERVAL_DAYS == 0


def in_bulk_window(installment: Installment, today: date) -> bool:
    """Pending and due within the next 3 days or already overdue."""
    return (
        installment.status is InstallmentStatus.PENDENTE
        and days_until_due(installment.due_date, today) <= FIRST_WARNING_DAYS
    )


def due_reminders(installments: Iterable[Installment], today: date) -> list[Reminder]:
    """Installments that must be reminded on ``today``, oldest due date first."""
    reminders = []
    for inst in sorted(installments, key=lambda i: i.due_date):
        if not is_reminder_due(inst, today):
            continue
        days = days_until_due(inst.due_date, today)
        reminders.append(Reminder(installment=inst, days_until_due=days, kind=reminder_kind(days)))
    return reminders

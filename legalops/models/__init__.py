"""Domain models for the client import pipeline and billing reminders.

This package contains the record types shared by the normalizer, the
deduplication filter, the batch committer and the cadence engine.
"""

from .candidate import CandidateRecord, RawRow, ValidationError
from .context import RunContext
from .import_result import CommitResult, DedupResult, ImportResult, InFileRepeat
from .installment import (
    BulkSendResult,
    DispatchOutcome,
    DueState,
    Installment,
    InstallmentKind,
    InstallmentStatus,
    Reminder,
    ReminderKind,
)

__all__ = [
    # Import pipeline models
    "RawRow",
    "CandidateRecord",
    "ValidationError",
    "DedupResult",
    "InFileRepeat",
    "CommitResult",
    "ImportResult",
    # Billing models
    "Installment",
    "InstallmentKind",
    "InstallmentStatus",
    "DueState",
    "Reminder",
    "ReminderKind",
    "DispatchOutcome",
    "BulkSendResult",
    # Context
    "RunContext",
]

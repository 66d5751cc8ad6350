from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ..logging.error_log import ErrorLogBuffer

if TYPE_CHECKING:
    from ..billing.gateway import MessagingGateway
    from ..db.gateway import PersistenceGateway

"""Explicit run context threaded through every pipeline call.

Tenant scoping and collaborator clients are passed in here instead of being
read from ambient state.
"""

DEFAULT_BATCH_SIZE = 100
DEFAULT_REMINDER_DELAY_SECONDS = 1.0


@dataclass
class RunContext:
    """Owner scope plus the external collaborators one run talks to.

    Attributes:
        owner_id: tenant/user that owns every row read or written
        gateway: persistence gateway (clientes / processos / financeiro)
        messenger: messaging gateway, required only for reminder runs
        deliver_file: ``(blob, filename)`` sink for generated spreadsheets
        error_log: JSON Lines buffer for commit and dispatch failures
        batch_size: rows per insert batch
        reminder_delay_seconds: pause between two reminder dispatches
    """
    owner_id: str
    gateway: PersistenceGateway
    messenger: MessagingGateway | None = None
    deliver_file: Callable[[bytes, str], Any] | None = None
    error_log: ErrorLogBuffer = field(default_factory=ErrorLogBuffer)
    batch_size: int = DEFAULT_BATCH_SIZE
    reminder_delay_seconds: float = DEFAULT_REMINDER_DELAY_SECONDS

from __future__ import annotations

import sys
from collections.abc import Callable
from typing import Any

from tqdm import tqdm
from tqdm.std import tqdm as TqdmType

"""Import progress reporting with tqdm (TTY only).

Progress is a percentage that only moves forward and always ends at 100,
including early returns. Checkpoints used by the import run:

    10 parse, 30 validation, 50 dedup lookup,
    70-85 client batches, 85-95 process batches, 100 done
"""

__all__ = [
    "ProgressReporter",
    "is_tty_enabled",
    "PARSED",
    "VALIDATED",
    "DEDUPLICATED",
    "CLIENTS_START",
    "CLIENTS_END",
    "PROCESSES_END",
    "DONE",
]

PARSED = 10
VALIDATED = 30
DEDUPLICATED = 50
CLIENTS_START = 70
CLIENTS_END = 85
PROCESSES_END = 95
DONE = 100


def is_tty_enabled() -> bool:
    """True if stdout is a TTY and a progress bar should be drawn."""
    return sys.stdout.isatty()


class ProgressReporter:
    """Monotonic percentage tracker.

    Values lower than the current one are ignored and values above 100 are
    clamped. Each accepted value is forwarded to ``callback`` (e.g. a UI
    progress indicator) and, on a TTY, drawn with tqdm. In non-TTY
    environments (CI) no bar is created.
    """

    def __init__(
        self,
        callback: Callable[[int], Any] | None = None,
        *,
        description: str = "Importing clients",
        show_bar: bool | None = None,
    ) -> None:
        self.callback = callback
        self.description = description
        self.percent = 0
        self.history: list[int] = []

        self.enabled = is_tty_enabled() if show_bar is None else show_bar
        self.pbar: TqdmType[Any] | None
        if self.enabled:
            self.pbar = tqdm(
                total=DONE,
                desc=description,
                unit="%",
                leave=True,
                ncols=80,
                ascii=True,
            )
        else:
            self.pbar = None

    def report(self, percent: float) -> int:
        """Advance to ``percent`` if it is ahead of the current value."""
        value = min(int(percent), DONE)
        if value <= self.percent:
            return self.percent
        if self.pbar is not None:
            self.pbar.update(value - self.percent)
        self.percent = value
        self.history.append(value)
        if self.callback is not None:
            self.callback(value)
        return value

    def report_fraction(self, start: int, end: int, done: int, total: int) -> int:
        """Report position ``done/total`` inside the ``start..end`` window."""
        if total <= 0:
            return self.report(end)
        return self.report(start + (end - start) * done / total)

    def finish(self) -> None:
        self.report(DONE)

    def close(self) -> None:
        if self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> ProgressReporter:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

from __future__ import annotations

from ..models.import_result import ImportResult
from ..models.installment import BulkSendResult

"""SUMMARY line rendering for import and reminder runs.

The functions return the line body; the ``SUMMARY`` label is added by the
log formatter when the body goes through :func:`legalops.logging.init.log_summary`.
"""


def _format_seconds(value: float) -> str:
    if value == 0:
        return "0"
    if value == int(value):
        return str(int(value))
    if value < 0.01:
        # 指数表記を避ける
        return f"{value:.6f}".rstrip("0").rstrip(".")
    return f"{value:.2f}"


def render_summary_line(result: ImportResult) -> str:
    """Render the SUMMARY body of an import run.

    Examples:
        >>> r = ImportResult(
        ...     total_rows=3, valid_rows=2, invalid_rows=1, imported_rows=1,
        ...     duplicates_skipped=1, processes_created=0, errors=[],
        ... )
        >>> render_summary_line(r)
        'rows=3 valid=2 invalid=1 imported=1 duplicates=1 processes=0 errors=0 failed_batches=0 elapsed_sec=0'
    """
    return (
        f"rows={result.total_rows} "
        f"valid={result.valid_rows} "
        f"invalid={result.invalid_rows} "
        f"imported={result.imported_rows} "
        f"duplicates={result.duplicates_skipped} "
        f"processes={result.processes_created} "
        f"errors={len(result.errors)} "
        f"failed_batches={result.failed_batches} "
        f"elapsed_sec={_format_seconds(result.elapsed_seconds)}"
    )


def render_reminder_summary(result: BulkSendResult) -> str:
    return (
        f"reminders={result.total} "
        f"sent={result.success_count} "
        f"failed={result.failure_count}"
    )

from __future__ import annotations

import logging
from datetime import UTC, date, datetime
from pathlib import Path

from ..excel.reader import SpreadsheetReadError, parse_workbook
from ..excel.report import build_error_report, report_filename
from ..models.candidate import CandidateRecord, ValidationError
from ..models.context import RunContext
from ..models.import_result import CommitResult, ImportResult
from ..validation.normalizer import normalize
from .committer import commit
from .dedup import fetch_existing_keys, filter_duplicates, settle_repeats
from .progress import DEDUPLICATED, PARSED, VALIDATED, ProgressReporter

"""Service orchestration for one client spreadsheet import.

parse -> normalize/validate -> dedup against the owner's clients -> batched
commit -> error report. Row and batch problems are returned inside
ImportResult; only setup failures (no owner, empty or unreadable file) raise
ImportRunError, before anything is written.
"""

__all__ = [
    "ImportRunError",
    "import_clients",
    "import_file",
]

logger = logging.getLogger(__name__)


class ImportRunError(Exception):
    """Fatal error that aborts the whole run (no partial result)."""


def _warn_partial_process(cand: CandidateRecord) -> None:
    if bool(cand.process_number) != bool(cand.process_type):
        missing = "type" if cand.process_number else "number"
        logger.warning(
            f"line {cand.line_number}: process {missing} missing, row imported without process"
        )


def _deliver_report(
    errors: list[ValidationError], source_name: str, today: date, ctx: RunContext
) -> str:
    name = report_filename(source_name, today)
    blob = build_error_report(errors)
    if ctx.deliver_file is not None:
        ctx.deliver_file(blob, name)
    logger.info(f"error report generated: {name} ({len(errors)} entries)")
    return name


def import_clients(
    data: bytes,
    source_name: str,
    ctx: RunContext,
    *,
    progress: ProgressReporter | None = None,
    today: date | None = None,
) -> ImportResult:
    """Import clients (and linked processes) from spreadsheet bytes.

    Args:
        data: xlsx file contents
        source_name: original filename (used in logs and the report name)
        ctx: owner scope and collaborators
        progress: optional progress reporter; always ends at 100
        today: date used for the report name (defaults to today, UTC)

    Raises:
        ImportRunError: missing owner, unreadable or empty spreadsheet
    """
    start = datetime.now(UTC)
    progress = progress or ProgressReporter(show_bar=False)
    today = today or start.date()

    if not ctx.owner_id:
        raise ImportRunError("user not authenticated")

    try:
        raw_rows = parse_workbook(data)
    except SpreadsheetReadError as e:
        raise ImportRunError(str(e)) from e
    if not raw_rows:
        raise ImportRunError("spreadsheet has no data rows")
    progress.report(PARSED)
    logger.info(f"{source_name}: {len(raw_rows)} rows read")

    candidates = [normalize(r.values, r.row_index) for r in raw_rows]
    valid = [c for c in candidates if c.is_valid]
    errors: list[ValidationError] = [e for c in candidates for e in c.errors]
    for cand in valid:
        _warn_partial_process(cand)
    progress.report(VALIDATED)
    logger.info(f"{source_name}: valid={len(valid)} invalid={len(candidates) - len(valid)}")

    duplicates = 0
    committed = CommitResult(imported_count=0, processes_created=0, client_id_by_line={})
    if valid:
        existing = fetch_existing_keys(ctx.gateway, ctx.owner_id)
        dedup = filter_duplicates(valid, existing)
        progress.report(DEDUPLICATED)
        committed = commit(dedup.to_insert, ctx, progress=progress, source=source_name)
        errors.extend(committed.errors)
        repeated, orphaned = settle_repeats(dedup.repeats, committed.client_id_by_line)
        errors.extend(orphaned)
        duplicates = dedup.skipped_count + repeated
        if duplicates:
            logger.info(f"{source_name}: {duplicates} duplicate clients skipped")
    else:
        logger.warning(f"{source_name}: no valid rows, nothing to import")

    report_name = None
    if errors:
        report_name = _deliver_report(errors, source_name, today, ctx)

    flushed = ctx.error_log.flush()
    if flushed is not None:
        logger.info(f"error log written: {flushed}")

    progress.finish()
    elapsed = (datetime.now(UTC) - start).total_seconds()
    return ImportResult(
        total_rows=len(candidates),
        valid_rows=len(valid),
        invalid_rows=len(candidates) - len(valid),
        imported_rows=committed.imported_count,
        duplicates_skipped=duplicates,
        processes_created=committed.processes_created,
        errors=errors,
        error_report_name=report_name,
        failed_batches=committed.failed_batches,
        elapsed_seconds=elapsed,
    )


def import_file(path: Path, ctx: RunContext, **kwargs) -> ImportResult:
    """Read ``path`` and run :func:`import_clients` on its contents."""
    try:
        data = path.read_bytes()
    except OSError as e:
        raise ImportRunError(f"cannot read {path}: {e}") from e
    return import_clients(data, path.name, ctx, **kwargs)

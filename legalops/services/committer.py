from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from ..db.gateway import CLIENTS_TABLE, PROCESSES_TABLE, InsertOutcome
from ..models.candidate import CandidateRecord, ValidationError
from ..models.context import RunContext
from ..models.import_result import CommitResult
from .progress import CLIENTS_END, CLIENTS_START, PROCESSES_END, ProgressReporter

"""Batch committer.

Clients are inserted in fixed-size batches; a rejected batch is logged and
skipped and the loop moves on, so a run may end partially committed. A second
batched pass inserts the processes of the clients that were stored, pointing
at their generated ids (parent id -> child FK, paired by line number).
"""

__all__ = [
    "commit",
    "chunked",
]

logger = logging.getLogger(__name__)

ERROR_TYPE_CLIENT_BATCH = "CLIENT_BATCH_INSERT_ERROR"
ERROR_TYPE_PROCESS_BATCH = "PROCESS_BATCH_INSERT_ERROR"


def chunked(items: Sequence[Any], size: int) -> list[Sequence[Any]]:
    if size < 1:
        raise ValueError("batch size must be >= 1")
    return [items[i:i + size] for i in range(0, len(items), size)]


def _batch_error(outcome: InsertOutcome, batch: Sequence[CandidateRecord]) -> str | None:
    if outcome.error is not None:
        return outcome.error
    if len(outcome.inserted) != len(batch):
        # 行と id を対応付けられないので失敗扱い
        return f"store returned {len(outcome.inserted)} rows for {len(batch)}"
    return None


def _record_batch_failure(
    ctx: RunContext,
    source: str,
    stage: str,
    error_type: str,
    field_name: str,
    batch: Sequence[CandidateRecord],
    message: str,
    errors: list[ValidationError],
) -> None:
    for cand in batch:
        ctx.error_log.record(source, stage, cand.line_number, error_type, message)
        errors.append(
            ValidationError(
                line_number=cand.line_number,
                field=field_name,
                raw_value=cand.name,
                message=f"{stage} batch insert failed: {message}",
            )
        )


def commit(
    to_insert: Sequence[CandidateRecord],
    ctx: RunContext,
    progress: ProgressReporter | None = None,
    source: str = "",
) -> CommitResult:
    """Persist candidates (and their processes) for ``ctx.owner_id``.

    Never raises for a failed batch: the shortfall shows up in the counts,
    ``failed_batches`` and the ``commit`` / ``process`` errors.
    """
    errors: list[ValidationError] = []
    client_id_by_line: dict[int, Any] = {}
    imported = 0
    failed_batches = 0

    batches = chunked(list(to_insert), ctx.batch_size)
    for n, batch in enumerate(batches, start=1):
        rows = [c.to_client_row(ctx.owner_id) for c in batch]
        outcome = ctx.gateway.insert_many(CLIENTS_TABLE, rows)
        error = _batch_error(outcome, batch)
        if error is not None:
            failed_batches += 1
            logger.error(
                f"client batch {n}/{len(batches)} failed "
                f"(lines {batch[0].line_number}-{batch[-1].line_number}): {error}"
            )
            _record_batch_failure(
                ctx, source, "clients", ERROR_TYPE_CLIENT_BATCH, "commit", batch, error, errors
            )
        else:
            # RETURNING は VALUES 順
            for cand, stored in zip(batch, outcome.inserted, strict=True):
                client_id_by_line[cand.line_number] = stored.get("id")
            imported += len(outcome.inserted)
            logger.info(f"client batch {n}/{len(batches)} inserted {len(outcome.inserted)} rows")
        if progress is not None:
            progress.report_fraction(CLIENTS_START, CLIENTS_END, n, len(batches))

    # 2nd pass: processos
    with_process = [
        c for c in to_insert if c.has_process and c.line_number in client_id_by_line
    ]
    processes_created = 0
    process_batches = chunked(with_process, ctx.batch_size)
    for n, batch in enumerate(process_batches, start=1):
        rows = [
            c.to_process_row(ctx.owner_id, client_id_by_line[c.line_number]) for c in batch
        ]
        outcome = ctx.gateway.insert_many(PROCESSES_TABLE, rows)
        error = _batch_error(outcome, batch)
        if error is not None:
            failed_batches += 1
            logger.error(f"process batch {n}/{len(process_batches)} failed: {error}")
            _record_batch_failure(
                ctx, source, "processes", ERROR_TYPE_PROCESS_BATCH, "process", batch, error, errors
            )
        else:
            processes_created += len(outcome.inserted)
        if progress is not None:
            progress.report_fraction(CLIENTS_END, PROCESSES_END, n, len(process_batches))

    return CommitResult(
        imported_count=imported,
        processes_created=processes_created,
        client_id_by_line=client_id_by_line,
        failed_batches=failed_batches,
        errors=errors,
    )

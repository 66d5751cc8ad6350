from __future__ import annotations

import re
import time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from psycopg2.extras import execute_values

"""DB batch insert.

Multi-row INSERT through psycopg2.extras.execute_values. When ``returning``
is requested the generated rows are fetched back in VALUES order, which the
committer relies on to pair generated ids with spreadsheet lines.
"""

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class BatchInsertError(Exception):
    pass


@dataclass(frozen=True)
class BatchMetrics:
    """Timing data for a single batch insert."""
    batch_size: int
    elapsed_seconds: float
    start_time: float
    end_time: float


@dataclass(frozen=True)
class InsertResult:
    inserted_rows: int
    returned_values: list[tuple[Any, ...]] | None = None


def quote_identifier(name: str) -> str:
    """Double-quote a table/column name after checking it is a plain identifier."""
    if not _IDENTIFIER_RE.match(name):
        raise BatchInsertError(f"invalid identifier: {name!r}")
    return f'"{name}"'


def batch_insert(
    cursor: Any,
    table: str,
    columns: Sequence[str],
    rows: Iterable[Sequence[Any]],
    returning: bool = False,
    page_size: int = 1000,
    metrics_callback: Callable[[BatchMetrics], None] | None = None,
) -> InsertResult:
    """Perform one batched INSERT.

    Parameters
    ----------
    cursor: psycopg2 cursor
    table: target table
    columns: inserted columns, in the order of each row sequence
    rows: row sequences
    returning: append ``RETURNING *`` and fetch the generated rows
    page_size: execute_values page size; keep it >= len(rows) when returning
    metrics_callback: receives BatchMetrics after the statement ran. Not called
        for an empty ``rows`` (the function returns early).
    """
    rows_list = list(rows)
    if not rows_list:
        return InsertResult(inserted_rows=0, returned_values=[] if returning else None)

    cols_sql = ",".join(quote_identifier(c) for c in columns)
    base_sql = f"INSERT INTO {quote_identifier(table)} ({cols_sql}) VALUES %s"
    if returning:
        base_sql += " RETURNING *"

    start_time = time.time()
    try:
        returned = execute_values(
            cursor, base_sql, rows_list, page_size=page_size, fetch=returning
        )
    except Exception as e:
        raise BatchInsertError(str(e)) from e
    finally:
        end_time = time.time()
        if metrics_callback is not None:
            metrics_callback(
                BatchMetrics(
                    batch_size=len(rows_list),
                    elapsed_seconds=end_time - start_time,
                    start_time=start_time,
                    end_time=end_time,
                )
            )

    return InsertResult(
        inserted_rows=len(rows_list),
        returned_values=list(returned) if returning and returned is not None else None,
    )

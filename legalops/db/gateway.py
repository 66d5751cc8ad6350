from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from .batch_insert import BatchInsertError, BatchMetrics, batch_insert, quote_identifier

"""Persistence gateway.

Narrow relational interface consumed by the import pipeline and the reminder
engine. Rows are owner scoped through ``user_id`` and ids are generated by the
store. ``PostgresGateway`` implements it over a psycopg2 cursor; each write is
its own transaction so a failed batch never undoes an earlier one.
"""

__all__ = [
    "CLIENTS_TABLE",
    "PROCESSES_TABLE",
    "INSTALLMENTS_TABLE",
    "InsertOutcome",
    "UpdateOutcome",
    "PersistenceGateway",
    "PostgresGateway",
]

logger = logging.getLogger(__name__)

CLIENTS_TABLE = "clientes"
PROCESSES_TABLE = "processos"
INSTALLMENTS_TABLE = "financeiro"


@dataclass(frozen=True)
class InsertOutcome:
    """Rows as stored (with generated ids), or an error for the whole batch."""
    inserted: list[dict[str, Any]] = field(default_factory=list)
    error: str | None = None


@dataclass(frozen=True)
class UpdateOutcome:
    updated: int = 0
    error: str | None = None


class PersistenceGateway(Protocol):
    def insert_many(self, table: str, rows: Sequence[Mapping[str, Any]]) -> InsertOutcome: ...

    def select_where(
        self,
        table: str,
        filters: Mapping[str, Any],
        columns: Sequence[str] | None = None,
    ) -> list[dict[str, Any]]: ...

    def update_where(
        self, table: str, filters: Mapping[str, Any], patch: Mapping[str, Any]
    ) -> UpdateOutcome: ...


def _where_clause(filters: Mapping[str, Any]) -> tuple[str, list[Any]]:
    parts: list[str] = []
    params: list[Any] = []
    for col, value in filters.items():
        if isinstance(value, (list, tuple, set, frozenset)):
            # 複数値は ANY(%s) で1クエリにまとめる
            parts.append(f"{quote_identifier(col)} = ANY(%s)")
            params.append(list(value))
        elif value is None:
            parts.append(f"{quote_identifier(col)} IS NULL")
        else:
            parts.append(f"{quote_identifier(col)} = %s")
            params.append(value)
    if not parts:
        return "", params
    return " WHERE " + " AND ".join(parts), params


class PostgresGateway:
    """PersistenceGateway over a psycopg2 cursor (connection autocommit off).

    Every insert statement is timed; the timing is logged at debug level and
    also handed to ``metrics_callback`` when one is given.
    """

    def __init__(
        self,
        cursor: Any,
        page_size: int = 1000,
        metrics_callback: Callable[[BatchMetrics], None] | None = None,
    ) -> None:
        self.cursor = cursor
        self.page_size = page_size
        self.metrics_callback = metrics_callback

    def _column_names(self) -> list[str]:
        return [d[0] for d in (self.cursor.description or [])]

    def _insert_timed(self, table: str) -> Callable[[BatchMetrics], None]:
        def _on_metrics(m: BatchMetrics) -> None:
            logger.debug(f"insert {table}: {m.batch_size} rows in {m.elapsed_seconds:.3f}s")
            if self.metrics_callback is not None:
                self.metrics_callback(m)

        return _on_metrics

    def _rollback(self) -> None:
        try:
            self.cursor.execute("ROLLBACK")
        except Exception as e:
            logger.error(f"rollback failed: {e}")

    def insert_many(self, table: str, rows: Sequence[Mapping[str, Any]]) -> InsertOutcome:
        if not rows:
            return InsertOutcome()
        columns = list(rows[0].keys())
        values = [tuple(r.get(c) for c in columns) for r in rows]
        try:
            result = batch_insert(
                self.cursor,
                table,
                columns,
                values,
                returning=True,
                page_size=max(self.page_size, len(values)),
                metrics_callback=self._insert_timed(table),
            )
            names = self._column_names()
            self.cursor.execute("COMMIT")
        except BatchInsertError as e:
            self._rollback()
            return InsertOutcome(error=str(e))
        except Exception as e:
            self._rollback()
            return InsertOutcome(error=f"commit failed: {e}")
        inserted = [dict(zip(names, row, strict=False)) for row in result.returned_values or []]
        return InsertOutcome(inserted=inserted)

    def select_where(
        self,
        table: str,
        filters: Mapping[str, Any],
        columns: Sequence[str] | None = None,
    ) -> list[dict[str, Any]]:
        cols_sql = ",".join(quote_identifier(c) for c in columns) if columns else "*"
        where, params = _where_clause(filters)
        self.cursor.execute(f"SELECT {cols_sql} FROM {quote_identifier(table)}{where}", params)
        names = self._column_names()
        return [dict(zip(names, row, strict=False)) for row in self.cursor.fetchall()]

    def update_where(
        self, table: str, filters: Mapping[str, Any], patch: Mapping[str, Any]
    ) -> UpdateOutcome:
        if not filters:
            # 全件更新は許可しない
            return UpdateOutcome(error="update without filters refused")
        set_sql = ",".join(f"{quote_identifier(c)} = %s" for c in patch)
        where, params = _where_clause(filters)
        try:
            self.cursor.execute(
                f"UPDATE {quote_identifier(table)} SET {set_sql}{where}",
                [*patch.values(), *params],
            )
            updated = self.cursor.rowcount
            self.cursor.execute("COMMIT")
        except Exception as e:
            self._rollback()
            return UpdateOutcome(error=str(e))
        return UpdateOutcome(updated=updated)

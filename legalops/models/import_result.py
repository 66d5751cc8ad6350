from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .candidate import CandidateRecord, ValidationError

"""Result models for one client import run.

DedupResult and CommitResult are the intermediate outputs of the
deduplication filter and the batch committer; ImportResult is the aggregate
summary returned to the caller.
"""


@dataclass(frozen=True)
class InFileRepeat:
    """A valid row whose email or tax id was already taken by an earlier row of the same file."""
    record: CandidateRecord
    repeats_lines: tuple[int, ...]  # 先に受け入れた行の行番号


@dataclass(frozen=True)
class DedupResult:
    """Output of the deduplication filter."""
    to_insert: list[CandidateRecord]
    skipped_count: int  # 永続化済みクライアントとの衝突のみ
    repeats: list[InFileRepeat] = field(default_factory=list)


@dataclass(frozen=True)
class CommitResult:
    """Output of the batch committer.

    ``failed_batches`` counts client and process batches that were rejected by
    the store; their rows are listed in ``errors`` with field ``commit``
    (client batch) or ``process`` (process batch).
    """
    imported_count: int  # 挿入成功したクライアント数
    processes_created: int  # 挿入成功したプロセス数
    client_id_by_line: dict[int, Any]  # 行番号 -> 生成 ID
    failed_batches: int = 0
    errors: list[ValidationError] = field(default_factory=list)


@dataclass(frozen=True)
class ImportResult:
    """Aggregate summary of one import run (return contract of import_clients)."""
    total_rows: int  # 空行を除くデータ行数
    valid_rows: int
    invalid_rows: int
    imported_rows: int
    duplicates_skipped: int
    processes_created: int
    errors: list[ValidationError]  # validation errors followed by commit errors
    error_report_name: str | None = None  # 生成されたエラーレポートのファイル名
    failed_batches: int = 0
    elapsed_seconds: float = 0.0

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

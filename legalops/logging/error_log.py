from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

"""Error log generation & buffering.

Batch commit failures and reminder dispatch failures are recorded as JSON
Lines with a fixed schema (no extra keys):

    {"timestamp", "source", "stage", "line", "error_type", "message"}

One file ``logs/errors-YYYYMMDD-HHMMSS.log`` (UTC) is created per run, and only
when at least one record was buffered.
"""

__all__ = [
    "ErrorRecord",
    "ErrorLogBuffer",
]

LOGS_DIR = Path("./logs")
TIMESTAMP_FMT = "%Y%m%d-%H%M%S"

# line が不明な場合 (バッチ全体 / 実行単位のエラー)
UNKNOWN_LINE = -1


@dataclass(frozen=True)
class ErrorRecord:
    """Structured error record for JSON Lines logging.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        source: spreadsheet filename, or ``reminders`` for dispatch runs
        stage: pipeline stage (``clients``, ``processes``, ``dispatch``)
        line: spreadsheet line number, or -1 when it does not apply
        error_type: classification in UPPER_SNAKE_CASE
        message: store / gateway error message
    """
    timestamp: str  # ISO8601 UTC
    source: str
    stage: str
    line: int
    error_type: str  # UPPER_SNAKE
    message: str

    @staticmethod
    def create(source: str, stage: str, line: int, error_type: str, message: str) -> ErrorRecord:
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ErrorRecord(
            timestamp=ts,
            source=source,
            stage=stage,
            line=line,
            error_type=error_type,
            message=message,
        )

    def to_json_line(self) -> str:
        # dataclass -> dict で追加キーを防ぐ
        return json.dumps(asdict(self), ensure_ascii=False, default=str)


class ErrorLogBuffer:
    """In-memory buffer for error records. Flush writes JSON Lines.

    - The file path is decided on first flush that has records
    - Repeated flushes append to the same file
    - Not thread safe (runs are sequential)
    """
    def __init__(self, logs_dir: Path | None = None) -> None:
        self._records: list[ErrorRecord] = []
        self._logs_dir = logs_dir if logs_dir is not None else LOGS_DIR
        self._file_path: Path | None = None

    @property
    def file_path(self) -> Path:
        if self._file_path is None:
            self._logs_dir.mkdir(parents=True, exist_ok=True)
            stamp = datetime.now(UTC).strftime(TIMESTAMP_FMT)
            self._file_path = self._logs_dir / f"errors-{stamp}.log"
        return self._file_path

    def append(self, record: ErrorRecord) -> None:
        self._records.append(record)

    def record(self, source: str, stage: str, line: int, error_type: str, message: Any) -> ErrorRecord:
        rec = ErrorRecord.create(source, stage, line, error_type, str(message))
        self.append(rec)
        return rec

    @property
    def records(self) -> list[ErrorRecord]:
        return list(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def flush(self) -> Path | None:
        if not self._records:
            return None  # 空ならファイルを作らない
        fp = self.file_path
        with fp.open("a", encoding="utf-8") as f:
            for r in self._records:
                f.write(r.to_json_line() + "\n")
        self._records.clear()
        return fp

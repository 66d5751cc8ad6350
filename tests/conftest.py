# Shared pytest fixtures
from __future__ import annotations

import io
import tempfile
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

import pandas as pd
import pytest

from legalops.billing.gateway import SendResult
from legalops.db.gateway import InsertOutcome, UpdateOutcome
from legalops.logging.error_log import ErrorLogBuffer
from legalops.models.context import RunContext

OWNER = "owner-1"


class FakeGateway:
    """In-memory PersistenceGateway.

    ``fail_inserts`` holds 1-based insert_many call numbers (per table) that
    must be rejected, to simulate a failing batch.
    """

    def __init__(self) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = {}
        self._next_id: dict[str, int] = {}
        self.insert_calls: dict[str, int] = {}
        self.fail_inserts: dict[str, set[int]] = {}
        self.select_calls: list[tuple[str, dict[str, Any]]] = []
        self.fail_updates = False

    def seed(self, table: str, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        stored = []
        for r in rows:
            row = dict(r)
            if "id" not in row:
                row["id"] = self._new_id(table)
            self.tables.setdefault(table, []).append(row)
            stored.append(row)
        return stored

    def _new_id(self, table: str) -> int:
        self._next_id[table] = self._next_id.get(table, 0) + 1
        return self._next_id[table]

    @staticmethod
    def _matches(row: Mapping[str, Any], filters: Mapping[str, Any]) -> bool:
        for col, value in filters.items():
            if isinstance(value, (list, tuple, set, frozenset)):
                if row.get(col) not in value:
                    return False
            elif row.get(col) != value:
                return False
        return True

    def insert_many(self, table: str, rows: Sequence[Mapping[str, Any]]) -> InsertOutcome:
        n = self.insert_calls.get(table, 0) + 1
        self.insert_calls[table] = n
        if n in self.fail_inserts.get(table, set()):
            return InsertOutcome(error=f"simulated failure on {table} batch {n}")
        return InsertOutcome(inserted=self.seed(table, [dict(r) for r in rows]))

    def select_where(self, table, filters, columns=None):
        self.select_calls.append((table, dict(filters)))
        rows = [r for r in self.tables.get(table, []) if self._matches(r, filters)]
        if columns:
            return [{c: r.get(c) for c in columns} for r in rows]
        return [dict(r) for r in rows]

    def update_where(self, table, filters, patch):
        if self.fail_updates:
            return UpdateOutcome(error="simulated update failure")
        count = 0
        for row in self.tables.get(table, []):
            if self._matches(row, filters):
                row.update(patch)
                count += 1
        return UpdateOutcome(updated=count)


class RecordingMessenger:
    """MessagingGateway double; phones listed in ``failing`` are rejected."""

    def __init__(self, failing: set[str] | None = None) -> None:
        self.sent: list[tuple[str, str]] = []
        self.failing = failing or set()

    def send(self, to_phone_e164: str, body: str) -> SendResult:
        if to_phone_e164 in self.failing:
            return SendResult(False, error="provider rejected")
        self.sent.append((to_phone_e164, body))
        return SendResult(True, provider_message_id=f"SM{len(self.sent)}")


def make_xlsx(rows: list[list[object]], sheet: str = "Clientes") -> bytes:
    """Workbook bytes; ``rows[0]`` is the header row."""
    buf = io.BytesIO()
    with pd.ExcelWriter(buf, engine="openpyxl") as writer:
        pd.DataFrame(rows).to_excel(writer, sheet_name=sheet, header=False, index=False)
    return buf.getvalue()


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        yield p


@pytest.fixture()
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture()
def messenger() -> RecordingMessenger:
    return RecordingMessenger()


@pytest.fixture()
def delivered() -> dict[str, bytes]:
    return {}


@pytest.fixture()
def ctx(gateway: FakeGateway, messenger: RecordingMessenger, delivered: dict[str, bytes], tmp_path: Path) -> RunContext:
    return RunContext(
        owner_id=OWNER,
        gateway=gateway,
        messenger=messenger,
        deliver_file=lambda blob, name: delivered.__setitem__(name, blob),
        error_log=ErrorLogBuffer(logs_dir=tmp_path / "logs"),
        reminder_delay_seconds=0.0,
    )


@pytest.fixture()
def sample_config_yaml() -> str:
    return """timezone: America/Sao_Paulo
import:
  batch_size: 50
  report_directory: ./reports
reminders:
  delay_seconds: 2
  gateway_url: https://messaging.example/send
database:
  host: localhost
  port: 5432
  user: appuser
  password: secret
  database: appdb
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "legalops.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def xlsx():
    return make_xlsx


@pytest.fixture(autouse=True)
def _reset_app_logging():
    # setup_logging() を呼ぶテストの後でも caplog が拾えるように戻す
    from legalops.logging.init import reset_logging

    yield
    reset_logging()

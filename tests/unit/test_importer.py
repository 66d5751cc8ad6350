from __future__ import annotations

import logging
from datetime import date

import pytest

from legalops.services.importer import ImportRunError, import_clients, import_file
from legalops.services.progress import ProgressReporter

TODAY = date(2024, 5, 10)


def test_missing_owner_is_fatal(ctx, xlsx):
    ctx.owner_id = ""
    with pytest.raises(ImportRunError, match="not authenticated"):
        import_clients(xlsx([["Nome"], ["Ana"]]), "c.xlsx", ctx)


def test_header_only_file_is_fatal(ctx, gateway, xlsx):
    with pytest.raises(ImportRunError, match="no data rows"):
        import_clients(xlsx([["Nome", "Email"]]), "c.xlsx", ctx)
    assert gateway.insert_calls == {}


def test_unreadable_bytes_are_fatal(ctx):
    with pytest.raises(ImportRunError):
        import_clients(b"\x00\x01garbage", "c.xlsx", ctx)


def test_clean_import_has_no_report(ctx, delivered, xlsx):
    res = import_clients(xlsx([["Nome", "CPF"], ["Ana", "123.456.789-01"], ["Bia", None]]), "c.xlsx", ctx, today=TODAY)
    assert (res.total_rows, res.valid_rows, res.imported_rows) == (2, 2, 2)
    assert res.error_report_name is None
    assert not res.has_errors
    assert delivered == {}


def test_progress_ends_at_100(ctx, xlsx):
    seen = []
    progress = ProgressReporter(seen.append, show_bar=False)
    import_clients(xlsx([["Nome"], ["Ana"]]), "c.xlsx", ctx, progress=progress)
    assert seen == sorted(seen)
    assert seen[:3] == [10, 30, 50]
    assert seen[-1] == 100


def test_progress_ends_at_100_when_all_rows_invalid(ctx, xlsx):
    progress = ProgressReporter(show_bar=False)
    import_clients(xlsx([["Nome", "Email"], [None, "a@b.com"]]), "c.xlsx", ctx, progress=progress)
    assert progress.percent == 100


def test_partial_process_fields_log_a_warning(ctx, gateway, xlsx, caplog):
    data = xlsx([["Nome", "Número do Processo"], ["Ana", "0001-22"]])
    with caplog.at_level(logging.WARNING, logger="legalops"):
        res = import_clients(data, "c.xlsx", ctx)
    assert res.imported_rows == 1
    assert res.processes_created == 0
    assert "line 2: process type missing" in caplog.text
    assert "processos" not in gateway.tables


def test_import_file_reads_path(ctx, xlsx, tmp_path):
    path = tmp_path / "clientes.xlsx"
    path.write_bytes(xlsx([["Nome"], ["Ana"]]))
    assert import_file(path, ctx).imported_rows == 1


def test_import_file_missing_path(ctx, tmp_path):
    with pytest.raises(ImportRunError, match="cannot read"):
        import_file(tmp_path / "nope.xlsx", ctx)


def test_batch_failure_appears_in_report(ctx, gateway, delivered, xlsx):
    ctx.batch_size = 1
    gateway.fail_inserts["clientes"] = {2}
    res = import_clients(xlsx([["Nome"], ["Ana"], ["Bia"], ["Caio"]]), "c.xlsx", ctx, today=TODAY)
    assert res.imported_rows == 2
    assert res.failed_batches == 1
    assert [(e.line_number, e.field) for e in res.errors] == [(3, "commit")]
    assert res.error_report_name == "c_errors_2024-05-10.xlsx"
    assert "c_errors_2024-05-10.xlsx" in delivered


def test_repeat_of_line_in_failed_batch_is_reported(ctx, gateway, delivered, xlsx):
    ctx.batch_size = 1
    gateway.fail_inserts["clientes"] = {1}
    data = xlsx([["Nome", "Email"], ["Ana", "ana@x.com"], ["Ana Lima", "ana@x.com"]])
    res = import_clients(data, "c.xlsx", ctx, today=TODAY)
    assert res.imported_rows == 0
    assert res.duplicates_skipped == 0
    assert res.failed_batches == 1
    assert [(e.line_number, e.field) for e in res.errors] == [(2, "commit"), (3, "commit")]
    assert "line 2" in res.errors[1].message
    assert "c_errors_2024-05-10.xlsx" in delivered


def test_repeat_of_committed_line_counts_as_duplicate(ctx, gateway, xlsx):
    data = xlsx([["Nome", "CPF"], ["Ana", "123.456.789-01"], ["Ana Lima", "12345678901"]])
    res = import_clients(data, "c.xlsx", ctx)
    assert (res.imported_rows, res.duplicates_skipped) == (1, 1)
    assert res.errors == []
    assert len(gateway.tables["clientes"]) == 1

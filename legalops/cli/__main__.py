from __future__ import annotations

import argparse
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo

import psycopg2
from dotenv import load_dotenv

from legalops.billing.dispatcher import BillingError, send_due_reminders
from legalops.billing.gateway import HttpMessagingGateway
from legalops.config.loader import DEFAULT_CONFIG_PATH, AppConfig, ConfigError, load_config
from legalops.db.gateway import PostgresGateway
from legalops.excel.report import save_to_directory
from legalops.excel.writer import build_template, export_clients
from legalops.logging.init import log_summary, set_debug, setup_logging
from legalops.models.context import RunContext
from legalops.services.importer import ImportRunError, import_file
from legalops.services.progress import ProgressReporter
from legalops.services.summary import render_reminder_summary, render_summary_line

"""Command line driver.

    python -m legalops.cli import clientes.xlsx --owner <user id>
    python -m legalops.cli remind --owner <user id> [--date YYYY-MM-DD]
    python -m legalops.cli export clientes.xlsx --owner <user id>
    python -m legalops.cli template template_clientes.xlsx

Exit codes: 0 success, 2 finished with row/batch/dispatch errors, 1 fatal.
"""

EXIT_SUCCESS_ALL = 0
EXIT_PARTIAL_FAILURE = 2
EXIT_FATAL = 1


@contextmanager
def _db_connection(cfg: AppConfig) -> Iterator[Any]:  # pragma: no cover (thin wrapper)
    """psycopg2 cursor; each gateway write commits or rolls back itself."""
    conn = psycopg2.connect(cfg.database.resolve_dsn())
    conn.autocommit = False
    cur = conn.cursor()
    try:
        yield cur
        if not conn.closed:
            conn.commit()
    finally:
        cur.close()
        conn.close()


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="legalops", description="Client import and billing reminders")
    p.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="YAML config path")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    sub = p.add_subparsers(dest="command", required=True)

    imp = sub.add_parser("import", help="Import clients from a spreadsheet")
    imp.add_argument("file", type=Path)
    imp.add_argument("--owner", required=True, help="Owner (user) id")

    rem = sub.add_parser("remind", help="Send today's billing reminders")
    rem.add_argument("--owner", required=True, help="Owner (user) id")
    rem.add_argument("--date", type=date.fromisoformat, default=None, help="Evaluation day (YYYY-MM-DD)")

    exp = sub.add_parser("export", help="Export the owner's clients to a spreadsheet")
    exp.add_argument("out", type=Path)
    exp.add_argument("--owner", required=True, help="Owner (user) id")

    tpl = sub.add_parser("template", help="Write the import template")
    tpl.add_argument("out", type=Path)
    return p.parse_args(argv)


def _today(cfg: AppConfig) -> date:
    return datetime.now(ZoneInfo(cfg.timezone)).date()


def _run_import(args: argparse.Namespace, cfg: AppConfig, cursor: Any, logger) -> int:
    ctx = RunContext(
        owner_id=args.owner,
        gateway=PostgresGateway(cursor),
        deliver_file=save_to_directory(Path(cfg.imports.report_directory)),
        batch_size=cfg.imports.batch_size,
    )
    with ProgressReporter() as progress:
        try:
            result = import_file(args.file, ctx, progress=progress, today=_today(cfg))
        except ImportRunError as e:
            logger.error(f"import: {e}")
            return EXIT_FATAL
    log_summary(render_summary_line(result))
    return EXIT_PARTIAL_FAILURE if result.has_errors else EXIT_SUCCESS_ALL


def _run_remind(args: argparse.Namespace, cfg: AppConfig, cursor: Any, logger) -> int:
    if not cfg.reminders.gateway_url:
        logger.error("remind: reminders.gateway_url (or MESSAGING_API_URL) is not set")
        return EXIT_FATAL
    with HttpMessagingGateway(
        cfg.reminders.gateway_url,
        token=cfg.reminders.gateway_token,
        timeout=cfg.reminders.timeout_seconds,
    ) as messenger:
        ctx = RunContext(
            owner_id=args.owner,
            gateway=PostgresGateway(cursor),
            messenger=messenger,
            reminder_delay_seconds=cfg.reminders.delay_seconds,
        )
        try:
            result = send_due_reminders(ctx, args.date or _today(cfg))
        except BillingError as e:
            logger.error(f"remind: {e}")
            return EXIT_FATAL
    log_summary(render_reminder_summary(result))
    return EXIT_PARTIAL_FAILURE if result.failure_count else EXIT_SUCCESS_ALL


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    if args.debug:
        set_debug(logger)
        logger.debug("debug mode enabled")

    if args.command == "template":
        args.out.write_bytes(build_template())
        logger.info(f"template written: {args.out}")
        return EXIT_SUCCESS_ALL

    # .env を設定ファイルより優先
    load_dotenv(dotenv_path=Path(".env"), override=True)
    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    try:
        with _db_connection(cfg) as cur:
            if args.command == "import":
                return _run_import(args, cfg, cur, logger)
            if args.command == "remind":
                return _run_remind(args, cfg, cur, logger)
            args.out.write_bytes(export_clients(PostgresGateway(cur), args.owner))
            logger.info(f"clients exported: {args.out}")
            return EXIT_SUCCESS_ALL
    except psycopg2.Error as e:
        logger.error(f"database: {e}")
        return EXIT_FATAL


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())

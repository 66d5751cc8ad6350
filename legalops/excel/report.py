from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from pathlib import Path, PurePath
from typing import Any

from ..models.candidate import ValidationError
from .writer import serialize

"""Error report generation.

One spreadsheet row per error, keyed by the original line number so the user
can fix the source file and import it again.
"""

__all__ = [
    "REPORT_COLUMNS",
    "build_error_report",
    "report_filename",
    "save_to_directory",
]

REPORT_COLUMNS = ["Line", "Field", "Value", "Message"]
REPORT_SHEET = "Errors"


def _display_value(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, (str, int, float)):
        return value
    return str(value)


def build_error_report(errors: Sequence[ValidationError]) -> bytes:
    """Serialize errors to an xlsx workbook (sheet ``Errors``)."""
    rows = [
        {
            "Line": e.line_number,
            "Field": e.field,
            "Value": _display_value(e.raw_value),
            "Message": e.message,
        }
        for e in sorted(errors, key=lambda e: e.line_number)
    ]
    return serialize(rows, REPORT_SHEET, columns=REPORT_COLUMNS, column_widths=[8, 16, 30, 50])


def report_filename(source_name: str, today: date) -> str:
    """``<source stem>_errors_<YYYY-MM-DD>.xlsx``.

    Same file on the same day gives the same name; the delivery side decides
    whether to overwrite.
    """
    stem = PurePath(source_name).stem or "import"
    return f"{stem}_errors_{today.isoformat()}.xlsx"


def save_to_directory(directory: Path):
    """File delivery callable that writes blobs into ``directory``."""
    def _deliver(blob: bytes, filename: str) -> Path:
        directory.mkdir(parents=True, exist_ok=True)
        target = directory / filename
        target.write_bytes(blob)
        return target
    return _deliver

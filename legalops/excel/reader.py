from __future__ import annotations

import io
from typing import Any

import pandas as pd

from ..models.candidate import RawRow

"""Spreadsheet reader (codec input side).

The first row of the first sheet is the header; every following row is a data
row. Entirely empty rows are dropped, but the surviving rows keep their
original position (``RawRow.row_index``) so error reports point at the right
spreadsheet line.
"""

__all__ = [
    "SpreadsheetReadError",
    "SheetHeaderError",
    "parse_workbook",
    "rows_from_frame",
]


class SpreadsheetReadError(Exception):
    """Raised when the bytes cannot be opened as a spreadsheet."""


class SheetHeaderError(SpreadsheetReadError):
    """Raised when the sheet has no header row."""


def _clean_cell(val: Any) -> Any:
    if val is None:
        return None
    try:
        if pd.isna(val):
            return None
    except (TypeError, ValueError):
        # list 等は isna がスカラーを返さない
        return val
    if isinstance(val, str):
        stripped = val.strip()
        return stripped or None
    return val


def _header_names(cells: list[Any]) -> list[str]:
    """Header labels, made unique: a repeated ``Nome`` becomes ``Nome_1``, ``Nome_2``."""
    names: list[str] = []
    used: set[str] = set()
    for i, c in enumerate(cells):
        cleaned = _clean_cell(c)
        base = str(cleaned).strip() if cleaned is not None else f"column_{i + 1}"
        name, n = base, 0
        while name in used:
            n += 1
            name = f"{base}_{n}"
        used.add(name)
        names.append(name)
    return names


def rows_from_frame(df: pd.DataFrame) -> list[RawRow]:
    """Convert a header-less DataFrame (row 0 = header) into RawRows."""
    if df.shape[0] < 1:
        raise SheetHeaderError("sheet has no header row")
    columns = _header_names(df.iloc[0].tolist())

    rows: list[RawRow] = []
    # データ行はインデックス 1 から (ヘッダ = 1 行目)
    for row_index, raw in enumerate(df.iloc[1:].itertuples(index=False, name=None)):
        values = {col: _clean_cell(v) for col, v in zip(columns, raw, strict=False)}
        if all(v is None for v in values.values()):
            continue
        rows.append(RawRow(row_index=row_index, values=values))
    return rows


def parse_workbook(data: bytes, sheet: int | str = 0) -> list[RawRow]:
    """Parse spreadsheet bytes (xlsx) into RawRows.

    Parameters
    ----------
    data: file contents as uploaded
    sheet: sheet index or name (default: first sheet)

    Raises
    ------
    SpreadsheetReadError: bytes are not a readable workbook
    SheetHeaderError: the sheet is completely empty
    """
    if not data:
        raise SpreadsheetReadError("spreadsheet file is empty")
    try:
        df = pd.read_excel(io.BytesIO(data), sheet_name=sheet, header=None, dtype=object)
    except Exception as e:
        raise SpreadsheetReadError(f"unable to read spreadsheet: {e}") from e
    return rows_from_frame(df)

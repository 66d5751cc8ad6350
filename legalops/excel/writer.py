from __future__ import annotations

import io
from collections.abc import Sequence
from datetime import date, datetime
from typing import Any

import pandas as pd
from openpyxl.utils import get_column_letter

from ..db.gateway import CLIENTS_TABLE, PersistenceGateway

"""Spreadsheet writer (codec output side) and client export/template sheets.

Column widths are cosmetic only.
"""

__all__ = [
    "serialize",
    "export_clients",
    "build_template",
    "CLIENT_SHEET_COLUMNS",
]

CLIENT_SHEET_COLUMNS = ["Nome", "Email", "Telefone", "CPF/CNPJ", "Endereço"]
_CLIENT_WIDTHS = [30, 25, 15, 18, 40, 12]

TEMPLATE_EXAMPLE = {
    "Nome": "João Silva",
    "Email": "joao@exemplo.com",
    "Telefone": "(11) 99999-9999",
    "CPF/CNPJ": "123.456.789-00",
    "Endereço": "Rua das Flores, 123 - São Paulo/SP",
    "Número do Processo": "0001234-56.2024.8.26.0100",
    "Tipo de Processo": "Cível",
}


def serialize(
    rows: Sequence[dict[str, Any]],
    sheet_name: str,
    columns: Sequence[str] | None = None,
    column_widths: Sequence[int] | None = None,
) -> bytes:
    """Write rows into a single-sheet xlsx workbook and return its bytes."""
    df = pd.DataFrame(list(rows), columns=list(columns) if columns is not None else None)
    buf = io.BytesIO()
    with pd.ExcelWriter(buf, engine="openpyxl") as writer:
        df.to_excel(writer, sheet_name=sheet_name, index=False)
        if column_widths:
            ws = writer.sheets[sheet_name]
            for i, width in enumerate(column_widths, start=1):
                ws.column_dimensions[get_column_letter(i)].width = width
    return buf.getvalue()


def _format_created_at(value: Any) -> str:
    if value is None or value == "":
        return ""
    if isinstance(value, (datetime, date)):
        return value.strftime("%d/%m/%Y")
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).strftime("%d/%m/%Y")
    except ValueError:
        return str(value)


def export_clients(gateway: PersistenceGateway, owner_id: str) -> bytes:
    """All clients of ``owner_id`` ordered by name, one per row."""
    clients = gateway.select_where(
        CLIENTS_TABLE,
        {"user_id": owner_id},
        columns=["nome", "email", "telefone", "cpf_cnpj", "endereco", "created_at"],
    )
    clients.sort(key=lambda c: (c.get("nome") or "").casefold())
    rows = [
        {
            "Nome": c.get("nome") or "",
            "Email": c.get("email") or "",
            "Telefone": c.get("telefone") or "",
            "CPF/CNPJ": c.get("cpf_cnpj") or "",
            "Endereço": c.get("endereco") or "",
            "Data Cadastro": _format_created_at(c.get("created_at")),
        }
        for c in clients
    ]
    return serialize(
        rows,
        "Clientes",
        columns=[*CLIENT_SHEET_COLUMNS, "Data Cadastro"],
        column_widths=_CLIENT_WIDTHS,
    )


def build_template() -> bytes:
    """Import template with one example row using the canonical headers."""
    return serialize(
        [TEMPLATE_EXAMPLE],
        "Template Clientes",
        columns=list(TEMPLATE_EXAMPLE),
        column_widths=[*_CLIENT_WIDTHS[:5], 28, 18],
    )

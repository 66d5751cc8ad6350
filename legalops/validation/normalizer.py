from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from ..models.candidate import HEADER_LINE, CandidateRecord

"""Row normalizer & validator.

Maps loosely structured spreadsheet rows onto CandidateRecord. Each logical
field is looked up through an ordered alias list (first non-empty match wins,
header casing ignored). Problems are appended to the record's error list;
``normalize`` never raises.
"""

__all__ = [
    "FIELD_ALIASES",
    "normalize",
    "clean_string",
    "clean_phone",
    "digits_only",
    "validate_email",
    "validate_tax_id",
    "format_name",
]

FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    # 顧客
    "name": ("Nome", "NOME", "Name", "Cliente", "NomeCliente"),
    "email": ("Email", "EMAIL", "E-mail"),
    "phone": ("Telefone", "TELEFONE", "Phone", "Celular"),
    "tax_id": ("CPF/CNPJ", "CPF", "CNPJ", "cpf_cnpj", "Documento"),
    "rg": ("RG", "Identidade"),
    "birth_date": ("Data Nascimento", "Data de Nascimento", "Nascimento", "data_nascimento"),
    # 住所 (連結する)
    "street": ("Endereço", "Endereco", "Address", "Rua"),
    "district": ("Bairro",),
    "city": ("Cidade", "City"),
    "postal_code": ("CEP", "Codigo Postal"),
    # 案件
    "process_number": (
        "Número do Processo", "Numero do Processo", "numero_processo", "NumeroProcesso", "Processo",
    ),
    "process_type": (
        "Tipo de Processo", "Área do Processo", "tipo_processo", "TipoProcesso", "area_processo", "Area",
    ),
    "process_description": ("Descrição", "descricao", "Observações", "observacoes"),
}

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
NON_DIGIT_RE = re.compile(r"\D")
# 重複見出しのリネーム (Nome -> Nome_1)
RENAMED_HEADER_RE = re.compile(r"^(.+)_(\d+)$")

MIN_PHONE_DIGITS = 10
TAX_ID_LENGTHS = (11, 14)  # CPF / CNPJ


def _cell_text(value: Any) -> str:
    # 数値セル 11999999999.0 -> "11999999999"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def clean_string(value: Any) -> str | None:
    if value is None:
        return None
    cleaned = _cell_text(value).strip()
    return cleaned or None


def digits_only(value: Any) -> str:
    if value is None:
        return ""
    return NON_DIGIT_RE.sub("", _cell_text(value))


def clean_phone(value: Any) -> str | None:
    """Digits of the phone number, or None when fewer than 10 remain."""
    phone = digits_only(value)
    return phone if len(phone) >= MIN_PHONE_DIGITS else None


def validate_email(email: str | None) -> bool:
    if not email:
        return True  # 任意項目
    return EMAIL_RE.match(email) is not None


def validate_tax_id(value: str | None) -> bool:
    if not value:
        return True  # 任意項目
    return len(digits_only(value)) in TAX_ID_LENGTHS


def format_name(name: str) -> str:
    """Title-case every whitespace-delimited token."""
    return " ".join(token[:1].upper() + token[1:] for token in name.lower().split())


def _find_field_value(folded: Mapping[str, Any], field_name: str) -> Any:
    for alias in FIELD_ALIASES[field_name]:
        value = folded.get(alias.casefold())
        if value is not None and value != "":
            return value
    return None


def _join_address(*parts: str | None) -> str | None:
    present = [p for p in parts if p]
    return ", ".join(present) if present else None


def _fold_headers(values: Mapping[str, Any]) -> dict[str, Any]:
    """Case-insensitive header -> value; the first non-empty value of a header wins.

    Repeated headers renamed by the reader (``Nome_1``) also fill their base
    header (``Nome``) while it is still empty.
    """
    folded: dict[str, Any] = {}
    for key, value in values.items():
        k = str(key).strip().casefold()
        if folded.get(k) in (None, ""):
            folded[k] = value
    for k in list(folded):
        m = RENAMED_HEADER_RE.match(k)
        if m and m.group(1) in folded and folded[m.group(1)] in (None, ""):
            folded[m.group(1)] = folded[k]
    return folded


def normalize(values: Mapping[str, Any], row_index: int) -> CandidateRecord:
    """Build a CandidateRecord from one raw spreadsheet row.

    Parameters
    ----------
    values: column header -> cell value
    row_index: 0-based data row position (line number = row_index + 2)
    """
    line_number = row_index + HEADER_LINE + 1
    folded = _fold_headers(values)

    def text(field_name: str) -> str | None:
        return clean_string(_find_field_value(folded, field_name))

    record = CandidateRecord(line_number=line_number)

    name = text("name")
    if name is None:
        record.add_error("name", None, "name is required")
    else:
        record.name = format_name(name)

    email = text("email")
    if email is not None and not validate_email(email):
        record.add_error("email", email, "invalid email format")
    else:
        record.email = email

    record.phone = clean_phone(_find_field_value(folded, "phone"))

    tax_raw = text("tax_id")
    if tax_raw is not None:
        if validate_tax_id(tax_raw):
            record.tax_id = digits_only(tax_raw)
        else:
            record.add_error("tax_id", tax_raw, "tax id must have 11 or 14 digits")

    record.address = _join_address(
        text("street"), text("district"), text("city"), text("postal_code")
    )
    record.rg = text("rg")
    record.birth_date = text("birth_date")

    record.process_number = text("process_number")
    record.process_type = text("process_type")
    record.process_description = text("process_description")
    return record

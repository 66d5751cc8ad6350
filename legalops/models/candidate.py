from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

"""Import pipeline row models.

RawRow is the untyped spreadsheet row as read by the codec; CandidateRecord is
the normalized client produced from it, carrying every validation error found
on that row so the whole batch can be scored in one pass.
"""

__all__ = [
    "RawRow",
    "ValidationError",
    "CandidateRecord",
    "PROCESS_STATUS_ACTIVE",
]

# processos.status の既定値
PROCESS_STATUS_ACTIVE = "ACTIVE"

# 1行目はヘッダ、データ行は2行目から
HEADER_LINE = 1


@dataclass(frozen=True)
class RawRow:
    """Logical representation of one spreadsheet data row before normalization.

    ``row_index`` is the 0-based position among data rows in the original
    sheet. Blank rows are dropped by the reader, so indexes may have gaps but
    never shift.
    """
    row_index: int
    values: dict[str, Any]  # Column header -> cell value (as read)

    @property
    def line_number(self) -> int:
        return self.row_index + HEADER_LINE + 1


@dataclass(frozen=True)
class ValidationError:
    """A single problem found on a spreadsheet line.

    Attributes:
        line_number: spreadsheet line (header = 1, first data row = 2)
        field: canonical field name, or ``commit`` / ``process`` for batch
            insert failures
        raw_value: the offending value as found in the sheet
        message: human readable description
    """
    line_number: int
    field: str
    raw_value: Any
    message: str


@dataclass
class CandidateRecord:
    """Normalized client entity built from one spreadsheet line."""
    line_number: int
    name: str = ""
    email: str | None = None
    phone: str | None = None
    tax_id: str | None = None  # digits only
    address: str | None = None
    rg: str | None = None
    birth_date: str | None = None
    process_number: str | None = None
    process_type: str | None = None
    process_description: str | None = None
    errors: list[ValidationError] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def has_process(self) -> bool:
        """True only when both process number and type were provided."""
        return bool(self.process_number and self.process_type)

    def add_error(self, field_name: str, raw_value: Any, message: str) -> None:
        self.errors.append(
            ValidationError(
                line_number=self.line_number,
                field=field_name,
                raw_value=raw_value,
                message=message,
            )
        )

    def to_client_row(self, owner_id: str) -> dict[str, Any]:
        """Column mapping for the ``clientes`` table."""
        return {
            "user_id": owner_id,
            "nome": self.name,
            "email": self.email,
            "telefone": self.phone,
            "cpf_cnpj": self.tax_id,
            "endereco": self.address,
            "rg": self.rg,
            "data_nascimento": self.birth_date,
        }

    def to_process_row(self, owner_id: str, client_id: Any) -> dict[str, Any]:
        """Column mapping for the ``processos`` table."""
        return {
            "user_id": owner_id,
            "cliente_id": client_id,
            "numero_processo": self.process_number,
            "tipo_processo": self.process_type,
            "descricao": self.process_description,
            "status": PROCESS_STATUS_ACTIVE,
        }

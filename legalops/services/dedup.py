from __future__ import annotations

import logging
from collections.abc import Collection, Iterable
from dataclasses import dataclass, field

from ..db.gateway import CLIENTS_TABLE, PersistenceGateway
from ..models.candidate import CandidateRecord, ValidationError
from ..models.import_result import DedupResult, InFileRepeat
from ..validation.normalizer import digits_only

"""Deduplication filter.

Dedup keys are the email (case-insensitive) and the tax id (digits only). A
candidate is skipped when either non-null key is already known; candidates
without both keys always pass. The existing key snapshot is read once per run.
Rows repeating an earlier row of the same file wait for that row's commit
outcome before they are counted as duplicates.
"""

__all__ = [
    "ExistingKeys",
    "fetch_existing_keys",
    "filter_duplicates",
    "settle_repeats",
]

logger = logging.getLogger(__name__)


def email_key(email: str | None) -> str | None:
    return email.strip().casefold() if email else None


def tax_id_key(tax_id: str | None) -> str | None:
    digits = digits_only(tax_id)
    return digits or None


@dataclass(frozen=True)
class ExistingKeys:
    emails: frozenset[str] = field(default_factory=frozenset)
    tax_ids: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def from_values(cls, emails: Iterable[str | None], tax_ids: Iterable[str | None]) -> ExistingKeys:
        return cls(
            emails=frozenset(k for k in (email_key(e) for e in emails) if k),
            tax_ids=frozenset(k for k in (tax_id_key(t) for t in tax_ids) if k),
        )


def fetch_existing_keys(gateway: PersistenceGateway, owner_id: str) -> ExistingKeys:
    """Point-in-time snapshot of the owner's client emails and tax ids (one query)."""
    rows = gateway.select_where(CLIENTS_TABLE, {"user_id": owner_id}, columns=["email", "cpf_cnpj"])
    keys = ExistingKeys.from_values(
        (r.get("email") for r in rows), (r.get("cpf_cnpj") for r in rows)
    )
    logger.debug(
        f"existing keys owner={owner_id} emails={len(keys.emails)} tax_ids={len(keys.tax_ids)}"
    )
    return keys


def filter_duplicates(candidates: Iterable[CandidateRecord], existing: ExistingKeys) -> DedupResult:
    """Split candidates into rows to insert, skipped rows and in-file repeats.

    ``skipped_count`` only counts collisions with persisted clients. A row
    whose key was already taken by an earlier row of the same call is kept
    in ``repeats`` together with the line(s) it repeats; whether it is a
    duplicate depends on those lines being committed (see
    :func:`settle_repeats`). Pure function of its inputs.
    """
    email_lines: dict[str, int] = {}
    tax_id_lines: dict[str, int] = {}
    to_insert: list[CandidateRecord] = []
    repeats: list[InFileRepeat] = []
    skipped = 0
    for cand in candidates:
        ek = email_key(cand.email)
        tk = tax_id_key(cand.tax_id)
        if (ek is not None and ek in existing.emails) or (tk is not None and tk in existing.tax_ids):
            logger.debug(f"line {cand.line_number}: duplicate client skipped")
            skipped += 1
            continue
        anchors = {line for line in (email_lines.get(ek), tax_id_lines.get(tk)) if line is not None}
        if anchors:
            repeats.append(InFileRepeat(record=cand, repeats_lines=tuple(sorted(anchors))))
            continue
        if ek is not None:
            email_lines[ek] = cand.line_number
        if tk is not None:
            tax_id_lines[tk] = cand.line_number
        to_insert.append(cand)
    return DedupResult(to_insert=to_insert, skipped_count=skipped, repeats=repeats)


def settle_repeats(
    repeats: Iterable[InFileRepeat], committed_lines: Collection[int]
) -> tuple[int, list[ValidationError]]:
    """Resolve in-file repeats once the commit outcome is known.

    A repeat of a committed line is a duplicate of a persisted client. A
    repeat whose lines all failed to commit is not imported and is reported
    as a ``commit`` error naming those lines.
    """
    duplicates = 0
    errors: list[ValidationError] = []
    for rep in repeats:
        if any(line in committed_lines for line in rep.repeats_lines):
            duplicates += 1
            continue
        lines = ", ".join(str(line) for line in rep.repeats_lines)
        logger.warning(f"line {rep.record.line_number}: not imported, repeats failed line(s) {lines}")
        errors.append(
            ValidationError(
                line_number=rep.record.line_number,
                field="commit",
                raw_value=rep.record.email or rep.record.tax_id,
                message=f"not imported: same client as line {lines}, whose batch failed",
            )
        )
    return duplicates, errors

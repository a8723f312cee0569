from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, List, Mapping, Optional, Sequence, TypeVar

from .dbf_io import FieldIndex, Record
from .normalize import parse_number
from .schema import DEFAULT_PROGRAM_ID, CatalogEntry, accuracy_column

DEP_FIELDS = ("ANIMAL", "PROGAVAL", "CODIGODEP", "VALOR", "ACURACIA")

T = TypeVar("T")


class MissingCodeError(LookupError):
    """Raised when a catalog value column has no CODIGODEP after reconciliation."""


@dataclass(frozen=True)
class FactRow:
    animal_id: str
    code: int
    value: Optional[Decimal]
    accuracy: Optional[Decimal]
    program_id: int = DEFAULT_PROGRAM_ID


def _is_blank(raw: Any) -> bool:
    return raw is None or not str(raw).strip()


def build_fact_rows(
    record: Mapping[str, Any],
    animal_id: str,
    code_map: Mapping[str, int],
    catalog: Sequence[CatalogEntry],
    program_id: int = DEFAULT_PROGRAM_ID,
) -> List[FactRow]:
    """
    Turn one CSV record into DEP rows, one per catalog value column with data.

    The accuracy of a column is read from ``ACC_<column>``. Columns missing from
    the record count as blank; a column is skipped when both cells are blank.
    """

    rows: List[FactRow] = []
    for entry in catalog:
        if entry.is_accuracy:
            continue
        raw_value = record.get(entry.source_column)
        raw_accuracy = record.get(accuracy_column(entry.source_column))
        if _is_blank(raw_value) and _is_blank(raw_accuracy):
            continue

        value = parse_number(raw_value)
        accuracy = parse_number(raw_accuracy)

        code = code_map.get(entry.name)
        if code is None:
            raise MissingCodeError(f"No CODIGODEP for column {entry.source_column!r} (DESCDEP {entry.name!r})")

        rows.append(FactRow(animal_id, code, value, accuracy, program_id))
    return rows


def fact_record(index: FieldIndex, row: FactRow) -> Record:
    return index.build(
        {
            "ANIMAL": row.animal_id,
            "PROGAVAL": row.program_id,
            "CODIGODEP": row.code,
            "VALOR": row.value,
            "ACURACIA": row.accuracy,
        }
    )


def merge_rows(existing: Sequence[T], new: Sequence[T]) -> List[T]:
    """Append new rows after the existing ones, keeping arrival order and duplicates."""

    return [*existing, *new]
